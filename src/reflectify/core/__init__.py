"""
Core module - Configuration, database, Redis, Celery, and utilities.
"""

from reflectify.core.config import get_settings, settings
from reflectify.core.database import Base, close_db, get_db, init_db
from reflectify.core.redis import close_redis, init_redis
from reflectify.core.security import create_access_token, decode_token

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "get_db",
    "init_db",
    "close_db",
    # Redis
    "init_redis",
    "close_redis",
    # Security
    "create_access_token",
    "decode_token",
]
