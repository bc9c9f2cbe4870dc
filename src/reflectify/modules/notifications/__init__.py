"""
Notifications Module

Admin endpoints for inspecting and recovering queued email jobs.
"""

from .router import router

__all__ = ["router"]
