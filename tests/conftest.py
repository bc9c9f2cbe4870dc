"""
Shared test fixtures.
"""

from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest


@pytest.fixture
def fake_redis():
    """Isolated in-memory Redis for each test."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.scalars = AsyncMock()
    db.add = MagicMock()
    return db
