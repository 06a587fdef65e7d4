"""
Pytest configuration and shared fixtures for notemixer tests.

Provides:
- Relay and author key pairs (real ``nostr_sdk.Keys``)
- A factory for real signed events
- Mock fixtures for asyncpg, Pool and EventStore
- Environment defaults for the relay key and database password
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from nostr_sdk import EventBuilder, Keys, Kind, Tag, Timestamp

from notemixer.core.pool import DatabaseConfig, Pool, PoolConfig
from notemixer.core.store import EventStore
from notemixer.models import Event


RELAY_SECRET = "67dea2ed018072d675f5415ecfaed7d2597555e202d85b3d65ea4e58d2d92ffa"  # pragma: allowlist secret

EventFactory = Callable[..., Event]


# ============================================================================
# Logging / Environment
# ============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(level=logging.DEBUG)


@pytest.fixture(autouse=True)
def relay_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Provide the relay key and database password; clear deployment overrides."""
    monkeypatch.setenv("RELAY_PRIVATE_KEY", RELAY_SECRET)
    monkeypatch.setenv("DB_PASSWORD", "test_password")
    for var in (
        "RELAY_NAME",
        "RELAY_DESCRIPTION",
        "RELAY_ICON",
        "PORT",
        "ALLOWED_KINDS",
        "WHITELISTED_PUBKEYS",
        "REBROADCAST_RELAYS",
        "REBROADCAST_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)


# ============================================================================
# Keys and Events
# ============================================================================


@pytest.fixture
def relay_keys() -> Keys:
    return Keys.parse(RELAY_SECRET)


@pytest.fixture
def author_keys() -> Keys:
    return Keys.generate()


@pytest.fixture
def make_event(author_keys: Keys) -> EventFactory:
    """Factory for real signed events.

    Keyword arguments: ``kind``, ``content``, ``tags`` (list of string lists),
    ``created_at`` and ``keys`` (defaults to ``author_keys``).
    """

    def _make(
        *,
        kind: int = 1,
        content: str = "hello nostr",
        tags: list[list[str]] | None = None,
        created_at: int = 1_700_000_000,
        keys: Keys | None = None,
    ) -> Event:
        builder = (
            EventBuilder(Kind(kind), content)
            .tags([Tag.parse(t) for t in tags or []])
            .custom_created_at(Timestamp.from_secs(created_at))
        )
        return Event(builder.sign_with_keys(keys or author_keys))

    return _make


# ============================================================================
# Database Mocks
# ============================================================================


@pytest.fixture
def mock_connection() -> MagicMock:
    """Create a mock asyncpg connection."""
    conn = MagicMock()
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=0)
    conn.execute = AsyncMock(return_value="INSERT 0 1")
    return conn


@pytest.fixture
def mock_asyncpg_pool(mock_connection: MagicMock) -> MagicMock:
    """Create a mock asyncpg pool."""
    pool = MagicMock()
    pool.close = AsyncMock()

    mock_acquire = MagicMock()
    mock_acquire.__aenter__ = AsyncMock(return_value=mock_connection)
    mock_acquire.__aexit__ = AsyncMock(return_value=None)
    pool.acquire = MagicMock(return_value=mock_acquire)

    return pool


@pytest.fixture
def mock_pool(mock_asyncpg_pool: MagicMock, mock_connection: MagicMock) -> Pool:
    """Create a connected Pool with mocked internals."""
    config = PoolConfig(
        database=DatabaseConfig(host="localhost", port=5432, database="test_db", user="test_user")
    )
    pool = Pool(config=config)
    pool._pool = mock_asyncpg_pool
    pool._mock_connection = mock_connection  # type: ignore[attr-defined]
    return pool


@pytest.fixture
def mock_store() -> MagicMock:
    """An EventStore stand-in with async persistence methods."""
    store = MagicMock(spec=EventStore)
    store.save = AsyncMock(return_value=True)
    store.query = AsyncMock(return_value=[])
    store.count = AsyncMock(return_value=0)
    store.delete = AsyncMock(return_value=True)
    store.ensure_schema = AsyncMock()
    return store


@pytest.fixture
def pool_config_dict() -> dict[str, Any]:
    """Sample pool configuration dictionary."""
    return {
        "database": {
            "host": "localhost",
            "port": 5432,
            "database": "test_db",
            "user": "test_user",
        },
        "limits": {"min_size": 2, "max_size": 10},
        "retry": {"max_attempts": 2, "initial_delay": 0.5, "max_delay": 2.0},
        "application_name": "test_app",
    }
