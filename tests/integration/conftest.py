"""Integration test fixtures providing ephemeral PostgreSQL via testcontainers.

The PostgresContainer is session-scoped to avoid the Docker startup per test.
The schema is dropped and recreated per test (function-scoped ``store``
fixture) for isolation.
"""

from __future__ import annotations

import asyncpg
import pytest
from pydantic import SecretStr
from testcontainers.postgres import PostgresContainer

from notemixer.core.pool import DatabaseConfig, Pool, PoolConfig
from notemixer.core.store import EventStore, EventStoreConfig


# ---------------------------------------------------------------------------
# Session-scoped container
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def pg_container():
    """Spawn an ephemeral PostgreSQL 16 container for the test session."""
    with PostgresContainer("postgres:16-alpine") as pg:
        yield pg


@pytest.fixture(scope="session")
def pg_dsn(pg_container: PostgresContainer) -> dict[str, str | int]:
    """Extract connection parameters from the running container."""
    return {
        "host": pg_container.get_container_host_ip(),
        "port": int(pg_container.get_exposed_port(5432)),
        "database": pg_container.dbname,
        "user": pg_container.username,
        "password": pg_container.password,
    }


# ---------------------------------------------------------------------------
# Function-scoped EventStore with fresh schema
# ---------------------------------------------------------------------------


@pytest.fixture
async def store(pg_dsn: dict[str, str | int]):
    """Provide an EventStore backed by a real database with a fresh schema."""
    host = str(pg_dsn["host"])
    port = int(pg_dsn["port"])
    database = str(pg_dsn["database"])
    user = str(pg_dsn["user"])
    password = str(pg_dsn["password"])

    conn = await asyncpg.connect(
        host=host, port=port, database=database, user=user, password=password
    )
    try:
        await conn.execute("DROP SCHEMA public CASCADE")
        await conn.execute("CREATE SCHEMA public")
    finally:
        await conn.close()

    config = PoolConfig(
        database=DatabaseConfig(
            host=host,
            port=port,
            database=database,
            user=user,
            password=SecretStr(password),
        ),
    )
    event_store = EventStore(
        pool=Pool(config=config), config=EventStoreConfig(default_limit=50, max_limit=100)
    )

    async with event_store:
        await event_store.ensure_schema()
        yield event_store
