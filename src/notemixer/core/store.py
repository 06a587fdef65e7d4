"""
PostgreSQL event store for mixed events.

[EventStore][notemixer.core.store.EventStore] persists relay-signed events and
answers NIP-01 subscription queries. It wraps a private
[Pool][notemixer.core.pool.Pool] the same way the pool is wrapped everywhere
else in the project: construct it from a config dict, then use it as an async
context manager.

Filters are compiled to parameterized SQL: ``ids``/``authors`` become
``= ANY($n::bytea[])``, tag conditions become JSONB containment checks
(``tags @> '[["t","nostr"]]'``) ORed together per tag letter.

Examples:
    ```python
    store = EventStore.from_dict({"pool": {"database": {"host": "db"}}})

    async with store:
        await store.ensure_schema()
        await store.save(event)
        events = await store.query([EventFilter(kinds=(1,), limit=10)])
    ```
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

import asyncpg
from pydantic import BaseModel, Field, model_validator

from notemixer.models import Event, EventDbParams

from .exceptions import StorageError
from .logger import Logger
from .pool import Pool
from .yaml import load_yaml


if TYPE_CHECKING:
    from collections.abc import Sequence

    from notemixer.models import EventFilter


_HEX_ID_PATTERN = re.compile(r"^[0-9a-f]{64}$")

_STORAGE_ERRORS = (asyncpg.PostgresError, ConnectionError, OSError)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS event (
    id BYTEA PRIMARY KEY,
    pubkey BYTEA NOT NULL,
    created_at BIGINT NOT NULL,
    kind INTEGER NOT NULL,
    tags JSONB NOT NULL,
    content TEXT NOT NULL,
    sig BYTEA NOT NULL
);
CREATE INDEX IF NOT EXISTS event_created_at_idx ON event (created_at DESC);
CREATE INDEX IF NOT EXISTS event_kind_created_at_idx ON event (kind, created_at DESC);
CREATE INDEX IF NOT EXISTS event_tags_idx ON event USING GIN (tags jsonb_path_ops);
"""

_INSERT_SQL = """
INSERT INTO event (id, pubkey, created_at, kind, tags, content, sig)
VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7)
ON CONFLICT (id) DO NOTHING
"""

_SELECT_COLUMNS = "id, pubkey, created_at, kind, tags, content, sig"


class EventStoreConfig(BaseModel):
    """Query limits and timeouts for [EventStore][notemixer.core.store.EventStore]."""

    default_limit: int = Field(default=100, ge=1, description="Limit applied when a filter has none")
    max_limit: int = Field(default=500, ge=1, description="Upper bound on any filter's limit")
    query_timeout: float | None = Field(default=30.0, gt=0, description="Seconds, None=infinite")

    @model_validator(mode="after")
    def validate_limits(self) -> EventStoreConfig:
        if self.default_limit > self.max_limit:
            raise ValueError(
                f"default_limit ({self.default_limit}) must be <= max_limit ({self.max_limit})"
            )
        return self


def _hex_to_bytes(values: Sequence[str]) -> list[bytes]:
    # Malformed ids can never match a stored row, so they are dropped.
    return [bytes.fromhex(v) for v in values if _HEX_ID_PATTERN.match(v)]


def compile_filter(event_filter: EventFilter, params: list[Any]) -> str:
    """Compile one filter to a SQL boolean expression.

    Parameter values are appended to *params*; placeholders are numbered
    from its current length, so several filters can share one list.
    """

    def bind(value: Any) -> str:
        params.append(value)
        return f"${len(params)}"

    clauses: list[str] = []
    if event_filter.ids is not None:
        clauses.append(f"id = ANY({bind(_hex_to_bytes(event_filter.ids))}::bytea[])")
    if event_filter.authors is not None:
        clauses.append(f"pubkey = ANY({bind(_hex_to_bytes(event_filter.authors))}::bytea[])")
    if event_filter.kinds is not None:
        clauses.append(f"kind = ANY({bind(list(event_filter.kinds))}::integer[])")
    if event_filter.since is not None:
        clauses.append(f"created_at >= {bind(event_filter.since)}")
    if event_filter.until is not None:
        clauses.append(f"created_at <= {bind(event_filter.until)}")
    for letter, values in event_filter.tags:
        if not values:
            clauses.append("FALSE")
            continue
        alternatives = " OR ".join(
            f"tags @> {bind(json.dumps([[letter, value]]))}::jsonb" for value in values
        )
        clauses.append(f"({alternatives})")

    return " AND ".join(clauses) if clauses else "TRUE"


def _row_to_event(row: asyncpg.Record) -> Event:
    return Event.from_db_params(
        EventDbParams(
            id=bytes(row["id"]),
            pubkey=bytes(row["pubkey"]),
            created_at=row["created_at"],
            kind=row["kind"],
            tags=json.dumps(row["tags"]),
            content=row["content"],
            sig=bytes(row["sig"]),
        )
    )


class EventStore:
    """Async persistence for relay-signed events.

    Every driver failure (``asyncpg.PostgresError``, ``ConnectionError``,
    ``OSError``) is re-raised as
    [StorageError][notemixer.core.exceptions.StorageError].
    """

    def __init__(self, pool: Pool | None = None, config: EventStoreConfig | None = None) -> None:
        self._pool = pool or Pool()
        self._config = config or EventStoreConfig()
        self._logger = Logger("store")

    @classmethod
    def from_yaml(cls, config_path: str) -> EventStore:
        return cls.from_dict(load_yaml(config_path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> EventStore:
        """Build from a mapping with an optional ``pool`` key plus store settings."""
        pool = Pool.from_dict(config_dict["pool"]) if "pool" in config_dict else None
        store_dict = {k: v for k, v in config_dict.items() if k != "pool"}
        return cls(pool=pool, config=EventStoreConfig(**store_dict))

    @property
    def config(self) -> EventStoreConfig:
        return self._config

    @property
    def pool(self) -> Pool:
        return self._pool

    def _effective_limit(self, event_filter: EventFilter) -> int:
        if event_filter.limit is None:
            return self._config.default_limit
        return min(event_filter.limit, self._config.max_limit)

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    async def ensure_schema(self) -> None:
        """Create the ``event`` table and its indexes if they are missing."""
        try:
            await self._pool.execute(SCHEMA_SQL)
        except _STORAGE_ERRORS as e:
            raise StorageError(f"failed to create schema: {e}") from e
        self._logger.debug("schema_ready")

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def save(self, event: Event) -> bool:
        """Insert *event*.

        Returns:
            True if the row was inserted, False if an event with the same id
            was already stored.

        Raises:
            StorageError: If the insert fails.
        """
        params = event.to_db_params()
        try:
            status = await self._pool.execute(
                _INSERT_SQL, *params, timeout=self._config.query_timeout
            )
        except _STORAGE_ERRORS as e:
            raise StorageError(f"failed to store event {event.id_hex}: {e}") from e
        inserted = status.strip().endswith(" 1")
        self._logger.debug("event_saved", id=event.id_hex, inserted=inserted)
        return inserted

    async def delete(self, event_id: str) -> bool:
        """Delete the event with hex id *event_id*. Returns True if a row was removed."""
        ids = _hex_to_bytes([event_id])
        if not ids:
            return False
        try:
            status = await self._pool.execute(
                "DELETE FROM event WHERE id = $1", ids[0], timeout=self._config.query_timeout
            )
        except _STORAGE_ERRORS as e:
            raise StorageError(f"failed to delete event {event_id}: {e}") from e
        return status.strip().endswith(" 1")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def query(self, filters: Sequence[EventFilter]) -> list[Event]:
        """Return stored events matching any of *filters*, newest first.

        Each filter is queried with its own limit (clamped to ``max_limit``);
        results are merged without duplicates.
        """
        seen: set[bytes] = set()
        events: list[Event] = []
        for event_filter in filters:
            params: list[Any] = []
            where = compile_filter(event_filter, params)
            params.append(self._effective_limit(event_filter))
            sql = (
                f"SELECT {_SELECT_COLUMNS} FROM event WHERE {where} "
                f"ORDER BY created_at DESC, id LIMIT ${len(params)}"
            )
            try:
                rows = await self._pool.fetch(sql, *params, timeout=self._config.query_timeout)
            except _STORAGE_ERRORS as e:
                raise StorageError(f"failed to query events: {e}") from e
            for row in rows:
                row_id = bytes(row["id"])
                if row_id in seen:
                    continue
                seen.add(row_id)
                events.append(_row_to_event(row))

        events.sort(key=lambda e: e.to_db_params().created_at, reverse=True)
        return events

    async def count(self, filters: Sequence[EventFilter]) -> int:
        """Return the number of stored events matching any of *filters* (NIP-45)."""
        if not filters:
            return 0
        params: list[Any] = []
        where = " OR ".join(f"({compile_filter(f, params)})" for f in filters)
        try:
            result = await self._pool.fetchval(
                f"SELECT count(*) FROM event WHERE {where}",
                *params,
                timeout=self._config.query_timeout,
            )
        except _STORAGE_ERRORS as e:
            raise StorageError(f"failed to count events: {e}") from e
        return int(result or 0)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        await self._pool.connect()

    async def close(self) -> None:
        await self._pool.close()

    async def __aenter__(self) -> EventStore:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"EventStore(pool={self._pool!r})"
