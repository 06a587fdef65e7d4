"""
Async PostgreSQL connection pool built on asyncpg.

[Pool][notemixer.core.pool.Pool] owns the ``asyncpg.Pool`` used by the
[EventStore][notemixer.core.store.EventStore]. Connecting retries with
backoff, and each query retries when the connection drops underneath it
(``InterfaceError``, ``ConnectionDoesNotExistError``). Query-level errors
such as syntax errors propagate immediately.

Every connection gets JSON/JSONB codecs, so ``tags`` columns come back as
Python lists.

Examples:
    ```python
    pool = Pool.from_dict({"database": {"host": "db"}})

    async with pool:
        count = await pool.fetchval("SELECT count(*) FROM event")
    ```
"""

from __future__ import annotations

import asyncio
import json
import os
from contextlib import AbstractAsyncContextManager
from typing import Any, Literal, cast

import asyncpg
from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator, model_validator

from .logger import Logger
from .yaml import load_yaml


_DEFAULT_PASSWORD_ENV = "DB_PASSWORD"  # pragma: allowlist secret


def _json_encode(value: Any) -> str:
    # Event.to_db_params() already serializes tags; pass strings through untouched.
    if isinstance(value, str):
        return value
    return json.dumps(value)


async def _init_connection(conn: asyncpg.Connection[asyncpg.Record]) -> None:
    """Register JSON/JSONB codecs on a new connection."""
    for type_name in ("jsonb", "json"):
        await conn.set_type_codec(
            type_name,
            encoder=_json_encode,
            decoder=json.loads,
            schema="pg_catalog",
        )


# ---------------------------------------------------------------------------
# Configuration Models
# ---------------------------------------------------------------------------


class DatabaseConfig(BaseModel):
    """PostgreSQL connection parameters.

    The password is never read from the configuration file: it comes from the
    environment variable named by ``password_env``.
    """

    host: str = Field(default="localhost", min_length=1)
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = Field(default="notemixer", min_length=1)
    user: str = Field(default="notemixer", min_length=1)
    password_env: str = Field(default=_DEFAULT_PASSWORD_ENV, min_length=1)
    password: SecretStr = Field(description="Database password (loaded from password_env)")

    @model_validator(mode="before")
    @classmethod
    def resolve_password(cls, data: Any) -> Any:
        if isinstance(data, dict) and "password" not in data:
            env_var = data.get("password_env", _DEFAULT_PASSWORD_ENV)
            value = os.getenv(env_var)
            if not value:
                raise ValueError(f"{env_var} environment variable not set")
            data = {**data, "password": SecretStr(value)}
        return data


class PoolLimitsConfig(BaseModel):
    """Connection pool size limits."""

    min_size: int = Field(default=1, ge=1, le=100)
    max_size: int = Field(default=10, ge=1, le=200)
    max_inactive_connection_lifetime: float = Field(default=300.0, ge=0.0)

    @field_validator("max_size")
    @classmethod
    def validate_max_size(cls, v: int, info: ValidationInfo) -> int:
        min_size = info.data.get("min_size", 1)
        if v < min_size:
            raise ValueError(f"max_size ({v}) must be >= min_size ({min_size})")
        return v


class PoolRetryConfig(BaseModel):
    """Backoff between connection attempts: ``initial_delay * 2^attempt`` capped at ``max_delay``."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    initial_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=10.0, ge=0.0)

    @field_validator("max_delay")
    @classmethod
    def validate_max_delay(cls, v: float, info: ValidationInfo) -> float:
        initial_delay = info.data.get("initial_delay", 1.0)
        if v < initial_delay:
            raise ValueError(f"max_delay ({v}) must be >= initial_delay ({initial_delay})")
        return v


class PoolConfig(BaseModel):
    """Aggregate configuration for [Pool][notemixer.core.pool.Pool]."""

    database: DatabaseConfig = Field(default_factory=lambda: DatabaseConfig.model_validate({}))
    limits: PoolLimitsConfig = Field(default_factory=PoolLimitsConfig)
    retry: PoolRetryConfig = Field(default_factory=PoolRetryConfig)
    acquisition_timeout: float = Field(default=10.0, ge=0.1)
    application_name: str = Field(default="notemixer")
    statement_timeout_ms: int = Field(default=30_000, ge=0, description="0 disables the limit")


# ---------------------------------------------------------------------------
# Pool Class
# ---------------------------------------------------------------------------


class Pool:
    """Async PostgreSQL connection pool manager.

    Created disconnected; call [connect()][notemixer.core.pool.Pool.connect]
    or use it as an async context manager.
    """

    def __init__(self, config: PoolConfig | None = None) -> None:
        self._config = config or PoolConfig()
        self._pool: asyncpg.Pool[asyncpg.Record] | None = None
        self._connection_lock = asyncio.Lock()
        self._logger = Logger("pool")

    @classmethod
    def from_yaml(cls, config_path: str) -> Pool:
        return cls.from_dict(load_yaml(config_path))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> Pool:
        return cls(config=PoolConfig(**config_dict))

    def _retry_delay(self, attempt: int) -> float:
        retry = self._config.retry
        return float(min(retry.initial_delay * (2**attempt), retry.max_delay))

    # -------------------------------------------------------------------------
    # Connection Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """Create the asyncpg pool, retrying with backoff.

        Raises:
            ConnectionError: If every attempt fails.
        """
        async with self._connection_lock:
            if self._pool is not None:
                return

            db = self._config.database
            max_attempts = self._config.retry.max_attempts
            self._logger.info("connection_starting", host=db.host, port=db.port, database=db.database)

            for attempt in range(max_attempts):
                try:
                    self._pool = await asyncpg.create_pool(
                        host=db.host,
                        port=db.port,
                        database=db.database,
                        user=db.user,
                        password=db.password.get_secret_value(),
                        min_size=self._config.limits.min_size,
                        max_size=self._config.limits.max_size,
                        max_inactive_connection_lifetime=self._config.limits.max_inactive_connection_lifetime,
                        timeout=self._config.acquisition_timeout,
                        init=_init_connection,
                        server_settings={
                            "application_name": self._config.application_name,
                            "timezone": "UTC",
                            "statement_timeout": str(self._config.statement_timeout_ms),
                        },
                    )
                except (asyncpg.PostgresError, OSError, ConnectionError) as e:
                    if attempt + 1 >= max_attempts:
                        self._logger.error("connection_failed", attempts=attempt + 1, error=str(e))
                        raise ConnectionError(
                            f"Failed to connect after {attempt + 1} attempts: {e}"
                        ) from e
                    delay = self._retry_delay(attempt)
                    self._logger.warning(
                        "connection_retry", attempt=attempt + 1, delay=delay, error=str(e)
                    )
                    await asyncio.sleep(delay)
                else:
                    self._logger.info("connection_established")
                    return

    async def close(self) -> None:
        """Close the pool. Safe to call more than once."""
        async with self._connection_lock:
            if self._pool is None:
                return
            try:
                await self._pool.close()
                self._logger.info("connection_closed")
            finally:
                self._pool = None

    def acquire(self) -> AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]:
        """Acquire a connection, returned to the pool when the context exits.

        Raises:
            RuntimeError: If the pool is not connected.
        """
        if self._pool is None:
            raise RuntimeError("Pool not connected. Call connect() first.")
        return cast(
            "AbstractAsyncContextManager[asyncpg.Connection[asyncpg.Record]]",
            self._pool.acquire(),
        )

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    async def _execute_with_retry(
        self,
        operation: Literal["fetch", "fetchval", "execute"],
        query: str,
        args: tuple[Any, ...],
        timeout: float | None,  # noqa: ASYNC109
    ) -> Any:
        max_attempts = self._config.retry.max_attempts
        for attempt in range(max_attempts):
            try:
                async with self.acquire() as conn:
                    return await getattr(conn, operation)(query, *args, timeout=timeout)
            except (asyncpg.InterfaceError, asyncpg.ConnectionDoesNotExistError) as e:
                if attempt + 1 >= max_attempts:
                    self._logger.error(
                        "query_failed", operation=operation, attempts=max_attempts, error=str(e)
                    )
                    raise ConnectionError(
                        f"{operation} failed after {max_attempts} attempts: {e}"
                    ) from e
                delay = self._retry_delay(attempt)
                self._logger.warning(
                    "query_retry", operation=operation, attempt=attempt + 1, delay_s=delay
                )
                await asyncio.sleep(delay)
        raise RuntimeError("unreachable: retry loop exited without result")

    async def fetch(
        self, query: str, *args: Any, timeout: float | None = None  # noqa: ASYNC109
    ) -> list[asyncpg.Record]:
        """Execute a query and return all matching rows."""
        result = await self._execute_with_retry("fetch", query, args, timeout)
        return cast("list[asyncpg.Record]", result)

    async def fetchval(
        self, query: str, *args: Any, timeout: float | None = None  # noqa: ASYNC109
    ) -> Any:
        """Execute a query and return the first column of the first row."""
        return await self._execute_with_retry("fetchval", query, args, timeout)

    async def execute(
        self, query: str, *args: Any, timeout: float | None = None  # noqa: ASYNC109
    ) -> str:
        """Execute a statement and return the command status tag (e.g. ``INSERT 0 1``)."""
        result = await self._execute_with_retry("execute", query, args, timeout)
        return cast("str", result)

    # -------------------------------------------------------------------------
    # Properties / Context Manager
    # -------------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @property
    def config(self) -> PoolConfig:
        return self._config

    async def __aenter__(self) -> Pool:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any | None,
    ) -> None:
        await self.close()

    def __repr__(self) -> str:
        db = self._config.database
        return f"Pool(host={db.host}, database={db.database}, connected={self.is_connected})"
