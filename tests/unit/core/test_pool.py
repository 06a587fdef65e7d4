"""
Unit tests for core.pool module.

Tests:
- Configuration models (DatabaseConfig, PoolLimitsConfig, PoolRetryConfig)
- Factory methods (from_yaml, from_dict)
- Connection lifecycle (connect with retry, close)
- Query methods and per-query retry on dropped connections
"""

from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest
from pydantic import ValidationError

from notemixer.core.pool import (
    DatabaseConfig,
    Pool,
    PoolConfig,
    PoolLimitsConfig,
    PoolRetryConfig,
    _json_encode,
)


# ============================================================================
# Configuration Tests
# ============================================================================


class TestDatabaseConfig:
    """DatabaseConfig Pydantic model."""

    def test_defaults(self) -> None:
        config = DatabaseConfig()
        assert config.host == "localhost"
        assert config.port == 5432
        assert config.database == "notemixer"
        assert config.user == "notemixer"
        assert config.password.get_secret_value() == "test_password"

    def test_custom_password_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OTHER_PW", "other")
        config = DatabaseConfig(password_env="OTHER_PW")
        assert config.password.get_secret_value() == "other"

    def test_password_missing_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DB_PASSWORD", raising=False)
        with pytest.raises(ValidationError, match="DB_PASSWORD"):
            DatabaseConfig()

    def test_password_hidden_in_repr(self) -> None:
        assert "test_password" not in repr(DatabaseConfig())

    @pytest.mark.parametrize("port", [0, 70000])
    def test_invalid_port(self, port) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(port=port)


class TestPoolLimitsConfig:
    def test_defaults(self) -> None:
        config = PoolLimitsConfig()
        assert config.min_size == 1
        assert config.max_size == 10

    def test_max_gte_min(self) -> None:
        with pytest.raises(ValidationError, match="max_size"):
            PoolLimitsConfig(min_size=10, max_size=5)


class TestPoolRetryConfig:
    def test_max_delay_gte_initial(self) -> None:
        with pytest.raises(ValidationError, match="max_delay"):
            PoolRetryConfig(initial_delay=5.0, max_delay=1.0)


class TestJsonEncode:
    def test_passes_strings_through(self) -> None:
        assert _json_encode('[["t","x"]]') == '[["t","x"]]'

    def test_dumps_objects(self) -> None:
        assert _json_encode([["t", "x"]]) == '[["t", "x"]]'


# ============================================================================
# Pool Tests
# ============================================================================


class TestPoolFactories:
    def test_from_dict(self, pool_config_dict) -> None:
        pool = Pool.from_dict(pool_config_dict)
        assert pool.config.database.database == "test_db"
        assert pool.config.limits.max_size == 10
        assert pool.config.application_name == "test_app"
        assert not pool.is_connected

    def test_from_yaml(self, tmp_path) -> None:
        path = tmp_path / "pool.yaml"
        path.write_text("database:\n  host: db.example\nlimits:\n  max_size: 4\n")
        pool = Pool.from_yaml(str(path))
        assert pool.config.database.host == "db.example"
        assert pool.config.limits.max_size == 4

    def test_repr(self) -> None:
        assert "connected=False" in repr(Pool())

    def test_retry_delay_capped(self) -> None:
        pool = Pool(PoolConfig(retry=PoolRetryConfig(initial_delay=1.0, max_delay=3.0)))
        assert pool._retry_delay(0) == 1.0
        assert pool._retry_delay(1) == 2.0
        assert pool._retry_delay(5) == 3.0


class TestPoolLifecycle:
    async def test_connect(self, mock_asyncpg_pool: MagicMock) -> None:
        pool = Pool()
        with patch(
            "notemixer.core.pool.asyncpg.create_pool",
            new=AsyncMock(return_value=mock_asyncpg_pool),
        ) as create:
            await pool.connect()
            await pool.connect()  # idempotent
        assert pool.is_connected
        create.assert_awaited_once()
        kwargs = create.call_args.kwargs
        assert kwargs["password"] == "test_password"
        assert kwargs["server_settings"]["application_name"] == "notemixer"

    async def test_connect_retries_then_fails(self) -> None:
        pool = Pool(PoolConfig(retry=PoolRetryConfig(max_attempts=2, initial_delay=0.0, max_delay=0.0)))
        with (
            patch(
                "notemixer.core.pool.asyncpg.create_pool",
                new=AsyncMock(side_effect=OSError("refused")),
            ) as create,
            patch("notemixer.core.pool.asyncio.sleep", new=AsyncMock()),
            pytest.raises(ConnectionError, match="after 2 attempts"),
        ):
            await pool.connect()
        assert create.await_count == 2
        assert not pool.is_connected

    async def test_connect_recovers(self, mock_asyncpg_pool: MagicMock) -> None:
        pool = Pool()
        with (
            patch(
                "notemixer.core.pool.asyncpg.create_pool",
                new=AsyncMock(side_effect=[OSError("refused"), mock_asyncpg_pool]),
            ),
            patch("notemixer.core.pool.asyncio.sleep", new=AsyncMock()) as sleep,
        ):
            await pool.connect()
        assert pool.is_connected
        sleep.assert_awaited_once()

    async def test_close(self, mock_pool: Pool, mock_asyncpg_pool: MagicMock) -> None:
        await mock_pool.close()
        mock_asyncpg_pool.close.assert_awaited_once()
        assert not mock_pool.is_connected
        await mock_pool.close()  # safe twice

    async def test_context_manager(self, mock_asyncpg_pool: MagicMock) -> None:
        with patch(
            "notemixer.core.pool.asyncpg.create_pool",
            new=AsyncMock(return_value=mock_asyncpg_pool),
        ):
            async with Pool() as pool:
                assert pool.is_connected
        assert not pool.is_connected

    def test_acquire_not_connected(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            Pool().acquire()


class TestPoolQueries:
    async def test_fetch(self, mock_pool: Pool, mock_connection: MagicMock) -> None:
        mock_connection.fetch.return_value = [{"a": 1}]
        assert await mock_pool.fetch("SELECT 1", 5, timeout=2.0) == [{"a": 1}]
        mock_connection.fetch.assert_awaited_once_with("SELECT 1", 5, timeout=2.0)

    async def test_fetchval(self, mock_pool: Pool, mock_connection: MagicMock) -> None:
        mock_connection.fetchval.return_value = 7
        assert await mock_pool.fetchval("SELECT count(*)") == 7

    async def test_execute(self, mock_pool: Pool, mock_connection: MagicMock) -> None:
        assert await mock_pool.execute("DELETE FROM event") == "INSERT 0 1"

    async def test_retries_dropped_connection(
        self, mock_pool: Pool, mock_connection: MagicMock
    ) -> None:
        mock_connection.fetchval.side_effect = [asyncpg.InterfaceError("gone"), 3]
        with patch("notemixer.core.pool.asyncio.sleep", new=AsyncMock()):
            assert await mock_pool.fetchval("SELECT 3") == 3
        assert mock_connection.fetchval.await_count == 2

    async def test_gives_up_after_max_attempts(
        self, mock_pool: Pool, mock_connection: MagicMock
    ) -> None:
        mock_connection.execute.side_effect = asyncpg.InterfaceError("gone")
        with (
            patch("notemixer.core.pool.asyncio.sleep", new=AsyncMock()),
            pytest.raises(ConnectionError, match="execute failed"),
        ):
            await mock_pool.execute("SELECT 1")
        assert mock_connection.execute.await_count == mock_pool.config.retry.max_attempts

    async def test_query_errors_propagate(
        self, mock_pool: Pool, mock_connection: MagicMock
    ) -> None:
        mock_connection.fetch.side_effect = asyncpg.PostgresError("bad sql")
        with pytest.raises(asyncpg.PostgresError):
            await mock_pool.fetch("SELEC 1")
        mock_connection.fetch.assert_awaited_once()
