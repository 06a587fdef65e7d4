"""Unit tests for core.metrics module."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

from notemixer.core.metrics import (
    EVENTS_TOTAL,
    REBROADCAST_TOTAL,
    MetricsConfig,
    MetricsServer,
)


class TestMetricsConfig:
    def test_defaults(self) -> None:
        config = MetricsConfig()
        assert config.enabled is False
        assert config.port == 9334
        assert config.host == "127.0.0.1"
        assert config.path == "/metrics"

    def test_privileged_port_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MetricsConfig(port=80)


class TestRelayMetrics:
    def test_events_total_labels(self) -> None:
        before = EVENTS_TOTAL.labels(source="websocket", outcome="mixed")._value.get()
        EVENTS_TOTAL.labels(source="websocket", outcome="mixed").inc()
        assert EVENTS_TOTAL.labels(source="websocket", outcome="mixed")._value.get() == before + 1

    def test_rebroadcast_total_labels(self) -> None:
        REBROADCAST_TOTAL.labels(result="timeout").inc(0)


class TestMetricsServer:
    async def test_disabled_is_noop(self) -> None:
        server = MetricsServer(MetricsConfig(enabled=False))
        with patch("notemixer.core.metrics.web.AppRunner") as runner_cls:
            await server.start()
        runner_cls.assert_not_called()
        await server.stop()

    async def test_start_and_stop(self) -> None:
        server = MetricsServer(MetricsConfig(enabled=True, port=9100))
        runner = MagicMock()
        runner.setup = AsyncMock()
        runner.cleanup = AsyncMock()
        site = MagicMock()
        site.start = AsyncMock()
        with (
            patch("notemixer.core.metrics.web.AppRunner", return_value=runner),
            patch("notemixer.core.metrics.web.TCPSite", return_value=site) as site_cls,
        ):
            await server.start()
        site_cls.assert_called_once_with(runner, "127.0.0.1", 9100)
        site.start.assert_awaited_once()
        await server.stop()
        runner.cleanup.assert_awaited_once()

    async def test_handle_metrics(self) -> None:
        response = await MetricsServer._handle_metrics(MagicMock())
        assert b"mixer_events_total" in response.body
