"""
Prometheus metrics and their aiohttp exposition endpoint.

Module-level metric objects are process-wide singletons. The generic
``SERVICE_GAUGE``/``SERVICE_COUNTER`` pair is fed by
[BaseService][notemixer.core.base_service.BaseService]; the relay-specific
metrics below are fed by the mixing pipeline.

Architecture:
    SERVICE_INFO:                  Static metadata set once at startup.
    SERVICE_GAUGE:                 Point-in-time values (connections, queue depth).
    SERVICE_COUNTER:               Cumulative totals (cycles, errors).
    EVENTS_TOTAL:                  Inbound events by outcome (mixed, rejected, failed).
    REBROADCAST_TOTAL:             Per-peer rebroadcast attempts by result.
    PIPELINE_DURATION_SECONDS:     Mix+sign+store+fan-out latency.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    The endpoint only starts when ``enabled`` is True.
    """

    enabled: bool = Field(default=False)
    port: int = Field(default=9334, ge=1024, le=65535)
    host: str = Field(default="127.0.0.1")
    path: str = Field(default="/metrics")


SERVICE_INFO = Info("service", "Service information and metadata")

SERVICE_GAUGE = Gauge(
    "service_gauge",
    "Service gauge values (point-in-time state)",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "service_counter",
    "Service counter values (cumulative totals)",
    ["service", "name"],
)

EVENTS_TOTAL = Counter(
    "mixer_events_total",
    "Inbound events by pipeline outcome",
    ["source", "outcome"],
)

REBROADCAST_TOTAL = Counter(
    "mixer_rebroadcast_total",
    "Rebroadcast attempts to peer relays by result",
    ["result"],
)

PIPELINE_DURATION_SECONDS = Histogram(
    "mixer_pipeline_duration_seconds",
    "Time from admission to local fan-out",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5),
)


class MetricsServer:
    """Async HTTP server exposing the Prometheus scrape endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=9100))
        await server.start()
        ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Bind the endpoint. No-op when metrics are disabled.

        Raises:
            OSError: If the port cannot be bound.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)
        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(body=generate_latest(), headers={"Content-Type": CONTENT_TYPE_LATEST})
