"""
Abstract base class for long-running notemixer services.

``BaseService[ConfigT]`` owns the shared lifecycle: a named
[Logger][notemixer.core.logger.Logger], graceful shutdown through an
``asyncio.Event``, interval-based cycling in
[run_forever()][notemixer.core.base_service.BaseService.run_forever] with a
consecutive-failure limit, and the generic Prometheus gauges and counters.

Every service receives the [EventStore][notemixer.core.store.EventStore] it
persists into.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, Self, TypeVar, cast

from pydantic import BaseModel, Field

from .logger import Logger
from .metrics import SERVICE_COUNTER, SERVICE_GAUGE, SERVICE_INFO, MetricsConfig
from .yaml import load_yaml


if TYPE_CHECKING:
    from types import TracebackType

    from notemixer.models.constants import ServiceName

    from .store import EventStore


class BaseServiceConfig(BaseModel):
    """Cycle interval, failure tolerance and metrics settings shared by all services."""

    interval: float = Field(default=60.0, ge=1.0, description="Seconds between run cycles")
    max_consecutive_failures: int = Field(
        default=5, ge=0, description="Stop after this many consecutive errors (0 = unlimited)"
    )
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)


ConfigT = TypeVar("ConfigT", bound=BaseServiceConfig)


class BaseService(ABC, Generic[ConfigT]):
    """Abstract base class for all notemixer services.

    Subclasses set ``SERVICE_NAME`` and ``CONFIG_CLASS`` and implement
    [run()][notemixer.core.base_service.BaseService.run].

    The lifecycle is ``async with store:`` then ``async with service:`` then
    [run_forever()][notemixer.core.base_service.BaseService.run_forever], or a
    single ``run()`` for ``--once``.
    """

    SERVICE_NAME: ClassVar[ServiceName]
    CONFIG_CLASS: ClassVar[type[BaseServiceConfig]]

    def __init__(self, store: EventStore, config: ConfigT | None = None) -> None:
        self._store = store
        self._config: ConfigT = (
            config if config is not None else cast("ConfigT", self.CONFIG_CLASS())
        )
        self._logger = Logger(self.SERVICE_NAME)
        self._shutdown_event = asyncio.Event()

    @property
    def config(self) -> ConfigT:
        return self._config

    @property
    def store(self) -> EventStore:
        return self._store

    @abstractmethod
    async def run(self) -> None:
        """Execute one bounded cycle of the service's work."""
        ...

    def request_shutdown(self) -> None:
        """Ask ``run_forever()`` to exit after the current wait. Safe from signal handlers."""
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return not self._shutdown_event.is_set()

    async def wait(self, timeout: float) -> bool:  # noqa: ASYNC109
        """Sleep up to *timeout* seconds. Returns True if shutdown was requested meanwhile."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
        except TimeoutError:
            return False
        return True

    async def run_forever(self) -> None:
        """Call ``run()`` every ``config.interval`` seconds until shutdown.

        Exits early once ``max_consecutive_failures`` cycles in a row have
        raised (``0`` disables the limit). ``CancelledError``,
        ``KeyboardInterrupt`` and ``SystemExit`` propagate immediately.
        """
        interval = self._config.interval
        max_failures = self._config.max_consecutive_failures

        if self._config.metrics.enabled:
            SERVICE_INFO.info({"service": str(self.SERVICE_NAME)})

        self._logger.info(
            "run_forever_started", interval=interval, max_consecutive_failures=max_failures
        )

        consecutive_failures = 0
        while self.is_running:
            try:
                await self.run()
            except (asyncio.CancelledError, KeyboardInterrupt, SystemExit):
                raise
            except Exception as e:  # top-level error boundary for the cycle loop
                consecutive_failures += 1
                self.inc_counter("cycles_failed")
                self.inc_counter(f"errors_{type(e).__name__}")
                self.set_gauge("consecutive_failures", consecutive_failures)
                self._logger.error(
                    "run_cycle_error", error=str(e), consecutive_failures=consecutive_failures
                )
                if max_failures > 0 and consecutive_failures >= max_failures:
                    self._logger.critical(
                        "max_consecutive_failures_reached",
                        failures=consecutive_failures,
                        limit=max_failures,
                    )
                    break
            else:
                consecutive_failures = 0
                self.inc_counter("cycles_success")
                self.set_gauge("consecutive_failures", 0)
                self.set_gauge("last_cycle_timestamp", time.time())

            if await self.wait(interval):
                break

        self._logger.info("run_forever_stopped")

    # -------------------------------------------------------------------------
    # Factory Methods
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, config_path: str, store: EventStore, **kwargs: Any) -> Self:
        return cls.from_dict(load_yaml(config_path), store=store, **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], store: EventStore, **kwargs: Any) -> Self:
        """Parse *data* into ``CONFIG_CLASS`` and construct the service."""
        config = cast("ConfigT", cls.CONFIG_CLASS(**data))
        return cls(store=store, config=config, **kwargs)

    # -------------------------------------------------------------------------
    # Context Manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> Self:
        self._shutdown_event.clear()
        self._logger.info("service_started")
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        self._shutdown_event.set()
        self._logger.info("service_stopped")

    # -------------------------------------------------------------------------
    # Custom Metrics
    # -------------------------------------------------------------------------

    def set_gauge(self, name: str, value: float) -> None:
        """Set a named point-in-time gauge. No-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_GAUGE.labels(service=self.SERVICE_NAME, name=name).set(value)

    def inc_counter(self, name: str, value: float = 1) -> None:
        """Increment a named cumulative counter. No-op when metrics are disabled."""
        if not self._config.metrics.enabled:
            return
        SERVICE_COUNTER.labels(service=self.SERVICE_NAME, name=name).inc(value)
