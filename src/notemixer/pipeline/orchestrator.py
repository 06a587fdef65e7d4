"""
Admission-and-mixing pipeline orchestration.

Every inbound event walks the same linear path::

    received -> admitted -> mixed -> signed -> stored -> fanned_out -> (rebroadcast)

Two callers enter it:

* [ingest()][notemixer.pipeline.orchestrator.MixingPipeline.ingest] for
  events arriving over the relay protocol. Rebroadcast is spawned as a
  detached task whose outcome is only logged.
* [submit_note()][notemixer.pipeline.orchestrator.MixingPipeline.submit_note]
  for the HTTP note form. Rebroadcast is awaited and its failures are
  returned to the caller.

Rejections and storage or signing failures abort the pipeline for that one
event and propagate to the caller. Rebroadcast failures never abort anything.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from notemixer.core.exceptions import (
    RejectionError,
    SigningError,
    StorageError,
    SubmissionClosedError,
)
from notemixer.core.logger import Logger
from notemixer.core.metrics import EVENTS_TOTAL, PIPELINE_DURATION_SECONDS
from notemixer.models import UnsignedEvent

from .admission import AdmissionChain, default_chain
from .mixing import Clock, mix, wall_clock
from .rebroadcast import rebroadcast
from .signer import Signer


if TYPE_CHECKING:
    from notemixer.core.store import EventStore
    from notemixer.models import Event

    from .configs import PipelineConfig


class PipelineStage(StrEnum):
    """Stages an event passes through, in order."""

    RECEIVED = "received"
    ADMITTED = "admitted"
    MIXED = "mixed"
    SIGNED = "signed"
    STORED = "stored"
    FANNED_OUT = "fanned_out"
    REBROADCAST_TRIGGERED = "rebroadcast_triggered"


class Fanout(Protocol):
    """Local delivery target for freshly stored events."""

    def broadcast(self, event: Event) -> None: ...


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    """Outcome of an HTTP note submission.

    Attributes:
        event: The stored, relay-signed event.
        rebroadcast_errors: One description per peer that did not accept it.
    """

    event: Event
    rebroadcast_errors: tuple[str, ...] = ()

    @property
    def fully_propagated(self) -> bool:
        return not self.rebroadcast_errors


class MixingPipeline:
    """Runs admitted events through mixing, signing, storage and fan-out.

    Args:
        config: Relay identity, admission and rebroadcast settings.
        store: Persistence gateway.
        fanout: Local subscriber registry.
        signer: Defaults to a [Signer][notemixer.pipeline.signer.Signer]
            over ``config.keys``.
        chain: Admission chain. Defaults to the domain policies.
        clock: Time source for mixing.
    """

    def __init__(
        self,
        config: PipelineConfig,
        store: EventStore,
        fanout: Fanout,
        *,
        signer: Signer | None = None,
        chain: AdmissionChain | None = None,
        clock: Clock = wall_clock,
    ) -> None:
        self._config = config
        self._store = store
        self._fanout = fanout
        self._signer = signer or Signer(config.keys)
        self._chain = chain or default_chain()
        self._clock = clock
        self._background: set[asyncio.Task[list[str]]] = set()
        self._logger = Logger("pipeline")

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def chain(self) -> AdmissionChain:
        return self._chain

    @property
    def public_key(self) -> str:
        return self._signer.public_key

    @property
    def pending_rebroadcasts(self) -> int:
        return len(self._background)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _admit(self, event: Event, *, source: str, remote_addr: str | None) -> None:
        outcome = self._chain.evaluate(event, self._config.admission, remote_addr=remote_addr)
        if outcome.reject:
            EVENTS_TOTAL.labels(source=source, outcome="rejected").inc()
            self._logger.info(
                "event_rejected",
                source=source,
                kind=event.kind_number,
                reason=outcome.reason,
                remote_addr=remote_addr,
            )
            raise RejectionError(outcome.reason)

    async def process(self, event: Event) -> Event:
        """Mix, sign, store and fan out an already admitted *event*.

        Returns:
            The relay-signed event.

        Raises:
            SigningError: If the relay key cannot sign the mixed event.
            StorageError: If the event cannot be stored. Nothing is fanned out.
        """
        started = time.monotonic()
        stage = PipelineStage.ADMITTED
        try:
            unsigned = mix(event, clock=self._clock)
            stage = PipelineStage.MIXED
            mixed = self._signer.sign(unsigned)
            stage = PipelineStage.SIGNED
            inserted = await self._store.save(mixed)
        except (SigningError, StorageError) as e:
            self._logger.error("pipeline_failed", stage=stage, error=str(e))
            raise
        self._fanout.broadcast(mixed)
        PIPELINE_DURATION_SECONDS.observe(time.monotonic() - started)
        self._logger.info(
            "event_stored",
            id=mixed.id_hex,
            kind=unsigned.kind,
            created_at=unsigned.created_at,
            inserted=inserted,
        )
        return mixed

    async def _process_counted(self, event: Event, *, source: str) -> Event:
        try:
            mixed = await self.process(event)
        except (SigningError, StorageError):
            EVENTS_TOTAL.labels(source=source, outcome="failed").inc()
            raise
        EVENTS_TOTAL.labels(source=source, outcome="mixed").inc()
        return mixed

    # -------------------------------------------------------------------------
    # Callers
    # -------------------------------------------------------------------------

    async def ingest(self, event: Event, *, remote_addr: str | None = None) -> Event:
        """Handle an event received over the relay protocol.

        Rebroadcast runs in the background; its result is only logged.

        Raises:
            RejectionError: If an admission policy refuses the event.
            SigningError: See [process()][notemixer.pipeline.orchestrator.MixingPipeline.process].
            StorageError: See [process()][notemixer.pipeline.orchestrator.MixingPipeline.process].
        """
        self._admit(event, source="websocket", remote_addr=remote_addr)
        mixed = await self._process_counted(event, source="websocket")
        self._spawn_rebroadcast(mixed)
        return mixed

    async def submit_note(
        self, content: str, *, remote_addr: str | None = None
    ) -> SubmissionResult:
        """Publish *content* as a new note through the full pipeline.

        Only available on open relays. Rebroadcast is awaited so the caller
        can report which peers failed. *remote_addr* is the submitting
        client, passed to address-based admission policies.

        Raises:
            SubmissionClosedError: If the relay has a pubkey allowlist.
            RejectionError: If *content* is empty or an admission policy refuses it.
            SigningError: See [process()][notemixer.pipeline.orchestrator.MixingPipeline.process].
            StorageError: See [process()][notemixer.pipeline.orchestrator.MixingPipeline.process].
        """
        if not self._config.admission.is_open:
            raise SubmissionClosedError()
        if not content.strip():
            raise RejectionError("Content cannot be empty")

        try:
            draft = UnsignedEvent(
                created_at=self._clock(),
                kind=self._config.submission_kind,
                tags=(),
                content=content,
            )
        except ValueError as e:
            raise RejectionError(f"invalid: {e}") from e
        note = self._signer.sign(draft)

        self._admit(note, source="http", remote_addr=remote_addr)
        mixed = await self._process_counted(note, source="http")

        errors = await self._rebroadcast(mixed)
        return SubmissionResult(event=mixed, rebroadcast_errors=tuple(errors))

    # -------------------------------------------------------------------------
    # Rebroadcast
    # -------------------------------------------------------------------------

    async def _rebroadcast(self, event: Event) -> list[str]:
        settings = self._config.rebroadcast
        return await rebroadcast(
            event, settings.relays, timeout=settings.timeout, keys=self._signer.keys
        )

    def _spawn_rebroadcast(self, event: Event) -> None:
        if not self._config.rebroadcast.relays:
            return
        task = asyncio.create_task(self._rebroadcast(event), name=f"rebroadcast-{event.id_hex[:8]}")
        self._background.add(task)
        task.add_done_callback(self._on_rebroadcast_done)

    def _on_rebroadcast_done(self, task: asyncio.Task[list[str]]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("rebroadcast_crashed", task=task.get_name(), error=str(exc))
            return
        errors = task.result()
        for error in errors:
            self._logger.warning("rebroadcast_failed", task=task.get_name(), error=error)
        self._logger.debug(
            "rebroadcast_completed",
            task=task.get_name(),
            peers=len(self._config.rebroadcast.relays),
            failed=len(errors),
        )

    async def aclose(self) -> None:
        """Wait for detached rebroadcasts still in flight."""
        if not self._background:
            return
        self._logger.info("rebroadcast_draining", pending=len(self._background))
        await asyncio.gather(*self._background, return_exceptions=True)
