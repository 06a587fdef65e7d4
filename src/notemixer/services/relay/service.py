"""Mixer relay service: NIP-01 websocket relay plus a small HTTP site.

One FastAPI application serves both surfaces on the same port:

* ``/`` (websocket): the relay protocol. ``EVENT`` runs the mixing
  pipeline, ``REQ``/``CLOSE`` manage subscriptions against the event store
  and live fan-out, ``COUNT`` answers NIP-45 counts.
* ``GET /``: the NIP-11 document for ``Accept: application/nostr+json``,
  otherwise a redirect to ``/home``.
* ``GET /home`` and ``POST /submit-note``: the human-facing page and its
  htmx note form.
* ``GET /health``: liveness probe.

The server runs as a background ``asyncio.Task`` alongside the standard
``run_forever()`` cycle. Each ``run()`` cycle logs traffic statistics,
prunes idle rate-limit buckets and updates Prometheus gauges.

See Also:
    [MixingPipeline][notemixer.pipeline.orchestrator.MixingPipeline]: The
        admission-and-mixing pipeline behind ``EVENT`` and the note form.
    [BaseService][notemixer.core.base_service.BaseService]: Abstract base
        class providing lifecycle and metrics.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import time
from typing import TYPE_CHECKING, Any, ClassVar
from urllib.parse import parse_qs

import uvicorn
from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from notemixer.core.base_service import BaseService
from notemixer.core.exceptions import (
    RejectionError,
    SigningError,
    StorageError,
    SubmissionClosedError,
)
from notemixer.models import Event, EventFilter
from notemixer.models.constants import ServiceName
from notemixer.pipeline.admission import default_chain
from notemixer.pipeline.orchestrator import MixingPipeline

from .configs import MixerRelayConfig
from .pages import render_error, render_home, render_submission_success
from .policies import Base64MediaPolicy, EventRateLimitPolicy, RateLimiter, check_filters
from .subscriptions import Connection, SubscriptionRegistry


if TYPE_CHECKING:
    from types import TracebackType

    from notemixer.core.store import EventStore


_HTTP_ERROR_THRESHOLD = 400
_NOSTR_JSON = "application/nostr+json"
_SUPPORTED_NIPS = (1, 11, 45)
# Machine-readable prefixes a rejection reason may already carry
_REASON_PREFIXES = frozenset(
    {"duplicate", "pow", "blocked", "rate-limited", "invalid", "restricted", "error"}
)


def _with_prefix(reason: str, default: str) -> str:
    head, sep, _ = reason.partition(":")
    if sep and head in _REASON_PREFIXES:
        return reason
    return f"{default}: {reason}"


class MixerRelay(BaseService[MixerRelayConfig]):
    """The mixer relay.

    Lifecycle:
        1. ``__aenter__``: build the FastAPI app and start uvicorn.
        2. ``run()``: log statistics, prune rate limiters, update gauges.
        3. ``__aexit__``: stop the server and drain detached rebroadcasts.
    """

    SERVICE_NAME: ClassVar[ServiceName] = ServiceName.RELAY
    CONFIG_CLASS: ClassVar[type[MixerRelayConfig]] = MixerRelayConfig

    def __init__(
        self,
        store: EventStore,
        config: MixerRelayConfig | None = None,
        *,
        pipeline: MixingPipeline | None = None,
    ) -> None:
        super().__init__(store, config)
        limits = self._config.limits
        self._registry = SubscriptionRegistry()
        self._event_limiter = RateLimiter.from_config(limits.event_rate)
        self._connection_limiter = RateLimiter.from_config(limits.connection_rate)
        chain = default_chain().extend(
            Base64MediaPolicy(), EventRateLimitPolicy(self._event_limiter)
        )
        self._pipeline = pipeline or MixingPipeline(
            self._config.pipeline, store, self._registry, chain=chain
        )
        self._server_task: asyncio.Task[None] | None = None
        self._requests_total = 0
        self._requests_failed = 0
        self._events_received = 0

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def pipeline(self) -> MixingPipeline:
        return self._pipeline

    async def __aenter__(self) -> MixerRelay:
        await super().__aenter__()
        app = self._build_app()
        self._server_task = asyncio.create_task(self._run_server(app))
        self._logger.info(
            "relay_started",
            host=self._config.host,
            port=self._config.port,
            pubkey=self._pipeline.public_key,
            open=self._config.pipeline.admission.is_open,
            peers=len(self._config.pipeline.rebroadcast.relays),
        )
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        if self._server_task is not None:
            self._server_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._server_task
            self._server_task = None
        self._logger.info("http_server_stopped")
        await self._pipeline.aclose()
        await super().__aexit__(_exc_type, _exc_val, _exc_tb)

    async def run(self) -> None:
        """Log traffic stats, prune rate limiters and update Prometheus gauges."""
        if self._server_task is not None and self._server_task.done():
            exc = self._server_task.exception() if not self._server_task.cancelled() else None
            self._logger.error("http_server_crashed", error=str(exc) if exc else "cancelled")
            raise RuntimeError("HTTP server task has stopped unexpectedly") from exc

        total, failed, received = (
            self._requests_total,
            self._requests_failed,
            self._events_received,
        )
        self._requests_total = self._requests_failed = self._events_received = 0

        pruned = self._event_limiter.prune() + self._connection_limiter.prune()
        self._logger.info(
            "cycle_stats",
            requests_total=total,
            requests_failed=failed,
            events_received=received,
            connections=self._registry.connection_count,
            subscriptions=self._registry.subscription_count,
            pending_rebroadcasts=self._pipeline.pending_rebroadcasts,
            pruned_buckets=pruned,
        )
        self.inc_counter("requests_total", total)
        self.inc_counter("requests_failed", failed)
        self.inc_counter("events_received", received)
        self.set_gauge("connections", self._registry.connection_count)
        self.set_gauge("subscriptions", self._registry.subscription_count)
        self.set_gauge("pending_rebroadcasts", self._pipeline.pending_rebroadcasts)

    # -------------------------------------------------------------------------
    # NIP-11
    # -------------------------------------------------------------------------

    def relay_information(self) -> dict[str, Any]:
        """Build the NIP-11 relay information document."""
        from notemixer import __version__  # noqa: PLC0415

        limits = self._config.limits
        return {
            "name": self._config.name,
            "description": self._config.description,
            "pubkey": self._pipeline.public_key,
            "contact": self._config.contact,
            "icon": self._config.icon,
            "supported_nips": list(_SUPPORTED_NIPS),
            "software": "notemixer",
            "version": __version__,
            "limitation": {
                "max_message_length": limits.max_message_bytes,
                "max_subscriptions": limits.max_subscriptions,
                "max_filters": limits.max_filters,
                "restricted_writes": not self._config.pipeline.admission.is_open,
            },
        }

    # -------------------------------------------------------------------------
    # App
    # -------------------------------------------------------------------------

    def _build_app(self) -> FastAPI:
        """Construct the FastAPI application with the relay and page routes."""
        app = FastAPI(title=self._config.name, docs_url=None, redoc_url=None, openapi_url=None)

        @app.middleware("http")
        async def log_requests(request: Request, call_next: Any) -> Response:
            start = time.monotonic()
            try:
                response: Response = await call_next(request)
            except Exception as exc:  # HTTP request error boundary
                self._logger.error("unhandled_error", error=str(exc), path=request.url.path)
                response = JSONResponse({"error": "Internal server error"}, status_code=500)
            duration_ms = round((time.monotonic() - start) * 1000, 1)
            self._requests_total += 1
            if response.status_code >= _HTTP_ERROR_THRESHOLD:
                self._requests_failed += 1
                self._logger.warning(
                    "request_failed",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    duration_ms=duration_ms,
                )
            else:
                self._logger.debug(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    duration_ms=duration_ms,
                )
            return response

        @app.get("/health")
        async def health() -> dict[str, str]:
            return {"status": "ok"}

        @app.get("/")
        async def root(request: Request) -> Response:
            if _NOSTR_JSON in request.headers.get("accept", ""):
                return JSONResponse(
                    self.relay_information(),
                    media_type=_NOSTR_JSON,
                    headers={"Access-Control-Allow-Origin": "*"},
                )
            return RedirectResponse("/home", status_code=303)

        @app.get("/home")
        async def home(request: Request) -> HTMLResponse:
            admission = self._config.pipeline.admission
            return HTMLResponse(
                render_home(
                    name=self._config.name,
                    description=self._config.description,
                    allowed_kinds=admission.allowed_kinds,
                    whitelist_enabled=not admission.is_open,
                    host=request.headers.get("host", f"localhost:{self._config.port}"),
                )
            )

        @app.post("/submit-note")
        async def submit_note(request: Request) -> HTMLResponse:
            body = (await request.body()).decode("utf-8", errors="replace")
            content = parse_qs(body).get("content", [""])[0]
            remote_addr = request.client.host if request.client else None
            return await self._submit_note(content, remote_addr=remote_addr)

        @app.websocket("/")
        async def relay_socket(websocket: WebSocket) -> None:
            await self._serve_connection(websocket)

        return app

    async def _submit_note(self, content: str, *, remote_addr: str | None) -> HTMLResponse:
        try:
            result = await self._pipeline.submit_note(content, remote_addr=remote_addr)
        except SubmissionClosedError as e:
            return HTMLResponse(render_error(e.reason), status_code=403)
        except RejectionError as e:
            return HTMLResponse(render_error(e.reason))
        except SigningError:
            return HTMLResponse(render_error("Failed to sign event"))
        except StorageError:
            return HTMLResponse(render_error("Failed to store event"))
        return HTMLResponse(render_submission_success(result.rebroadcast_errors))

    async def _run_server(self, app: FastAPI) -> None:
        """Run uvicorn as an asyncio server."""
        config = uvicorn.Config(
            app,
            host=self._config.host,
            port=self._config.port,
            log_level="warning",
            access_log=False,
            ws_max_size=self._config.limits.max_message_bytes,
        )
        server = uvicorn.Server(config)
        await server.serve()

    # -------------------------------------------------------------------------
    # Websocket protocol
    # -------------------------------------------------------------------------

    async def _serve_connection(self, websocket: WebSocket) -> None:
        remote_addr = websocket.client.host if websocket.client else "unknown"
        if not self._connection_limiter.allow(remote_addr):
            self._logger.warning("connection_rate_limited", remote_addr=remote_addr)
            await websocket.close(code=1008, reason="rate-limited")
            return

        await websocket.accept()
        connection = Connection(remote_addr, queue_size=self._config.fanout_queue_size)
        self._registry.register(connection)
        writer = asyncio.create_task(self._write_loop(websocket, connection))
        self._logger.info("connection_opened", connection=connection.id, remote_addr=remote_addr)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    connection.send(["NOTICE", "error: binary messages are not supported"])
                    continue
                await self._handle_message(connection, text)
        except WebSocketDisconnect:
            pass
        finally:
            self._registry.unregister(connection)
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer
            self._logger.info(
                "connection_closed",
                connection=connection.id,
                remote_addr=remote_addr,
                dropped=connection.dropped,
            )

    async def _write_loop(self, websocket: WebSocket, connection: Connection) -> None:
        while True:
            message = await connection.queue.get()
            try:
                await websocket.send_text(json.dumps(message))
            except (WebSocketDisconnect, RuntimeError) as e:
                self._logger.debug("write_failed", connection=connection.id, error=str(e))
                return

    async def _handle_message(self, connection: Connection, raw: str) -> None:
        if len(raw.encode()) > self._config.limits.max_message_bytes:
            connection.send(["NOTICE", "error: message too large"])
            return
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            connection.send(["NOTICE", "error: invalid JSON"])
            return
        if not isinstance(message, list) or not message or not isinstance(message[0], str):
            connection.send(["NOTICE", "error: message must be a JSON array with a type"])
            return

        verb = message[0]
        if verb == "EVENT":
            await self._on_event(connection, message)
        elif verb == "REQ":
            await self._on_req(connection, message)
        elif verb == "CLOSE":
            self._on_close(connection, message)
        elif verb == "COUNT":
            await self._on_count(connection, message)
        else:
            connection.send(["NOTICE", f"error: unknown message type {verb}"])

    async def _on_event(self, connection: Connection, message: list[Any]) -> None:
        if len(message) != 2 or not isinstance(message[1], dict):
            connection.send(["NOTICE", "error: EVENT must carry exactly one event object"])
            return
        self._events_received += 1
        raw_event = message[1]
        inbound_id = str(raw_event.get("id", ""))

        try:
            event = Event.from_dict(raw_event)
        except (TypeError, ValueError) as e:
            connection.send(["OK", inbound_id, False, f"invalid: {e}"])
            return
        if not event.verify():
            connection.send(["OK", inbound_id, False, "invalid: bad event id or signature"])
            return

        try:
            await self._pipeline.ingest(event, remote_addr=connection.remote_addr)
        except RejectionError as e:
            connection.send(["OK", inbound_id, False, _with_prefix(e.reason, "blocked")])
        except SigningError:
            connection.send(["OK", inbound_id, False, "error: failed to sign event"])
        except StorageError:
            connection.send(["OK", inbound_id, False, "error: failed to store event"])
        else:
            connection.send(["OK", inbound_id, True, ""])

    def _parse_filters(
        self, connection: Connection, verb: str, message: list[Any]
    ) -> tuple[str, tuple[EventFilter, ...]] | None:
        """Validate a ``REQ``/``COUNT`` frame. Sends the error reply and returns None on failure."""
        if len(message) < 3 or not isinstance(message[1], str) or not message[1]:
            connection.send(
                ["NOTICE", f"error: {verb} needs a subscription id and at least one filter"]
            )
            return None
        sub_id = message[1]
        if len(message) - 2 > self._config.limits.max_filters:
            connection.send(["CLOSED", sub_id, "blocked: too many filters"])
            return None
        try:
            filters = tuple(EventFilter.from_dict(f) for f in message[2:])
        except ValueError as e:
            connection.send(["CLOSED", sub_id, f"invalid: {e}"])
            return None
        outcome = check_filters(list(filters))
        if outcome.reject:
            connection.send(["CLOSED", sub_id, _with_prefix(outcome.reason, "blocked")])
            return None
        return sub_id, filters

    async def _on_req(self, connection: Connection, message: list[Any]) -> None:
        parsed = self._parse_filters(connection, "REQ", message)
        if parsed is None:
            return
        sub_id, filters = parsed
        if (
            sub_id not in connection.subscriptions
            and len(connection.subscriptions) >= self._config.limits.max_subscriptions
        ):
            connection.send(["CLOSED", sub_id, "blocked: too many subscriptions"])
            return

        try:
            events = await self._store.query(filters)
        except StorageError as e:
            self._logger.error("query_failed", connection=connection.id, error=str(e))
            connection.send(["CLOSED", sub_id, "error: could not query events"])
            return

        for event in events:
            connection.send(["EVENT", sub_id, event.to_dict()])
        connection.send(["EOSE", sub_id])
        self._registry.subscribe(connection, sub_id, filters)

    def _on_close(self, connection: Connection, message: list[Any]) -> None:
        if len(message) != 2 or not isinstance(message[1], str):
            connection.send(["NOTICE", "error: CLOSE needs a subscription id"])
            return
        self._registry.unsubscribe(connection, message[1])
        connection.send(["CLOSED", message[1], ""])

    async def _on_count(self, connection: Connection, message: list[Any]) -> None:
        parsed = self._parse_filters(connection, "COUNT", message)
        if parsed is None:
            return
        sub_id, filters = parsed
        try:
            count = await self._store.count(filters)
        except StorageError as e:
            self._logger.error("count_failed", connection=connection.id, error=str(e))
            connection.send(["CLOSED", sub_id, "error: could not count events"])
            return
        connection.send(["COUNT", sub_id, {"count": count}])
