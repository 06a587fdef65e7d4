"""
Local fan-out of mixed events to live websocket subscriptions.

Each websocket [Connection][notemixer.services.relay.subscriptions.Connection]
owns a bounded outbound queue drained by its own writer task. Every message
for a client, including ``EVENT`` frames from fan-out, goes through that
queue, so a slow client can never block the pipeline: when its queue is full
the message is dropped and a warning is logged.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from notemixer.models import Event, EventFilter


logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class Connection:
    """One websocket client: its address, subscriptions and outbound queue."""

    def __init__(self, remote_addr: str, *, queue_size: int = 256) -> None:
        self.id = next(_connection_ids)
        self.remote_addr = remote_addr
        self.queue: asyncio.Queue[list[Any]] = asyncio.Queue(maxsize=queue_size)
        self.subscriptions: dict[str, tuple[EventFilter, ...]] = {}
        self.dropped = 0

    def send(self, message: list[Any]) -> bool:
        """Enqueue *message* without waiting. Returns False if it was dropped."""
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "outbound_queue_full connection=%s remote_addr=%s dropped=%s",
                self.id,
                self.remote_addr,
                self.dropped,
            )
            return False
        return True

    def matching_subscriptions(self, event: Event) -> list[str]:
        return [
            sub_id
            for sub_id, filters in self.subscriptions.items()
            if any(f.matches(event) for f in filters)
        ]

    def __repr__(self) -> str:
        return f"Connection(id={self.id}, remote_addr={self.remote_addr})"


class SubscriptionRegistry:
    """All live connections; the pipeline's local fan-out target."""

    def __init__(self) -> None:
        self._connections: dict[int, Connection] = {}

    def register(self, connection: Connection) -> None:
        self._connections[connection.id] = connection

    def unregister(self, connection: Connection) -> None:
        self._connections.pop(connection.id, None)

    def subscribe(
        self, connection: Connection, sub_id: str, filters: tuple[EventFilter, ...]
    ) -> None:
        """Add or replace the subscription *sub_id* on *connection*."""
        connection.subscriptions[sub_id] = filters

    def unsubscribe(self, connection: Connection, sub_id: str) -> bool:
        return connection.subscriptions.pop(sub_id, None) is not None

    def broadcast(self, event: Event) -> None:
        """Queue ``["EVENT", sub_id, event]`` for every matching live subscription."""
        payload: dict[str, Any] | None = None
        for connection in list(self._connections.values()):
            for sub_id in connection.matching_subscriptions(event):
                if payload is None:
                    payload = event.to_dict()
                connection.send(["EVENT", sub_id, payload])

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def subscription_count(self) -> int:
        return sum(len(c.subscriptions) for c in self._connections.values())
