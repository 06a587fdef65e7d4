"""Best-effort republishing of mixed events to peer relays.

Every peer gets exactly one independent attempt: connect, publish, close.
Attempts run concurrently, and a failing peer never prevents the others
from being tried. Failures are collected as human-readable strings in the
order the peers were configured; an empty list means every peer accepted
the event.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from nostr_sdk import NostrSdkError

from notemixer.core.exceptions import RebroadcastError
from notemixer.core.metrics import REBROADCAST_TOTAL
from notemixer.utils.protocol import (
    DEFAULT_CONNECT_TIMEOUT,
    close_peer,
    connect_peer,
    publish_event,
)


if TYPE_CHECKING:
    from collections.abc import Sequence

    from nostr_sdk import Keys

    from notemixer.models import Event


logger = logging.getLogger(__name__)

_PEER_ERRORS = (OSError, NostrSdkError)


async def _attempt(event: Event, url: str, *, keys: Keys | None, connect_timeout: float) -> None:
    try:
        client = await connect_peer(url, keys=keys, timeout=connect_timeout)
    except _PEER_ERRORS as e:
        raise RebroadcastError(url, f"failed to connect to relay {url}: {e}") from e

    try:
        await publish_event(client, url, event)
    except _PEER_ERRORS as e:
        raise RebroadcastError(url, f"failed to publish event to relay {url}: {e}") from e
    finally:
        await close_peer(client)


async def _rebroadcast_one(
    event: Event, url: str, *, timeout: float | None, keys: Keys | None
) -> str | None:
    connect_timeout = timeout if timeout is not None else DEFAULT_CONNECT_TIMEOUT
    try:
        async with asyncio.timeout(timeout):
            await _attempt(event, url, keys=keys, connect_timeout=connect_timeout)
    except RebroadcastError as e:
        REBROADCAST_TOTAL.labels(result="failed").inc()
        logger.warning("rebroadcast_failed relay=%s error=%s", url, e)
        return str(e)
    except TimeoutError:
        REBROADCAST_TOTAL.labels(result="timeout").inc()
        logger.warning("rebroadcast_timeout relay=%s timeout=%s", url, timeout)
        return f"timed out rebroadcasting to relay {url} after {timeout}s"

    REBROADCAST_TOTAL.labels(result="success").inc()
    logger.debug("rebroadcast_succeeded relay=%s id=%s", url, event.id_hex)
    return None


async def rebroadcast(
    event: Event,
    peers: Sequence[str],
    *,
    timeout: float | None = None,  # noqa: ASYNC109
    keys: Keys | None = None,
) -> list[str]:
    """Publish *event* to every relay in *peers*.

    Args:
        event: The relay-signed event.
        peers: Peer relay URLs, tried once each.
        timeout: Upper bound in seconds on one peer's whole attempt.
            ``None`` leaves attempts unbounded.
        keys: Relay keys, used to answer NIP-42 auth challenges.

    Returns:
        One failure description per peer that failed, in peer order.
    """
    if not peers:
        return []
    results = await asyncio.gather(
        *(_rebroadcast_one(event, url, timeout=timeout, keys=keys) for url in peers)
    )
    return [r for r in results if r is not None]
