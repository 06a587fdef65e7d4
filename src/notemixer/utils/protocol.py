"""Outbound Nostr client operations used for rebroadcasting.

Thin wrappers over ``nostr_sdk.Client`` that turn the SDK's per-relay
output objects into exceptions, so callers can treat one peer relay as one
unit of success or failure.

Examples:
    ```python
    client = await connect_peer("wss://relay.example.com", timeout=10.0)
    try:
        await publish_event(client, "wss://relay.example.com", event)
    finally:
        await close_peer(client)
    ```
"""

from __future__ import annotations

import contextlib
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from nostr_sdk import Client, ClientBuilder, NostrSdkError, NostrSigner, RelayUrl


if TYPE_CHECKING:
    from nostr_sdk import Keys

    from notemixer.models import Event


logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0


def create_client(keys: Keys | None = None) -> Client:
    """Build a ``nostr_sdk.Client``, with a signer when *keys* are given (NIP-42 auth)."""
    builder = ClientBuilder()
    if keys is not None:
        builder = builder.signer(NostrSigner.keys(keys))
    return builder.build()


async def connect_peer(
    url: str,
    *,
    keys: Keys | None = None,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,  # noqa: ASYNC109
) -> Client:
    """Open a client connected to the single relay at *url*.

    Raises:
        OSError: If the URL is invalid or the relay cannot be reached within
            *timeout* seconds.
    """
    try:
        relay_url = RelayUrl.parse(url)
    except NostrSdkError as e:
        raise OSError(f"invalid relay url: {e}") from e

    client = create_client(keys)
    await client.add_relay(relay_url)
    output = await client.try_connect(timedelta(seconds=timeout))

    if relay_url not in output.success:
        error_message = output.failed.get(relay_url, "connection timed out")
        await close_peer(client)
        logger.debug("peer_connect_failed relay=%s error=%s", url, error_message)
        raise OSError(error_message)

    logger.debug("peer_connected relay=%s", url)
    return client


async def publish_event(client: Client, url: str, event: Event) -> None:
    """Send an already-signed *event* through *client*.

    Raises:
        OSError: If the relay at *url* did not accept the event.
    """
    output = await client.send_event(event.nostr_event)
    relay_url = RelayUrl.parse(url)
    if relay_url not in output.success:
        raise OSError(output.failed.get(relay_url, "event not accepted"))
    logger.debug("peer_published relay=%s id=%s", url, event.id_hex)


async def close_peer(client: Client) -> None:
    """Shut the client down, ignoring errors from an already-dead connection."""
    with contextlib.suppress(NostrSdkError, OSError):
        await client.shutdown()
