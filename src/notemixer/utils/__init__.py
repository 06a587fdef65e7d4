"""Nostr key loading and outbound client helpers."""

from .keys import ENV_PRIVATE_KEY, KeysConfig, load_keys_from_env
from .protocol import close_peer, connect_peer, create_client, publish_event


__all__ = [
    "ENV_PRIVATE_KEY",
    "KeysConfig",
    "close_peer",
    "connect_peer",
    "create_client",
    "load_keys_from_env",
    "publish_event",
]
