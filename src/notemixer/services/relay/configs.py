"""Relay service configuration models and environment overrides.

See Also:
    [MixerRelay][notemixer.services.relay.service.MixerRelay]: The service
        class that consumes these configurations.
    [BaseServiceConfig][notemixer.core.base_service.BaseServiceConfig]:
        Base class providing ``interval``, ``max_consecutive_failures``,
        and ``metrics`` fields.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from notemixer.core.base_service import BaseServiceConfig
from notemixer.pipeline.configs import PipelineConfig


class RateLimitConfig(BaseModel):
    """Token bucket: ``max_tokens`` burst, refilled by ``tokens_per_interval`` every ``interval`` seconds."""

    tokens_per_interval: int = Field(ge=1)
    interval: float = Field(gt=0)
    max_tokens: int = Field(ge=1)


class RelayLimitsConfig(BaseModel):
    """Abuse limits applied by the websocket surface.

    Attributes:
        event_rate: Per-address limit on published events.
        connection_rate: Per-address limit on new websocket connections.
        max_subscriptions: Live subscriptions allowed per connection.
        max_filters: Filters allowed in one ``REQ``/``COUNT``.
        max_message_bytes: Largest accepted inbound websocket message.
    """

    event_rate: RateLimitConfig = Field(
        default_factory=lambda: RateLimitConfig(tokens_per_interval=5, interval=60.0, max_tokens=30)
    )
    connection_rate: RateLimitConfig = Field(
        default_factory=lambda: RateLimitConfig(
            tokens_per_interval=10, interval=120.0, max_tokens=30
        )
    )
    max_subscriptions: int = Field(default=20, ge=1)
    max_filters: int = Field(default=10, ge=1)
    max_message_bytes: int = Field(default=131_072, ge=1024)


class MixerRelayConfig(BaseServiceConfig):
    """Configuration for the mixer relay service.

    Attributes:
        name: Relay name shown on the home page and in the NIP-11 document.
        description: Free-text relay description.
        icon: URL of the relay icon.
        contact: Operator contact for the NIP-11 document.
        host: Bind address for the HTTP/websocket server.
        port: Port for the HTTP/websocket server.
        pipeline: Relay identity, admission and rebroadcast settings.
        limits: Rate and size limits.
        fanout_queue_size: Outbound messages buffered per connection
            before new ones are dropped.
    """

    name: str = Field(default="Khatru Mixer Relay", min_length=1)
    description: str = Field(
        default="A relay that mixes notes from different users and rebroadcasts them "
        "with its own keys.",
    )
    icon: str = Field(default="")
    contact: str = Field(default="")
    host: str = Field(default="0.0.0.0", description="HTTP bind address")  # noqa: S104
    port: int = Field(default=3334, ge=1, le=65535, description="HTTP port")
    pipeline: PipelineConfig = Field(default_factory=lambda: PipelineConfig.model_validate({}))
    limits: RelayLimitsConfig = Field(default_factory=RelayLimitsConfig)
    fanout_queue_size: int = Field(default=256, ge=1)


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_allowed_kinds(value: str) -> list[int]:
    """Parse a comma-separated kind list, skipping entries that are not integers."""
    kinds = []
    for item in _split_csv(value):
        try:
            kinds.append(int(item))
        except ValueError:
            continue
    return kinds


def apply_env_overrides(
    data: dict[str, Any], environ: Mapping[str, str] | None = None
) -> dict[str, Any]:
    """Overlay the deployment environment variables onto a relay config dict.

    Recognized variables: ``RELAY_NAME``, ``RELAY_DESCRIPTION``,
    ``RELAY_ICON``, ``PORT``, ``ALLOWED_KINDS``, ``WHITELISTED_PUBKEYS``,
    ``REBROADCAST_RELAYS`` and ``REBROADCAST_TIMEOUT``. Variables that are
    unset leave the file values untouched.

    Returns:
        A new dict; *data* is not modified.
    """
    env = os.environ if environ is None else environ
    result = dict(data)
    pipeline = dict(result.get("pipeline") or {})
    admission = dict(pipeline.get("admission") or {})
    rebroadcast = dict(pipeline.get("rebroadcast") or {})

    for var, key in (
        ("RELAY_NAME", "name"),
        ("RELAY_DESCRIPTION", "description"),
        ("RELAY_ICON", "icon"),
    ):
        if var in env:
            result[key] = env[var]
    if "PORT" in env:
        result["port"] = env["PORT"]

    if "ALLOWED_KINDS" in env:
        admission["allowed_kinds"] = parse_allowed_kinds(env["ALLOWED_KINDS"])
    if "WHITELISTED_PUBKEYS" in env:
        admission["whitelisted_pubkeys"] = _split_csv(env["WHITELISTED_PUBKEYS"])
    if "REBROADCAST_RELAYS" in env:
        rebroadcast["relays"] = _split_csv(env["REBROADCAST_RELAYS"])
    if "REBROADCAST_TIMEOUT" in env:
        raw = env["REBROADCAST_TIMEOUT"].strip().lower()
        rebroadcast["timeout"] = None if raw in ("", "none") else raw

    if admission:
        pipeline["admission"] = admission
    if rebroadcast:
        pipeline["rebroadcast"] = rebroadcast
    if pipeline:
        result["pipeline"] = pipeline
    return result
