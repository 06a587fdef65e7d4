"""Mixer relay service: websocket relay protocol and HTTP pages."""

from .configs import MixerRelayConfig, RateLimitConfig, RelayLimitsConfig, apply_env_overrides
from .service import MixerRelay


__all__ = [
    "MixerRelay",
    "MixerRelayConfig",
    "RateLimitConfig",
    "RelayLimitsConfig",
    "apply_env_overrides",
]
