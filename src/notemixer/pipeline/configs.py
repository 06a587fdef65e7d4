"""Immutable configuration for the admission-and-mixing pipeline.

All models are frozen: they are built once at startup and passed explicitly
to every pipeline component.

See Also:
    [MixerRelayConfig][notemixer.services.relay.configs.MixerRelayConfig]:
        Embeds [PipelineConfig][notemixer.pipeline.configs.PipelineConfig].
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from notemixer.models.constants import DEFAULT_ALLOWED_KINDS, EVENT_KIND_MAX, SUBMISSION_KIND
from notemixer.utils.keys import KeysConfig


def _drop_blank(values: Any) -> Any:
    if isinstance(values, str):
        values = values.split(",")
    if isinstance(values, (list, tuple, set, frozenset)):
        return [v.strip() for v in values if isinstance(v, str) and v.strip()]
    return values


class AdmissionConfig(BaseModel):
    """Allowed kinds and the optional author allowlist.

    An empty ``whitelisted_pubkeys`` means the relay is open: anyone may
    publish and the HTTP note form is enabled.
    """

    model_config = ConfigDict(frozen=True)

    allowed_kinds: frozenset[int] = Field(default=DEFAULT_ALLOWED_KINDS)
    whitelisted_pubkeys: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("allowed_kinds")
    @classmethod
    def validate_kinds(cls, v: frozenset[int]) -> frozenset[int]:
        for kind in v:
            if not 0 <= kind <= EVENT_KIND_MAX:
                raise ValueError(f"event kind {kind} out of range 0..{EVENT_KIND_MAX}")
        return v

    @field_validator("whitelisted_pubkeys", mode="before")
    @classmethod
    def strip_pubkeys(cls, v: Any) -> Any:
        return _drop_blank(v)

    @property
    def is_open(self) -> bool:
        return not self.whitelisted_pubkeys


class RebroadcastConfig(BaseModel):
    """Ordered peer relay list and the per-peer time bound."""

    model_config = ConfigDict(frozen=True)

    relays: tuple[str, ...] = Field(default=())
    timeout: float | None = Field(default=10.0, gt=0, description="Seconds per peer, None=unbounded")

    @field_validator("relays", mode="before")
    @classmethod
    def strip_relays(cls, v: Any) -> Any:
        return _drop_blank(v)


class PipelineConfig(KeysConfig):
    """Relay identity plus admission and rebroadcast settings.

    The relay key is loaded from the environment variable named by
    ``keys_env`` when the model is validated, so a missing or malformed key
    fails at startup.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    admission: AdmissionConfig = Field(default_factory=AdmissionConfig)
    rebroadcast: RebroadcastConfig = Field(default_factory=RebroadcastConfig)
    submission_kind: int = Field(default=SUBMISSION_KIND, ge=0, le=EVENT_KIND_MAX)
