"""Shared constants for the models layer.

Defines enumerations and defaults used across the pipeline, the event store,
and the relay service. Kept in the models layer so every other layer can
import them without creating cycles.

See Also:
    [notemixer.pipeline.admission][]: Uses the default allowed kinds when no
        explicit kind set is configured.
    [notemixer.pipeline.orchestrator][]: Uses
        [SUBMISSION_KIND][notemixer.models.constants.SUBMISSION_KIND] for
        notes submitted through the HTTP form.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum


class ServiceName(StrEnum):
    """Canonical service identifiers used in logging and metrics labels."""

    RELAY = "relay"


class EventKind(IntEnum):
    """Well-known Nostr event kinds the relay deals with.

    Attributes:
        TEXT_NOTE: Kind 1 -- short text note (NIP-01).
        LONG_FORM: Kind 30023 -- long-form article (NIP-23).
    """

    TEXT_NOTE = 1
    LONG_FORM = 30_023


DEFAULT_ALLOWED_KINDS: frozenset[int] = frozenset({EventKind.TEXT_NOTE, EventKind.LONG_FORM})

# Kind given to notes synthesized from the HTTP submission form
SUBMISSION_KIND: int = EventKind.TEXT_NOTE

EVENT_KIND_MAX = 65_535
