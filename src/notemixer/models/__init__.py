"""Pure frozen data types with zero I/O for the mixer relay.

The models layer is the foundation of the dependency DAG. It depends on
nothing else in ``notemixer`` -- only the standard library and the
``nostr_sdk`` value types it wraps.

Attributes:
    Event: Immutable wrapper around a signed ``nostr_sdk.Event`` with BYTEA
        encoding for binary fields and NIP-01 wire conversion.
    UnsignedEvent: Authorless event produced by mixing and consumed by the
        signer.
    EventFilter: NIP-01 subscription filter with in-memory matching.
    RejectionOutcome: ``(reject, reason)`` result of an admission policy.

See Also:
    [notemixer.models.event][]: Event wrappers.
    [notemixer.models.filter][]: Subscription filters.
    [notemixer.models.admission][]: Admission outcome type.
    [notemixer.models.constants][]: Shared constants and enumerations.
"""

from .admission import ACCEPTED, RejectionOutcome, rejected
from .constants import (
    DEFAULT_ALLOWED_KINDS,
    EVENT_KIND_MAX,
    SUBMISSION_KIND,
    EventKind,
    ServiceName,
)
from .event import Event, EventDbParams, UnsignedEvent
from .filter import EventFilter, match_any


__all__ = [
    "ACCEPTED",
    "DEFAULT_ALLOWED_KINDS",
    "EVENT_KIND_MAX",
    "SUBMISSION_KIND",
    "Event",
    "EventDbParams",
    "EventFilter",
    "EventKind",
    "RejectionOutcome",
    "ServiceName",
    "UnsignedEvent",
    "match_any",
    "rejected",
]
