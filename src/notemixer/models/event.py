"""
Immutable Nostr event wrappers with database and wire serialization.

[Event][notemixer.models.event.Event] wraps a signed ``nostr_sdk.Event`` in a
frozen dataclass that transparently delegates attribute access to the SDK
object while adding database conversion via
[to_db_params()][notemixer.models.event.Event.to_db_params] and wire
conversion via [to_dict()][notemixer.models.event.Event.to_dict].

[UnsignedEvent][notemixer.models.event.UnsignedEvent] is the authorless
intermediate produced by the mixing transform: it carries only the fields that
survive mixing plus the re-stamped creation time, and becomes an
[Event][notemixer.models.event.Event] only through the signer.

See Also:
    [notemixer.pipeline.mixing][]: Produces ``UnsignedEvent`` instances.
    [notemixer.pipeline.signer][]: Turns ``UnsignedEvent`` into ``Event``.
    [notemixer.core.store][]: Persists events via their database parameters.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from nostr_sdk import Event as NostrEvent
from nostr_sdk import NostrSdkError

from ._validation import validate_instance, validate_str_no_null, validate_timestamp


class EventDbParams(NamedTuple):
    """Positional parameters for the event table insert.

    Attributes:
        id: Event ID as 32-byte binary (SHA-256 of the serialized event).
        pubkey: Author public key as 32-byte binary.
        created_at: Unix timestamp of event creation.
        kind: Integer event kind.
        tags: JSON-encoded array of tag arrays.
        content: Raw event content string.
        sig: Schnorr signature as 64-byte binary.
    """

    id: bytes
    pubkey: bytes
    created_at: int
    kind: int
    tags: str
    content: str
    sig: bytes


@dataclass(frozen=True, slots=True)
class UnsignedEvent:
    """Authorless event awaiting a signature.

    Holds exactly the fields that survive mixing (``kind``, ``tags``,
    ``content``) plus the ``created_at`` sampled at mixing time. There is no
    ``pubkey``, ``id`` or ``sig``: those only exist once the relay signs it.

    Args:
        created_at: Unix timestamp to stamp on the signed event.
        kind: Integer event kind.
        tags: Ordered tag entries, each an ordered sequence of strings.
        content: Opaque content payload.

    Raises:
        TypeError: If a field has the wrong type.
        ValueError: If ``created_at`` is negative or strings contain null bytes.
    """

    created_at: int
    kind: int
    tags: tuple[tuple[str, ...], ...]
    content: str

    def __post_init__(self) -> None:
        validate_timestamp(self.created_at, "created_at")
        validate_timestamp(self.kind, "kind")
        validate_str_no_null(self.content, "content")
        validate_instance(self.tags, tuple, "tags")
        for tag in self.tags:
            validate_instance(tag, tuple, "tag")
            for value in tag:
                validate_str_no_null(value, "tag value")


@dataclass(frozen=True, slots=True)
class Event:
    """Immutable signed Nostr event with database and wire conversion.

    All attribute access is delegated to the inner ``nostr_sdk.Event`` via
    ``__getattr__``, so SDK methods like ``id()``, ``author()``, ``kind()``,
    ``content()`` and ``verify()`` work directly.

    Content and tag values are checked for null bytes, which PostgreSQL TEXT
    columns reject, and the database parameters are computed eagerly so an
    event that cannot be stored never leaves the constructor.

    Args:
        _nostr_event: The underlying ``nostr_sdk.Event`` instance.

    Raises:
        TypeError: If ``_nostr_event`` is not a ``nostr_sdk.Event``.
        ValueError: If content or tags contain null bytes.

    Examples:
        ```python
        event = Event.from_dict(message[1])
        event.kind().as_u16()   # delegated to nostr_sdk.Event
        event.to_db_params()    # cached EventDbParams
        ```
    """

    _nostr_event: NostrEvent
    _db_params: EventDbParams = field(
        default=None,
        init=False,
        repr=False,
        compare=False,
        hash=False,  # type: ignore[assignment]  # mypy expects bool literal, field() accepts it at runtime
    )

    def __post_init__(self) -> None:
        """Validate the event for storage compatibility on construction."""
        validate_instance(self._nostr_event, NostrEvent, "_nostr_event")
        event_id = self._nostr_event.id().to_hex()[:16]

        if "\x00" in self._nostr_event.content():
            raise ValueError(f"Event {event_id}... content contains null bytes")

        for tag in self._nostr_event.tags().to_vec():
            for value in tag.as_vec():
                if "\x00" in value:
                    raise ValueError(f"Event {event_id}... tags contain null bytes")

        object.__setattr__(self, "_db_params", self._compute_db_params())

    def __getattr__(self, name: str) -> Any:
        """Delegate attribute access to the wrapped NostrEvent."""
        try:
            return getattr(self._nostr_event, name)
        except AttributeError:
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            ) from None

    @property
    def nostr_event(self) -> NostrEvent:
        """The wrapped ``nostr_sdk.Event``."""
        return self._nostr_event

    @property
    def id_hex(self) -> str:
        """Hex-encoded event id."""
        return self._nostr_event.id().to_hex()

    @property
    def pubkey_hex(self) -> str:
        """Hex-encoded author public key."""
        return self._nostr_event.author().to_hex()

    @property
    def kind_number(self) -> int:
        """Integer event kind."""
        return self._db_params.kind

    def tag_values(self) -> tuple[tuple[str, ...], ...]:
        """Return the tags as an ordered tuple of string tuples."""
        return tuple(tuple(tag.as_vec()) for tag in self._nostr_event.tags().to_vec())

    def _compute_db_params(self) -> EventDbParams:
        """Compute positional parameters for the event table insert."""
        inner = self._nostr_event
        tags_list = [list(tag.as_vec()) for tag in inner.tags().to_vec()]
        return EventDbParams(
            id=bytes.fromhex(inner.id().to_hex()),
            pubkey=bytes.fromhex(inner.author().to_hex()),
            created_at=inner.created_at().as_secs(),
            kind=inner.kind().as_u16(),
            tags=json.dumps(tags_list),
            content=inner.content(),
            sig=bytes.fromhex(inner.signature()),
        )

    def to_db_params(self) -> EventDbParams:
        """Return cached positional parameters for the event table insert."""
        return self._db_params

    def to_dict(self) -> dict[str, Any]:
        """Return the NIP-01 JSON object for this event."""
        params = self._db_params
        return {
            "id": params.id.hex(),
            "pubkey": params.pubkey.hex(),
            "created_at": params.created_at,
            "kind": params.kind,
            "tags": json.loads(params.tags),
            "content": params.content,
            "sig": params.sig.hex(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Event:
        """Parse a NIP-01 event object received on the wire.

        Only the shape is checked here; id and signature verification is left
        to the caller via ``verify()``.

        Raises:
            ValueError: If *data* is not a well-formed event object.
        """
        if not isinstance(data, dict):
            raise ValueError(f"event must be an object, got {type(data).__name__}")
        try:
            inner = NostrEvent.from_json(json.dumps(data))
        except NostrSdkError as e:
            raise ValueError(f"malformed event: {e}") from e
        return cls(inner)

    @classmethod
    def from_db_params(cls, params: EventDbParams) -> Event:
        """Reconstruct an [Event][notemixer.models.event.Event] from stored fields.

        Note:
            The reconstructed event passes through ``__post_init__`` again,
            so rows are validated the same way as live events.
        """
        tags = json.loads(params.tags)
        inner = NostrEvent.from_json(
            json.dumps(
                {
                    "id": params.id.hex(),
                    "pubkey": params.pubkey.hex(),
                    "created_at": params.created_at,
                    "kind": params.kind,
                    "tags": tags,
                    "content": params.content,
                    "sig": params.sig.hex(),
                }
            )
        )
        return cls(inner)
