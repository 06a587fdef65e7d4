"""Relay-key signing of mixed events.

The [Signer][notemixer.pipeline.signer.Signer] is the only component that
ever touches the relay's private key. It turns an
[UnsignedEvent][notemixer.models.event.UnsignedEvent] into a fully formed
[Event][notemixer.models.event.Event]: the SDK serializes the event,
derives its id and produces the Schnorr signature.
"""

from __future__ import annotations

from nostr_sdk import EventBuilder, Keys, Kind, NostrSdkError, Tag, Timestamp

from notemixer.core.exceptions import SigningError
from notemixer.models import Event, UnsignedEvent


class Signer:
    """Signs unsigned events with the relay key pair."""

    __slots__ = ("_keys", "_public_key")

    def __init__(self, keys: Keys) -> None:
        self._keys = keys
        self._public_key = keys.public_key().to_hex()

    @classmethod
    def from_secret(cls, private_key: str) -> Signer:
        """Build a signer from an nsec1 or hex private key.

        Raises:
            SigningError: If *private_key* is not a valid secret key.
        """
        try:
            return cls(Keys.parse(private_key))
        except NostrSdkError as e:
            raise SigningError("relay private key is malformed") from e

    @property
    def public_key(self) -> str:
        """Hex-encoded relay public key."""
        return self._public_key

    @property
    def keys(self) -> Keys:
        return self._keys

    def sign(self, unsigned: UnsignedEvent) -> Event:
        """Sign *unsigned*, keeping its kind, tags, content and timestamp.

        Raises:
            SigningError: If the SDK refuses to build or sign the event.
        """
        try:
            builder = (
                EventBuilder(Kind(unsigned.kind), unsigned.content)
                .tags([Tag.parse(list(tag)) for tag in unsigned.tags])
                .custom_created_at(Timestamp.from_secs(unsigned.created_at))
            )
            signed = builder.sign_with_keys(self._keys)
        except NostrSdkError as e:
            raise SigningError(f"failed to sign event: {e}") from e
        return Event(signed)

    def __repr__(self) -> str:
        return f"Signer(public_key={self._public_key})"


def sign(unsigned: UnsignedEvent, private_key: str) -> Event:
    """Sign *unsigned* with *private_key* (nsec1 or hex)."""
    return Signer.from_secret(private_key).sign(unsigned)
