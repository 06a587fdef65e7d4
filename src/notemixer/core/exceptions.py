"""Notemixer exception hierarchy.

Typed exceptions let the relay distinguish a client-facing rejection (which
becomes a NIP-01 ``OK false`` or an HTML error fragment) from an internal
failure of one pipeline stage, without catching ``Exception`` broadly.

Exception hierarchy:

```text
NoteMixerError (base -- never raised directly)
├── ConfigurationError        -- bad YAML, missing keys, invalid env values
├── RejectionError            -- admission policy refused the event
│   └── SubmissionClosedError -- HTTP submissions disabled (allowlist active)
├── SigningError              -- relay key could not sign the mixed event
├── StorageError              -- event store failed to persist or query
└── RebroadcastError          -- one peer relay could not be reached
```

See Also:
    [MixingPipeline][notemixer.pipeline.orchestrator.MixingPipeline]: Raises
        rejection, signing and storage errors out of ``ingest`` and
        ``submit_note``.
    [BaseService][notemixer.core.base_service.BaseService]: Catches all
        [NoteMixerError][notemixer.core.exceptions.NoteMixerError] subclasses
        in the ``run_forever()`` loop.
"""

from __future__ import annotations


class NoteMixerError(Exception):
    """Base exception for all notemixer errors."""


class ConfigurationError(NoteMixerError):
    """Invalid or missing configuration (YAML, env vars, CLI flags)."""


class RejectionError(NoteMixerError):
    """An admission policy refused the event.

    Attributes:
        reason: The policy's reason, sent verbatim to the client.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SubmissionClosedError(RejectionError):
    """The HTTP note form is disabled because the relay has a pubkey allowlist."""

    def __init__(self, reason: str = "This relay is not open for public submissions") -> None:
        super().__init__(reason)


class SigningError(NoteMixerError):
    """The relay key could not produce a valid signature for a mixed event."""


class StorageError(NoteMixerError):
    """The event store failed to save, query, or count events.

    Wraps the driver-level exception as ``__cause__``.
    """


class RebroadcastError(NoteMixerError):
    """A single peer relay could not be connected to or refused the event.

    Attributes:
        url: The peer relay URL.
    """

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url
