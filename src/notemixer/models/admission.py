"""Admission decision type shared by every policy.

See Also:
    [notemixer.pipeline.admission][]: The policy chain that produces these
        outcomes.
    [notemixer.services.relay.policies][]: Generic deployment policies that
        return the same type.
"""

from __future__ import annotations

from typing import NamedTuple


class RejectionOutcome(NamedTuple):
    """Result of evaluating an admission policy against one event.

    Attributes:
        reject: True if the event must not be admitted.
        reason: Human-readable reason for the rejection. Always empty when
            ``reject`` is False.
    """

    reject: bool
    reason: str = ""


ACCEPTED = RejectionOutcome(reject=False, reason="")


def rejected(reason: str) -> RejectionOutcome:
    """Build a rejecting outcome carrying *reason*."""
    if not reason:
        raise ValueError("a rejection must carry a reason")
    return RejectionOutcome(reject=True, reason=reason)
