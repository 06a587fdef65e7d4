"""Authorship-stripping transform.

``mix`` keeps only what a reader needs (kind, tags, content) and replaces
the creation time with the relay's clock. Pubkey, id and signature are
dropped; the signer supplies new ones.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from notemixer.models import UnsignedEvent


if TYPE_CHECKING:
    from notemixer.models import Event


Clock = Callable[[], int]


def wall_clock() -> int:
    """Current Unix time in whole seconds."""
    return int(time.time())


def mix(event: Event, *, clock: Clock = wall_clock) -> UnsignedEvent:
    """Return the authorless copy of *event* stamped with ``clock()``.

    The clock is read exactly once. Mixing the same event twice yields two
    results with identical kind, tags and content.
    """
    created_at = clock()
    return UnsignedEvent(
        created_at=created_at,
        kind=event.kind_number,
        tags=event.tag_values(),
        content=event.content(),
    )
