"""
Deployment policies for the websocket surface.

These complement the domain admission policies with generic abuse
protection, in the order the relay applies them:

* event policies, appended to the admission chain after the author and kind
  checks: [Base64MediaPolicy][notemixer.services.relay.policies.Base64MediaPolicy]
  and [EventRateLimitPolicy][notemixer.services.relay.policies.EventRateLimitPolicy]
* filter policies for ``REQ`` and ``COUNT``:
  [reject_empty_filter][notemixer.services.relay.policies.reject_empty_filter]
  and [reject_complex_filter][notemixer.services.relay.policies.reject_complex_filter]
* a per-address connection limiter checked when a websocket is accepted
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING, ClassVar

from notemixer.models.admission import ACCEPTED, RejectionOutcome, rejected
from notemixer.pipeline.admission import EventPolicy


if TYPE_CHECKING:
    from notemixer.models import Event, EventFilter
    from notemixer.pipeline.configs import AdmissionConfig

    from .configs import RateLimitConfig


FilterPolicy = Callable[["EventFilter"], RejectionOutcome]


class RateLimiter:
    """Per-key token buckets.

    Each key starts with ``max_tokens`` and regains ``tokens_per_interval``
    every ``interval`` seconds, up to ``max_tokens``. Refill is computed
    lazily from the clock on each call, so no background task is needed.
    """

    def __init__(
        self,
        tokens_per_interval: int,
        interval: float,
        max_tokens: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rate = tokens_per_interval / interval
        self._max_tokens = float(max_tokens)
        self._clock = clock
        self._buckets: dict[str, tuple[float, float]] = {}

    @classmethod
    def from_config(
        cls, config: RateLimitConfig, *, clock: Callable[[], float] = time.monotonic
    ) -> RateLimiter:
        return cls(config.tokens_per_interval, config.interval, config.max_tokens, clock=clock)

    def allow(self, key: str) -> bool:
        """Consume one token for *key*. Returns False when the bucket is empty."""
        now = self._clock()
        tokens, last = self._buckets.get(key, (self._max_tokens, now))
        tokens = min(self._max_tokens, tokens + (now - last) * self._rate)
        if tokens < 1.0:
            self._buckets[key] = (tokens, now)
            return False
        self._buckets[key] = (tokens - 1.0, now)
        return True

    def prune(self) -> int:
        """Drop buckets that have refilled completely. Returns how many were dropped."""
        now = self._clock()
        full = [
            key
            for key, (tokens, last) in self._buckets.items()
            if tokens + (now - last) * self._rate >= self._max_tokens
        ]
        for key in full:
            del self._buckets[key]
        return len(full)

    def __len__(self) -> int:
        return len(self._buckets)


class Base64MediaPolicy(EventPolicy):
    """Reject events embedding inline ``data:image/`` or ``data:video/`` payloads."""

    name = "base64_media"
    _MARKERS: ClassVar[tuple[str, ...]] = ("data:image/", "data:video/")

    def check(
        self, event: Event, config: AdmissionConfig, *, remote_addr: str | None = None
    ) -> RejectionOutcome:
        content = event.content()
        if any(marker in content for marker in self._MARKERS):
            return rejected("event with base64 media")
        return ACCEPTED


class EventRateLimitPolicy(EventPolicy):
    """Limit how many events one remote address may publish.

    Events with no known remote address are not limited.
    """

    name = "event_rate_limit"

    def __init__(self, limiter: RateLimiter) -> None:
        self._limiter = limiter

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    def check(
        self, event: Event, config: AdmissionConfig, *, remote_addr: str | None = None
    ) -> RejectionOutcome:
        if remote_addr is None or self._limiter.allow(remote_addr):
            return ACCEPTED
        return rejected("rate-limited: slow down, please")


def reject_empty_filter(event_filter: EventFilter) -> RejectionOutcome:
    """Reject filters that name no ids, authors, kinds or tag values."""
    count = (
        len(event_filter.ids or ())
        + len(event_filter.authors or ())
        + len(event_filter.kinds or ())
        + sum(len(values) for _, values in event_filter.tags)
    )
    if count == 0:
        return rejected("can't handle empty filters")
    return ACCEPTED


def reject_complex_filter(event_filter: EventFilter) -> RejectionOutcome:
    """Reject filters combining more than two tag conditions with many kinds."""
    items = len(event_filter.tags) + len(event_filter.kinds or ())
    if items > 4 and len(event_filter.tags) > 2:
        return rejected("too many things to filter for")
    return ACCEPTED


DEFAULT_FILTER_POLICIES: tuple[FilterPolicy, ...] = (reject_empty_filter, reject_complex_filter)


def check_filters(
    filters: list[EventFilter], policies: tuple[FilterPolicy, ...] = DEFAULT_FILTER_POLICIES
) -> RejectionOutcome:
    """Apply *policies* to every filter; the first rejection wins."""
    for event_filter in filters:
        for policy in policies:
            outcome = policy(event_filter)
            if outcome.reject:
                return outcome
    return ACCEPTED
