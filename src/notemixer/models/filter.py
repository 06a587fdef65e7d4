"""
NIP-01 subscription filters.

An [EventFilter][notemixer.models.filter.EventFilter] is parsed from the JSON
object a client sends in ``REQ`` and ``COUNT`` messages. The same instance is
used twice: matched in memory against freshly mixed events for live fan-out,
and compiled to SQL by the [EventStore][notemixer.core.store.EventStore] for
historical queries.

Within one filter every present condition must hold (AND); a list of filters
matches if any one of them does (OR).

Examples:
    ```python
    f = EventFilter.from_dict({"kinds": [1], "#t": ["nostr"], "limit": 20})
    f.matches(event)
    ```
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .constants import EVENT_KIND_MAX


if TYPE_CHECKING:
    from .event import Event


_TAG_KEY_PATTERN = re.compile(r"^#[A-Za-z]$")


def _parse_str_list(data: dict[str, Any], key: str) -> tuple[str, ...] | None:
    if key not in data:
        return None
    value = data[key]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"filter field '{key}' must be a list of strings")
    return tuple(value)


def _parse_timestamp(data: dict[str, Any], key: str) -> int | None:
    if key not in data:
        return None
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"filter field '{key}' must be a non-negative integer")
    return value


@dataclass(frozen=True, slots=True)
class EventFilter:
    """Immutable NIP-01 filter.

    ``None`` means "no constraint" for every field; an empty tuple means the
    constraint can never be satisfied.

    Attributes:
        ids: Accepted hex event ids.
        authors: Accepted hex author pubkeys.
        kinds: Accepted event kinds.
        since: Minimum ``created_at`` (inclusive).
        until: Maximum ``created_at`` (inclusive).
        limit: Maximum number of stored events to return for this filter.
        tags: ``(letter, values)`` pairs from ``#<letter>`` keys.
    """

    ids: tuple[str, ...] | None = None
    authors: tuple[str, ...] | None = None
    kinds: tuple[int, ...] | None = None
    since: int | None = None
    until: int | None = None
    limit: int | None = None
    tags: tuple[tuple[str, tuple[str, ...]], ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> EventFilter:
        """Parse a filter object from a client message.

        Unknown keys are ignored.

        Raises:
            ValueError: If *data* is not an object or a known field is malformed.
        """
        if not isinstance(data, dict):
            raise ValueError(f"filter must be an object, got {type(data).__name__}")

        kinds: tuple[int, ...] | None = None
        if "kinds" in data:
            raw_kinds = data["kinds"]
            if not isinstance(raw_kinds, list) or not all(
                isinstance(k, int) and not isinstance(k, bool) and 0 <= k <= EVENT_KIND_MAX
                for k in raw_kinds
            ):
                raise ValueError("filter field 'kinds' must be a list of event kinds")
            kinds = tuple(raw_kinds)

        tags = tuple(
            (key[1], _parse_str_list(data, key) or ())
            for key in sorted(data)
            if _TAG_KEY_PATTERN.match(key)
        )

        return cls(
            ids=_parse_str_list(data, "ids"),
            authors=_parse_str_list(data, "authors"),
            kinds=kinds,
            since=_parse_timestamp(data, "since"),
            until=_parse_timestamp(data, "until"),
            limit=_parse_timestamp(data, "limit"),
            tags=tags,
        )

    @property
    def is_empty(self) -> bool:
        """Whether the filter places no constraint at all on events."""
        return (
            self.ids is None
            and self.authors is None
            and self.kinds is None
            and self.since is None
            and self.until is None
            and not self.tags
        )

    def matches(self, event: Event) -> bool:
        """Return True if *event* satisfies every condition of this filter."""
        params = event.to_db_params()
        if self.ids is not None and params.id.hex() not in self.ids:
            return False
        if self.authors is not None and params.pubkey.hex() not in self.authors:
            return False
        if self.kinds is not None and params.kind not in self.kinds:
            return False
        if self.since is not None and params.created_at < self.since:
            return False
        if self.until is not None and params.created_at > self.until:
            return False
        if self.tags:
            event_tags = event.tag_values()
            for letter, values in self.tags:
                if not any(
                    len(tag) >= 2 and tag[0] == letter and tag[1] in values for tag in event_tags
                ):
                    return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Return the wire representation of this filter."""
        data: dict[str, Any] = {}
        if self.ids is not None:
            data["ids"] = list(self.ids)
        if self.authors is not None:
            data["authors"] = list(self.authors)
        if self.kinds is not None:
            data["kinds"] = list(self.kinds)
        if self.since is not None:
            data["since"] = self.since
        if self.until is not None:
            data["until"] = self.until
        if self.limit is not None:
            data["limit"] = self.limit
        for letter, values in self.tags:
            data[f"#{letter}"] = list(values)
        return data


def match_any(filters: list[EventFilter] | tuple[EventFilter, ...], event: Event) -> bool:
    """Return True if *event* matches at least one of *filters*."""
    return any(f.matches(event) for f in filters)
