"""
Admission policy chain.

Each policy is a small named object with a ``check()`` method returning a
[RejectionOutcome][notemixer.models.admission.RejectionOutcome]. An
[AdmissionChain][notemixer.pipeline.admission.AdmissionChain] evaluates its
policies in order and stops at the first rejection, so later policies never
see an event an earlier one refused.

The two domain policies are the author allowlist and the kind allowlist, in
that order. Deployment policies such as rate limiting live in
[notemixer.services.relay.policies][] and are appended by the relay service.

Examples:
    ```python
    outcome = admit(event, config.admission)
    if outcome.reject:
        raise RejectionError(outcome.reason)
    ```
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

from notemixer.models.admission import ACCEPTED, RejectionOutcome, rejected


if TYPE_CHECKING:
    from collections.abc import Iterable

    from notemixer.models import Event

    from .configs import AdmissionConfig


class EventPolicy(ABC):
    """One admission predicate.

    Implementations must be pure with respect to the event and the config
    (deployment policies may keep their own counters) and safe to call
    concurrently.
    """

    name: ClassVar[str]

    @abstractmethod
    def check(
        self, event: Event, config: AdmissionConfig, *, remote_addr: str | None = None
    ) -> RejectionOutcome: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class PubkeyAllowlistPolicy(EventPolicy):
    """Reject authors missing from a non-empty allowlist."""

    name = "pubkey_allowlist"

    def check(
        self, event: Event, config: AdmissionConfig, *, remote_addr: str | None = None
    ) -> RejectionOutcome:
        if config.is_open or event.pubkey_hex in config.whitelisted_pubkeys:
            return ACCEPTED
        return rejected("pubkey not whitelisted")


class KindAllowlistPolicy(EventPolicy):
    """Reject kinds outside the allowed set."""

    name = "kind_allowlist"

    def check(
        self, event: Event, config: AdmissionConfig, *, remote_addr: str | None = None
    ) -> RejectionOutcome:
        kind = event.kind_number
        if kind in config.allowed_kinds:
            return ACCEPTED
        return rejected(f"event kind {kind} is not supported")


class AdmissionChain:
    """Ordered policies evaluated with first-rejection-wins semantics."""

    def __init__(self, policies: Iterable[EventPolicy]) -> None:
        self._policies: tuple[EventPolicy, ...] = tuple(policies)

    @property
    def policies(self) -> tuple[EventPolicy, ...]:
        return self._policies

    def extend(self, *policies: EventPolicy) -> AdmissionChain:
        """Return a new chain with *policies* appended after the existing ones."""
        return AdmissionChain((*self._policies, *policies))

    def evaluate(
        self, event: Event, config: AdmissionConfig, *, remote_addr: str | None = None
    ) -> RejectionOutcome:
        for policy in self._policies:
            outcome = policy.check(event, config, remote_addr=remote_addr)
            if outcome.reject:
                return outcome
        return ACCEPTED

    def __len__(self) -> int:
        return len(self._policies)

    def __repr__(self) -> str:
        names = ", ".join(p.name for p in self._policies)
        return f"AdmissionChain([{names}])"


def default_chain() -> AdmissionChain:
    """The domain policies: author allowlist, then kind allowlist."""
    return AdmissionChain((PubkeyAllowlistPolicy(), KindAllowlistPolicy()))


_DEFAULT_CHAIN = default_chain()


def admit(
    event: Event, config: AdmissionConfig, *, remote_addr: str | None = None
) -> RejectionOutcome:
    """Evaluate the domain policies against *event*."""
    return _DEFAULT_CHAIN.evaluate(event, config, remote_addr=remote_addr)
