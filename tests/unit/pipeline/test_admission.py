"""
Unit tests for pipeline.admission module.

Tests:
- Pubkey allowlist and kind allowlist policies
- AdmissionChain ordering and first-rejection-wins evaluation
- admit() over the default chain
"""

from notemixer.models import ACCEPTED, rejected
from notemixer.pipeline.admission import (
    AdmissionChain,
    EventPolicy,
    KindAllowlistPolicy,
    PubkeyAllowlistPolicy,
    admit,
    default_chain,
)
from notemixer.pipeline.configs import AdmissionConfig


class RecordingPolicy(EventPolicy):
    name = "recording"

    def __init__(self, outcome=ACCEPTED) -> None:
        self.outcome = outcome
        self.calls: list[str | None] = []

    def check(self, event, config, *, remote_addr=None):
        self.calls.append(remote_addr)
        return self.outcome


class TestPubkeyAllowlist:
    def test_open_relay_accepts(self, make_event) -> None:
        assert PubkeyAllowlistPolicy().check(make_event(), AdmissionConfig()) == ACCEPTED

    def test_listed_author_accepted(self, make_event, author_keys) -> None:
        config = AdmissionConfig(whitelisted_pubkeys=[author_keys.public_key().to_hex()])
        assert not PubkeyAllowlistPolicy().check(make_event(), config).reject

    def test_unlisted_author_rejected(self, make_event) -> None:
        config = AdmissionConfig(whitelisted_pubkeys=["f" * 64])
        outcome = PubkeyAllowlistPolicy().check(make_event(), config)
        assert outcome == rejected("pubkey not whitelisted")


class TestKindAllowlist:
    def test_allowed(self, make_event) -> None:
        assert not KindAllowlistPolicy().check(make_event(kind=30023), AdmissionConfig()).reject

    def test_disallowed(self, make_event) -> None:
        outcome = KindAllowlistPolicy().check(make_event(kind=7), AdmissionConfig())
        assert outcome.reject
        assert outcome.reason == "event kind 7 is not supported"


class TestAdmissionChain:
    def test_empty_chain_accepts(self, make_event) -> None:
        assert AdmissionChain([]).evaluate(make_event(), AdmissionConfig()) == ACCEPTED

    def test_first_rejection_wins(self, make_event) -> None:
        first = RecordingPolicy(rejected("first"))
        second = RecordingPolicy(rejected("second"))
        outcome = AdmissionChain([first, second]).evaluate(make_event(), AdmissionConfig())
        assert outcome.reason == "first"
        assert second.calls == []

    def test_remote_addr_forwarded(self, make_event) -> None:
        policy = RecordingPolicy()
        AdmissionChain([policy]).evaluate(make_event(), AdmissionConfig(), remote_addr="1.2.3.4")
        assert policy.calls == ["1.2.3.4"]

    def test_extend_returns_new_chain(self) -> None:
        base = default_chain()
        extra = RecordingPolicy()
        extended = base.extend(extra)
        assert len(base) == 2
        assert len(extended) == 3
        assert extended.policies[-1] is extra

    def test_repr(self) -> None:
        assert repr(default_chain()) == "AdmissionChain([pubkey_allowlist, kind_allowlist])"


class TestAdmit:
    def test_pubkey_checked_before_kind(self, make_event) -> None:
        config = AdmissionConfig(whitelisted_pubkeys=["f" * 64])
        outcome = admit(make_event(kind=7), config)
        assert outcome.reason == "pubkey not whitelisted"

    def test_accepts_default_note(self, make_event) -> None:
        assert admit(make_event(kind=1), AdmissionConfig()) == ACCEPTED

    def test_rejects_unsupported_kind(self, make_event) -> None:
        assert admit(make_event(kind=0), AdmissionConfig()).reason == (
            "event kind 0 is not supported"
        )
