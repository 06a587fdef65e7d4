"""Unit tests for models.admission and models.constants."""

import pytest

from notemixer.models import (
    ACCEPTED,
    DEFAULT_ALLOWED_KINDS,
    SUBMISSION_KIND,
    EventKind,
    RejectionOutcome,
    ServiceName,
    rejected,
)


class TestRejectionOutcome:
    def test_accepted(self) -> None:
        assert ACCEPTED == RejectionOutcome(reject=False, reason="")
        assert not ACCEPTED.reject

    def test_rejected(self) -> None:
        outcome = rejected("pubkey not whitelisted")
        assert outcome.reject
        assert outcome.reason == "pubkey not whitelisted"

    def test_rejected_requires_reason(self) -> None:
        with pytest.raises(ValueError, match="reason"):
            rejected("")


class TestConstants:
    def test_default_kinds(self) -> None:
        assert DEFAULT_ALLOWED_KINDS == frozenset({1, 30023})

    def test_submission_kind(self) -> None:
        assert SUBMISSION_KIND == EventKind.TEXT_NOTE == 1

    def test_service_name(self) -> None:
        assert ServiceName.RELAY == "relay"
