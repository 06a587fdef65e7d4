"""Unit tests for core.exceptions hierarchy."""

import pytest

from notemixer.core.exceptions import (
    ConfigurationError,
    NoteMixerError,
    RebroadcastError,
    RejectionError,
    SigningError,
    StorageError,
    SubmissionClosedError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [ConfigurationError, RejectionError, SigningError, StorageError, SubmissionClosedError],
    )
    def test_subclass_of_base(self, cls) -> None:
        assert issubclass(cls, NoteMixerError)

    def test_submission_closed_is_rejection(self) -> None:
        assert issubclass(SubmissionClosedError, RejectionError)


class TestRejectionError:
    def test_reason(self) -> None:
        err = RejectionError("pubkey not whitelisted")
        assert err.reason == "pubkey not whitelisted"
        assert str(err) == "pubkey not whitelisted"

    def test_submission_closed_default(self) -> None:
        err = SubmissionClosedError()
        assert err.reason == "This relay is not open for public submissions"


class TestRebroadcastError:
    def test_url(self) -> None:
        err = RebroadcastError("wss://a.example", "failed to connect")
        assert err.url == "wss://a.example"
        assert str(err) == "failed to connect"
        assert isinstance(err, NoteMixerError)
