"""Unit tests for services.relay.configs module."""

import pytest
from pydantic import ValidationError

from notemixer.services.relay.configs import (
    MixerRelayConfig,
    RateLimitConfig,
    RelayLimitsConfig,
    apply_env_overrides,
    parse_allowed_kinds,
)


class TestMixerRelayConfig:
    def test_defaults(self) -> None:
        config = MixerRelayConfig()
        assert config.name == "Khatru Mixer Relay"
        assert config.port == 3334
        assert config.host == "0.0.0.0"  # noqa: S104
        assert config.pipeline.admission.is_open
        assert config.pipeline.rebroadcast.relays == ()
        assert config.fanout_queue_size == 256

    def test_limits_defaults(self) -> None:
        limits = RelayLimitsConfig()
        assert limits.event_rate == RateLimitConfig(
            tokens_per_interval=5, interval=60.0, max_tokens=30
        )
        assert limits.connection_rate.max_tokens == 30
        assert limits.max_subscriptions == 20

    def test_invalid_port(self) -> None:
        with pytest.raises(ValidationError):
            MixerRelayConfig(port=0)

    def test_missing_relay_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("RELAY_PRIVATE_KEY")
        with pytest.raises(ValidationError, match="RELAY_PRIVATE_KEY"):
            MixerRelayConfig()


class TestParseAllowedKinds:
    def test_skips_non_integers(self) -> None:
        assert parse_allowed_kinds("1, abc, 30023,,7x") == [1, 30023]

    def test_empty(self) -> None:
        assert parse_allowed_kinds("") == []


class TestApplyEnvOverrides:
    def test_no_env_returns_copy(self) -> None:
        data = {"name": "From File"}
        result = apply_env_overrides(data, environ={})
        assert result == data
        assert result is not data

    def test_identity_and_port(self) -> None:
        result = apply_env_overrides(
            {"name": "From File"},
            environ={
                "RELAY_NAME": "Env Relay",
                "RELAY_DESCRIPTION": "desc",
                "RELAY_ICON": "https://x/icon.png",
                "PORT": "4444",
            },
        )
        config = MixerRelayConfig(**result)
        assert config.name == "Env Relay"
        assert config.description == "desc"
        assert config.icon == "https://x/icon.png"
        assert config.port == 4444

    def test_pipeline_lists(self) -> None:
        result = apply_env_overrides(
            {"pipeline": {"admission": {"allowed_kinds": [1]}}},
            environ={
                "ALLOWED_KINDS": "1,7,nope",
                "WHITELISTED_PUBKEYS": " " + "a" * 64 + " , ,",
                "REBROADCAST_RELAYS": "wss://a.example,,wss://b.example",
            },
        )
        config = MixerRelayConfig(**result)
        assert config.pipeline.admission.allowed_kinds == frozenset({1, 7})
        assert config.pipeline.admission.whitelisted_pubkeys == frozenset({"a" * 64})
        assert config.pipeline.rebroadcast.relays == ("wss://a.example", "wss://b.example")

    def test_does_not_mutate_nested_input(self) -> None:
        data = {"pipeline": {"admission": {"allowed_kinds": [1]}}}
        apply_env_overrides(data, environ={"ALLOWED_KINDS": "7"})
        assert data == {"pipeline": {"admission": {"allowed_kinds": [1]}}}

    @pytest.mark.parametrize(
        ("raw", "expected"), [("2.5", 2.5), ("", None), ("None", None)]
    )
    def test_rebroadcast_timeout(self, raw, expected) -> None:
        result = apply_env_overrides({}, environ={"REBROADCAST_TIMEOUT": raw})
        assert MixerRelayConfig(**result).pipeline.rebroadcast.timeout == expected

    @pytest.mark.parametrize("raw", ["0", "-1"])
    def test_rebroadcast_timeout_must_be_positive(self, raw) -> None:
        result = apply_env_overrides({}, environ={"REBROADCAST_TIMEOUT": raw})
        with pytest.raises(ValidationError):
            MixerRelayConfig(**result)

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELAY_NAME", "Process Env")
        assert apply_env_overrides({})["name"] == "Process Env"
