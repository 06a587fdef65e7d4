"""Shared fixtures for services.relay test package."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from notemixer.services.relay.configs import MixerRelayConfig
from notemixer.services.relay.service import MixerRelay


@pytest.fixture
def relay_config() -> MixerRelayConfig:
    """Open relay with default limits, bound to a test port."""
    return MixerRelayConfig(interval=60.0, host="127.0.0.1", port=9999)


@pytest.fixture
def relay(mock_store: MagicMock, relay_config: MixerRelayConfig) -> MixerRelay:
    return MixerRelay(store=mock_store, config=relay_config)


@pytest.fixture
def make_client(mock_store: MagicMock):
    """Build a TestClient for a relay configured from a dict."""

    def _make(**config) -> TestClient:
        service = MixerRelay(store=mock_store, config=MixerRelayConfig(**config))
        return TestClient(service._build_app())

    return _make


@pytest.fixture
def test_client(relay: MixerRelay) -> TestClient:
    """FastAPI TestClient from the relay service."""
    return TestClient(relay._build_app())
