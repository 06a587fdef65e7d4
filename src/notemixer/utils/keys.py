"""Nostr key loading for the relay identity.

The relay signs every mixed event with a single key pair. The private key is
read from an environment variable (``RELAY_PRIVATE_KEY`` by default), in
either nsec1 bech32 or 64-character hex form.

Warning:
    Private keys must never be stored in configuration files or logged. Error
    messages raised here name the variable, never its value.

Examples:
    ```python
    os.environ["RELAY_PRIVATE_KEY"] = "nsec1..."  # pragma: allowlist secret
    keys = load_keys_from_env("RELAY_PRIVATE_KEY")
    keys.public_key().to_hex()
    ```
"""

from __future__ import annotations

import os
from typing import Any

from nostr_sdk import Keys, NostrSdkError
from pydantic import BaseModel, Field, model_validator


ENV_PRIVATE_KEY = "RELAY_PRIVATE_KEY"  # pragma: allowlist secret


def load_keys_from_env(env_var: str) -> Keys:
    """Load Nostr keys from an environment variable.

    Raises:
        ValueError: If the variable is unset, empty, or not a valid private key.
    """
    value = os.getenv(env_var, "").strip()
    if not value:
        raise ValueError(
            f"{env_var} environment variable is required. Generate one with: openssl rand -hex 32"
        )
    try:
        return Keys.parse(value)
    except NostrSdkError as e:
        raise ValueError(f"{env_var} does not contain a valid private key") from e


class KeysConfig(BaseModel):
    """Pydantic model that loads the relay key pair from ``keys_env`` during validation.

    Warning:
        ``keys`` holds a live private key; never serialize this model.
    """

    model_config = {"arbitrary_types_allowed": True}

    keys_env: str = Field(default=ENV_PRIVATE_KEY, min_length=1)
    keys: Keys = Field(description="Keys loaded from keys_env")

    @model_validator(mode="before")
    @classmethod
    def _load_keys_from_env(cls, data: Any) -> Any:
        if isinstance(data, dict) and "keys" not in data:
            data = {**data, "keys": load_keys_from_env(data.get("keys_env", ENV_PRIVATE_KEY))}
        return data
