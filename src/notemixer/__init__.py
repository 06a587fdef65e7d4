r"""notemixer -- a Nostr relay that mixes authorship out of every event.

Admitted events are stripped of their author, re-stamped, re-signed with the
relay's own key, stored in PostgreSQL, fanned out to local subscribers and
rebroadcast to peer relays.

Architecture follows a **diamond DAG** dependency structure where imports
flow strictly downward:

```text
              services         Relay protocol and HTTP pages
                 |
              pipeline         Admission, mixing, signing, rebroadcast
             /        \
          core        utils    Storage, logging, metrics / keys, peers
             \        /
              models           Pure frozen dataclasses (zero I/O)
```

Note:
    For lightweight usage, import directly from subpackages::

        from notemixer.models import Event
        from notemixer.pipeline import mix

    Top-level imports (``from notemixer import MixerRelay``) use lazy
    loading and resolve on first access.
"""

import importlib
from importlib.metadata import version as _get_version


__version__ = _get_version("notemixer")

__all__ = [
    "AdmissionChain",
    "BaseService",
    "Event",
    "EventFilter",
    "EventStore",
    "Logger",
    "MixerRelay",
    "MixerRelayConfig",
    "MixingPipeline",
    "Pool",
    "PoolConfig",
    "Signer",
    "UnsignedEvent",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "BaseService": ("notemixer.core", "BaseService"),
    "EventStore": ("notemixer.core", "EventStore"),
    "Logger": ("notemixer.core", "Logger"),
    "Pool": ("notemixer.core", "Pool"),
    "PoolConfig": ("notemixer.core", "PoolConfig"),
    "Event": ("notemixer.models", "Event"),
    "EventFilter": ("notemixer.models", "EventFilter"),
    "UnsignedEvent": ("notemixer.models", "UnsignedEvent"),
    "AdmissionChain": ("notemixer.pipeline", "AdmissionChain"),
    "MixingPipeline": ("notemixer.pipeline", "MixingPipeline"),
    "Signer": ("notemixer.pipeline", "Signer"),
    "MixerRelay": ("notemixer.services", "MixerRelay"),
    "MixerRelayConfig": ("notemixer.services", "MixerRelayConfig"),
}


def __getattr__(name: str) -> object:
    if name in _LAZY_IMPORTS:
        module_path, attr_name = _LAZY_IMPORTS[name]
        module = importlib.import_module(module_path)
        value = getattr(module, attr_name)
        globals()[name] = value  # Cache for subsequent access
        return value
    raise AttributeError(f"module 'notemixer' has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
