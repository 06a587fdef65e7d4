"""Service layer, the top of the dependency DAG.

Each service extends [BaseService][notemixer.core.base_service.BaseService]
and implements ``async def run()`` for one cycle of work.

Attributes:
    MixerRelay: The mixer relay (websocket protocol, HTTP pages, pipeline).
"""

from .relay import MixerRelay, MixerRelayConfig


__all__ = ["MixerRelay", "MixerRelayConfig"]
