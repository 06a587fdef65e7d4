"""Infrastructure layer: storage, logging, metrics and the service lifecycle.

Depends only on [notemixer.models][]. Everything above it (the mixing
pipeline and the relay service) reaches PostgreSQL through
[EventStore][notemixer.core.store.EventStore] and logs through
[Logger][notemixer.core.logger.Logger].
"""

from .base_service import BaseService, BaseServiceConfig, ConfigT
from .exceptions import (
    ConfigurationError,
    NoteMixerError,
    RebroadcastError,
    RejectionError,
    SigningError,
    StorageError,
    SubmissionClosedError,
)
from .logger import JsonFormatter, Logger, StructuredFormatter, format_kv_pairs
from .metrics import (
    EVENTS_TOTAL,
    PIPELINE_DURATION_SECONDS,
    REBROADCAST_TOTAL,
    SERVICE_COUNTER,
    SERVICE_GAUGE,
    SERVICE_INFO,
    MetricsConfig,
    MetricsServer,
)
from .pool import DatabaseConfig, Pool, PoolConfig, PoolLimitsConfig, PoolRetryConfig
from .store import EventStore, EventStoreConfig, compile_filter
from .yaml import load_yaml


__all__ = [
    "EVENTS_TOTAL",
    "PIPELINE_DURATION_SECONDS",
    "REBROADCAST_TOTAL",
    "SERVICE_COUNTER",
    "SERVICE_GAUGE",
    "SERVICE_INFO",
    "BaseService",
    "BaseServiceConfig",
    "ConfigT",
    "ConfigurationError",
    "DatabaseConfig",
    "EventStore",
    "EventStoreConfig",
    "JsonFormatter",
    "Logger",
    "MetricsConfig",
    "MetricsServer",
    "NoteMixerError",
    "Pool",
    "PoolConfig",
    "PoolLimitsConfig",
    "PoolRetryConfig",
    "RebroadcastError",
    "RejectionError",
    "SigningError",
    "StorageError",
    "StructuredFormatter",
    "SubmissionClosedError",
    "compile_filter",
    "format_kv_pairs",
    "load_yaml",
]
