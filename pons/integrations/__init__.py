"""
Integrations

Adapter contract, the adapter registry, the shared rate limiter and the
persistence collaborator.
"""

from pons.integrations.base import AdapterTable, BaseAdapter, IntegrationConfig, ProviderType
from pons.integrations.persistence import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore
from pons.integrations.rate_limit import (
    RATE_LIMITS,
    RateLimiter,
    RateLimitPolicy,
    RateLimitStatus,
    rate_limited,
)
from pons.integrations.registry import AdapterRegistry

__all__ = [
    "AdapterRegistry",
    "AdapterTable",
    "BaseAdapter",
    "FileKeyValueStore",
    "IntegrationConfig",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "ProviderType",
    "RATE_LIMITS",
    "RateLimiter",
    "RateLimitPolicy",
    "RateLimitStatus",
    "rate_limited",
]
