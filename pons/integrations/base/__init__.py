"""Base adapter abstractions."""

from pons.integrations.base.adapter import (
    AdapterFactory,
    AdapterRegistration,
    AdapterTable,
    BaseAdapter,
)
from pons.integrations.base.config import IntegrationConfig, ProviderType

__all__ = [
    "AdapterFactory",
    "AdapterRegistration",
    "AdapterTable",
    "BaseAdapter",
    "IntegrationConfig",
    "ProviderType",
]
