"""
Built-in adapter registrations.

Provider API clients live outside the sync core and register themselves on
the application's `AdapterTable` at startup, the same way the built-ins do
here.
"""

from __future__ import annotations

from functools import partial

import structlog

from pons.integrations.base.adapter import AdapterTable
from pons.integrations.base.config import ProviderType
from pons.integrations.rate_limit import RATE_LIMITS
from pons.integrations.sources.custom import CustomEndpointAdapter

logger = structlog.get_logger()


def register_builtin_adapters(table: AdapterTable, *, http_timeout_seconds: float = 30.0) -> AdapterTable:
    table.register(
        ProviderType.CUSTOM,
        partial(CustomEndpointAdapter, timeout_seconds=http_timeout_seconds),
        required_credentials=("custom_endpoint",),
        rate_limit=RATE_LIMITS["default"],
    )
    logger.debug("Built-in adapters registered", providers=table.list_available())
    return table


__all__ = ["CustomEndpointAdapter", "register_builtin_adapters"]
