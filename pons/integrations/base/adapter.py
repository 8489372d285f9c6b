"""
Base Adapter Abstract Class

Provides the uniform capability surface every provider adapter implements,
plus the registration table mapping provider types to adapter factories.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

import structlog

from pons.integrations.base.config import IntegrationConfig, ProviderType
from pons.integrations.rate_limit import DEFAULT_RATE_LIMIT, RateLimiter, RateLimitPolicy

logger = structlog.get_logger()


class BaseAdapter(ABC):
    """
    Abstract base class for all provider adapters.

    Each adapter must implement:
    - connect: Validate credentials and establish the connection
    - disconnect: Release the connection
    - is_connected: Report connection state
    - sync: Refresh cached provider data (may raise; the scheduler retries)
    - get_insights: Structured payload passed through to the insights layer

    Every outbound provider call must consult `rate_limiter` first, either
    through `acquire_quota()`, the `rate_limited` decorator or
    `pons.integrations.http.adapter_request`.

    Example usage:
        adapter = CustomEndpointAdapter(rate_limiter=limiter)
        if await adapter.connect(config):
            await adapter.sync()
            insights = await adapter.get_insights()
    """

    def __init__(
        self,
        provider_type: str,
        *,
        rate_limiter: RateLimiter,
        rate_limit: RateLimitPolicy = DEFAULT_RATE_LIMIT,
    ):
        self.provider_type = provider_type
        self.rate_limiter = rate_limiter
        self.rate_limit = rate_limit

    @abstractmethod
    async def connect(self, config: IntegrationConfig) -> bool:
        """
        Verify credentials and connect.

        Returns:
            True if connected, False if the provider rejected the credentials
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the connection. Must be safe to call more than once."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the adapter currently holds a live connection."""

    @abstractmethod
    async def sync(self) -> None:
        """Refresh provider data. Raises on failure."""

    @abstractmethod
    async def get_insights(self) -> Any:
        """Provider data summary, opaque to the sync core."""

    @property
    def rate_limit_key(self) -> str:
        """Stable rate-limit key shared by every call site of this provider."""
        return self.provider_type

    async def acquire_quota(self, *, wait: bool = False) -> None:
        """Consume one request from this provider's quota."""
        await self.rate_limiter.acquire(self.rate_limit_key, self.rate_limit, wait=wait)


AdapterFactory = Callable[..., BaseAdapter]


@dataclass(frozen=True)
class AdapterRegistration:
    """One entry in the adapter table."""

    provider_type: str
    factory: AdapterFactory
    required_credentials: tuple[str, ...] = ()
    rate_limit: RateLimitPolicy = DEFAULT_RATE_LIMIT

    def create(self, rate_limiter: RateLimiter) -> BaseAdapter:
        return self.factory(rate_limiter=rate_limiter, rate_limit=self.rate_limit)


class AdapterTable:
    """
    Registration table for adapter implementations.

    Populated once at startup; adding a provider adds an entry here and never
    touches the registry's logic.

    Can be used as a decorator:
        @table.register("custom", required_credentials=("custom_endpoint",))
        class CustomEndpointAdapter(BaseAdapter):
            ...

    Or called directly:
        table.register("custom", CustomEndpointAdapter)
    """

    def __init__(self) -> None:
        self._entries: dict[str, AdapterRegistration] = {}

    def register(
        self,
        provider_type: str | ProviderType,
        factory: AdapterFactory | None = None,
        *,
        required_credentials: tuple[str, ...] = (),
        rate_limit: RateLimitPolicy = DEFAULT_RATE_LIMIT,
    ) -> Any:
        key = provider_type.value if isinstance(provider_type, ProviderType) else provider_type.strip().lower()

        def _register(actual_factory: AdapterFactory) -> AdapterFactory:
            self._entries[key] = AdapterRegistration(
                provider_type=key,
                factory=actual_factory,
                required_credentials=tuple(required_credentials),
                rate_limit=rate_limit,
            )
            logger.debug("Registered adapter", provider_type=key)
            return actual_factory

        if factory is None:
            return _register
        return _register(factory)

    def get(self, provider_type: str) -> AdapterRegistration | None:
        return self._entries.get(provider_type)

    def list_available(self) -> list[str]:
        """List all registered provider types."""
        return list(self._entries.keys())

    def __contains__(self, provider_type: object) -> bool:
        return provider_type in self._entries
