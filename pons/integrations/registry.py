"""
Adapter Registry

Owns the set of connected integrations and mediates every lifecycle
transition: connect, disconnect, restore-on-startup and fan-out sync.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import structlog
from pydantic import ValidationError

from pons.integrations.base.adapter import AdapterTable, BaseAdapter
from pons.integrations.base.config import IntegrationConfig
from pons.integrations.persistence import INTEGRATIONS_KEY, KeyValueStore
from pons.integrations.rate_limit import RateLimiter
from pons.kernel.errors import ConfigurationError, ConnectionFailedError

logger = structlog.get_logger()

SyncRunner = Callable[[str, BaseAdapter], Awaitable[bool]]


class AdapterRegistry:
    """
    Registry of connected adapters, keyed by provider type.

    Mutations (`connect`, `disconnect`) hold an exclusive lock;
    `sync_all` works on a snapshot taken when it starts, so a provider
    disconnected mid-cycle only drops out of the next cycle.

    Example usage:
        registry = AdapterRegistry(table, store, limiter)
        await registry.restore()

        connected = await registry.connect(IntegrationConfig(provider_type="custom", ...))
        results = await registry.sync_all(max_concurrency=4)

        await registry.disconnect("custom")
    """

    def __init__(
        self,
        table: AdapterTable,
        store: KeyValueStore,
        rate_limiter: RateLimiter,
    ):
        self._table = table
        self._store = store
        self._rate_limiter = rate_limiter
        self._handles: dict[str, BaseAdapter] = {}
        self._configs: dict[str, IntegrationConfig] = {}
        # Saved configs not reconnected yet; persisted until connected or disconnected
        self._pending: dict[str, IntegrationConfig] = {}
        self._lock = asyncio.Lock()

    async def connect(self, config: IntegrationConfig) -> bool:
        """
        Connect an integration.

        The handle is registered and the config persisted only when the
        adapter's own `connect` succeeds. Every failure returns False with the
        reason logged; a failed reconnect leaves an existing connection as is.
        """
        try:
            adapter = self._build_adapter(config)
            connected = await adapter.connect(config)
            if not connected:
                raise ConnectionFailedError(meta={"provider_type": config.provider_type})
        except ConfigurationError as e:
            logger.error(
                "Integration configuration rejected",
                provider_type=config.provider_type,
                code=e.code,
                error=e.message,
                meta=e.meta,
            )
            return False
        except ConnectionFailedError as e:
            logger.warning(
                "Integration connection failed",
                provider_type=config.provider_type,
                code=e.code,
                error=e.message,
            )
            return False
        except Exception as e:
            logger.warning(
                "Integration connection raised",
                provider_type=config.provider_type,
                code="integration.connection_failed",
                error=str(e),
            )
            return False

        async with self._lock:
            previous = self._handles.get(config.provider_type)
            self._handles[config.provider_type] = adapter
            self._configs[config.provider_type] = config
            self._pending.pop(config.provider_type, None)
            await self._persist()

        if previous is not None and previous is not adapter:
            await self._safe_disconnect(config.provider_type, previous)

        logger.info(
            "Integration connected",
            provider_type=config.provider_type,
            replaced=previous is not None,
        )
        return True

    async def disconnect(self, provider_type: str) -> None:
        """Disconnect and forget an integration. No-op if it is neither connected nor saved."""
        provider_type = _key(provider_type)
        async with self._lock:
            adapter = self._handles.pop(provider_type, None)
            pending = self._pending.pop(provider_type, None)
            if adapter is None and pending is None:
                return
            self._configs.pop(provider_type, None)
            await self._persist()

        if adapter is not None:
            await self._safe_disconnect(provider_type, adapter)
        logger.info("Integration disconnected", provider_type=provider_type)

    def get(self, provider_type: str) -> BaseAdapter | None:
        return self._handles.get(_key(provider_type))

    def get_config(self, provider_type: str) -> IntegrationConfig | None:
        return self._configs.get(_key(provider_type))

    def is_connected(self, provider_type: str) -> bool:
        adapter = self._handles.get(_key(provider_type))
        return adapter.is_connected() if adapter else False

    def list_connected(self) -> list[IntegrationConfig]:
        """Configs of every registered integration (for display/status use)."""
        return list(self._configs.values())

    def snapshot(self) -> dict[str, BaseAdapter]:
        """Enabled handles at this instant; the stable set a sync cycle works on."""
        return {
            provider_type: adapter
            for provider_type, adapter in self._handles.items()
            if self._configs[provider_type].enabled
        }

    async def sync_all(
        self,
        runner: SyncRunner | None = None,
        max_concurrency: int | None = None,
        handles: dict[str, BaseAdapter] | None = None,
    ) -> dict[str, bool]:
        """
        Sync every connected adapter concurrently and wait for all to settle.

        Args:
            runner: Per-adapter sync routine (default: one `sync()` call)
            max_concurrency: Cap on adapters syncing at once (None = unbounded)
            handles: Pre-taken snapshot (default: `snapshot()` now)

        Returns:
            Mapping of provider type to whether its sync succeeded
        """
        handles = self.snapshot() if handles is None else handles
        if not handles:
            return {}

        run = runner or _sync_once
        semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

        async def _run_one(provider_type: str, adapter: BaseAdapter) -> bool:
            try:
                if semaphore is None:
                    return await run(provider_type, adapter)
                async with semaphore:
                    return await run(provider_type, adapter)
            except Exception as e:
                logger.error("Adapter sync failed", provider_type=provider_type, error=str(e))
                return False

        providers = list(handles)
        outcomes = await asyncio.gather(*(_run_one(p, handles[p]) for p in providers))
        return dict(zip(providers, outcomes))

    async def collect_insights(self) -> dict[str, Any]:
        """Gather `get_insights()` from every connected adapter, skipping failures."""
        insights: dict[str, Any] = {}
        for provider_type, adapter in list(self._handles.items()):
            if not adapter.is_connected():
                continue
            try:
                insights[provider_type] = await adapter.get_insights()
            except Exception as e:
                logger.warning("Failed to fetch insights", provider_type=provider_type, error=str(e))
        return insights

    async def restore(self) -> int:
        """
        Reconnect every persisted integration.

        Entries that fail to reconnect stay saved and are retried on the next
        start; only `disconnect` removes a saved integration.

        Returns:
            Number of integrations reconnected
        """
        raw = await self._store.load(INTEGRATIONS_KEY)
        if not raw:
            return 0

        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Saved integrations are not valid JSON, ignoring", error=str(e))
            return 0

        if not isinstance(entries, list):
            logger.warning("Saved integrations have unexpected shape, ignoring")
            return 0

        configs: list[IntegrationConfig] = []
        for entry in entries:
            try:
                configs.append(IntegrationConfig.model_validate(entry))
            except ValidationError as e:
                logger.warning("Skipping invalid saved integration", error=str(e))

        async with self._lock:
            for config in configs:
                if config.provider_type not in self._configs:
                    self._pending[config.provider_type] = config

        restored = 0
        for config in configs:
            if await self.connect(config):
                restored += 1
            else:
                logger.warning("Saved integration kept for next start", provider_type=config.provider_type)

        logger.info("Integrations restored", restored=restored, saved=len(entries))
        return restored

    async def close(self) -> None:
        """Disconnect every handle, keeping persisted configs for the next start."""
        async with self._lock:
            handles = list(self._handles.items())
            self._handles.clear()
            self._configs.clear()
            self._pending.clear()
        for provider_type, adapter in handles:
            await self._safe_disconnect(provider_type, adapter)

    def _build_adapter(self, config: IntegrationConfig) -> BaseAdapter:
        registration = self._table.get(config.provider_type)
        if registration is None:
            raise ConfigurationError(
                message=f"Unknown integration type: {config.provider_type}",
                meta={"known": self._table.list_available()},
            )

        missing = config.missing_credentials(registration.required_credentials)
        if missing:
            raise ConfigurationError(
                message=f"Missing required credentials for {config.provider_type}",
                meta={"missing": missing},
            )

        return registration.create(self._rate_limiter)

    async def _persist(self) -> None:
        saved = {**self._pending, **self._configs}
        payload = [config.model_dump(mode="json") for config in saved.values()]
        try:
            await self._store.save(INTEGRATIONS_KEY, json.dumps(payload))
        except Exception as e:
            logger.error("Failed to persist integrations", error=str(e))

    async def _safe_disconnect(self, provider_type: str, adapter: BaseAdapter) -> None:
        try:
            await adapter.disconnect()
        except Exception as e:
            logger.warning("Adapter disconnect raised", provider_type=provider_type, error=str(e))


def _key(provider_type: str) -> str:
    return provider_type.strip().lower()


async def _sync_once(provider_type: str, adapter: BaseAdapter) -> bool:
    await adapter.sync()
    return True
