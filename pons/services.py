"""
Service Container

Explicitly constructed services with process-wide lifetime. The API
lifespan and the standalone runner both build one `SyncServices` and drive
its startup/shutdown.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from pons.config import Settings, get_settings
from pons.integrations.base.adapter import AdapterTable
from pons.integrations.persistence import FileKeyValueStore, KeyValueStore
from pons.integrations.rate_limit import RateLimiter
from pons.integrations.registry import AdapterRegistry
from pons.integrations.sources import register_builtin_adapters
from pons.monitoring.metrics import Metrics, get_metrics
from pons.scheduling.scheduler import DataChangedCallback, SyncScheduler
from pons.scheduling.status import SyncConfig

logger = structlog.get_logger()


@dataclass
class SyncServices:
    settings: Settings
    store: KeyValueStore
    rate_limiter: RateLimiter
    table: AdapterTable
    registry: AdapterRegistry
    scheduler: SyncScheduler
    started: bool = field(default=False)

    async def startup(self, *, start_scheduler: bool = True) -> None:
        """Restore persisted state, reconnect integrations and arm the scheduler."""
        self.rate_limiter.start()
        await self.scheduler.restore()
        restored = await self.registry.restore()
        if start_scheduler:
            self.scheduler.start()
        self.started = True
        logger.info(
            "Sync services started",
            restored_integrations=restored,
            scheduler_started=start_scheduler,
        )

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()
        await self.registry.close()
        await self.rate_limiter.close()
        self.started = False
        logger.info("Sync services stopped")


def build_services(
    settings: Settings | None = None,
    *,
    store: KeyValueStore | None = None,
    table: AdapterTable | None = None,
    on_data_changed: DataChangedCallback | None = None,
    metrics: Metrics | None = None,
) -> SyncServices:
    """
    Wire the sync core from settings.

    Args:
        settings: Application settings (default: environment)
        store: Persistence collaborator (default: JSON file at `settings.state_path`)
        table: Adapter table (default: built-in adapters only)
        on_data_changed: Insights cache invalidation hook
        metrics: Metrics shared by the limiter and the scheduler (default: global)
    """
    settings = settings or get_settings()
    store = store or FileKeyValueStore(settings.state_path)
    if table is None:
        table = register_builtin_adapters(
            AdapterTable(),
            http_timeout_seconds=settings.http_timeout_seconds,
        )

    metrics = metrics or get_metrics()
    rate_limiter = RateLimiter(
        cleanup_interval_seconds=settings.rate_limit_cleanup_seconds,
        metrics=metrics,
    )
    registry = AdapterRegistry(table, store, rate_limiter)
    scheduler = SyncScheduler(
        registry,
        store,
        config=SyncConfig(
            interval_minutes=settings.sync_interval_minutes,
            retry_attempts=settings.sync_retry_attempts,
            retry_delay_ms=settings.sync_retry_delay_ms,
            enable_notifications=settings.sync_enable_notifications,
            max_concurrency=settings.sync_max_concurrency,
        ),
        on_data_changed=on_data_changed,
        metrics=metrics,
    )

    return SyncServices(
        settings=settings,
        store=store,
        rate_limiter=rate_limiter,
        table=table,
        registry=registry,
        scheduler=scheduler,
    )
