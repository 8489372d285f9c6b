"""
Sync Scheduler

Runs a sync cycle across every connected integration on a recurring
interval using APScheduler, retries individual adapter failures and
publishes an accurate status after every cycle.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

import structlog
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from pydantic import ValidationError

from pons.integrations.base.adapter import BaseAdapter
from pons.integrations.persistence import LAST_SYNC_TIME_KEY, SYNC_CONFIG_KEY, KeyValueStore
from pons.integrations.registry import AdapterRegistry
from pons.kernel.time import UTC, coerce_utc, isoformat_z, parse_iso8601, utc_now
from pons.monitoring.metrics import Metrics, get_metrics
from pons.scheduling.notifications import NotificationPublisher, build_notification
from pons.scheduling.publisher import StatusPublisher
from pons.scheduling.status import (
    ALL_FAILED_MESSAGE,
    SyncConfig,
    SyncOutcome,
    SyncStatus,
    classify,
)

logger = structlog.get_logger()

SYNC_JOB_ID = "sync_all_integrations"

DataChangedCallback = Callable[[], Awaitable[None] | None]


class SyncScheduler:
    """
    Drives recurring sync cycles over the adapter registry.

    States:
    - Stopped (initial): no job armed, `next_sync_time` is None
    - Scheduled: interval job armed; `start()` also fires one cycle immediately
    - Running: a cycle is in progress (`status.is_running`)

    `stop()` removes the job but lets an in-flight cycle finish. `sync_now()`
    while a cycle is running is a no-op, which is what keeps timer-driven and
    manual cycles from ever overlapping.

    Example usage:
        scheduler = SyncScheduler(registry, store, on_data_changed=insights.invalidate)
        await scheduler.restore()
        scheduler.start()

        unsubscribe = scheduler.subscribe(lambda status: print(status.last_sync_result))
        status = await scheduler.sync_now()

        await scheduler.shutdown()
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        store: KeyValueStore,
        *,
        config: SyncConfig | None = None,
        on_data_changed: DataChangedCallback | None = None,
        metrics: Metrics | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._registry = registry
        self._store = store
        self._config = config or SyncConfig()
        self._on_data_changed = on_data_changed
        self._metrics = metrics or get_metrics()
        self._sleep = sleep

        self._scheduler = AsyncIOScheduler(timezone=UTC)
        self._scheduled = False
        self._status = SyncStatus()
        self._idle = asyncio.Event()
        self._idle.set()

        self.publisher = StatusPublisher()
        self.notifications = NotificationPublisher()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def restore(self) -> None:
        """Load persisted tuning config and last sync time. Missing values keep defaults."""
        raw_config = await self._store.load(SYNC_CONFIG_KEY)
        if raw_config:
            try:
                saved = json.loads(raw_config)
                self._config = SyncConfig.model_validate({**self._config.model_dump(), **saved})
            except (json.JSONDecodeError, TypeError, ValidationError) as e:
                logger.warning("Ignoring invalid saved sync config", error=str(e))

        raw_time = await self._store.load(LAST_SYNC_TIME_KEY)
        if raw_time:
            try:
                self._status = self._status.model_copy(update={"last_sync_time": parse_iso8601(raw_time)})
            except ValueError as e:
                logger.warning("Ignoring invalid saved last sync time", error=str(e))

    def start(self) -> None:
        """Arm the recurring job and trigger one cycle immediately."""
        if self._scheduled:
            logger.info("Sync scheduler already running")
            return

        if not self._scheduler.running:
            self._scheduler.start()

        self._scheduler.add_job(
            self._run_scheduled_cycle,
            trigger=self._trigger(),
            id=SYNC_JOB_ID,
            name="Sync all integrations",
            replace_existing=True,
            coalesce=True,  # Skip missed runs
            max_instances=1,  # Don't overlap
            next_run_time=utc_now(),
        )
        self._scheduled = True
        self._set_status(next_sync_time=self._next_sync_time())

        logger.info("Sync scheduler started", interval_minutes=self._config.interval_minutes)

    def stop(self) -> None:
        """Disarm the recurring job. An in-flight cycle runs to completion."""
        if not self._scheduled:
            return

        try:
            self._scheduler.remove_job(SYNC_JOB_ID)
        except JobLookupError:
            pass
        self._scheduled = False
        self._set_status(next_sync_time=None)

        logger.info("Sync scheduler stopped")

    async def shutdown(self) -> None:
        """Stop, wait for an in-flight cycle, then shut APScheduler down."""
        self.stop()
        await self._idle.wait()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        logger.info("Sync scheduler shutdown")

    def is_scheduled(self) -> bool:
        return self._scheduled

    # ------------------------------------------------------------------
    # Config and status
    # ------------------------------------------------------------------

    def get_config(self) -> SyncConfig:
        return self._config.model_copy()

    async def update_config(self, **changes: Any) -> SyncConfig:
        """
        Validate and persist new tuning values.

        A running schedule is re-armed with the new interval (next fire is
        one full interval from now).

        Raises:
            pydantic.ValidationError: If a value is out of range
        """
        self._config = SyncConfig.model_validate({**self._config.model_dump(), **changes})
        try:
            await self._store.save(SYNC_CONFIG_KEY, self._config.model_dump_json())
        except Exception as e:
            logger.error("Failed to persist sync config", error=str(e))

        if self._scheduled and "interval_minutes" in changes:
            self._scheduler.reschedule_job(SYNC_JOB_ID, trigger=self._trigger())
            self._set_status(next_sync_time=self._next_sync_time())

        logger.info("Sync config updated", **changes)
        return self.get_config()

    def get_status(self) -> SyncStatus:
        return self._status

    def subscribe(self, listener: Callable[[SyncStatus], None]) -> Callable[[], None]:
        """Receive every status snapshot. Returns the unsubscribe function."""
        return self.publisher.subscribe(listener)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def sync_now(self) -> SyncStatus:
        """
        Run one sync cycle now.

        Returns:
            The status after the cycle, or the current status unchanged if a
            cycle was already running
        """
        # Check-and-set with no suspension point in between
        if self._status.is_running:
            logger.info("Sync already in progress")
            return self._status

        self._idle.clear()
        self._set_status(
            is_running=True,
            synced_providers=frozenset(),
            failed_providers=frozenset(),
            error_message=None,
        )
        started = time.monotonic()

        try:
            synced: frozenset[str] = frozenset()
            failed: frozenset[str] = frozenset()
            try:
                synced, failed = await self._run_cycle()
                outcome = classify(synced, failed)
                error_message = ALL_FAILED_MESSAGE if outcome == SyncOutcome.ERROR else None
            except Exception as e:
                logger.exception("Sync cycle failed with an internal error", error=str(e))
                outcome = SyncOutcome.ERROR
                error_message = str(e) or e.__class__.__name__

            await self._finish_cycle(
                outcome=outcome,
                synced=synced,
                failed=failed,
                error_message=error_message,
                duration=time.monotonic() - started,
            )
        finally:
            if self._status.is_running:
                # Cancelled mid-cycle; never leave the flag stuck
                self._set_status(is_running=False)
            self._idle.set()

        return self._status

    async def _run_scheduled_cycle(self) -> None:
        await self.sync_now()

    async def _run_cycle(self) -> tuple[frozenset[str], frozenset[str]]:
        handles = self._registry.snapshot()
        if not handles:
            logger.info("No integrations connected, skipping sync")
            return frozenset(), frozenset()

        config = self._config
        logger.info("Syncing integrations", count=len(handles), max_concurrency=config.max_concurrency)

        async def runner(provider_type: str, adapter: BaseAdapter) -> bool:
            return await self._sync_with_retry(provider_type, adapter, config)

        results = await self._registry.sync_all(
            runner=runner,
            max_concurrency=config.max_concurrency,
            handles=handles,
        )
        synced = frozenset(p for p, ok in results.items() if ok)
        failed = frozenset(p for p, ok in results.items() if not ok)
        return synced, failed

    async def _sync_with_retry(
        self,
        provider_type: str,
        adapter: BaseAdapter,
        config: SyncConfig,
    ) -> bool:
        """
        Sync one adapter with linear backoff.

        Makes at most `retry_attempts` attempts, waiting
        `retry_delay_ms * attempt` after failed attempt number `attempt`.
        Adapter errors end here and become a False result.
        """
        for attempt in range(1, config.retry_attempts + 1):
            try:
                await adapter.sync()
            except Exception as e:
                self._metrics.track_adapter_attempt(provider_type, success=False)
                logger.warning(
                    "Adapter sync attempt failed",
                    provider_type=provider_type,
                    attempt=attempt,
                    max_attempts=config.retry_attempts,
                    code=getattr(e, "code", None),
                    error=str(e),
                )
                if attempt < config.retry_attempts:
                    await self._sleep(config.retry_delay_seconds(attempt))
                continue

            self._metrics.track_adapter_attempt(provider_type, success=True)
            logger.info("Adapter synced", provider_type=provider_type, attempt=attempt)
            return True

        logger.error(
            "Adapter sync failed after retries",
            provider_type=provider_type,
            attempts=config.retry_attempts,
        )
        return False

    async def _finish_cycle(
        self,
        *,
        outcome: SyncOutcome,
        synced: frozenset[str],
        failed: frozenset[str],
        error_message: str | None,
        duration: float,
    ) -> None:
        finished_at = utc_now()
        self._status = SyncStatus(
            is_running=False,
            last_sync_time=finished_at,
            next_sync_time=self._next_sync_time(),
            last_sync_result=outcome,
            synced_providers=synced,
            failed_providers=failed,
            error_message=error_message,
        )

        try:
            await self._store.save(LAST_SYNC_TIME_KEY, isoformat_z(finished_at))
        except Exception as e:
            logger.error("Failed to persist last sync time", error=str(e))

        self._metrics.track_sync_cycle(outcome.value, duration, finished_at.timestamp())
        self.publisher.publish(self._status)

        if self._config.enable_notifications:
            notification = build_notification(self._status)
            if notification is not None:
                self.notifications.publish(notification)

        if outcome in (SyncOutcome.SUCCESS, SyncOutcome.PARTIAL):
            await self._signal_data_changed()

        logger.info(
            "Sync completed",
            result=outcome.value,
            synced=sorted(synced),
            failed=sorted(failed),
            duration_seconds=round(duration, 3),
        )

    async def _signal_data_changed(self) -> None:
        if self._on_data_changed is None:
            return
        try:
            result = self._on_data_changed()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("Insights cache invalidation failed", error=str(e))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _trigger(self) -> IntervalTrigger:
        return IntervalTrigger(seconds=self._config.interval_minutes * 60, timezone=UTC)

    def _next_sync_time(self) -> datetime | None:
        if not self._scheduled:
            return None
        job = self._scheduler.get_job(SYNC_JOB_ID)
        if job is not None and job.next_run_time is not None:
            return coerce_utc(job.next_run_time)
        return utc_now() + timedelta(minutes=self._config.interval_minutes)

    def _set_status(self, **changes: Any) -> None:
        self._status = self._status.model_copy(update=changes)
        self.publisher.publish(self._status)
