"""
Sync API Routes

- GET  /sync/status  - Current status snapshot
- POST /sync/now     - Run a cycle now (no-op while one is running)
- GET  /sync/config  - Current tuning
- PUT  /sync/config  - Update tuning (partial)
- POST /sync/start   - Arm the recurring schedule
- POST /sync/stop    - Disarm the recurring schedule
- GET  /sync/events  - Status and notification stream (SSE)
"""

import asyncio
from typing import Any, AsyncIterator, Awaitable, Callable

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, ValidationError
from sse_starlette.sse import EventSourceResponse

from pons.api.deps import get_scheduler
from pons.kernel.errors import ConfigurationError
from pons.scheduling.notifications import SyncNotification
from pons.scheduling.scheduler import SyncScheduler
from pons.scheduling.status import SyncConfig, SyncStatus

logger = structlog.get_logger()

router = APIRouter(prefix="/sync", tags=["Sync"])


class SyncConfigUpdate(BaseModel):
    """Partial update; omitted fields keep their current value."""

    interval_minutes: float | None = Field(default=None, gt=0)
    retry_attempts: int | None = Field(default=None, ge=1)
    retry_delay_ms: int | None = Field(default=None, ge=0)
    enable_notifications: bool | None = None
    max_concurrency: int | None = Field(default=None, ge=1)


class ScheduleResponse(BaseModel):
    scheduled: bool
    status: SyncStatus


@router.get("/status", response_model=SyncStatus)
async def get_sync_status(scheduler: SyncScheduler = Depends(get_scheduler)):
    return scheduler.get_status()


@router.post("/now", response_model=SyncStatus)
async def sync_now(scheduler: SyncScheduler = Depends(get_scheduler)):
    """Run one cycle and return the resulting status."""
    return await scheduler.sync_now()


@router.get("/config", response_model=SyncConfig)
async def get_sync_config(scheduler: SyncScheduler = Depends(get_scheduler)):
    return scheduler.get_config()


@router.put("/config", response_model=SyncConfig)
async def update_sync_config(
    body: SyncConfigUpdate,
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    changes = body.model_dump(exclude_unset=True)
    try:
        return await scheduler.update_config(**changes)
    except ValidationError as e:
        raise ConfigurationError(
            message="Invalid sync config",
            meta={"errors": [err["msg"] for err in e.errors()]},
        ) from e


@router.post("/start", response_model=ScheduleResponse)
async def start_schedule(scheduler: SyncScheduler = Depends(get_scheduler)):
    scheduler.start()
    return ScheduleResponse(scheduled=scheduler.is_scheduled(), status=scheduler.get_status())


@router.post("/stop", response_model=ScheduleResponse)
async def stop_schedule(scheduler: SyncScheduler = Depends(get_scheduler)):
    scheduler.stop()
    return ScheduleResponse(scheduled=scheduler.is_scheduled(), status=scheduler.get_status())


async def stream_sync_events(
    scheduler: SyncScheduler,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    poll_seconds: float = 15.0,
) -> AsyncIterator[dict[str, Any]]:
    """
    Yield SSE events for status snapshots and notifications.

    The current status is sent first, then every published value in order.
    Listeners are removed when the consumer goes away.
    """
    queue: asyncio.Queue[tuple[str, BaseModel]] = asyncio.Queue()

    def on_status(status: SyncStatus) -> None:
        queue.put_nowait(("status", status))

    def on_notification(notification: SyncNotification) -> None:
        queue.put_nowait(("notification", notification))

    unsubscribe_status = scheduler.subscribe(on_status)
    unsubscribe_notifications = scheduler.notifications.subscribe(on_notification)
    try:
        yield {"event": "status", "data": scheduler.get_status().model_dump_json()}

        while True:
            try:
                event, payload = await asyncio.wait_for(queue.get(), timeout=poll_seconds)
            except asyncio.TimeoutError:
                if is_disconnected is not None and await is_disconnected():
                    break
                continue
            yield {"event": event, "data": payload.model_dump_json()}
    finally:
        unsubscribe_status()
        unsubscribe_notifications()
        logger.debug("Sync event stream closed")


@router.get("/events")
async def sync_events(
    request: Request,
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """
    Stream sync status changes via Server-Sent Events.

    Events:
    - status: a `SyncStatus` snapshot
    - notification: a `SyncNotification` after each completed cycle
    """
    return EventSourceResponse(stream_sync_events(scheduler, request.is_disconnected))
