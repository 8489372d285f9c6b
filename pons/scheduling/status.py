"""
Sync Status Models

Snapshot value objects published after every scheduler state change, the
scheduler's tuning config, and cycle classification.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field

ALL_FAILED_MESSAGE = "All integrations failed to sync"


class SyncOutcome(str, Enum):
    """Classification of the last completed cycle."""

    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"
    NONE = "none"  # No cycle has completed yet


class SyncStatus(BaseModel):
    """
    Snapshot of the scheduler's state.

    A new instance is produced on every change; previous snapshots are
    discarded.
    """

    model_config = ConfigDict(frozen=True)

    is_running: bool = False
    last_sync_time: datetime | None = None
    next_sync_time: datetime | None = None
    last_sync_result: SyncOutcome = SyncOutcome.NONE
    synced_providers: frozenset[str] = Field(default_factory=frozenset)
    failed_providers: frozenset[str] = Field(default_factory=frozenset)
    error_message: str | None = None


class SyncConfig(BaseModel):
    """Scheduler tuning, persisted across restarts."""

    interval_minutes: float = Field(default=60, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=5000, ge=0)
    enable_notifications: bool = True
    max_concurrency: int | None = Field(default=None, ge=1)

    def retry_delay_seconds(self, attempt: int) -> float:
        """Linear backoff before retrying after failed attempt number `attempt`."""
        return self.retry_delay_ms * attempt / 1000.0


def classify(synced: Iterable[str], failed: Iterable[str]) -> SyncOutcome:
    """
    Classify a cycle from its per-provider results.

    - success: nothing failed (including nothing connected)
    - partial: some providers synced, some failed
    - error: every provider failed
    """
    if not set(failed):
        return SyncOutcome.SUCCESS
    if set(synced):
        return SyncOutcome.PARTIAL
    return SyncOutcome.ERROR
