"""
Sync Notifications

One user-facing event per completed cycle. The notification layer decides
rendering and auto-dismissal.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

from pons.scheduling.publisher import Publisher
from pons.scheduling.status import SyncOutcome, SyncStatus

Severity = Literal["success", "warning", "error"]


class SyncNotification(BaseModel):
    """Notification event derived from a cycle's classification."""

    model_config = ConfigDict(frozen=True)

    title: str
    message: str
    severity: Severity
    outcome: SyncOutcome


class NotificationPublisher(Publisher[SyncNotification]):
    def __init__(self) -> None:
        super().__init__(name="sync_notifications")


def build_notification(status: SyncStatus) -> SyncNotification | None:
    """Map a finished cycle's status to its notification (None before any cycle)."""
    synced = len(status.synced_providers)
    failed = len(status.failed_providers)

    if status.last_sync_result == SyncOutcome.SUCCESS:
        return SyncNotification(
            title="Sync Complete",
            message=f"Updated {synced} integration(s)",
            severity="success",
            outcome=status.last_sync_result,
        )
    if status.last_sync_result == SyncOutcome.PARTIAL:
        return SyncNotification(
            title="Partial Sync",
            message=f"{synced} succeeded, {failed} failed",
            severity="warning",
            outcome=status.last_sync_result,
        )
    if status.last_sync_result == SyncOutcome.ERROR:
        return SyncNotification(
            title="Sync Failed",
            message=status.error_message or "Failed to sync integrations",
            severity="error",
            outcome=status.last_sync_result,
        )
    return None
