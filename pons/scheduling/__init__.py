"""
Sync Scheduling

Recurring sync cycles, status snapshots and notifications.
"""

from pons.scheduling.notifications import NotificationPublisher, SyncNotification, build_notification
from pons.scheduling.publisher import Publisher, StatusPublisher
from pons.scheduling.scheduler import SyncScheduler
from pons.scheduling.status import SyncConfig, SyncOutcome, SyncStatus, classify

__all__ = [
    "NotificationPublisher",
    "Publisher",
    "StatusPublisher",
    "SyncConfig",
    "SyncNotification",
    "SyncOutcome",
    "SyncScheduler",
    "SyncStatus",
    "build_notification",
    "classify",
]
