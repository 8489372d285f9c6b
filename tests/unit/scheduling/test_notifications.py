"""Unit tests for cycle notifications."""

import pytest

from pons.scheduling.notifications import build_notification
from pons.scheduling.status import ALL_FAILED_MESSAGE, SyncOutcome, SyncStatus

pytestmark = pytest.mark.unit


def test_no_notification_before_first_cycle():
    assert build_notification(SyncStatus()) is None


def test_success_notification():
    status = SyncStatus(last_sync_result=SyncOutcome.SUCCESS, synced_providers=frozenset({"a", "b"}))

    notification = build_notification(status)

    assert notification.title == "Sync Complete"
    assert notification.message == "Updated 2 integration(s)"
    assert notification.severity == "success"


def test_partial_notification():
    status = SyncStatus(
        last_sync_result=SyncOutcome.PARTIAL,
        synced_providers=frozenset({"a", "b"}),
        failed_providers=frozenset({"c"}),
    )

    notification = build_notification(status)

    assert notification.title == "Partial Sync"
    assert notification.message == "2 succeeded, 1 failed"
    assert notification.severity == "warning"


def test_error_notification_carries_error_message():
    status = SyncStatus(
        last_sync_result=SyncOutcome.ERROR,
        failed_providers=frozenset({"c"}),
        error_message=ALL_FAILED_MESSAGE,
    )

    notification = build_notification(status)

    assert notification.title == "Sync Failed"
    assert notification.message == ALL_FAILED_MESSAGE
    assert notification.severity == "error"
    assert notification.outcome == SyncOutcome.ERROR
