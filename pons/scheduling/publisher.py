"""
In-process publish/subscribe channel.

Used for sync status updates and for sync notifications.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

import structlog

from pons.scheduling.status import SyncStatus

logger = structlog.get_logger()

T = TypeVar("T")

Listener = Callable[[T], None]


class Publisher(Generic[T]):
    """
    Synchronous, best-effort broadcaster.

    - Every listener receives the full published value.
    - A raising listener is logged and never stops the others.
    - Unsubscribing is safe at any time, including from inside a listener;
      it only affects subsequent publishes.
    """

    def __init__(self, name: str = "publisher"):
        self._name = name
        self._listeners: list[Listener[T]] = []

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A function that removes the listener (idempotent)
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.error("Listener raised", publisher=self._name, error=str(e))

    def __len__(self) -> int:
        return len(self._listeners)


class StatusPublisher(Publisher[SyncStatus]):
    """Broadcasts `SyncStatus` snapshots to observers (UI, notification layer)."""

    def __init__(self) -> None:
        super().__init__(name="sync_status")
