"""Notification sink: records lifecycle events for their recipients."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from task_market.logging import get_logger

if TYPE_CHECKING:
    from task_market.services.notification_store import NotificationStore

NOTIFICATION_TYPES: tuple[str, ...] = (
    "bid_received",
    "bid_accepted",
    "bid_rejected",
    "task_assigned",
    "task_completed",
    "task_submitted",
    "payment_escrowed",
    "payment_released",
    "dispute_created",
    "dispute_resolved",
    "review_received",
    "task_deadline_reminder",
    "system_message",
)
PRIORITIES: tuple[str, ...] = ("low", "medium", "high", "urgent")

_MAX_TITLE_LENGTH = 100
_MAX_MESSAGE_LENGTH = 500


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="microseconds").replace("+00:00", "Z")


class Notifier:
    """
    Fire-and-forget notification emitter.

    Called after the lifecycle transaction that caused the event has
    committed. A failed write is logged and dropped; it never undoes or fails
    the transition that triggered it.
    """

    def __init__(self, store: NotificationStore, retention_days: int) -> None:
        self._store = store
        self._retention = timedelta(days=retention_days)
        self._logger = get_logger(__name__)

    def emit(
        self,
        recipient_id: str,
        notification_type: str,
        title: str,
        message: str,
        *,
        priority: str = "medium",
        task_id: str | None = None,
        bid_id: str | None = None,
        dispute_id: str | None = None,
        action_url: str | None = None,
    ) -> str | None:
        """Record a notification. Returns its ID, or None if it was dropped."""
        if notification_type not in NOTIFICATION_TYPES:
            msg = f"Unknown notification type: {notification_type}"
            raise ValueError(msg)
        if priority not in PRIORITIES:
            msg = f"Unknown notification priority: {priority}"
            raise ValueError(msg)

        created = datetime.now(UTC)
        notification_id = f"ntf-{uuid.uuid4()}"
        try:
            self._store.insert_notification(
                {
                    "notification_id": notification_id,
                    "recipient_id": recipient_id,
                    "type": notification_type,
                    "title": title[:_MAX_TITLE_LENGTH],
                    "message": message[:_MAX_MESSAGE_LENGTH],
                    "task_id": task_id,
                    "bid_id": bid_id,
                    "dispute_id": dispute_id,
                    "action_url": action_url,
                    "priority": priority,
                    "is_read": 0,
                    "read_at": None,
                    "created_at": _iso(created),
                    "expires_at": _iso(created + self._retention),
                }
            )
        except sqlite3.Error as exc:
            self._logger.warning(
                "Notification dropped",
                extra={
                    "recipient_id": recipient_id,
                    "type": notification_type,
                    "task_id": task_id,
                    "error": str(exc),
                },
            )
            return None
        return notification_id
