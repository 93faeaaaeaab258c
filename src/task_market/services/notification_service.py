"""Notification inbox operations for the recipient."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from task_market.core.exceptions import ServiceError
from task_market.logging import get_logger
from task_market.services.lifecycle import now_iso
from task_market.services.pagination import page_envelope

if TYPE_CHECKING:
    from task_market.services.authorization import Caller
    from task_market.services.notification_store import NotificationStore
    from task_market.services.pagination import PageParams


class NotificationService:
    """Read, mark and prune the caller's own notifications."""

    def __init__(self, store: NotificationStore, clear_read_after_days: int) -> None:
        self._store = store
        self._clear_read_after = timedelta(days=clear_read_after_days)
        self._logger = get_logger(__name__)

    async def list_notifications(
        self,
        caller: Caller,
        page: PageParams,
        *,
        is_read: bool | None = None,
        notification_type: str | None = None,
        priority: str | None = None,
    ) -> dict[str, Any]:
        """Unexpired notifications, newest first, with the unread count."""
        now = now_iso()
        notifications, total = self._store.list_for_recipient(
            caller.user_id,
            now=now,
            is_read=is_read,
            notification_type=notification_type,
            priority=priority,
            limit=page.limit,
            offset=page.offset,
        )
        envelope = page_envelope("notifications", notifications, total, page)
        envelope["unread_count"] = self._store.count_unread(caller.user_id, now=now)
        return envelope

    async def unread_count(self, caller: Caller) -> dict[str, int]:
        return {"unread_count": self._store.count_unread(caller.user_id, now=now_iso())}

    async def mark_read(self, caller: Caller, notification_id: str) -> dict[str, Any]:
        """Mark one of the caller's notifications read. Repeating it is harmless."""
        notification = self._store.get_notification(notification_id)
        if notification is None or notification["recipient_id"] != caller.user_id:
            raise ServiceError("NOTIFICATION_NOT_FOUND", "Notification not found", 404, {})

        self._store.mark_read(notification_id, caller.user_id, now_iso())
        updated = self._store.get_notification(notification_id)
        if updated is None:
            msg = f"Notification {notification_id} not found after update"
            raise RuntimeError(msg)
        return updated

    async def mark_all_read(self, caller: Caller) -> dict[str, int]:
        updated = self._store.mark_all_read(caller.user_id, now_iso())
        return {"updated": updated}

    async def delete_notification(self, caller: Caller, notification_id: str) -> dict[str, Any]:
        if self._store.delete_notification(notification_id, caller.user_id) == 0:
            raise ServiceError("NOTIFICATION_NOT_FOUND", "Notification not found", 404, {})
        return {"notification_id": notification_id, "deleted": True}

    async def clear_read(self, caller: Caller) -> dict[str, int]:
        """Delete the caller's read notifications older than the retention window."""
        cutoff = (
            (datetime.now(UTC) - self._clear_read_after)
            .isoformat(timespec="microseconds")
            .replace("+00:00", "Z")
        )
        deleted = self._store.delete_read_before(caller.user_id, cutoff)
        self._logger.info(
            "Read notifications cleared",
            extra={"recipient_id": caller.user_id, "deleted": deleted},
        )
        return {"deleted": deleted}
