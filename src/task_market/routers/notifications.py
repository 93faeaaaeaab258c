"""Notification inbox endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from task_market.core.state import get_app_state
from task_market.routers.validation import authenticate, parse_pagination, read_filters
from task_market.schemas import NotificationFilters
from task_market.services.notification_service import NotificationService

router = APIRouter()

_NOTIFICATION_SORT_FIELDS = frozenset({"created_at"})


def _notification_service() -> NotificationService:
    state = get_app_state()
    if state.notification_service is None:
        msg = "NotificationService not initialized"
        raise RuntimeError(msg)
    return state.notification_service


@router.get("/notifications")
async def list_notifications(request: Request) -> dict[str, Any]:
    """The caller's unexpired notifications, newest first."""
    caller = await authenticate(request)
    page = parse_pagination(request.query_params, _NOTIFICATION_SORT_FIELDS)
    filters = read_filters(request, NotificationFilters)
    return await _notification_service().list_notifications(
        caller,
        page,
        is_read=filters.is_read,
        notification_type=filters.type,
        priority=filters.priority,
    )


@router.get("/notifications/unread-count")
async def unread_count(request: Request) -> dict[str, int]:
    caller = await authenticate(request)
    return await _notification_service().unread_count(caller)


# MUST be before the /notifications/{notification_id} routes
@router.post("/notifications/read-all")
async def mark_all_read(request: Request) -> dict[str, int]:
    caller = await authenticate(request)
    return await _notification_service().mark_all_read(caller)


@router.delete("/notifications/read")
async def clear_read(request: Request) -> dict[str, int]:
    """Delete read notifications past the retention window."""
    caller = await authenticate(request)
    return await _notification_service().clear_read(caller)


@router.post("/notifications/{notification_id}/read")
async def mark_read(notification_id: str, request: Request) -> dict[str, Any]:
    caller = await authenticate(request)
    return await _notification_service().mark_read(caller, notification_id)


@router.delete("/notifications/{notification_id}")
async def delete_notification(notification_id: str, request: Request) -> dict[str, Any]:
    caller = await authenticate(request)
    return await _notification_service().delete_notification(caller, notification_id)
