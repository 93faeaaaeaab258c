"""
Shared invariant checks for the bid and task lifecycle engines.

Both engines load entities and check caller relationships the same way, and
both accept_bid and assign_task hand a task to a bid through the single
assign_winning_bid() routine, so the two paths cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from task_market.core.exceptions import ServiceError
from task_market.services.task_store import StaleStatusError

if TYPE_CHECKING:
    from task_market.services.authorization import Caller
    from task_market.services.notifier import Notifier
    from task_market.services.task_store import TaskStore


def now_iso() -> str:
    """Return current UTC time as ISO 8601 string with Z suffix."""
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def today_iso() -> str:
    """Return the current UTC date as YYYY-MM-DD."""
    return datetime.now(UTC).date().isoformat()


def format_amount(amount: float) -> str:
    """Render a money amount without a trailing .0 for whole values."""
    value = float(amount)
    if value.is_integer():
        return str(int(value))
    return f"{value:.2f}"


def task_to_response(task: dict[str, Any]) -> dict[str, Any]:
    """Convert a task row dict to its response dict."""
    response = dict(task)
    response["budget"] = float(task["budget"])
    response["bid_count"] = int(task["bid_count"])
    return response


# ---------------------------------------------------------------------------
# Entity loading
# ---------------------------------------------------------------------------


def require_task(store: TaskStore, task_id: str) -> dict[str, Any]:
    """Load a task or raise TASK_NOT_FOUND."""
    task = store.get_task(task_id)
    if task is None:
        raise ServiceError("TASK_NOT_FOUND", "Task not found", 404, {})
    return task


def require_bid(store: TaskStore, bid_id: str) -> dict[str, Any]:
    """Load a bid or raise BID_NOT_FOUND."""
    bid = store.get_bid(bid_id)
    if bid is None:
        raise ServiceError("BID_NOT_FOUND", "Bid not found", 404, {})
    return bid


# ---------------------------------------------------------------------------
# Relationship and status guards
# ---------------------------------------------------------------------------


def require_task_owner(task: dict[str, Any], caller: Caller, action: str) -> None:
    """Raise FORBIDDEN unless the caller owns the task."""
    if caller.user_id != task["owner_id"]:
        raise ServiceError("FORBIDDEN", f"Only the task owner can {action}", 403, {})


def require_bid_owner(bid: dict[str, Any], caller: Caller, action: str) -> None:
    """Raise FORBIDDEN unless the caller placed the bid."""
    if caller.user_id != bid["freelancer_id"]:
        raise ServiceError("FORBIDDEN", f"Only the bidder can {action}", 403, {})


def require_assigned_freelancer(task: dict[str, Any], caller: Caller, action: str) -> None:
    """Raise FORBIDDEN unless the caller is the freelancer assigned to the task."""
    if task["assigned_freelancer_id"] is None or caller.user_id != task["assigned_freelancer_id"]:
        raise ServiceError(
            "FORBIDDEN",
            f"Only the assigned freelancer can {action}",
            403,
            {},
        )


def require_task_status(task: dict[str, Any], allowed: tuple[str, ...], action: str) -> None:
    """Raise INVALID_STATUS unless the task is in one of the allowed statuses."""
    if task["status"] not in allowed:
        expected = "' or '".join(allowed)
        raise ServiceError(
            "INVALID_STATUS",
            f"Cannot {action} task in '{task['status']}' status, must be '{expected}'",
            409,
            {"current_status": task["status"]},
        )


def require_bid_pending(bid: dict[str, Any], action: str) -> None:
    """Raise INVALID_STATUS unless the bid is still pending."""
    if bid["status"] != "pending":
        raise ServiceError(
            "INVALID_STATUS",
            f"Cannot {action} bid in '{bid['status']}' status, must be 'pending'",
            409,
            {"current_status": bid["status"]},
        )


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


@dataclass
class Assignment:
    """Outcome of handing a task to a winning bid."""

    task: dict[str, Any]
    bid: dict[str, Any]
    rejected_bids: list[dict[str, Any]]


def assign_winning_bid(
    store: TaskStore,
    task: dict[str, Any],
    bid: dict[str, Any],
    caller: Caller,
    *,
    task_status: str,
) -> Assignment:
    """
    Accept a bid on an open task and close out its competitors.

    Checks, in order: the bid belongs to the task (BID_NOT_FOUND), the caller
    owns the task (FORBIDDEN), the task is open and the bid pending
    (INVALID_STATUS). The write is a compare-and-swap on the task being open,
    so of two racing assignments exactly one wins and the other gets
    INVALID_STATUS with nothing written.
    """
    if bid["task_id"] != task["task_id"]:
        raise ServiceError("BID_NOT_FOUND", "Bid not found for this task", 404, {})
    require_task_owner(task, caller, "accept bids")
    require_task_status(task, ("open",), "accept bid on")
    require_bid_pending(bid, "accept")

    timestamp = now_iso()
    try:
        rejected = store.assign_bid(task["task_id"], bid, task_status=task_status, timestamp=timestamp)
    except StaleStatusError as exc:
        raise ServiceError(
            "INVALID_STATUS",
            "Task is no longer open or bid is no longer pending",
            409,
            {},
        ) from exc

    updated_task = require_task(store, task["task_id"])
    updated_bid = require_bid(store, bid["bid_id"])
    return Assignment(task=updated_task, bid=updated_bid, rejected_bids=rejected)


def notify_rejected_bidders(
    notifier: Notifier,
    task: dict[str, Any],
    rejected_bids: list[dict[str, Any]],
) -> None:
    """Send each bulk-rejected bidder a low-priority bid_rejected notice."""
    for rejected in rejected_bids:
        notifier.emit(
            rejected["freelancer_id"],
            "bid_rejected",
            "Bid Not Selected",
            f'Your bid on "{task["title"]}" was not selected. Keep applying to other tasks!',
            priority="low",
            task_id=task["task_id"],
            bid_id=rejected["bid_id"],
        )
