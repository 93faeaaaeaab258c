"""Shared test helpers for bearer authentication and mocking."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from typing import Any

from task_market.core.exceptions import ServiceError

ALICE = {"id": "u-alice", "email": "alice@campus.edu", "full_name": "Alice Sharma"}
BOB = {"id": "u-bob", "email": "bob@campus.edu", "full_name": "Bob Mehta"}
CAROL = {"id": "u-carol", "email": "carol@campus.edu", "full_name": "Carol Iyer"}
DAVE = {"id": "u-dave", "email": "dave@campus.edu", "full_name": "Dave Rao"}
ADMIN = {
    "id": "u-admin",
    "email": "admin@campus.edu",
    "full_name": "Platform Admin",
    "role": "admin",
}

USERS_BY_TOKEN: dict[str, dict[str, Any]] = {
    f"token-{user['id']}": user for user in (ALICE, BOB, CAROL, DAVE, ADMIN)
}


def token_for(user: dict[str, Any]) -> str:
    """Bearer token the identity mock resolves to the given user."""
    return f"token-{user['id']}"


def auth(user: dict[str, Any]) -> dict[str, str]:
    """Authorization header for the given user."""
    return {"Authorization": f"Bearer {token_for(user)}"}


async def resolve_token(token: str) -> dict[str, Any]:
    """Identity gateway stand-in: known tokens resolve, anything else is rejected."""
    user = USERS_BY_TOKEN.get(token)
    if user is None:
        raise ServiceError("UNAUTHENTICATED", "Token is invalid or expired", 401, {})
    return dict(user)


def future_date(days: int = 7) -> str:
    """ISO date the given number of days after today (UTC)."""
    return (datetime.now(UTC).date() + timedelta(days=days)).isoformat()


def today() -> date:
    return datetime.now(UTC).date()


def _timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def task_row(task_id: str, **overrides: Any) -> dict[str, Any]:
    """A complete task row for direct store inserts."""
    timestamp = _timestamp()
    row: dict[str, Any] = {
        "task_id": task_id,
        "owner_id": ALICE["id"],
        "owner_name": ALICE["full_name"],
        "owner_email": ALICE["email"],
        "title": f"Task {task_id}",
        "description": "Description of the task",
        "category": "Programming",
        "college": "City Engineering College",
        "location": None,
        "requirements": None,
        "budget": 500.0,
        "deadline": future_date(7),
        "status": "open",
        "assigned_freelancer_id": None,
        "accepted_bid_id": None,
        "bid_count": 0,
        "submission_url": None,
        "submission_notes": None,
        "revision_notes": None,
        "payment_status": None,
        "dispute_reason": None,
        "created_at": timestamp,
        "updated_at": timestamp,
        "assigned_at": None,
        "started_at": None,
        "submitted_at": None,
        "completed_at": None,
        "cancelled_at": None,
        "disputed_at": None,
    }
    row.update(overrides)
    return row


def bid_row(bid_id: str, task_id: str, freelancer: dict[str, Any], **overrides: Any) -> dict[str, Any]:
    """A complete bid row for direct store inserts."""
    timestamp = _timestamp()
    row: dict[str, Any] = {
        "bid_id": bid_id,
        "task_id": task_id,
        "freelancer_id": freelancer["id"],
        "freelancer_name": freelancer["full_name"],
        "freelancer_email": freelancer["email"],
        "freelancer_phone": "+91 90000 00000",
        "amount": 400.0,
        "proposal": "Proposal text for the task",
        "delivery_time_days": 3,
        "status": "pending",
        "freelancer_rating": 0.0,
        "freelancer_completed_tasks": 0,
        "created_at": timestamp,
        "updated_at": timestamp,
        "accepted_at": None,
        "rejected_at": None,
        "withdrawn_at": None,
    }
    row.update(overrides)
    return row
