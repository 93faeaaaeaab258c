"""
Anonymous bidder disclosure.

Bids always store the freelancer's real contact details. What a viewer gets
back is decided at read time from the bid status, the viewer and the task
owner:

- the bidder always sees their own details;
- the task owner sees the details of the bid they accepted;
- everyone else, including the owner looking at any other bid, gets a
  redacted copy with the freelancer id removed.
"""

from __future__ import annotations

from typing import Any

ANONYMOUS_NAME = "Anonymous Bidder"
REDACTION_MARKER = "[REDACTED]"


def contact_visible(bid: dict[str, Any], *, task_owner_id: str, viewer_id: str) -> bool:
    """Whether the viewer may see the freelancer behind this bid."""
    if viewer_id == bid["freelancer_id"]:
        return True
    return bid["status"] == "accepted" and viewer_id == task_owner_id


def present_bid(bid: dict[str, Any], *, task_owner_id: str, viewer_id: str) -> dict[str, Any]:
    """Build the viewer-facing representation of a stored bid."""
    visible = contact_visible(bid, task_owner_id=task_owner_id, viewer_id=viewer_id)
    presented: dict[str, Any] = {
        "bid_id": bid["bid_id"],
        "task_id": bid["task_id"],
        "freelancer_id": bid["freelancer_id"] if visible else None,
        "freelancer_name": bid["freelancer_name"] if visible else ANONYMOUS_NAME,
        "freelancer_email": bid["freelancer_email"] if visible else REDACTION_MARKER,
        "freelancer_phone": bid["freelancer_phone"] if visible else REDACTION_MARKER,
        "contact_visible": visible,
        "amount": bid["amount"],
        "proposal": bid["proposal"],
        "delivery_time_days": bid["delivery_time_days"],
        "status": bid["status"],
        "freelancer_rating": bid["freelancer_rating"],
        "freelancer_completed_tasks": bid["freelancer_completed_tasks"],
        "created_at": bid["created_at"],
        "updated_at": bid["updated_at"],
        "accepted_at": bid["accepted_at"],
        "rejected_at": bid["rejected_at"],
        "withdrawn_at": bid["withdrawn_at"],
    }
    if "task" in bid:
        presented["task"] = {k: v for k, v in bid["task"].items() if k != "owner_id"}
    return presented
