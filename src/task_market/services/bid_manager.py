"""Bid lifecycle: creation, acceptance, rejection, withdrawal, edits and listings."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

import httpx

from task_market.core.exceptions import ServiceError
from task_market.logging import get_logger
from task_market.services.disclosure import present_bid
from task_market.services.lifecycle import (
    assign_winning_bid,
    format_amount,
    notify_rejected_bidders,
    now_iso,
    require_bid,
    require_bid_owner,
    require_bid_pending,
    require_task,
    require_task_owner,
    require_task_status,
    task_to_response,
)
from task_market.services.pagination import page_envelope
from task_market.services.task_store import DuplicateBidError

if TYPE_CHECKING:
    from task_market.clients.profile_client import ProfileClient
    from task_market.services.authorization import Caller
    from task_market.services.deadline_evaluator import DeadlineEvaluator
    from task_market.services.notifier import Notifier
    from task_market.services.pagination import PageParams
    from task_market.services.task_store import TaskStore

# Statuses a bidder may still remove their bid from.
_DELETABLE_BID_STATUSES: tuple[str, ...] = ("pending", "rejected", "withdrawn")


def _as_number(value: object, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return default
    return float(value)


class BidManager:
    """
    Orchestrates bids and their side effects on tasks and notifications.

    Every transition that touches more than one row goes through a single
    TaskStore transaction; notifications are emitted only after it commits.
    """

    def __init__(
        self,
        store: TaskStore,
        profile_client: ProfileClient,
        notifier: Notifier,
        deadline_evaluator: DeadlineEvaluator,
    ) -> None:
        self._store = store
        self._profile_client = profile_client
        self._notifier = notifier
        self._deadline_evaluator = deadline_evaluator
        self._logger = get_logger(__name__)

    def set_profile_client(self, profile_client: ProfileClient) -> None:
        """Swap the profile collaborator."""
        self._profile_client = profile_client

    def _load_task(self, task_id: str) -> dict[str, Any]:
        return self._deadline_evaluator.evaluate_deadline(require_task(self._store, task_id))

    async def _reputation_snapshot(self, user_id: str) -> tuple[float, int]:
        """Current (rating, completed tasks) for a user, zeroed if unavailable."""
        try:
            profile = await self._profile_client.get_profile(user_id)
        except (ServiceError, OSError, httpx.HTTPError) as exc:
            self._logger.warning(
                "Profile lookup failed, using zeroed reputation snapshot",
                extra={"user_id": user_id, "error": str(exc)},
            )
            return 0.0, 0

        if profile is None:
            return 0.0, 0
        rating = _as_number(profile.get("rating"), 0.0)
        completed = int(_as_number(profile.get("tasks_completed"), 0))
        return rating, completed

    # ------------------------------------------------------------------
    # Creation and edits
    # ------------------------------------------------------------------

    async def create_bid(
        self,
        caller: Caller,
        task_id: str,
        *,
        amount: float,
        proposal: str,
        delivery_time_days: int,
        phone: str,
    ) -> dict[str, Any]:
        """
        Place a bid on an open task.

        Error precedence:
        1. TASK_NOT_FOUND
        2. INVALID_STATUS — task not open (after deadline evaluation)
        3. SELF_BID — caller owns the task
        4. BID_ALREADY_EXISTS — caller already holds a live bid on the task
        """
        task = self._load_task(task_id)
        require_task_status(task, ("open",), "bid on")

        if caller.user_id == task["owner_id"]:
            raise ServiceError("SELF_BID", "Cannot bid on your own task", 403, {})

        if self._store.has_live_bid(task_id, caller.user_id):
            raise ServiceError(
                "BID_ALREADY_EXISTS",
                "You already have a bid on this task",
                409,
                {},
            )

        rating, completed_tasks = await self._reputation_snapshot(caller.user_id)

        timestamp = now_iso()
        bid = {
            "bid_id": f"bid-{uuid.uuid4()}",
            "task_id": task_id,
            "freelancer_id": caller.user_id,
            "freelancer_name": caller.name,
            "freelancer_email": caller.email,
            "freelancer_phone": phone,
            "amount": amount,
            "proposal": proposal,
            "delivery_time_days": delivery_time_days,
            "status": "pending",
            "freelancer_rating": rating,
            "freelancer_completed_tasks": completed_tasks,
            "created_at": timestamp,
            "updated_at": timestamp,
            "accepted_at": None,
            "rejected_at": None,
            "withdrawn_at": None,
        }

        try:
            self._store.insert_bid(bid)
        except DuplicateBidError as exc:
            raise ServiceError(
                "BID_ALREADY_EXISTS",
                "You already have a bid on this task",
                409,
                {},
            ) from exc

        self._logger.info(
            "Bid created",
            extra={"bid_id": bid["bid_id"], "task_id": task_id, "freelancer_id": caller.user_id},
        )
        self._notifier.emit(
            task["owner_id"],
            "bid_received",
            "New Bid Received",
            f'A freelancer placed a bid of ₹{format_amount(amount)} on your task "{task["title"]}"',
            priority="medium",
            task_id=task_id,
            bid_id=bid["bid_id"],
        )
        return present_bid(bid, task_owner_id=task["owner_id"], viewer_id=caller.user_id)

    async def update_bid(
        self,
        caller: Caller,
        bid_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """Patch amount, proposal or delivery time of the caller's pending bid."""
        bid = require_bid(self._store, bid_id)
        require_bid_owner(bid, caller, "update this bid")
        require_bid_pending(bid, "update")

        updates = {**changes, "updated_at": now_iso()}
        if self._store.update_bid(bid_id, updates, expected_status="pending") == 0:
            raise ServiceError("INVALID_STATUS", "Bid is no longer pending", 409, {})

        task = require_task(self._store, bid["task_id"])
        updated = require_bid(self._store, bid_id)
        return present_bid(updated, task_owner_id=task["owner_id"], viewer_id=caller.user_id)

    async def delete_bid(self, caller: Caller, bid_id: str) -> dict[str, Any]:
        """Remove the caller's bid unless it was accepted."""
        bid = require_bid(self._store, bid_id)
        require_bid_owner(bid, caller, "delete this bid")
        if bid["status"] not in _DELETABLE_BID_STATUSES:
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot delete bid in '{bid['status']}' status",
                409,
                {"current_status": bid["status"]},
            )

        if self._store.delete_bid(bid_id, allowed_statuses=_DELETABLE_BID_STATUSES) == 0:
            raise ServiceError("INVALID_STATUS", "Bid can no longer be deleted", 409, {})

        self._logger.info("Bid deleted", extra={"bid_id": bid_id, "task_id": bid["task_id"]})
        return {"bid_id": bid_id, "deleted": True}

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def accept_bid(self, caller: Caller, bid_id: str) -> dict[str, Any]:
        """
        Accept a pending bid: the task moves to in-progress and all sibling
        pending bids are rejected in the same transaction.

        Error precedence:
        1. BID_NOT_FOUND
        2. FORBIDDEN — caller is not the task owner
        3. INVALID_STATUS — task not open, or bid not pending
        """
        bid = require_bid(self._store, bid_id)
        task = self._load_task(bid["task_id"])

        assignment = assign_winning_bid(
            self._store, task, bid, caller, task_status="in-progress"
        )

        self._logger.info(
            "Bid accepted",
            extra={
                "bid_id": bid_id,
                "task_id": task["task_id"],
                "freelancer_id": bid["freelancer_id"],
                "rejected_bids": len(assignment.rejected_bids),
            },
        )
        self._notifier.emit(
            bid["freelancer_id"],
            "bid_accepted",
            "Bid Accepted!",
            f'Your bid of ₹{format_amount(bid["amount"])} on "{task["title"]}" has been accepted!',
            priority="high",
            task_id=task["task_id"],
            bid_id=bid_id,
        )
        notify_rejected_bidders(self._notifier, assignment.task, assignment.rejected_bids)

        return {
            "bid": present_bid(
                assignment.bid, task_owner_id=task["owner_id"], viewer_id=caller.user_id
            ),
            "task": task_to_response(assignment.task),
            "rejected_bid_ids": [rejected["bid_id"] for rejected in assignment.rejected_bids],
        }

    async def reject_bid(self, caller: Caller, bid_id: str) -> dict[str, Any]:
        """Reject a single pending bid. The task is untouched."""
        bid = require_bid(self._store, bid_id)
        task = require_task(self._store, bid["task_id"])
        require_task_owner(task, caller, "reject bids")
        require_bid_pending(bid, "reject")

        timestamp = now_iso()
        changed = self._store.update_bid(
            bid_id,
            {"status": "rejected", "rejected_at": timestamp, "updated_at": timestamp},
            expected_status="pending",
        )
        if changed == 0:
            raise ServiceError("INVALID_STATUS", "Bid is no longer pending", 409, {})

        self._logger.info("Bid rejected", extra={"bid_id": bid_id, "task_id": task["task_id"]})
        notify_rejected_bidders(self._notifier, task, [bid])

        updated = require_bid(self._store, bid_id)
        return present_bid(updated, task_owner_id=task["owner_id"], viewer_id=caller.user_id)

    async def withdraw_bid(self, caller: Caller, bid_id: str) -> dict[str, Any]:
        """Withdraw the caller's own pending bid. A second withdraw fails."""
        bid = require_bid(self._store, bid_id)
        require_bid_owner(bid, caller, "withdraw this bid")
        require_bid_pending(bid, "withdraw")

        timestamp = now_iso()
        changed = self._store.update_bid(
            bid_id,
            {"status": "withdrawn", "withdrawn_at": timestamp, "updated_at": timestamp},
            expected_status="pending",
        )
        if changed == 0:
            raise ServiceError("INVALID_STATUS", "Bid is no longer pending", 409, {})

        self._logger.info("Bid withdrawn", extra={"bid_id": bid_id, "task_id": bid["task_id"]})
        task = require_task(self._store, bid["task_id"])
        updated = require_bid(self._store, bid_id)
        return present_bid(updated, task_owner_id=task["owner_id"], viewer_id=caller.user_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_bid(self, caller: Caller, bid_id: str) -> dict[str, Any]:
        """A single bid, visible to its bidder and the task owner."""
        bid = require_bid(self._store, bid_id)
        task = require_task(self._store, bid["task_id"])
        if caller.user_id not in (bid["freelancer_id"], task["owner_id"]):
            raise ServiceError("FORBIDDEN", "You cannot view this bid", 403, {})
        return present_bid(bid, task_owner_id=task["owner_id"], viewer_id=caller.user_id)

    async def list_bids_for_task(
        self,
        caller: Caller,
        task_id: str,
        page: PageParams,
    ) -> dict[str, Any]:
        """The owner sees every bid on the task; anyone else only their own."""
        task = self._load_task(task_id)
        is_owner = caller.user_id == task["owner_id"]

        bids, total = self._store.list_bids_for_task(
            task_id,
            freelancer_id=None if is_owner else caller.user_id,
            sort_by=page.sort_by,
            sort_order=page.sort_order,
            limit=page.limit,
            offset=page.offset,
        )
        presented = [
            present_bid(bid, task_owner_id=task["owner_id"], viewer_id=caller.user_id)
            for bid in bids
        ]
        envelope = page_envelope("bids", presented, total, page)
        envelope["task_id"] = task_id
        return envelope

    async def list_my_bids(
        self,
        caller: Caller,
        status: str | None,
        page: PageParams,
    ) -> dict[str, Any]:
        """The caller's bids, each joined with its task's metadata."""
        bids, total = self._store.list_bids_for_freelancer(
            caller.user_id,
            status=status,
            sort_by=page.sort_by,
            sort_order=page.sort_order,
            limit=page.limit,
            offset=page.offset,
        )
        presented = [
            present_bid(bid, task_owner_id=bid["task"]["owner_id"], viewer_id=caller.user_id)
            for bid in bids
        ]
        return page_envelope("bids", presented, total, page)

    def get_stats(self) -> dict[str, Any]:
        """Aggregate bid counts and amounts."""
        return self._store.bid_statistics()
