"""Task lifecycle management: posting, assignment, work submission and review."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from task_market.core.exceptions import ServiceError
from task_market.logging import get_logger
from task_market.services.lifecycle import (
    assign_winning_bid,
    notify_rejected_bidders,
    now_iso,
    require_assigned_freelancer,
    require_bid,
    require_task,
    require_task_owner,
    require_task_status,
    task_to_response,
)
from task_market.services.pagination import page_envelope

if TYPE_CHECKING:
    from datetime import date

    from task_market.services.authorization import Caller
    from task_market.services.deadline_evaluator import DeadlineEvaluator
    from task_market.services.notifier import Notifier
    from task_market.services.pagination import PageParams
    from task_market.services.task_store import TaskStore

# Statuses a task may still be deleted from (and only while no bid references it).
_DELETABLE_TASK_STATUSES: tuple[str, ...] = ("open", "cancelled")


class TaskManager:
    """
    Owns task status transitions.

    State machine:
        open -> in-progress (bid accepted) | assigned (direct assignment)
        open -> cancelled (owner cancels, or deadline passes while open)
        assigned -> in-progress (freelancer starts work)
        in-progress -> submitted (assigned freelancer submits)
        submitted -> completed (owner approves) | assigned (owner asks for a revision)
        assigned/in-progress/submitted -> disputed (see DisputeManager)
    """

    def __init__(
        self,
        store: TaskStore,
        notifier: Notifier,
        deadline_evaluator: DeadlineEvaluator,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._deadline_evaluator = deadline_evaluator
        self._logger = get_logger(__name__)

    def _load_task(self, task_id: str) -> dict[str, Any]:
        return self._deadline_evaluator.evaluate_deadline(require_task(self._store, task_id))

    def _transition(
        self,
        task: dict[str, Any],
        updates: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply updates only if the task still has the status it was checked in."""
        changed = self._store.update_task(
            task["task_id"],
            {**updates, "updated_at": now_iso()},
            expected_status=task["status"],
        )
        if changed == 0:
            raise ServiceError(
                "INVALID_STATUS",
                "Task status changed concurrently, retry the operation",
                409,
                {},
            )
        return require_task(self._store, task["task_id"])

    # ------------------------------------------------------------------
    # Posting and editing
    # ------------------------------------------------------------------

    async def create_task(
        self,
        caller: Caller,
        *,
        title: str,
        description: str,
        category: str,
        college: str,
        budget: float,
        deadline: date,
        location: str | None,
        requirements: str | None,
    ) -> dict[str, Any]:
        """Post a new open task owned by the caller."""
        timestamp = now_iso()
        task: dict[str, Any] = {
            "task_id": f"t-{uuid.uuid4()}",
            "owner_id": caller.user_id,
            "owner_name": caller.name,
            "owner_email": caller.email,
            "title": title,
            "description": description,
            "category": category,
            "college": college,
            "location": location,
            "requirements": requirements,
            "budget": budget,
            "deadline": deadline.isoformat(),
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
        self._store.insert_task(task)
        self._logger.info(
            "Task created",
            extra={"task_id": task["task_id"], "owner_id": caller.user_id, "budget": budget},
        )
        return task_to_response(task)

    async def update_task(
        self,
        caller: Caller,
        task_id: str,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        """Patch the fields of an open task the caller owns."""
        task = self._load_task(task_id)
        require_task_owner(task, caller, "update this task")
        require_task_status(task, ("open",), "update")

        updates = dict(changes)
        if "deadline" in updates:
            updates["deadline"] = updates["deadline"].isoformat()
        updated = self._transition(task, updates)
        self._logger.info(
            "Task updated",
            extra={"task_id": task_id, "fields": sorted(changes)},
        )
        return task_to_response(updated)

    async def delete_task(self, caller: Caller, task_id: str) -> dict[str, Any]:
        """Delete an open or cancelled task that no bid references."""
        task = self._load_task(task_id)
        require_task_owner(task, caller, "delete this task")
        require_task_status(task, _DELETABLE_TASK_STATUSES, "delete")
        if int(task["bid_count"]) > 0:
            raise ServiceError(
                "INVALID_STATUS",
                "Cannot delete a task that has bids",
                409,
                {"bid_count": int(task["bid_count"])},
            )

        if self._store.delete_task(task_id, allowed_statuses=_DELETABLE_TASK_STATUSES) == 0:
            raise ServiceError(
                "INVALID_STATUS",
                "Task can no longer be deleted",
                409,
                {},
            )
        self._logger.info("Task deleted", extra={"task_id": task_id})
        return {"task_id": task_id, "deleted": True}

    async def cancel_task(self, caller: Caller, task_id: str) -> dict[str, Any]:
        """Cancel an open task and reject its pending bids."""
        task = self._load_task(task_id)
        require_task_owner(task, caller, "cancel this task")
        require_task_status(task, ("open",), "cancel")

        rejected = self._store.cancel_open_task(task_id, now_iso())
        if rejected is None:
            raise ServiceError("INVALID_STATUS", "Task is no longer open", 409, {})

        self._logger.info(
            "Task cancelled",
            extra={"task_id": task_id, "rejected_bids": len(rejected)},
        )
        notify_rejected_bidders(self._notifier, task, rejected)
        return task_to_response(require_task(self._store, task_id))

    # ------------------------------------------------------------------
    # Assignment and work
    # ------------------------------------------------------------------

    async def assign_task(self, caller: Caller, task_id: str, bid_id: str) -> dict[str, Any]:
        """
        Assign the task directly to the freelancer behind one of its bids.

        Same invariants and transaction as accepting the bid; the task lands in
        'assigned' and the freelancer must start work explicitly.

        Error precedence:
        1. TASK_NOT_FOUND, BID_NOT_FOUND (also when the bid belongs to another task)
        2. FORBIDDEN — caller is not the task owner
        3. INVALID_STATUS — task not open, or bid not pending
        """
        task = self._load_task(task_id)
        bid = require_bid(self._store, bid_id)

        assignment = assign_winning_bid(self._store, task, bid, caller, task_status="assigned")

        self._logger.info(
            "Task assigned",
            extra={
                "task_id": task_id,
                "bid_id": bid_id,
                "freelancer_id": bid["freelancer_id"],
                "rejected_bids": len(assignment.rejected_bids),
            },
        )
        self._notifier.emit(
            bid["freelancer_id"],
            "task_assigned",
            "Task Assigned!",
            f'You have been assigned to complete the task: "{task["title"]}"',
            priority="high",
            task_id=task_id,
            bid_id=bid_id,
        )
        notify_rejected_bidders(self._notifier, assignment.task, assignment.rejected_bids)
        return task_to_response(assignment.task)

    async def start_task(self, caller: Caller, task_id: str) -> dict[str, Any]:
        """The assigned freelancer starts work on an assigned task."""
        task = self._load_task(task_id)
        require_assigned_freelancer(task, caller, "start this task")
        require_task_status(task, ("assigned",), "start")

        updated = self._transition(task, {"status": "in-progress", "started_at": now_iso()})
        self._logger.info("Task started", extra={"task_id": task_id})
        self._notifier.emit(
            task["owner_id"],
            "system_message",
            "Work Started",
            f'Work has started on "{task["title"]}".',
            priority="medium",
            task_id=task_id,
        )
        return task_to_response(updated)

    async def submit_task(
        self,
        caller: Caller,
        task_id: str,
        *,
        submission_url: str,
        submission_notes: str | None,
    ) -> dict[str, Any]:
        """
        Submit work for review.

        Error precedence:
        1. TASK_NOT_FOUND
        2. FORBIDDEN — caller is not the assigned freelancer
        3. INVALID_STATUS — task not in-progress
        """
        task = self._load_task(task_id)
        require_assigned_freelancer(task, caller, "submit work for this task")
        require_task_status(task, ("in-progress",), "submit")

        updated = self._transition(
            task,
            {
                "status": "submitted",
                "submission_url": submission_url,
                "submission_notes": submission_notes,
                "submitted_at": now_iso(),
                "payment_status": "submitted",
            },
        )
        self._logger.info("Work submitted", extra={"task_id": task_id, "freelancer_id": caller.user_id})
        self._notifier.emit(
            task["owner_id"],
            "task_submitted",
            "Work Submitted",
            f'Work has been submitted for "{task["title"]}". Please review and approve.',
            priority="high",
            task_id=task_id,
        )
        return task_to_response(updated)

    async def approve_task(self, caller: Caller, task_id: str) -> dict[str, Any]:
        """The owner approves submitted work; the task completes and payment is released."""
        task = self._load_task(task_id)
        require_task_owner(task, caller, "approve this task")
        require_task_status(task, ("submitted",), "approve")

        updated = self._transition(
            task,
            {"status": "completed", "completed_at": now_iso(), "payment_status": "released"},
        )
        self._logger.info("Task completed", extra={"task_id": task_id})
        freelancer_id = str(task["assigned_freelancer_id"])
        self._notifier.emit(
            freelancer_id,
            "task_completed",
            "Task Completed",
            f'Your work on "{task["title"]}" has been approved.',
            priority="high",
            task_id=task_id,
        )
        self._notifier.emit(
            freelancer_id,
            "payment_released",
            "Payment Released",
            f'Payment for "{task["title"]}" has been released to you.',
            priority="medium",
            task_id=task_id,
        )
        return task_to_response(updated)

    async def request_revision(
        self,
        caller: Caller,
        task_id: str,
        notes: str | None,
    ) -> dict[str, Any]:
        """The owner sends submitted work back to the freelancer."""
        task = self._load_task(task_id)
        require_task_owner(task, caller, "request a revision")
        require_task_status(task, ("submitted",), "request revision for")

        updated = self._transition(
            task,
            {"status": "assigned", "revision_notes": notes, "payment_status": "escrowed"},
        )
        self._logger.info("Revision requested", extra={"task_id": task_id})
        message = f'The client requested changes to your submission for "{task["title"]}".'
        if notes:
            message = f"{message} Notes: {notes}"
        self._notifier.emit(
            str(task["assigned_freelancer_id"]),
            "system_message",
            "Revision Requested",
            message,
            priority="high",
            task_id=task_id,
        )
        return task_to_response(updated)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_task(self, task_id: str) -> dict[str, Any]:
        """
        Get a single task by ID with deadline evaluation.

        Raises:
            ServiceError: TASK_NOT_FOUND
        """
        return task_to_response(self._load_task(task_id))

    async def list_tasks(
        self,
        page: PageParams,
        *,
        status: str | None = None,
        category: str | None = None,
        college: str | None = None,
        min_budget: float | None = None,
        max_budget: float | None = None,
        search: str | None = None,
    ) -> dict[str, Any]:
        """Browse tasks. All filters use AND logic."""
        self._deadline_evaluator.sweep_overdue()
        tasks, total = self._store.list_tasks(
            status=status,
            category=category,
            college=college,
            min_budget=min_budget,
            max_budget=max_budget,
            search=search,
            sort_by=page.sort_by,
            sort_order=page.sort_order,
            limit=page.limit,
            offset=page.offset,
        )
        return page_envelope("tasks", [task_to_response(t) for t in tasks], total, page)

    async def list_my_tasks(
        self,
        caller: Caller,
        page: PageParams,
        *,
        role: str = "owner",
        status: str | None = None,
    ) -> dict[str, Any]:
        """Tasks the caller posted (role 'owner') or is assigned to (role 'freelancer')."""
        self._deadline_evaluator.sweep_overdue()
        tasks, total = self._store.list_tasks(
            status=status,
            owner_id=caller.user_id if role == "owner" else None,
            freelancer_id=caller.user_id if role == "freelancer" else None,
            sort_by=page.sort_by,
            sort_order=page.sort_order,
            limit=page.limit,
            offset=page.offset,
        )
        return page_envelope("tasks", [task_to_response(t) for t in tasks], total, page)

    def get_stats(self) -> dict[str, Any]:
        """Task counts for the health endpoint."""
        return {
            "total_tasks": self._store.count_tasks(),
            "tasks_by_status": self._store.count_tasks_by_status(),
        }

    def get_statistics(self) -> dict[str, Any]:
        """Per-status counts with average budget, and per-category counts."""
        self._deadline_evaluator.sweep_overdue()
        statistics = self._store.task_statistics()
        statistics["total_tasks"] = self._store.count_tasks()
        return statistics
