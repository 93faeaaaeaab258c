"""Lazy deadline evaluation for open tasks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from task_market.logging import get_logger
from task_market.services.lifecycle import notify_rejected_bidders, now_iso, today_iso

if TYPE_CHECKING:
    from task_market.services.notifier import Notifier
    from task_market.services.task_store import TaskStore


class DeadlineEvaluator:
    """
    Cancels open tasks whose deadline has passed.

    There is no background scheduler. Tasks are checked whenever they are
    read or about to be written. Only open tasks are affected; a task that
    already has a freelancer keeps its status whatever the date.
    """

    def __init__(self, store: TaskStore, notifier: Notifier) -> None:
        self._store = store
        self._notifier = notifier
        self._logger = get_logger(__name__)

    @staticmethod
    def is_overdue(task: dict[str, Any]) -> bool:
        """A deadline passes once the UTC date is later than the deadline date."""
        return task["status"] == "open" and str(task["deadline"]) < today_iso()

    def evaluate_deadline(self, task: dict[str, Any]) -> dict[str, Any]:
        """
        Return the task, cancelled first if its deadline passed while open.

        The cancellation is a compare-and-swap on status 'open', so a task
        accepted concurrently is left alone.
        """
        if not self.is_overdue(task):
            return task

        rejected = self._store.cancel_open_task(str(task["task_id"]), now_iso())
        if rejected is not None:
            self._logger.info(
                "Task auto-cancelled after deadline",
                extra={
                    "task_id": task["task_id"],
                    "deadline": task["deadline"],
                    "rejected_bids": len(rejected),
                },
            )
            notify_rejected_bidders(self._notifier, task, rejected)

        refreshed = self._store.get_task(str(task["task_id"]))
        return refreshed if refreshed is not None else task

    def sweep_overdue(self) -> int:
        """Cancel every overdue open task before a filtered listing. Returns the count."""
        cancelled = 0
        for task_id in self._store.list_overdue_open_task_ids(today_iso()):
            task = self._store.get_task(task_id)
            if task is None:
                continue
            if self.evaluate_deadline(task)["status"] == "cancelled":
                cancelled += 1
        return cancelled
