"""Unit tests for DeadlineEvaluator."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from freezegun import freeze_time

from task_market.services.deadline_evaluator import DeadlineEvaluator
from tests.helpers import BOB, CAROL, bid_row, task_row


def _evaluator(task_store, notifier=None) -> DeadlineEvaluator:
    return DeadlineEvaluator(store=task_store, notifier=notifier or MagicMock())


@pytest.mark.unit
def test_is_overdue_uses_utc_date() -> None:
    """A task is overdue only once the UTC date is past its deadline date."""
    task = {"status": "open", "deadline": "2026-03-10"}

    with freeze_time("2026-03-10 23:59:59"):
        assert DeadlineEvaluator.is_overdue(task) is False
    with freeze_time("2026-03-11 00:00:00"):
        assert DeadlineEvaluator.is_overdue(task) is True


@pytest.mark.unit
def test_is_overdue_only_for_open_tasks() -> None:
    with freeze_time("2026-04-01"):
        for status in ("assigned", "in-progress", "submitted", "completed", "cancelled"):
            assert DeadlineEvaluator.is_overdue({"status": status, "deadline": "2026-03-10"}) is False


@pytest.mark.unit
def test_evaluate_deadline_not_due(task_store) -> None:
    """A task inside its deadline is returned untouched."""
    task_store.insert_task(task_row("t-1", deadline="2026-03-10"))
    notifier = MagicMock()
    evaluator = _evaluator(task_store, notifier)

    with freeze_time("2026-03-01"):
        result = evaluator.evaluate_deadline(task_store.get_task("t-1"))

    assert result["status"] == "open"
    notifier.emit.assert_not_called()


@pytest.mark.unit
def test_evaluate_deadline_cancels_and_rejects_bids(task_store, notifier, notification_store) -> None:
    """An overdue open task is cancelled and its pending bidders are told."""
    task_store.insert_task(task_row("t-1", deadline="2026-03-10", title="Lab report"))
    task_store.insert_bid(bid_row("bid-1", "t-1", BOB))
    task_store.insert_bid(bid_row("bid-2", "t-1", CAROL, status="withdrawn"))
    evaluator = _evaluator(task_store, notifier)

    with freeze_time("2026-03-12"):
        result = evaluator.evaluate_deadline(task_store.get_task("t-1"))
        bob_inbox, _ = notification_store.list_for_recipient(BOB["id"], now="2026-03-12T00:00:00Z")
        carol_inbox, _ = notification_store.list_for_recipient(CAROL["id"], now="2026-03-12T00:00:00Z")

    assert result["status"] == "cancelled"
    assert result["cancelled_at"].startswith("2026-03-12")
    assert task_store.get_bid("bid-1")["status"] == "rejected"
    assert task_store.get_bid("bid-2")["status"] == "withdrawn"
    assert [n["type"] for n in bob_inbox] == ["bid_rejected"]
    assert bob_inbox[0]["priority"] == "low"
    assert "Lab report" in bob_inbox[0]["message"]
    assert carol_inbox == []


@pytest.mark.unit
def test_evaluate_deadline_leaves_assigned_task(task_store) -> None:
    """A task that already has a freelancer keeps its status past the deadline."""
    task_store.insert_task(
        task_row("t-1", deadline="2026-03-10", status="in-progress", assigned_freelancer_id=BOB["id"])
    )
    evaluator = _evaluator(task_store)

    with freeze_time("2026-04-01"):
        result = evaluator.evaluate_deadline(task_store.get_task("t-1"))

    assert result["status"] == "in-progress"


@pytest.mark.unit
def test_evaluate_deadline_with_stale_snapshot(task_store) -> None:
    """If the task left open before the cancel runs, the fresh row is returned."""
    task_store.insert_task(task_row("t-1", deadline="2026-03-10"))
    snapshot = task_store.get_task("t-1")
    task_store.update_task("t-1", {"status": "assigned"}, expected_status="open")
    notifier = MagicMock()
    evaluator = _evaluator(task_store, notifier)

    with freeze_time("2026-03-12"):
        result = evaluator.evaluate_deadline(snapshot)

    assert result["status"] == "assigned"
    notifier.emit.assert_not_called()


@pytest.mark.unit
def test_sweep_overdue(task_store) -> None:
    """Sweeping cancels every overdue open task and reports how many."""
    task_store.insert_task(task_row("t-1", deadline="2026-03-01"))
    task_store.insert_task(task_row("t-2", deadline="2026-03-05"))
    task_store.insert_task(task_row("t-3", deadline="2026-03-20"))
    task_store.insert_task(task_row("t-4", deadline="2026-03-01", status="submitted"))
    evaluator = _evaluator(task_store)

    with freeze_time("2026-03-10"):
        assert evaluator.sweep_overdue() == 2
        assert evaluator.sweep_overdue() == 0

    statuses = {task_id: task_store.get_task(task_id)["status"] for task_id in ("t-1", "t-2", "t-3", "t-4")}
    assert statuses == {"t-1": "cancelled", "t-2": "cancelled", "t-3": "open", "t-4": "submitted"}

