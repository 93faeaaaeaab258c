"""Rollback behavior of multi-row lifecycle transitions."""

from __future__ import annotations

import sqlite3

import pytest

from task_market.core.exceptions import ServiceError
from task_market.services.authorization import Caller
from task_market.services.lifecycle import assign_winning_bid
from task_market.services.task_store import TaskStore
from tests.helpers import ALICE, BOB, CAROL, bid_row, task_row

OWNER = Caller(user_id=ALICE["id"], email=ALICE["email"], name=ALICE["full_name"])


def _failing_reject(*args, **kwargs):
    raise sqlite3.OperationalError("disk I/O error")


@pytest.mark.unit
def test_failed_sibling_rejection_rolls_back_everything(task_store, monkeypatch) -> None:
    """A fault after the task and bid rows changed leaves both untouched."""
    task_store.insert_task(task_row("t-1"))
    task_store.insert_bid(bid_row("bid-1", "t-1", BOB))
    task_store.insert_bid(bid_row("bid-2", "t-1", CAROL))
    monkeypatch.setattr(TaskStore, "_reject_pending_bids", _failing_reject)

    with pytest.raises(sqlite3.OperationalError):
        task_store.assign_bid(
            "t-1",
            task_store.get_bid("bid-1"),
            task_status="in-progress",
            timestamp="2026-01-01T00:00:00.000000Z",
        )

    task = task_store.get_task("t-1")
    assert task["status"] == "open"
    assert task["assigned_freelancer_id"] is None
    assert task["accepted_bid_id"] is None
    assert task["payment_status"] is None
    assert task_store.get_bid("bid-1")["status"] == "pending"
    assert task_store.get_bid("bid-1")["accepted_at"] is None
    assert task_store.get_bid("bid-2")["status"] == "pending"


@pytest.mark.unit
def test_store_usable_after_rollback(task_store, monkeypatch) -> None:
    """The connection leaves the failed transaction and the retry succeeds."""
    task_store.insert_task(task_row("t-1"))
    task_store.insert_bid(bid_row("bid-1", "t-1", BOB))
    with monkeypatch.context() as patch:
        patch.setattr(TaskStore, "_reject_pending_bids", _failing_reject)
        with pytest.raises(sqlite3.OperationalError):
            task_store.assign_bid(
                "t-1",
                task_store.get_bid("bid-1"),
                task_status="in-progress",
                timestamp="2026-01-01T00:00:00.000000Z",
            )

    rejected = task_store.assign_bid(
        "t-1",
        task_store.get_bid("bid-1"),
        task_status="in-progress",
        timestamp="2026-01-01T00:00:01.000000Z",
    )
    assert rejected == []
    assert task_store.get_task("t-1")["status"] == "in-progress"


@pytest.mark.unit
def test_losing_race_maps_to_invalid_status(task_store) -> None:
    """A snapshot taken before another acceptance committed is refused cleanly."""
    task_store.insert_task(task_row("t-1"))
    task_store.insert_bid(bid_row("bid-1", "t-1", BOB))
    task_store.insert_bid(bid_row("bid-2", "t-1", CAROL))
    stale_task = task_store.get_task("t-1")
    stale_bid = task_store.get_bid("bid-2")

    assign_winning_bid(
        task_store, stale_task, task_store.get_bid("bid-1"), OWNER, task_status="in-progress"
    )

    with pytest.raises(ServiceError) as exc_info:
        assign_winning_bid(task_store, stale_task, stale_bid, OWNER, task_status="in-progress")

    assert exc_info.value.error == "INVALID_STATUS"
    assert exc_info.value.status_code == 409
    assert task_store.get_task("t-1")["accepted_bid_id"] == "bid-1"
    assert task_store.get_bid("bid-2")["status"] == "rejected"


@pytest.mark.unit
def test_bid_from_another_task_is_not_found(task_store) -> None:
    task_store.insert_task(task_row("t-1"))
    task_store.insert_task(task_row("t-2"))
    task_store.insert_bid(bid_row("bid-1", "t-2", BOB))

    with pytest.raises(ServiceError) as exc_info:
        assign_winning_bid(
            task_store,
            task_store.get_task("t-1"),
            task_store.get_bid("bid-1"),
            OWNER,
            task_status="in-progress",
        )

    assert exc_info.value.error == "BID_NOT_FOUND"
    assert task_store.get_task("t-2")["status"] == "open"
