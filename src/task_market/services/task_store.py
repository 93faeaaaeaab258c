"""SQLite-backed task and bid storage."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from task_market.services.database import Database


class DuplicateBidError(Exception):
    """Raised when a freelancer already holds a live bid on the task."""


class StaleStatusError(Exception):
    """Raised when a compare-and-swap status update matches no row."""


# Bid statuses that occupy the (task, freelancer) slot.
LIVE_BID_STATUSES: tuple[str, ...] = ("pending", "accepted")

# Public sort keys mapped onto SQL columns. Routers validate against the keys;
# the store refuses anything else before it reaches the ORDER BY clause.
TASK_SORT_COLUMNS: dict[str, str] = {
    "created_at": "t.created_at",
    "deadline": "t.deadline",
    "budget": "t.budget",
    "bid_count": "t.bid_count",
    "title": "t.title",
}
BID_SORT_COLUMNS: dict[str, str] = {
    "created_at": "b.created_at",
    "amount": "b.amount",
    "delivery_time_days": "b.delivery_time_days",
    "freelancer_rating": "b.freelancer_rating",
}


def _order_clause(sort_columns: dict[str, str], sort_by: str, sort_order: str) -> str:
    column = sort_columns.get(sort_by)
    if column is None:
        msg = f"Unknown sort field: {sort_by}"
        raise ValueError(msg)
    direction = "ASC" if sort_order == "asc" else "DESC"
    table_alias = column.split(".", maxsplit=1)[0]
    return f" ORDER BY {column} {direction}, {table_alias}.rowid {direction}"


class TaskStore:
    """Storage for tasks and the bids placed on them."""

    _TASK_COLUMNS: tuple[str, ...] = (
        "task_id",
        "owner_id",
        "owner_name",
        "owner_email",
        "title",
        "description",
        "category",
        "college",
        "location",
        "requirements",
        "budget",
        "deadline",
        "status",
        "assigned_freelancer_id",
        "accepted_bid_id",
        "bid_count",
        "submission_url",
        "submission_notes",
        "revision_notes",
        "payment_status",
        "dispute_reason",
        "created_at",
        "updated_at",
        "assigned_at",
        "started_at",
        "submitted_at",
        "completed_at",
        "cancelled_at",
        "disputed_at",
    )
    _BID_COLUMNS: tuple[str, ...] = (
        "bid_id",
        "task_id",
        "freelancer_id",
        "freelancer_name",
        "freelancer_email",
        "freelancer_phone",
        "amount",
        "proposal",
        "delivery_time_days",
        "status",
        "freelancer_rating",
        "freelancer_completed_tasks",
        "created_at",
        "updated_at",
        "accepted_at",
        "rejected_at",
        "withdrawn_at",
    )
    _TASK_SELECT_SQL = "SELECT " + ", ".join(f"t.{c}" for c in _TASK_COLUMNS) + " FROM tasks t"
    _BID_SELECT_SQL = "SELECT " + ", ".join(f"b.{c}" for c in _BID_COLUMNS) + " FROM bids b"

    def __init__(self, database: Database) -> None:
        self._db = database
        self._init_schema()

    def _init_schema(self) -> None:
        self._db.executescript(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                task_id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                owner_name TEXT NOT NULL,
                owner_email TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT NOT NULL,
                category TEXT NOT NULL,
                college TEXT NOT NULL,
                location TEXT,
                requirements TEXT,
                budget REAL NOT NULL CHECK (budget > 0),
                deadline TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'open',
                assigned_freelancer_id TEXT,
                accepted_bid_id TEXT,
                bid_count INTEGER NOT NULL DEFAULT 0 CHECK (bid_count >= 0),
                submission_url TEXT,
                submission_notes TEXT,
                revision_notes TEXT,
                payment_status TEXT,
                dispute_reason TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                assigned_at TEXT,
                started_at TEXT,
                submitted_at TEXT,
                completed_at TEXT,
                cancelled_at TEXT,
                disputed_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(owner_id);
            CREATE INDEX IF NOT EXISTS idx_tasks_status_deadline ON tasks(status, deadline);

            CREATE TABLE IF NOT EXISTS bids (
                bid_id TEXT PRIMARY KEY,
                task_id TEXT NOT NULL REFERENCES tasks(task_id),
                freelancer_id TEXT NOT NULL,
                freelancer_name TEXT NOT NULL,
                freelancer_email TEXT NOT NULL,
                freelancer_phone TEXT NOT NULL,
                amount REAL NOT NULL CHECK (amount > 0),
                proposal TEXT NOT NULL,
                delivery_time_days INTEGER NOT NULL
                    CHECK (delivery_time_days BETWEEN 1 AND 365),
                status TEXT NOT NULL DEFAULT 'pending',
                freelancer_rating REAL NOT NULL DEFAULT 0,
                freelancer_completed_tasks INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                accepted_at TEXT,
                rejected_at TEXT,
                withdrawn_at TEXT
            );

            CREATE UNIQUE INDEX IF NOT EXISTS idx_bids_live_slot
                ON bids(task_id, freelancer_id)
                WHERE status IN ('pending', 'accepted');
            CREATE INDEX IF NOT EXISTS idx_bids_freelancer ON bids(freelancer_id);
            """
        )

    def _row_to_task(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._TASK_COLUMNS}

    def _row_to_bid(self, row: sqlite3.Row) -> dict[str, Any]:
        return {column: row[column] for column in self._BID_COLUMNS}

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def insert_task(self, task_data: dict[str, Any]) -> None:
        """Insert a new task row."""
        values = tuple(task_data[column] for column in self._TASK_COLUMNS)
        placeholders = ", ".join("?" for _ in self._TASK_COLUMNS)
        query = (
            "INSERT INTO tasks (" + ", ".join(self._TASK_COLUMNS) + ") VALUES (" + placeholders + ")"
        )
        with self._db.transaction():
            self._db.execute(query, values)

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch a task by ID."""
        row = self._db.fetchone(self._TASK_SELECT_SQL + " WHERE t.task_id = ?", (task_id,))
        if row is None:
            return None
        return self._row_to_task(row)

    def update_task(
        self,
        task_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update task columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0

        if any(column not in self._TASK_COLUMNS for column in updates):
            msg = "Attempted to update unknown task column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        params: list[object] = list(updates.values())

        query = "UPDATE tasks SET " + set_clause + " WHERE task_id = ?"  # nosec B608
        params.append(task_id)
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status)

        with self._db.transaction():
            return self._db.execute(query, params)

    def delete_task(self, task_id: str, *, allowed_statuses: tuple[str, ...]) -> int:
        """Delete a task that no bid references. Returns rows deleted."""
        placeholders = ", ".join("?" for _ in allowed_statuses)
        with self._db.transaction():
            return self._db.execute(
                "DELETE FROM tasks WHERE task_id = ? AND status IN (" + placeholders + ") "
                "AND NOT EXISTS (SELECT 1 FROM bids WHERE bids.task_id = tasks.task_id)",
                (task_id, *allowed_statuses),
            )

    def _task_filter_clauses(
        self,
        *,
        status: str | None,
        owner_id: str | None,
        freelancer_id: str | None,
        category: str | None,
        college: str | None,
        min_budget: float | None,
        max_budget: float | None,
        search: str | None,
    ) -> tuple[list[str], list[object]]:
        clauses: list[str] = []
        params: list[object] = []
        if status is not None:
            clauses.append("t.status = ?")
            params.append(status)
        if owner_id is not None:
            clauses.append("t.owner_id = ?")
            params.append(owner_id)
        if freelancer_id is not None:
            clauses.append("t.assigned_freelancer_id = ?")
            params.append(freelancer_id)
        if category is not None:
            clauses.append("t.category = ?")
            params.append(category)
        if college is not None:
            clauses.append("t.college LIKE ? ESCAPE '\\'")
            params.append(f"%{_escape_like(college)}%")
        if min_budget is not None:
            clauses.append("t.budget >= ?")
            params.append(min_budget)
        if max_budget is not None:
            clauses.append("t.budget <= ?")
            params.append(max_budget)
        if search is not None:
            clauses.append("(t.title LIKE ? ESCAPE '\\' OR t.description LIKE ? ESCAPE '\\')")
            pattern = f"%{_escape_like(search)}%"
            params.extend([pattern, pattern])
        return clauses, params

    def list_tasks(
        self,
        *,
        status: str | None = None,
        owner_id: str | None = None,
        freelancer_id: str | None = None,
        category: str | None = None,
        college: str | None = None,
        min_budget: float | None = None,
        max_budget: float | None = None,
        search: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """List tasks with optional filters. Returns (page rows, total matching)."""
        clauses, params = self._task_filter_clauses(
            status=status,
            owner_id=owner_id,
            freelancer_id=freelancer_id,
            category=category,
            college=college,
            min_budget=min_budget,
            max_budget=max_budget,
            search=search,
        )
        where = " WHERE " + " AND ".join(clauses) if clauses else ""

        count_row = self._db.fetchone("SELECT COUNT(*) FROM tasks t" + where, params)
        total = int(count_row[0]) if count_row is not None else 0

        query = self._TASK_SELECT_SQL + where + _order_clause(TASK_SORT_COLUMNS, sort_by, sort_order)
        page_params = list(params)
        if limit is not None:
            query += " LIMIT ?"
            page_params.append(limit)
            if offset is not None:
                query += " OFFSET ?"
                page_params.append(offset)

        rows = self._db.fetchall(query, page_params)
        return [self._row_to_task(row) for row in rows], total

    def list_overdue_open_task_ids(self, today: str) -> list[str]:
        """IDs of open tasks whose deadline date is before today."""
        rows = self._db.fetchall(
            "SELECT task_id FROM tasks WHERE status = 'open' AND deadline < ?",
            (today,),
        )
        return [str(row["task_id"]) for row in rows]

    def count_tasks(self) -> int:
        """Count total tasks."""
        row = self._db.fetchone("SELECT COUNT(*) FROM tasks")
        return int(row[0]) if row is not None else 0

    def count_tasks_by_status(self) -> dict[str, int]:
        """Count tasks grouped by status."""
        rows = self._db.fetchall("SELECT status, COUNT(*) FROM tasks GROUP BY status")
        return {str(row[0]): int(row[1]) for row in rows}

    def task_statistics(self) -> dict[str, Any]:
        """Per-status counts with average budget, and per-category counts."""
        status_rows = self._db.fetchall(
            "SELECT status, COUNT(*), AVG(budget) FROM tasks GROUP BY status"
        )
        category_rows = self._db.fetchall(
            "SELECT category, COUNT(*) FROM tasks GROUP BY category"
        )
        return {
            "by_status": {
                str(row[0]): {"count": int(row[1]), "average_budget": float(row[2] or 0)}
                for row in status_rows
            },
            "by_category": {str(row[0]): int(row[1]) for row in category_rows},
        }

    # ------------------------------------------------------------------
    # Bids
    # ------------------------------------------------------------------

    def insert_bid(self, bid_data: dict[str, Any]) -> None:
        """Insert a bid and increment the associated task bid_count atomically."""
        values = tuple(bid_data[column] for column in self._BID_COLUMNS)
        placeholders = ", ".join("?" for _ in self._BID_COLUMNS)
        query = "INSERT INTO bids (" + ", ".join(self._BID_COLUMNS) + ") VALUES (" + placeholders + ")"
        try:
            with self._db.transaction():
                self._db.execute(query, values)
                self._db.execute(
                    "UPDATE tasks SET bid_count = bid_count + 1 WHERE task_id = ?",
                    (bid_data["task_id"],),
                )
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateBidError("This freelancer already has a live bid on this task") from exc
            raise

    def get_bid(self, bid_id: str) -> dict[str, Any] | None:
        """Fetch a bid by ID."""
        row = self._db.fetchone(self._BID_SELECT_SQL + " WHERE b.bid_id = ?", (bid_id,))
        if row is None:
            return None
        return self._row_to_bid(row)

    def has_live_bid(self, task_id: str, freelancer_id: str) -> bool:
        """Whether the freelancer holds a pending or accepted bid on the task."""
        row = self._db.fetchone(
            "SELECT 1 FROM bids WHERE task_id = ? AND freelancer_id = ? "
            "AND status IN ('pending', 'accepted')",
            (task_id, freelancer_id),
        )
        return row is not None

    def list_bids_for_task(
        self,
        task_id: str,
        *,
        freelancer_id: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """List bids on a task, optionally only those by one freelancer."""
        where = " WHERE b.task_id = ?"
        params: list[object] = [task_id]
        if freelancer_id is not None:
            where += " AND b.freelancer_id = ?"
            params.append(freelancer_id)

        count_row = self._db.fetchone("SELECT COUNT(*) FROM bids b" + where, params)
        total = int(count_row[0]) if count_row is not None else 0

        query = self._BID_SELECT_SQL + where + _order_clause(BID_SORT_COLUMNS, sort_by, sort_order)
        page_params = list(params)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            page_params.extend([limit, offset or 0])
        rows = self._db.fetchall(query, page_params)
        return [self._row_to_bid(row) for row in rows], total

    def list_bids_for_freelancer(
        self,
        freelancer_id: str,
        *,
        status: str | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """List a freelancer's bids joined with the owning task's metadata."""
        where = " WHERE b.freelancer_id = ?"
        params: list[object] = [freelancer_id]
        if status is not None:
            where += " AND b.status = ?"
            params.append(status)

        count_row = self._db.fetchone("SELECT COUNT(*) FROM bids b" + where, params)
        total = int(count_row[0]) if count_row is not None else 0

        query = (
            "SELECT "
            + ", ".join(f"b.{c}" for c in self._BID_COLUMNS)
            + ", t.title AS task_title, t.category AS task_category, t.budget AS task_budget, "
            "t.deadline AS task_deadline, t.status AS task_status, t.owner_id AS task_owner_id "
            "FROM bids b JOIN tasks t ON t.task_id = b.task_id"
            + where
            + _order_clause(BID_SORT_COLUMNS, sort_by, sort_order)
        )
        page_params = list(params)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            page_params.extend([limit, offset or 0])

        rows = self._db.fetchall(query, page_params)
        result: list[dict[str, Any]] = []
        for row in rows:
            bid = self._row_to_bid(row)
            bid["task"] = {
                "task_id": row["task_id"],
                "title": row["task_title"],
                "category": row["task_category"],
                "budget": row["task_budget"],
                "deadline": row["task_deadline"],
                "status": row["task_status"],
                "owner_id": row["task_owner_id"],
            }
            result.append(bid)
        return result, total

    def update_bid(
        self,
        bid_id: str,
        updates: dict[str, Any],
        *,
        expected_status: str | None,
    ) -> int:
        """Update bid columns and return the number of affected rows."""
        if len(updates) == 0:
            return 0

        if any(column not in self._BID_COLUMNS for column in updates):
            msg = "Attempted to update unknown bid column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        params: list[object] = list(updates.values())
        query = "UPDATE bids SET " + set_clause + " WHERE bid_id = ?"  # nosec B608
        params.append(bid_id)
        if expected_status is not None:
            query += " AND status = ?"
            params.append(expected_status)

        with self._db.transaction():
            return self._db.execute(query, params)

    def delete_bid(self, bid_id: str, *, allowed_statuses: tuple[str, ...]) -> int:
        """Remove a bid and decrement the task bid_count, never below zero."""
        placeholders = ", ".join("?" for _ in allowed_statuses)
        with self._db.transaction():
            row = self._db.fetchone("SELECT task_id FROM bids WHERE bid_id = ?", (bid_id,))
            if row is None:
                return 0
            deleted = self._db.execute(
                "DELETE FROM bids WHERE bid_id = ? AND status IN (" + placeholders + ")",
                (bid_id, *allowed_statuses),
            )
            if deleted > 0:
                self._db.execute(
                    "UPDATE tasks SET bid_count = MAX(bid_count - 1, 0) WHERE task_id = ?",
                    (row["task_id"],),
                )
            return deleted

    def bid_statistics(self) -> dict[str, Any]:
        """Total bids and amount, with per-status counts and average amount."""
        totals = self._db.fetchone("SELECT COUNT(*), COALESCE(SUM(amount), 0) FROM bids")
        status_rows = self._db.fetchall(
            "SELECT status, COUNT(*), AVG(amount) FROM bids GROUP BY status"
        )
        return {
            "total_bids": int(totals[0]) if totals is not None else 0,
            "total_amount": float(totals[1]) if totals is not None else 0.0,
            "by_status": {
                str(row[0]): {"count": int(row[1]), "average_amount": float(row[2] or 0)}
                for row in status_rows
            },
        }

    # ------------------------------------------------------------------
    # Multi-row transitions
    # ------------------------------------------------------------------

    def _claim_open_task(self, task_id: str, updates: dict[str, Any]) -> None:
        if self.update_task(task_id, updates, expected_status="open") == 0:
            msg = f"Task {task_id} is no longer open"
            raise StaleStatusError(msg)

    def _accept_pending_bid(self, bid_id: str, timestamp: str) -> None:
        changed = self.update_bid(
            bid_id,
            {"status": "accepted", "accepted_at": timestamp, "updated_at": timestamp},
            expected_status="pending",
        )
        if changed == 0:
            msg = f"Bid {bid_id} is no longer pending"
            raise StaleStatusError(msg)

    def _reject_pending_bids(
        self,
        task_id: str,
        timestamp: str,
        *,
        except_bid_id: str | None,
    ) -> list[dict[str, Any]]:
        query = self._BID_SELECT_SQL + " WHERE b.task_id = ? AND b.status = 'pending'"
        params: list[object] = [task_id]
        if except_bid_id is not None:
            query += " AND b.bid_id != ?"
            params.append(except_bid_id)
        siblings = [self._row_to_bid(row) for row in self._db.fetchall(query, params)]

        for sibling in siblings:
            self._db.execute(
                "UPDATE bids SET status = 'rejected', rejected_at = ?, updated_at = ? "
                "WHERE bid_id = ? AND status = 'pending'",
                (timestamp, timestamp, sibling["bid_id"]),
            )
            sibling["status"] = "rejected"
            sibling["rejected_at"] = timestamp
            sibling["updated_at"] = timestamp
        return siblings

    def assign_bid(
        self,
        task_id: str,
        bid: dict[str, Any],
        *,
        task_status: str,
        timestamp: str,
    ) -> list[dict[str, Any]]:
        """
        Hand an open task to the freelancer behind a pending bid.

        In one transaction: the task moves from open to task_status and
        references the bid and its freelancer, the bid becomes accepted, and
        every other bid still pending on the task is rejected.

        Returns:
            The bids rejected as a consequence, with their new status applied

        Raises:
            StaleStatusError: If the task is no longer open or the bid no longer
                pending; nothing is written in that case
        """
        with self._db.transaction():
            self._claim_open_task(
                task_id,
                {
                    "status": task_status,
                    "assigned_freelancer_id": bid["freelancer_id"],
                    "accepted_bid_id": bid["bid_id"],
                    "assigned_at": timestamp,
                    "payment_status": "escrowed",
                    "updated_at": timestamp,
                },
            )
            self._accept_pending_bid(bid["bid_id"], timestamp)
            return self._reject_pending_bids(task_id, timestamp, except_bid_id=bid["bid_id"])

    def cancel_open_task(self, task_id: str, timestamp: str) -> list[dict[str, Any]] | None:
        """
        Cancel an open task and reject its pending bids in one transaction.

        Returns the rejected bids, or None when the task was not open.
        """
        with self._db.transaction():
            changed = self.update_task(
                task_id,
                {"status": "cancelled", "cancelled_at": timestamp, "updated_at": timestamp},
                expected_status="open",
            )
            if changed == 0:
                return None
            return self._reject_pending_bids(task_id, timestamp, except_bid_id=None)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
