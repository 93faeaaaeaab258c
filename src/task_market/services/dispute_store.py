"""SQLite-backed dispute storage."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from task_market.services.database import Database


class DuplicateDisputeError(Exception):
    """Raised when attempting to create a second dispute for the same task."""


class DisputeStore:
    """Disputes raised against tasks, with their message threads."""

    _COLUMNS: tuple[str, ...] = (
        "dispute_id",
        "task_id",
        "initiator_id",
        "respondent_id",
        "reason",
        "description",
        "status",
        "priority",
        "resolution",
        "resolution_notes",
        "resolver_id",
        "dispute_amount",
        "refund_amount",
        "created_at",
        "updated_at",
        "resolved_at",
        "auto_close_at",
    )
    _SELECT_SQL = "SELECT " + ", ".join(_COLUMNS) + " FROM disputes"

    def __init__(self, database: Database) -> None:
        self._db = database
        self._init_schema()

    def _init_schema(self) -> None:
        self._db.executescript(
            """
            CREATE TABLE IF NOT EXISTS disputes (
                dispute_id TEXT PRIMARY KEY,
                task_id TEXT NOT NULL UNIQUE REFERENCES tasks(task_id),
                initiator_id TEXT NOT NULL,
                respondent_id TEXT NOT NULL,
                reason TEXT NOT NULL,
                description TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'open',
                priority TEXT NOT NULL DEFAULT 'medium',
                resolution TEXT,
                resolution_notes TEXT,
                resolver_id TEXT,
                dispute_amount REAL NOT NULL,
                refund_amount REAL NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                resolved_at TEXT,
                auto_close_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS dispute_messages (
                message_id TEXT PRIMARY KEY,
                dispute_id TEXT NOT NULL REFERENCES disputes(dispute_id),
                sender_id TEXT NOT NULL,
                sender_name TEXT NOT NULL,
                message TEXT NOT NULL,
                is_admin_message INTEGER NOT NULL DEFAULT 0,
                sent_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_dispute_messages_dispute
                ON dispute_messages(dispute_id, sent_at);
            """
        )

    def _messages_for(self, dispute_id: str) -> list[dict[str, Any]]:
        rows = self._db.fetchall(
            "SELECT message_id, sender_id, sender_name, message, is_admin_message, sent_at "
            "FROM dispute_messages WHERE dispute_id = ? ORDER BY sent_at, rowid",
            (dispute_id,),
        )
        return [
            {
                "message_id": str(row["message_id"]),
                "sender_id": str(row["sender_id"]),
                "sender_name": str(row["sender_name"]),
                "message": str(row["message"]),
                "is_admin_message": bool(row["is_admin_message"]),
                "sent_at": str(row["sent_at"]),
            }
            for row in rows
        ]

    def _row_to_dispute(self, row: sqlite3.Row) -> dict[str, Any]:
        dispute = {column: row[column] for column in self._COLUMNS}
        dispute["messages"] = self._messages_for(str(row["dispute_id"]))
        return dispute

    def insert_dispute(self, dispute_data: dict[str, Any]) -> None:
        """Insert a dispute row."""
        values = tuple(dispute_data[column] for column in self._COLUMNS)
        placeholders = ", ".join("?" for _ in self._COLUMNS)
        try:
            with self._db.transaction():
                self._db.execute(
                    "INSERT INTO disputes (" + ", ".join(self._COLUMNS) + ") "
                    "VALUES (" + placeholders + ")",
                    values,
                )
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateDisputeError(
                    f"A dispute already exists for task {dispute_data['task_id']}"
                ) from exc
            raise

    def get_dispute(self, dispute_id: str) -> dict[str, Any] | None:
        """Fetch a dispute with its messages."""
        row = self._db.fetchone(self._SELECT_SQL + " WHERE dispute_id = ?", (dispute_id,))
        if row is None:
            return None
        return self._row_to_dispute(row)

    def get_dispute_for_task(self, task_id: str) -> dict[str, Any] | None:
        """Fetch the dispute raised against a task, if any."""
        row = self._db.fetchone(self._SELECT_SQL + " WHERE task_id = ?", (task_id,))
        if row is None:
            return None
        return self._row_to_dispute(row)

    def list_disputes_for_party(
        self,
        user_id: str,
        *,
        status: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """List disputes where the user is initiator or respondent, newest first."""
        where = " WHERE (initiator_id = ? OR respondent_id = ?)"
        params: list[object] = [user_id, user_id]
        if status is not None:
            where += " AND status = ?"
            params.append(status)

        count_row = self._db.fetchone("SELECT COUNT(*) FROM disputes" + where, params)
        total = int(count_row[0]) if count_row is not None else 0

        query = self._SELECT_SQL + where + " ORDER BY created_at DESC, rowid DESC"
        page_params = list(params)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            page_params.extend([limit, offset or 0])
        rows = self._db.fetchall(query, page_params)
        return [self._row_to_dispute(row) for row in rows], total

    def insert_message(self, message_data: dict[str, Any]) -> None:
        """Append a message to a dispute thread."""
        with self._db.transaction():
            self._db.execute(
                "INSERT INTO dispute_messages "
                "(message_id, dispute_id, sender_id, sender_name, message, is_admin_message, sent_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    message_data["message_id"],
                    message_data["dispute_id"],
                    message_data["sender_id"],
                    message_data["sender_name"],
                    message_data["message"],
                    1 if message_data["is_admin_message"] else 0,
                    message_data["sent_at"],
                ),
            )
            self._db.execute(
                "UPDATE disputes SET updated_at = ? WHERE dispute_id = ?",
                (message_data["sent_at"], message_data["dispute_id"]),
            )

    def update_dispute(
        self,
        dispute_id: str,
        updates: dict[str, Any],
        *,
        expected_statuses: tuple[str, ...],
    ) -> int:
        """Update dispute columns if its status is one of expected_statuses."""
        if len(updates) == 0:
            return 0
        if any(column not in self._COLUMNS for column in updates):
            msg = "Attempted to update unknown dispute column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        placeholders = ", ".join("?" for _ in expected_statuses)
        query = (
            "UPDATE disputes SET " + set_clause + " WHERE dispute_id = ? "  # nosec B608
            "AND status IN (" + placeholders + ")"
        )
        params: list[object] = [*updates.values(), dispute_id, *expected_statuses]
        with self._db.transaction():
            return self._db.execute(query, params)

    def count_disputes_by_status(self) -> dict[str, int]:
        """Count disputes grouped by status."""
        rows = self._db.fetchall("SELECT status, COUNT(*) FROM disputes GROUP BY status")
        return {str(row[0]): int(row[1]) for row in rows}
