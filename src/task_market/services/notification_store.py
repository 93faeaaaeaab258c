"""SQLite-backed notification inbox storage."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import sqlite3

    from task_market.services.database import Database


class NotificationStore:
    """Append-only notification records, mutated only for read state and deletion."""

    _COLUMNS: tuple[str, ...] = (
        "notification_id",
        "recipient_id",
        "type",
        "title",
        "message",
        "task_id",
        "bid_id",
        "dispute_id",
        "action_url",
        "priority",
        "is_read",
        "read_at",
        "created_at",
        "expires_at",
    )
    _SELECT_SQL = "SELECT " + ", ".join(_COLUMNS) + " FROM notifications"

    def __init__(self, database: Database) -> None:
        self._db = database
        self._init_schema()

    def _init_schema(self) -> None:
        self._db.executescript(
            """
            CREATE TABLE IF NOT EXISTS notifications (
                notification_id TEXT PRIMARY KEY,
                recipient_id TEXT NOT NULL,
                type TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                task_id TEXT,
                bid_id TEXT,
                dispute_id TEXT,
                action_url TEXT,
                priority TEXT NOT NULL DEFAULT 'medium',
                is_read INTEGER NOT NULL DEFAULT 0,
                read_at TEXT,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_notifications_recipient
                ON notifications(recipient_id, is_read, created_at);
            """
        )

    def _row_to_notification(self, row: sqlite3.Row) -> dict[str, Any]:
        record = {column: row[column] for column in self._COLUMNS}
        record["is_read"] = bool(record["is_read"])
        return record

    def insert_notification(self, data: dict[str, Any]) -> None:
        """Insert a notification record."""
        values = tuple(data[column] for column in self._COLUMNS)
        placeholders = ", ".join("?" for _ in self._COLUMNS)
        self._db.execute(
            "INSERT INTO notifications (" + ", ".join(self._COLUMNS) + ") "
            "VALUES (" + placeholders + ")",
            values,
        )

    def get_notification(self, notification_id: str) -> dict[str, Any] | None:
        """Fetch a notification by ID."""
        row = self._db.fetchone(self._SELECT_SQL + " WHERE notification_id = ?", (notification_id,))
        if row is None:
            return None
        return self._row_to_notification(row)

    def list_for_recipient(
        self,
        recipient_id: str,
        *,
        now: str,
        is_read: bool | None = None,
        notification_type: str | None = None,
        priority: str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """List unexpired notifications for a recipient, newest first."""
        where = " WHERE recipient_id = ? AND expires_at > ?"
        params: list[object] = [recipient_id, now]
        if is_read is not None:
            where += " AND is_read = ?"
            params.append(1 if is_read else 0)
        if notification_type is not None:
            where += " AND type = ?"
            params.append(notification_type)
        if priority is not None:
            where += " AND priority = ?"
            params.append(priority)

        count_row = self._db.fetchone("SELECT COUNT(*) FROM notifications" + where, params)
        total = int(count_row[0]) if count_row is not None else 0

        query = self._SELECT_SQL + where + " ORDER BY created_at DESC, rowid DESC"
        page_params = list(params)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            page_params.extend([limit, offset or 0])
        rows = self._db.fetchall(query, page_params)
        return [self._row_to_notification(row) for row in rows], total

    def count_unread(self, recipient_id: str, *, now: str) -> int:
        """Count unread, unexpired notifications for a recipient."""
        row = self._db.fetchone(
            "SELECT COUNT(*) FROM notifications "
            "WHERE recipient_id = ? AND is_read = 0 AND expires_at > ?",
            (recipient_id, now),
        )
        return int(row[0]) if row is not None else 0

    def mark_read(self, notification_id: str, recipient_id: str, timestamp: str) -> int:
        """Mark one notification read; unread-only so read_at keeps its first value."""
        return self._db.execute(
            "UPDATE notifications SET is_read = 1, read_at = ? "
            "WHERE notification_id = ? AND recipient_id = ? AND is_read = 0",
            (timestamp, notification_id, recipient_id),
        )

    def mark_all_read(self, recipient_id: str, timestamp: str) -> int:
        """Mark every unread notification of a recipient read."""
        return self._db.execute(
            "UPDATE notifications SET is_read = 1, read_at = ? "
            "WHERE recipient_id = ? AND is_read = 0",
            (timestamp, recipient_id),
        )

    def delete_notification(self, notification_id: str, recipient_id: str) -> int:
        """Delete one notification owned by the recipient."""
        return self._db.execute(
            "DELETE FROM notifications WHERE notification_id = ? AND recipient_id = ?",
            (notification_id, recipient_id),
        )

    def delete_read_before(self, recipient_id: str, cutoff: str) -> int:
        """Delete read notifications created before the cutoff timestamp."""
        return self._db.execute(
            "DELETE FROM notifications WHERE recipient_id = ? AND is_read = 1 AND created_at < ?",
            (recipient_id, cutoff),
        )
