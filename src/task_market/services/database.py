"""Shared SQLite connection with reentrant, all-or-nothing transactions."""

from __future__ import annotations

import contextlib
import sqlite3
from pathlib import Path
from threading import RLock
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class Database:
    """
    One SQLite connection shared by every store.

    The connection runs in autocommit mode; multi-statement changes go through
    transaction(), which opens BEGIN IMMEDIATE and either commits everything or
    rolls everything back. Nested transaction() blocks join the outer one, so a
    store method can be composed into a larger unit by its caller.
    """

    def __init__(self, db_path: str) -> None:
        self._lock = RLock()
        self._depth = 0
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self._db.row_factory = sqlite3.Row
        self._db.execute("PRAGMA journal_mode=WAL")
        self._db.execute("PRAGMA foreign_keys=ON")
        self._db.execute("PRAGMA busy_timeout=5000")

    @property
    def in_transaction(self) -> bool:
        """True while a transaction() block is open on this connection."""
        return self._depth > 0

    def executescript(self, script: str) -> None:
        """Run a DDL script."""
        with self._lock:
            self._db.executescript(script)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute a write statement and return the affected row count."""
        with self._lock:
            cursor = self._db.execute(sql, params)
        return int(cursor.rowcount)

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        """Run a query and return the first row, if any."""
        with self._lock:
            row: sqlite3.Row | None = self._db.execute(sql, params).fetchone()
        return row

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        """Run a query and return all rows."""
        with self._lock:
            rows: list[sqlite3.Row] = self._db.execute(sql, params).fetchall()
        return rows

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Apply the enclosed statements as one unit.

        Any exception raised inside the block (including a failing COMMIT)
        rolls back every statement issued since BEGIN and is re-raised.
        """
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            self._db.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
                self._db.execute("COMMIT")
            except BaseException:
                with contextlib.suppress(sqlite3.Error):
                    self._db.execute("ROLLBACK")
                raise
            finally:
                self._depth = 0

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._db.close()
