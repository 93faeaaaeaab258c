"""SQLite-backed review storage."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from task_market.services.database import Database


class DuplicateReviewError(Exception):
    """Raised when a party reviews the same task twice."""


REVIEW_SORT_COLUMNS: dict[str, str] = {
    "created_at": "r.created_at",
    "rating": "r.rating",
}


class ReviewStore:
    """Reviews the two parties of a completed task leave for each other."""

    _COLUMNS: tuple[str, ...] = (
        "review_id",
        "task_id",
        "reviewer_id",
        "reviewer_name",
        "reviewee_id",
        "reviewee_name",
        "review_type",
        "rating",
        "comment",
        "created_at",
        "updated_at",
    )
    _SELECT_SQL = "SELECT " + ", ".join(f"r.{c}" for c in _COLUMNS) + " FROM reviews r"

    def __init__(self, database: Database) -> None:
        self._db = database
        self._init_schema()

    def _init_schema(self) -> None:
        self._db.executescript(
            """
            CREATE TABLE IF NOT EXISTS reviews (
                review_id TEXT PRIMARY KEY,
                task_id TEXT NOT NULL REFERENCES tasks(task_id),
                reviewer_id TEXT NOT NULL,
                reviewer_name TEXT NOT NULL,
                reviewee_id TEXT NOT NULL,
                reviewee_name TEXT NOT NULL,
                review_type TEXT NOT NULL,
                rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                comment TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE (task_id, reviewer_id)
            );

            CREATE INDEX IF NOT EXISTS idx_reviews_reviewee ON reviews(reviewee_id);
            """
        )

    def _row_to_review(self, row: sqlite3.Row) -> dict[str, Any]:
        review = {column: row[column] for column in self._COLUMNS}
        review["rating"] = int(row["rating"])
        return review

    def insert_review(self, review_data: dict[str, Any]) -> None:
        """Insert a review row."""
        values = tuple(review_data[column] for column in self._COLUMNS)
        placeholders = ", ".join("?" for _ in self._COLUMNS)
        try:
            with self._db.transaction():
                self._db.execute(
                    "INSERT INTO reviews (" + ", ".join(self._COLUMNS) + ") "
                    "VALUES (" + placeholders + ")",
                    values,
                )
        except sqlite3.IntegrityError as exc:
            if "unique" in str(exc).lower():
                raise DuplicateReviewError(
                    f"{review_data['reviewer_id']} already reviewed task {review_data['task_id']}"
                ) from exc
            raise

    def get_review(self, review_id: str) -> dict[str, Any] | None:
        row = self._db.fetchone(self._SELECT_SQL + " WHERE r.review_id = ?", (review_id,))
        if row is None:
            return None
        return self._row_to_review(row)

    def has_review(self, task_id: str, reviewer_id: str) -> bool:
        """Whether the reviewer has already reviewed the task."""
        row = self._db.fetchone(
            "SELECT 1 FROM reviews WHERE task_id = ? AND reviewer_id = ?",
            (task_id, reviewer_id),
        )
        return row is not None

    @staticmethod
    def _filter_clause(
        *,
        task_id: str | None,
        reviewer_id: str | None,
        reviewee_id: str | None,
        rating: int | None,
    ) -> tuple[str, list[object]]:
        clauses: list[str] = []
        params: list[object] = []
        for column, value in (
            ("r.task_id", task_id),
            ("r.reviewer_id", reviewer_id),
            ("r.reviewee_id", reviewee_id),
            ("r.rating", rating),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = " WHERE " + " AND ".join(clauses) if clauses else ""
        return where, params

    def list_reviews(
        self,
        *,
        task_id: str | None = None,
        reviewer_id: str | None = None,
        reviewee_id: str | None = None,
        rating: int | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """List reviews matching every given filter."""
        column = REVIEW_SORT_COLUMNS.get(sort_by)
        if column is None:
            msg = f"Unknown sort field: {sort_by}"
            raise ValueError(msg)
        direction = "ASC" if sort_order == "asc" else "DESC"

        where, params = self._filter_clause(
            task_id=task_id,
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            rating=rating,
        )
        count_row = self._db.fetchone("SELECT COUNT(*) FROM reviews r" + where, params)
        total = int(count_row[0]) if count_row is not None else 0

        query = self._SELECT_SQL + where + f" ORDER BY {column} {direction}, r.rowid {direction}"
        page_params = list(params)
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            page_params.extend([limit, offset or 0])
        rows = self._db.fetchall(query, page_params)
        return [self._row_to_review(row) for row in rows], total

    def update_review(self, review_id: str, updates: dict[str, Any]) -> int:
        """Update review columns."""
        if len(updates) == 0:
            return 0
        if any(column not in self._COLUMNS for column in updates):
            msg = "Attempted to update unknown review column"
            raise ValueError(msg)

        set_clause = ", ".join(f"{column} = ?" for column in updates)
        query = "UPDATE reviews SET " + set_clause + " WHERE review_id = ?"  # nosec B608
        with self._db.transaction():
            return self._db.execute(query, [*updates.values(), review_id])

    def delete_review(self, review_id: str) -> int:
        with self._db.transaction():
            return self._db.execute("DELETE FROM reviews WHERE review_id = ?", (review_id,))

    def rating_statistics(self, reviewee_id: str | None = None) -> dict[str, Any]:
        """Review count, mean rating and per-rating counts, optionally for one reviewee."""
        where, params = self._filter_clause(
            task_id=None,
            reviewer_id=None,
            reviewee_id=reviewee_id,
            rating=None,
        )
        rows = self._db.fetchall(
            "SELECT r.rating, COUNT(*) FROM reviews r" + where + " GROUP BY r.rating",
            params,
        )
        breakdown = {str(rating): 0 for rating in range(1, 6)}
        for row in rows:
            breakdown[str(int(row[0]))] = int(row[1])
        total = sum(breakdown.values())
        rating_sum = sum(int(rating) * count for rating, count in breakdown.items())
        return {
            "total_reviews": total,
            "average_rating": round(rating_sum / total, 2) if total > 0 else 0.0,
            "rating_breakdown": breakdown,
        }
