"""Reviews exchanged between the owner and the freelancer of a completed task."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from task_market.core.exceptions import ServiceError
from task_market.logging import get_logger
from task_market.services.lifecycle import now_iso, require_task
from task_market.services.pagination import page_envelope
from task_market.services.review_store import DuplicateReviewError

if TYPE_CHECKING:
    from task_market.services.authorization import Caller
    from task_market.services.notifier import Notifier
    from task_market.services.pagination import PageParams
    from task_market.services.review_store import ReviewStore
    from task_market.services.task_store import TaskStore

_RECENT_REVIEWS = 5


class ReviewManager:
    """
    One review per party per completed task.

    The owner reviews the freelancer (client_to_freelancer) and the assigned
    freelancer reviews the owner (freelancer_to_client). Only the reviewer
    may edit or delete a review; reading reviews is public.
    """

    def __init__(self, task_store: TaskStore, review_store: ReviewStore, notifier: Notifier) -> None:
        self._task_store = task_store
        self._review_store = review_store
        self._notifier = notifier
        self._logger = get_logger(__name__)

    def _require_review(self, review_id: str) -> dict[str, Any]:
        review = self._review_store.get_review(review_id)
        if review is None:
            raise ServiceError("REVIEW_NOT_FOUND", "Review not found", 404, {})
        return review

    @staticmethod
    def _require_reviewer(review: dict[str, Any], caller: Caller) -> None:
        if review["reviewer_id"] != caller.user_id:
            raise ServiceError("FORBIDDEN", "Only the reviewer can change this review", 403, {})

    def _freelancer_name(self, task: dict[str, Any]) -> str:
        if task["accepted_bid_id"] is not None:
            bid = self._task_store.get_bid(str(task["accepted_bid_id"]))
            if bid is not None:
                return str(bid["freelancer_name"])
        return ""

    async def create_review(
        self,
        caller: Caller,
        task_id: str,
        *,
        rating: int,
        comment: str,
    ) -> dict[str, Any]:
        """
        Review the other party of a completed task.

        Error precedence:
        1. TASK_NOT_FOUND
        2. FORBIDDEN — caller is neither the owner nor the assigned freelancer
        3. INVALID_STATUS — task is not completed
        4. REVIEW_ALREADY_EXISTS — caller already reviewed this task
        """
        task = require_task(self._task_store, task_id)
        if caller.user_id == task["owner_id"] and task["assigned_freelancer_id"] is not None:
            review_type = "client_to_freelancer"
            reviewee_id = str(task["assigned_freelancer_id"])
            reviewee_name = self._freelancer_name(task)
        elif task["assigned_freelancer_id"] is not None and caller.user_id == task["assigned_freelancer_id"]:
            review_type = "freelancer_to_client"
            reviewee_id = str(task["owner_id"])
            reviewee_name = str(task["owner_name"])
        else:
            raise ServiceError(
                "FORBIDDEN",
                "Only the task owner or the assigned freelancer can review this task",
                403,
                {},
            )

        if task["status"] != "completed":
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot review task in '{task['status']}' status",
                409,
                {"current_status": task["status"]},
            )

        if self._review_store.has_review(task_id, caller.user_id):
            raise ServiceError(
                "REVIEW_ALREADY_EXISTS",
                "You have already reviewed this task",
                409,
                {},
            )

        timestamp = now_iso()
        review_id = f"rev-{uuid.uuid4()}"
        try:
            self._review_store.insert_review(
                {
                    "review_id": review_id,
                    "task_id": task_id,
                    "reviewer_id": caller.user_id,
                    "reviewer_name": caller.name,
                    "reviewee_id": reviewee_id,
                    "reviewee_name": reviewee_name,
                    "review_type": review_type,
                    "rating": rating,
                    "comment": comment,
                    "created_at": timestamp,
                    "updated_at": timestamp,
                }
            )
        except DuplicateReviewError as exc:
            raise ServiceError(
                "REVIEW_ALREADY_EXISTS",
                "You have already reviewed this task",
                409,
                {},
            ) from exc

        self._logger.info(
            "Review created",
            extra={"review_id": review_id, "task_id": task_id, "review_type": review_type},
        )
        self._notifier.emit(
            reviewee_id,
            "review_received",
            "New Review",
            f'You received a {rating}-star review for "{task["title"]}".',
            priority="medium",
            task_id=task_id,
        )
        return self._require_review(review_id)

    async def get_review(self, review_id: str) -> dict[str, Any]:
        return self._require_review(review_id)

    async def list_reviews(
        self,
        *,
        task_id: str | None,
        reviewee_id: str | None,
        rating: int | None,
        page: PageParams,
    ) -> dict[str, Any]:
        """Public review listing."""
        reviews, total = self._review_store.list_reviews(
            task_id=task_id,
            reviewee_id=reviewee_id,
            rating=rating,
            sort_by=page.sort_by,
            sort_order=page.sort_order,
            limit=page.limit,
            offset=page.offset,
        )
        return page_envelope("reviews", reviews, total, page)

    async def list_my_reviews(self, caller: Caller, page: PageParams) -> dict[str, Any]:
        """Reviews the caller has written."""
        reviews, total = self._review_store.list_reviews(
            reviewer_id=caller.user_id,
            sort_by=page.sort_by,
            sort_order=page.sort_order,
            limit=page.limit,
            offset=page.offset,
        )
        return page_envelope("reviews", reviews, total, page)

    async def update_review(
        self,
        caller: Caller,
        review_id: str,
        updates: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Change the rating or comment of a review.

        Error precedence:
        1. REVIEW_NOT_FOUND
        2. FORBIDDEN — caller did not write the review
        """
        review = self._require_review(review_id)
        self._require_reviewer(review, caller)
        self._review_store.update_review(review_id, {**updates, "updated_at": now_iso()})
        return self._require_review(review_id)

    async def delete_review(self, caller: Caller, review_id: str) -> dict[str, Any]:
        """
        Delete a review.

        Error precedence:
        1. REVIEW_NOT_FOUND
        2. FORBIDDEN — caller did not write the review
        """
        review = self._require_review(review_id)
        self._require_reviewer(review, caller)
        self._review_store.delete_review(review_id)
        self._logger.info("Review deleted", extra={"review_id": review_id, "task_id": review["task_id"]})
        return {"review_id": review_id, "deleted": True}

    async def get_stats(self, reviewee_id: str | None) -> dict[str, Any]:
        """Rating totals with the most recent reviews, for everyone or one reviewee."""
        stats = self._review_store.rating_statistics(reviewee_id)
        recent, _ = self._review_store.list_reviews(reviewee_id=reviewee_id, limit=_RECENT_REVIEWS)
        return {**stats, "recent_reviews": recent}
