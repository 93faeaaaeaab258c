"""Pydantic request/response models for the API."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator, model_validator

from task_market.services.review_store import REVIEW_SORT_COLUMNS
from task_market.services.task_store import BID_SORT_COLUMNS, TASK_SORT_COLUMNS

TaskCategory = Literal[
    "Academic Writing",
    "Programming",
    "Design",
    "Research",
    "Translation",
    "Data Analysis",
    "Presentation",
    "Other",
]
TaskStatus = Literal[
    "open", "assigned", "in-progress", "submitted", "completed", "cancelled", "disputed"
]
BidStatus = Literal["pending", "accepted", "rejected", "withdrawn"]
DisputeReason = Literal[
    "work_not_delivered",
    "work_incomplete",
    "work_poor_quality",
    "requirements_not_met",
    "communication_issues",
    "deadline_missed",
    "payment_issue",
    "other",
]
DisputeStatus = Literal["open", "under_review", "resolved", "closed"]
DisputeResolution = Literal["refund_client", "pay_freelancer", "partial_refund", "no_action"]
NotificationType = Literal[
    "bid_received",
    "bid_accepted",
    "bid_rejected",
    "task_assigned",
    "task_completed",
    "task_submitted",
    "payment_escrowed",
    "payment_released",
    "dispute_created",
    "dispute_resolved",
    "review_received",
    "task_deadline_reminder",
    "system_message",
]
NotificationPriority = Literal["low", "medium", "high", "urgent"]

# Sort whitelists per listing; anything else is rejected with INVALID_SORT_FIELD.
TASK_SORT_FIELDS: frozenset[str] = frozenset(TASK_SORT_COLUMNS)
BID_SORT_FIELDS: frozenset[str] = frozenset(BID_SORT_COLUMNS)
REVIEW_SORT_FIELDS: frozenset[str] = frozenset(REVIEW_SORT_COLUMNS)

_PHONE_PATTERN = r"^\+?[0-9][0-9 \-]{6,19}$"


def _not_in_past(value: date) -> date:
    if value < datetime.now(UTC).date():
        msg = "deadline must be today or later"
        raise ValueError(msg)
    return value


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, allow_inf_nan=False)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class CreateTaskRequest(_Request):
    """Body of POST /tasks."""

    title: str = Field(min_length=3, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    category: TaskCategory
    college: str = Field(min_length=2, max_length=100)
    budget: float = Field(ge=1)
    deadline: date
    location: str | None = Field(default=None, max_length=100)
    requirements: str | None = Field(default=None, max_length=500)

    @field_validator("deadline")
    @classmethod
    def _deadline_not_in_past(cls, value: date) -> date:
        return _not_in_past(value)


class UpdateTaskRequest(_Request):
    """Body of PATCH /tasks/{task_id}; at least one field."""

    title: str | None = Field(default=None, min_length=3, max_length=100)
    description: str | None = Field(default=None, min_length=10, max_length=1000)
    category: TaskCategory | None = None
    college: str | None = Field(default=None, min_length=2, max_length=100)
    budget: float | None = Field(default=None, ge=1)
    deadline: date | None = None
    location: str | None = Field(default=None, max_length=100)
    requirements: str | None = Field(default=None, max_length=500)

    @field_validator("deadline")
    @classmethod
    def _deadline_not_in_past(cls, value: date | None) -> date | None:
        return None if value is None else _not_in_past(value)

    @model_validator(mode="after")
    def _has_changes(self) -> UpdateTaskRequest:
        if not self.model_fields_set:
            msg = "at least one field must be provided"
            raise ValueError(msg)
        for name in self.model_fields_set - {"location", "requirements"}:
            if getattr(self, name) is None:
                msg = f"{name} must not be null"
                raise ValueError(msg)
        return self


class AssignTaskRequest(_Request):
    """Body of POST /tasks/{task_id}/assign."""

    bid_id: str = Field(min_length=1)


class SubmitWorkRequest(_Request):
    """Body of POST /tasks/{task_id}/submit."""

    submission_url: HttpUrl
    submission_notes: str | None = Field(default=None, max_length=1000)


class RevisionRequest(_Request):
    """Body of POST /tasks/{task_id}/revision."""

    notes: str | None = Field(default=None, max_length=500)


class TaskListFilters(_Request):
    """Query filters of GET /tasks."""

    status: TaskStatus | None = None
    category: TaskCategory | None = None
    college: str | None = Field(default=None, max_length=100)
    min_budget: float | None = Field(default=None, ge=0)
    max_budget: float | None = Field(default=None, ge=0)
    search: str | None = Field(default=None, max_length=100)


class MyTaskFilters(_Request):
    """Query filters of GET /tasks/mine."""

    role: Literal["owner", "freelancer"] = "owner"
    status: TaskStatus | None = None


# ---------------------------------------------------------------------------
# Bids
# ---------------------------------------------------------------------------


class CreateBidRequest(_Request):
    """Body of POST /tasks/{task_id}/bids."""

    amount: float = Field(gt=0)
    proposal: str = Field(min_length=10, max_length=1000)
    delivery_time_days: int = Field(ge=1, le=365)
    phone: str = Field(pattern=_PHONE_PATTERN)


class UpdateBidRequest(_Request):
    """Body of PATCH /bids/{bid_id}; at least one field."""

    amount: float | None = Field(default=None, gt=0)
    proposal: str | None = Field(default=None, min_length=10, max_length=1000)
    delivery_time_days: int | None = Field(default=None, ge=1, le=365)

    @model_validator(mode="after")
    def _has_changes(self) -> UpdateBidRequest:
        if not self.model_fields_set:
            msg = "at least one of amount, proposal, delivery_time_days must be provided"
            raise ValueError(msg)
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                msg = f"{name} must not be null"
                raise ValueError(msg)
        return self


class MyBidFilters(_Request):
    """Query filters of GET /bids/mine."""

    status: BidStatus | None = None


# ---------------------------------------------------------------------------
# Disputes
# ---------------------------------------------------------------------------


class CreateDisputeRequest(_Request):
    """Body of POST /disputes."""

    task_id: str = Field(min_length=1)
    reason: DisputeReason
    description: str = Field(min_length=10, max_length=1000)


class DisputeMessageRequest(_Request):
    """Body of POST /disputes/{dispute_id}/messages."""

    message: str = Field(min_length=1, max_length=500)


class ResolveDisputeRequest(_Request):
    """Body of POST /disputes/{dispute_id}/resolve."""

    resolution: DisputeResolution
    resolution_notes: str | None = Field(default=None, max_length=500)
    refund_amount: float | None = Field(default=None, gt=0)


class MyDisputeFilters(_Request):
    """Query filters of GET /disputes/mine."""

    status: DisputeStatus | None = None


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


class CreateReviewRequest(_Request):
    """Body of POST /reviews."""

    task_id: str = Field(min_length=1)
    rating: int = Field(ge=1, le=5)
    comment: str = Field(min_length=1, max_length=500)


class UpdateReviewRequest(_Request):
    """Body of PATCH /reviews/{review_id}; at least one field."""

    rating: int | None = Field(default=None, ge=1, le=5)
    comment: str | None = Field(default=None, min_length=1, max_length=500)

    @model_validator(mode="after")
    def _has_changes(self) -> UpdateReviewRequest:
        if not self.model_fields_set:
            msg = "at least one of rating, comment must be provided"
            raise ValueError(msg)
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                msg = f"{name} must not be null"
                raise ValueError(msg)
        return self


class ReviewListFilters(_Request):
    """Query filters of GET /reviews."""

    task_id: str | None = Field(default=None, min_length=1)
    reviewee_id: str | None = Field(default=None, min_length=1)
    rating: int | None = Field(default=None, ge=1, le=5)


class ReviewStatsFilters(_Request):
    """Query filters of GET /reviews/stats."""

    reviewee_id: str | None = Field(default=None, min_length=1)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationFilters(_Request):
    """Query filters of GET /notifications."""

    is_read: bool | None = None
    type: NotificationType | None = None
    priority: NotificationPriority | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    model_config = ConfigDict(extra="forbid")
    status: Literal["ok"]
    uptime_seconds: float
    started_at: str
    total_tasks: int
    tasks_by_status: dict[str, int]
    disputes_by_status: dict[str, int]


class ErrorResponse(BaseModel):
    """Standard error response model."""

    model_config = ConfigDict(extra="forbid")
    error: str
    message: str
    details: dict[str, object]
