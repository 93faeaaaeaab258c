"""Disputes raised against escrowed work, and their resolution."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from task_market.core.exceptions import ServiceError
from task_market.logging import get_logger
from task_market.services.dispute_store import DuplicateDisputeError
from task_market.services.lifecycle import now_iso, require_task
from task_market.services.pagination import page_envelope
from task_market.services.task_store import StaleStatusError

if TYPE_CHECKING:
    from task_market.services.authorization import Caller, DisputeResolverPolicy
    from task_market.services.database import Database
    from task_market.services.dispute_store import DisputeStore
    from task_market.services.notifier import Notifier
    from task_market.services.pagination import PageParams
    from task_market.services.task_store import TaskStore

_DISPUTABLE_TASK_STATUSES: tuple[str, ...] = ("assigned", "in-progress", "submitted")
_DISPUTABLE_PAYMENT_STATUSES: tuple[str, ...] = ("escrowed", "submitted")
_ACTIVE_DISPUTE_STATUSES: tuple[str, ...] = ("open", "under_review")

# Task columns written when a dispute is resolved, per resolution code.
# no_action leaves the task untouched.
_RESOLUTION_TASK_OUTCOMES: dict[str, dict[str, str] | None] = {
    "refund_client": {"status": "cancelled", "payment_status": "refunded"},
    "pay_freelancer": {"status": "completed", "payment_status": "released"},
    "partial_refund": {"status": "completed", "payment_status": "released"},
    "no_action": None,
}


class DisputeManager:
    """
    Dispute lifecycle: open -> under_review -> resolved.

    Opening a dispute flags the task as disputed in the same transaction, and
    resolving it applies the resolution to the task in the same transaction.
    Who may resolve is decided by the configured DisputeResolverPolicy.
    """

    def __init__(
        self,
        database: Database,
        task_store: TaskStore,
        dispute_store: DisputeStore,
        notifier: Notifier,
        resolver_policy: DisputeResolverPolicy,
        auto_close_days: int,
    ) -> None:
        self._db = database
        self._task_store = task_store
        self._dispute_store = dispute_store
        self._notifier = notifier
        self._resolver_policy = resolver_policy
        self._auto_close = timedelta(days=auto_close_days)
        self._logger = get_logger(__name__)

    def _require_dispute(self, dispute_id: str) -> dict[str, Any]:
        dispute = self._dispute_store.get_dispute(dispute_id)
        if dispute is None:
            raise ServiceError("DISPUTE_NOT_FOUND", "Dispute not found", 404, {})
        return dispute

    @staticmethod
    def _is_party(dispute: dict[str, Any], caller: Caller) -> bool:
        return caller.user_id in (dispute["initiator_id"], dispute["respondent_id"])

    def _require_viewer(self, dispute: dict[str, Any], caller: Caller) -> None:
        if not self._is_party(dispute, caller) and not self._resolver_policy.can_resolve(caller):
            raise ServiceError("FORBIDDEN", "You are not a party to this dispute", 403, {})

    def _dispute_amount(self, task: dict[str, Any]) -> float:
        if task["accepted_bid_id"] is not None:
            bid = self._task_store.get_bid(str(task["accepted_bid_id"]))
            if bid is not None:
                return float(bid["amount"])
        return float(task["budget"])

    async def create_dispute(
        self,
        caller: Caller,
        task_id: str,
        *,
        reason: str,
        description: str,
    ) -> dict[str, Any]:
        """
        Open a dispute on a task whose payment is escrowed.

        Error precedence:
        1. TASK_NOT_FOUND
        2. FORBIDDEN — caller is neither the owner nor the assigned freelancer
        3. INVALID_STATUS — task not assigned/in-progress/submitted with escrowed payment
        4. DISPUTE_ALREADY_EXISTS
        """
        task = require_task(self._task_store, task_id)
        if caller.user_id == task["owner_id"]:
            respondent_id = task["assigned_freelancer_id"]
        elif task["assigned_freelancer_id"] is not None and caller.user_id == task["assigned_freelancer_id"]:
            respondent_id = task["owner_id"]
        else:
            raise ServiceError(
                "FORBIDDEN",
                "Only the task owner or the assigned freelancer can open a dispute",
                403,
                {},
            )

        if (
            task["status"] not in _DISPUTABLE_TASK_STATUSES
            or task["payment_status"] not in _DISPUTABLE_PAYMENT_STATUSES
        ):
            raise ServiceError(
                "INVALID_STATUS",
                "Disputes can only be opened while payment is escrowed or work is submitted",
                409,
                {"current_status": task["status"], "payment_status": task["payment_status"]},
            )

        if self._dispute_store.get_dispute_for_task(task_id) is not None:
            raise ServiceError(
                "DISPUTE_ALREADY_EXISTS",
                "A dispute already exists for this task",
                409,
                {},
            )

        created = datetime.now(UTC)
        timestamp = now_iso()
        dispute_id = f"disp-{uuid.uuid4()}"
        dispute_data = {
            "dispute_id": dispute_id,
            "task_id": task_id,
            "initiator_id": caller.user_id,
            "respondent_id": respondent_id,
            "reason": reason,
            "description": description,
            "status": "open",
            "priority": "medium",
            "resolution": None,
            "resolution_notes": None,
            "resolver_id": None,
            "dispute_amount": self._dispute_amount(task),
            "refund_amount": 0,
            "created_at": timestamp,
            "updated_at": timestamp,
            "resolved_at": None,
            "auto_close_at": (created + self._auto_close)
            .isoformat(timespec="microseconds")
            .replace("+00:00", "Z"),
        }

        try:
            with self._db.transaction():
                changed = self._task_store.update_task(
                    task_id,
                    {
                        "status": "disputed",
                        "dispute_reason": reason,
                        "disputed_at": timestamp,
                        "payment_status": "disputed",
                        "updated_at": timestamp,
                    },
                    expected_status=task["status"],
                )
                if changed == 0:
                    msg = f"Task {task_id} changed status while opening a dispute"
                    raise StaleStatusError(msg)
                self._dispute_store.insert_dispute(dispute_data)
        except StaleStatusError as exc:
            raise ServiceError(
                "INVALID_STATUS",
                "Task status changed concurrently, retry the operation",
                409,
                {},
            ) from exc
        except DuplicateDisputeError as exc:
            raise ServiceError(
                "DISPUTE_ALREADY_EXISTS",
                "A dispute already exists for this task",
                409,
                {},
            ) from exc

        self._logger.info(
            "Dispute opened",
            extra={"dispute_id": dispute_id, "task_id": task_id, "reason": reason},
        )
        self._notifier.emit(
            str(respondent_id),
            "dispute_created",
            "New Dispute Filed",
            f'A dispute has been raised on "{task["title"]}". Please respond within 48 hours.',
            priority="urgent",
            task_id=task_id,
            dispute_id=dispute_id,
        )
        self._notifier.emit(
            caller.user_id,
            "dispute_created",
            "Dispute Created",
            f'Your dispute for "{task["title"]}" has been submitted and is under review.',
            priority="high",
            task_id=task_id,
            dispute_id=dispute_id,
        )
        return self._require_dispute(dispute_id)

    async def add_message(self, caller: Caller, dispute_id: str, message: str) -> dict[str, Any]:
        """Append a message to an active dispute's thread."""
        dispute = self._require_dispute(dispute_id)
        self._require_viewer(dispute, caller)
        if dispute["status"] not in _ACTIVE_DISPUTE_STATUSES:
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot add messages to a dispute in '{dispute['status']}' status",
                409,
                {"current_status": dispute["status"]},
            )

        is_admin_message = not self._is_party(dispute, caller)
        timestamp = now_iso()
        with self._db.transaction():
            self._dispute_store.insert_message(
                {
                    "message_id": f"msg-{uuid.uuid4()}",
                    "dispute_id": dispute_id,
                    "sender_id": caller.user_id,
                    "sender_name": caller.name,
                    "message": message,
                    "is_admin_message": is_admin_message,
                    "sent_at": timestamp,
                }
            )
            if is_admin_message:
                self._dispute_store.update_dispute(
                    dispute_id,
                    {"status": "under_review", "updated_at": timestamp},
                    expected_statuses=("open",),
                )

        for recipient_id in (dispute["initiator_id"], dispute["respondent_id"]):
            if recipient_id != caller.user_id:
                self._notifier.emit(
                    recipient_id,
                    "system_message",
                    "New Dispute Message",
                    f"{caller.name} replied on dispute {dispute_id}.",
                    priority="medium",
                    task_id=dispute["task_id"],
                    dispute_id=dispute_id,
                )
        return self._require_dispute(dispute_id)

    async def resolve_dispute(
        self,
        caller: Caller,
        dispute_id: str,
        *,
        resolution: str,
        resolution_notes: str | None,
        refund_amount: float | None,
    ) -> dict[str, Any]:
        """
        Resolve an active dispute and apply its outcome to the task.

        Error precedence:
        1. DISPUTE_NOT_FOUND
        2. FORBIDDEN — resolver policy refuses the caller
        3. INVALID_STATUS — dispute already resolved or closed
        4. INVALID_PAYLOAD — refund amount missing or larger than the disputed amount
        """
        dispute = self._require_dispute(dispute_id)
        if not self._resolver_policy.can_resolve(caller):
            raise ServiceError("FORBIDDEN", "You are not allowed to resolve disputes", 403, {})
        if dispute["status"] not in _ACTIVE_DISPUTE_STATUSES:
            raise ServiceError(
                "INVALID_STATUS",
                f"Cannot resolve dispute in '{dispute['status']}' status",
                409,
                {"current_status": dispute["status"]},
            )

        dispute_amount = float(dispute["dispute_amount"])
        if resolution == "refund_client":
            refund = dispute_amount
        elif resolution == "partial_refund":
            if refund_amount is None or refund_amount > dispute_amount:
                raise ServiceError(
                    "INVALID_PAYLOAD",
                    "partial_refund requires a refund_amount no larger than the disputed amount",
                    400,
                    {"dispute_amount": dispute_amount},
                )
            refund = refund_amount
        else:
            refund = 0.0

        timestamp = now_iso()
        outcome = _RESOLUTION_TASK_OUTCOMES[resolution]
        try:
            with self._db.transaction():
                changed = self._dispute_store.update_dispute(
                    dispute_id,
                    {
                        "status": "resolved",
                        "resolution": resolution,
                        "resolution_notes": resolution_notes,
                        "resolver_id": caller.user_id,
                        "refund_amount": refund,
                        "resolved_at": timestamp,
                        "updated_at": timestamp,
                    },
                    expected_statuses=_ACTIVE_DISPUTE_STATUSES,
                )
                if changed == 0:
                    msg = f"Dispute {dispute_id} is no longer active"
                    raise StaleStatusError(msg)
                if outcome is not None:
                    timestamp_column = (
                        "cancelled_at" if outcome["status"] == "cancelled" else "completed_at"
                    )
                    self._task_store.update_task(
                        dispute["task_id"],
                        {**outcome, timestamp_column: timestamp, "updated_at": timestamp},
                        expected_status="disputed",
                    )
        except StaleStatusError as exc:
            raise ServiceError("INVALID_STATUS", "Dispute is no longer active", 409, {}) from exc

        task = require_task(self._task_store, dispute["task_id"])
        self._logger.info(
            "Dispute resolved",
            extra={
                "dispute_id": dispute_id,
                "task_id": dispute["task_id"],
                "resolution": resolution,
                "resolver_id": caller.user_id,
                "task_status": task["status"],
            },
        )
        for recipient_id in (dispute["initiator_id"], dispute["respondent_id"]):
            self._notifier.emit(
                recipient_id,
                "dispute_resolved",
                "Dispute Resolved",
                f'The dispute for "{task["title"]}" has been resolved: '
                f"{resolution.replace('_', ' ')}.",
                priority="high",
                task_id=dispute["task_id"],
                dispute_id=dispute_id,
            )
        return self._require_dispute(dispute_id)

    async def get_dispute(self, caller: Caller, dispute_id: str) -> dict[str, Any]:
        """A dispute with its messages, for the parties and resolvers."""
        dispute = self._require_dispute(dispute_id)
        self._require_viewer(dispute, caller)
        return dispute

    async def list_my_disputes(
        self,
        caller: Caller,
        status: str | None,
        page: PageParams,
    ) -> dict[str, Any]:
        """Disputes the caller opened or was named in."""
        disputes, total = self._dispute_store.list_disputes_for_party(
            caller.user_id,
            status=status,
            limit=page.limit,
            offset=page.offset,
        )
        return page_envelope("disputes", disputes, total, page)

    def get_stats(self) -> dict[str, int]:
        """Dispute counts grouped by status."""
        return self._dispute_store.count_disputes_by_status()
