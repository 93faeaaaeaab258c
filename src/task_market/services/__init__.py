"""Service layer components."""

from task_market.services.bid_manager import BidManager
from task_market.services.caller_resolver import CallerResolver
from task_market.services.deadline_evaluator import DeadlineEvaluator
from task_market.services.dispute_manager import DisputeManager
from task_market.services.notification_service import NotificationService
from task_market.services.notifier import Notifier
from task_market.services.review_manager import ReviewManager
from task_market.services.task_manager import TaskManager

__all__ = [
    "BidManager",
    "CallerResolver",
    "DeadlineEvaluator",
    "DisputeManager",
    "NotificationService",
    "Notifier",
    "ReviewManager",
    "TaskManager",
]
