"""API routers."""

from task_market.routers import bids, disputes, health, notifications, reviews, tasks

__all__ = ["bids", "disputes", "health", "notifications", "reviews", "tasks"]
