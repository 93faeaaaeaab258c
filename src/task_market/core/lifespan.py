"""Application lifecycle management."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from task_market.clients.identity_client import IdentityClient
from task_market.clients.profile_client import ProfileClient
from task_market.config import get_settings
from task_market.core.state import init_app_state
from task_market.logging import get_logger, setup_logging
from task_market.services.authorization import build_resolver_policy
from task_market.services.bid_manager import BidManager
from task_market.services.caller_resolver import CallerResolver
from task_market.services.database import Database
from task_market.services.deadline_evaluator import DeadlineEvaluator
from task_market.services.dispute_manager import DisputeManager
from task_market.services.dispute_store import DisputeStore
from task_market.services.notification_service import NotificationService
from task_market.services.notification_store import NotificationStore
from task_market.services.notifier import Notifier
from task_market.services.review_manager import ReviewManager
from task_market.services.review_store import ReviewStore
from task_market.services.task_manager import TaskManager
from task_market.services.task_store import TaskStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle."""
    # === STARTUP ===
    settings = get_settings()

    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)
    logger = get_logger(__name__)

    state = init_app_state()

    # One connection shared by every store, so cross-table transitions commit together
    database = Database(db_path=settings.database.path)
    state.database = database
    task_store = TaskStore(database)
    dispute_store = DisputeStore(database)
    notification_store = NotificationStore(database)
    review_store = ReviewStore(database)

    identity_client = IdentityClient(
        base_url=settings.identity.base_url,
        resolve_path=settings.identity.resolve_path,
        timeout_seconds=settings.identity.timeout_seconds,
    )
    state.identity_client = identity_client

    profile_client = ProfileClient(
        base_url=settings.profiles.base_url,
        profile_path=settings.profiles.profile_path,
        timeout_seconds=settings.profiles.timeout_seconds,
    )
    state.profile_client = profile_client

    state.caller_resolver = CallerResolver(identity_client=identity_client)

    notifier = Notifier(notification_store, retention_days=settings.notifications.retention_days)
    deadline_evaluator = DeadlineEvaluator(task_store, notifier)

    state.task_manager = TaskManager(
        store=task_store,
        notifier=notifier,
        deadline_evaluator=deadline_evaluator,
    )
    state.bid_manager = BidManager(
        store=task_store,
        profile_client=profile_client,
        notifier=notifier,
        deadline_evaluator=deadline_evaluator,
    )
    state.dispute_manager = DisputeManager(
        database=database,
        task_store=task_store,
        dispute_store=dispute_store,
        notifier=notifier,
        resolver_policy=build_resolver_policy(
            settings.disputes.resolver_policy,
            settings.disputes.admin_role,
        ),
        auto_close_days=settings.disputes.auto_close_days,
    )
    state.review_manager = ReviewManager(
        task_store=task_store,
        review_store=review_store,
        notifier=notifier,
    )
    state.notification_service = NotificationService(
        notification_store,
        clear_read_after_days=settings.notifications.clear_read_after_days,
    )

    logger.info(
        "Service starting",
        extra={
            "service": settings.service.name,
            "version": settings.service.version,
            "port": settings.server.port,
            "db_path": settings.database.path,
            "identity_base_url": settings.identity.base_url,
            "profiles_base_url": settings.profiles.base_url,
            "dispute_resolver_policy": settings.disputes.resolver_policy,
        },
    )

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Service shutting down", extra={"uptime_seconds": state.uptime_seconds})

    # Close SQLite database
    database.close()

    # Close HTTP clients (closes httpx async clients)
    await identity_client.close()
    await profile_client.close()
