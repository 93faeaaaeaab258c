"""Unit test fixtures — auto-clear caches between tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from task_market.config import clear_settings_cache
from task_market.core.state import reset_app_state
from task_market.services.database import Database
from task_market.services.notification_store import NotificationStore
from task_market.services.notifier import Notifier
from task_market.services.task_store import TaskStore

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear settings cache and app state between tests."""
    clear_settings_cache()
    reset_app_state()
    yield
    clear_settings_cache()
    reset_app_state()


@pytest.fixture
def database(tmp_path: Path) -> Iterator[Database]:
    """A fresh SQLite database in a temp directory."""
    db = Database(db_path=str(tmp_path / "task-market.db"))
    yield db
    db.close()


@pytest.fixture
def task_store(database: Database) -> TaskStore:
    return TaskStore(database)


@pytest.fixture
def notification_store(database: Database) -> NotificationStore:
    return NotificationStore(database)


@pytest.fixture
def notifier(notification_store: NotificationStore) -> Notifier:
    return Notifier(notification_store, retention_days=90)
