"""Application state management."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from task_market.clients.identity_client import IdentityClient
    from task_market.clients.profile_client import ProfileClient
    from task_market.services.bid_manager import BidManager
    from task_market.services.caller_resolver import CallerResolver
    from task_market.services.database import Database
    from task_market.services.dispute_manager import DisputeManager
    from task_market.services.notification_service import NotificationService
    from task_market.services.review_manager import ReviewManager
    from task_market.services.task_manager import TaskManager


@dataclass
class AppState:
    """Runtime application state."""

    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    database: Database | None = None
    task_manager: TaskManager | None = None
    bid_manager: BidManager | None = None
    dispute_manager: DisputeManager | None = None
    notification_service: NotificationService | None = None
    review_manager: ReviewManager | None = None
    caller_resolver: CallerResolver | None = None
    identity_client: IdentityClient | None = None
    profile_client: ProfileClient | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        """Keep service collaborator references in sync with AppState fields."""
        super().__setattr__(name, value)
        if value is None:
            return

        caller_resolver = self.__dict__.get("caller_resolver")
        bid_manager = self.__dict__.get("bid_manager")

        if name == "identity_client" and caller_resolver is not None:
            caller_resolver._identity_client = value
        elif name == "profile_client" and bid_manager is not None:
            bid_manager.set_profile_client(value)
        elif name == "caller_resolver":
            identity_client = self.__dict__.get("identity_client")
            if identity_client is not None:
                value._identity_client = identity_client
        elif name == "bid_manager":
            profile_client = self.__dict__.get("profile_client")
            if profile_client is not None:
                value.set_profile_client(profile_client)

    @property
    def uptime_seconds(self) -> float:
        """Calculate uptime in seconds."""
        return (datetime.now(UTC) - self.start_time).total_seconds()

    @property
    def started_at(self) -> str:
        """ISO format start time."""
        return self.start_time.isoformat(timespec="seconds").replace("+00:00", "Z")


# Global application state container
_state_container: dict[str, AppState | None] = {"app_state": None}


def get_app_state() -> AppState:
    """Get the current application state."""
    app_state = _state_container["app_state"]
    if app_state is None:
        msg = "Application state not initialized"
        raise RuntimeError(msg)
    return app_state


def init_app_state() -> AppState:
    """Initialize application state. Called during startup."""
    app_state = AppState()
    _state_container["app_state"] = app_state
    return app_state


def reset_app_state() -> None:
    """Reset application state. Used in testing."""
    _state_container["app_state"] = None
