"""Router test fixtures with mocked Identity and Profile services."""

from __future__ import annotations

import os
import uuid
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from task_market.app import create_app
from task_market.config import clear_settings_cache
from task_market.core.lifespan import lifespan
from task_market.core.state import get_app_state, reset_app_state
from tests.helpers import auth, future_date, resolve_token

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path


# ---------------------------------------------------------------------------
# ID generators
# ---------------------------------------------------------------------------
def make_task_id() -> str:
    """Generate a unique task ID."""
    return f"t-{uuid.uuid4()}"


def make_bid_id() -> str:
    """Generate a unique bid ID."""
    return f"bid-{uuid.uuid4()}"


def _write_config(tmp_path: Path, resolver_policy: str) -> Path:
    db_path = tmp_path / "test.db"
    config_content = f"""\
service:
  name: "task-market"
  version: "0.1.0"
server:
  host: "0.0.0.0"
  port: 8010
  log_level: "info"
logging:
  level: "WARNING"
  directory: "{tmp_path / "logs"}"
database:
  path: "{db_path}"
identity:
  base_url: "http://localhost:8001"
  resolve_path: "/auth/resolve"
  timeout_seconds: 10
profiles:
  base_url: "http://localhost:8001"
  profile_path: "/users"
  timeout_seconds: 5
request:
  max_body_size: 4096
pagination:
  default_limit: 10
  max_limit: 50
notifications:
  retention_days: 90
  clear_read_after_days: 30
disputes:
  resolver_policy: "{resolver_policy}"
  admin_role: "admin"
  auto_close_days: 30
"""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(config_content)
    return config_path


@pytest.fixture
def resolver_policy() -> str:
    """Dispute resolver policy for the test app; override per module."""
    return "admin_role"


# ---------------------------------------------------------------------------
# App + client fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
async def app(tmp_path: Path, resolver_policy: str) -> AsyncIterator[Any]:
    """Create a test app with temp database and mocked external services."""
    config_path = _write_config(tmp_path, resolver_policy)

    old_config = os.environ.get("CONFIG_PATH")
    os.environ["CONFIG_PATH"] = str(config_path)

    clear_settings_cache()
    reset_app_state()

    test_app = create_app()
    async with lifespan(test_app):
        state = get_app_state()

        # Mock Identity client — known tokens resolve, others are rejected
        mock_identity = AsyncMock()
        mock_identity.close = AsyncMock()
        mock_identity.resolve = AsyncMock(side_effect=resolve_token)
        state.identity_client = mock_identity

        # Mock Profile client — every user has a modest track record
        mock_profiles = AsyncMock()
        mock_profiles.close = AsyncMock()
        mock_profiles.get_profile = AsyncMock(return_value={"rating": 4.5, "tasks_completed": 3})
        state.profile_client = mock_profiles

        yield test_app

    reset_app_state()
    clear_settings_cache()
    if old_config is None:
        os.environ.pop("CONFIG_PATH", None)
    else:
        os.environ["CONFIG_PATH"] = old_config


@pytest.fixture
async def client(app: Any) -> AsyncIterator[AsyncClient]:
    """Create an async HTTP client for the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Mock override fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_identity_unavailable(_app: Any) -> None:
    """Configure the Identity mock to simulate service unavailability."""
    state = get_app_state()
    state.identity_client.resolve = AsyncMock(
        side_effect=ConnectionError("Identity service unreachable")
    )


@pytest.fixture
def mock_identity_malformed(_app: Any) -> None:
    """Configure the Identity mock to answer without the user's email."""
    state = get_app_state()
    state.identity_client.resolve = AsyncMock(return_value={"id": "u-x", "full_name": "X"})


@pytest.fixture
def mock_profiles_unavailable(_app: Any) -> None:
    """Configure the Profile mock to fail on every lookup."""
    state = get_app_state()
    state.profile_client.get_profile = AsyncMock(side_effect=OSError("Profile service unreachable"))


# ---------------------------------------------------------------------------
# Marketplace helper functions
# ---------------------------------------------------------------------------
def task_payload(**overrides: Any) -> dict[str, Any]:
    """A valid POST /tasks body, with optional field overrides."""
    payload: dict[str, Any] = {
        "title": "Statistics assignment help",
        "description": "Need help with a regression analysis assignment in R.",
        "category": "Data Analysis",
        "college": "City Engineering College",
        "budget": 500,
        "deadline": future_date(7),
        "location": "Library block B",
        "requirements": "Must know ggplot2",
    }
    payload.update(overrides)
    return payload


def bid_payload(**overrides: Any) -> dict[str, Any]:
    """A valid POST /tasks/{task_id}/bids body, with optional field overrides."""
    payload: dict[str, Any] = {
        "amount": 450,
        "proposal": "I have done several regression projects in R.",
        "delivery_time_days": 3,
        "phone": "+91 98765 43210",
    }
    payload.update(overrides)
    return payload


async def create_task(client: AsyncClient, owner: dict[str, Any], **overrides: Any) -> Any:
    """Post a task via POST /tasks and return the response."""
    return await client.post("/tasks", json=task_payload(**overrides), headers=auth(owner))


async def create_task_id(client: AsyncClient, owner: dict[str, Any], **overrides: Any) -> str:
    """Post a task and return its ID, asserting success."""
    response = await create_task(client, owner, **overrides)
    assert response.status_code == 201, response.text
    return response.json()["task_id"]


async def submit_bid(
    client: AsyncClient,
    bidder: dict[str, Any],
    task_id: str,
    **overrides: Any,
) -> Any:
    """Place a bid via POST /tasks/{task_id}/bids and return the response."""
    return await client.post(
        f"/tasks/{task_id}/bids",
        json=bid_payload(**overrides),
        headers=auth(bidder),
    )


async def submit_bid_id(
    client: AsyncClient,
    bidder: dict[str, Any],
    task_id: str,
    **overrides: Any,
) -> str:
    """Place a bid and return its ID, asserting success."""
    response = await submit_bid(client, bidder, task_id, **overrides)
    assert response.status_code == 201, response.text
    return response.json()["bid_id"]


async def accept_bid(client: AsyncClient, owner: dict[str, Any], bid_id: str) -> Any:
    """Accept a bid via POST /bids/{bid_id}/accept."""
    return await client.post(f"/bids/{bid_id}/accept", headers=auth(owner))


async def assign_task(
    client: AsyncClient,
    owner: dict[str, Any],
    task_id: str,
    bid_id: str,
) -> Any:
    """Assign a task via POST /tasks/{task_id}/assign."""
    return await client.post(
        f"/tasks/{task_id}/assign",
        json={"bid_id": bid_id},
        headers=auth(owner),
    )


async def submit_work(
    client: AsyncClient,
    freelancer: dict[str, Any],
    task_id: str,
    *,
    submission_url: str = "https://drive.example.com/work.zip",
    submission_notes: str | None = "Final report attached",
) -> Any:
    """Hand in work via POST /tasks/{task_id}/submit."""
    body: dict[str, Any] = {"submission_url": submission_url}
    if submission_notes is not None:
        body["submission_notes"] = submission_notes
    return await client.post(f"/tasks/{task_id}/submit", json=body, headers=auth(freelancer))


async def task_in_progress(
    client: AsyncClient,
    owner: dict[str, Any],
    freelancer: dict[str, Any],
) -> tuple[str, str]:
    """Create a task, bid on it and accept the bid. Returns (task_id, bid_id)."""
    task_id = await create_task_id(client, owner)
    bid_id = await submit_bid_id(client, freelancer, task_id)
    response = await accept_bid(client, owner, bid_id)
    assert response.status_code == 200, response.text
    return task_id, bid_id


async def notifications_for(client: AsyncClient, user: dict[str, Any]) -> list[dict[str, Any]]:
    """All current notifications of a user, newest first."""
    response = await client.get("/notifications?limit=50", headers=auth(user))
    assert response.status_code == 200, response.text
    return response.json()["notifications"]
