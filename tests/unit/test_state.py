"""Unit tests for AppState lifecycle helpers."""

from __future__ import annotations

import time
from unittest.mock import MagicMock

import pytest

from task_market.core.state import AppState, get_app_state, init_app_state, reset_app_state


@pytest.mark.unit
def test_app_state_init() -> None:
    """AppState initializes with default dependency fields."""
    state = AppState()
    assert state.database is None
    assert state.task_manager is None
    assert state.bid_manager is None
    assert state.dispute_manager is None
    assert state.notification_service is None
    assert state.review_manager is None
    assert state.caller_resolver is None
    assert state.identity_client is None
    assert state.profile_client is None


@pytest.mark.unit
def test_app_state_uptime() -> None:
    """uptime_seconds increases after initialization."""
    state = AppState()
    time.sleep(0.001)
    assert state.uptime_seconds > 0


@pytest.mark.unit
def test_app_state_started_at() -> None:
    """started_at returns a UTC ISO timestamp."""
    state = AppState()
    assert state.started_at.endswith("Z")
    assert "T" in state.started_at


@pytest.mark.unit
def test_identity_client_swap_reaches_resolver() -> None:
    """Replacing the identity client rewires the caller resolver."""
    state = AppState()
    resolver = MagicMock()
    state.caller_resolver = resolver

    replacement = MagicMock()
    state.identity_client = replacement

    assert resolver._identity_client is replacement


@pytest.mark.unit
def test_profile_client_swap_reaches_bid_manager() -> None:
    """Replacing the profile client rewires the bid manager, in either order."""
    state = AppState()
    profile_client = MagicMock()
    state.profile_client = profile_client

    bid_manager = MagicMock()
    state.bid_manager = bid_manager
    bid_manager.set_profile_client.assert_called_once_with(profile_client)

    replacement = MagicMock()
    state.profile_client = replacement
    bid_manager.set_profile_client.assert_called_with(replacement)


@pytest.mark.unit
def test_get_app_state_uninitialized() -> None:
    """get_app_state raises RuntimeError before initialization."""
    reset_app_state()
    with pytest.raises(RuntimeError):
        _state = get_app_state()


@pytest.mark.unit
def test_init_app_state() -> None:
    """init_app_state creates and stores an AppState instance."""
    reset_app_state()
    state = init_app_state()
    assert isinstance(state, AppState)
    assert get_app_state() is state
    reset_app_state()
