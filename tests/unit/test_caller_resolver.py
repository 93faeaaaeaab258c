"""Unit tests for CallerResolver."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from task_market.core.exceptions import ServiceError
from task_market.services.authorization import Caller
from task_market.services.caller_resolver import CallerResolver


def _resolver(**resolve_kwargs) -> tuple[CallerResolver, AsyncMock]:
    identity_client = AsyncMock()
    identity_client.resolve = AsyncMock(**resolve_kwargs)
    return CallerResolver(identity_client), identity_client


@pytest.mark.unit
async def test_resolves_caller() -> None:
    resolver, identity_client = _resolver(
        return_value={
            "id": "u-1",
            "email": "asha@campus.edu",
            "full_name": "Asha Kumar",
            "role": "admin",
        }
    )

    caller = await resolver.resolve("tok")

    assert caller == Caller(user_id="u-1", email="asha@campus.edu", name="Asha Kumar", role="admin")
    identity_client.resolve.assert_awaited_once_with("tok")


@pytest.mark.unit
async def test_role_is_optional() -> None:
    resolver, _ = _resolver(
        return_value={"id": "u-1", "email": "asha@campus.edu", "full_name": "Asha Kumar", "role": 7}
    )

    caller = await resolver.resolve("tok")

    assert caller.role is None


@pytest.mark.unit
async def test_empty_token_is_unauthenticated() -> None:
    resolver, identity_client = _resolver()

    with pytest.raises(ServiceError) as exc_info:
        await resolver.resolve("")

    assert exc_info.value.error == "UNAUTHENTICATED"
    assert exc_info.value.status_code == 401
    identity_client.resolve.assert_not_awaited()


@pytest.mark.unit
async def test_gateway_rejection_passes_through() -> None:
    resolver, _ = _resolver(side_effect=ServiceError("UNAUTHENTICATED", "Token expired", 401, {}))

    with pytest.raises(ServiceError) as exc_info:
        await resolver.resolve("tok")

    assert exc_info.value.error == "UNAUTHENTICATED"


@pytest.mark.unit
@pytest.mark.parametrize(
    "failure",
    [httpx.ConnectError("refused"), ConnectionError("down"), RuntimeError("boom")],
)
async def test_gateway_failure_is_unavailable(failure: Exception) -> None:
    resolver, _ = _resolver(side_effect=failure)

    with pytest.raises(ServiceError) as exc_info:
        await resolver.resolve("tok")

    assert exc_info.value.error == "IDENTITY_SERVICE_UNAVAILABLE"
    assert exc_info.value.status_code == 502


@pytest.mark.unit
@pytest.mark.parametrize(
    "identity",
    [
        ["u-1"],
        {"email": "asha@campus.edu", "full_name": "Asha Kumar"},
        {"id": "u-1", "full_name": "Asha Kumar"},
        {"id": "u-1", "email": "asha@campus.edu", "full_name": ""},
    ],
)
async def test_malformed_identity_is_unavailable(identity: object) -> None:
    resolver, _ = _resolver(return_value=identity)

    with pytest.raises(ServiceError) as exc_info:
        await resolver.resolve("tok")

    assert exc_info.value.error == "IDENTITY_SERVICE_UNAVAILABLE"
