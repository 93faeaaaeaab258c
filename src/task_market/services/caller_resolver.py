"""Bearer token resolution into authenticated callers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from task_market.core.exceptions import ServiceError
from task_market.services.authorization import Caller

if TYPE_CHECKING:
    from task_market.clients.identity_client import IdentityClient


def _required_string(identity: dict[str, Any], key: str) -> str:
    value = identity.get(key)
    if not isinstance(value, str) or len(value) < 1:
        raise ServiceError(
            "IDENTITY_SERVICE_UNAVAILABLE",
            f"Identity service response is missing '{key}'",
            502,
            {},
        )
    return value


class CallerResolver:
    """Turns a bearer token into a Caller via the Identity gateway."""

    def __init__(self, identity_client: IdentityClient) -> None:
        self._identity_client = identity_client

    async def resolve(self, token: str) -> Caller:
        """
        Resolve the token, before any entity is read.

        Error precedence handled here:
        - UNAUTHENTICATED: gateway rejects the token
        - IDENTITY_SERVICE_UNAVAILABLE: gateway unreachable or answers nonsense

        Raises:
            ServiceError: UNAUTHENTICATED or IDENTITY_SERVICE_UNAVAILABLE
        """
        if not token:
            raise ServiceError("UNAUTHENTICATED", "Bearer token must not be empty", 401, {})

        identity: Any
        try:
            identity = await self._identity_client.resolve(token)
        except ServiceError:
            raise
        except Exception as exc:
            raise ServiceError(
                "IDENTITY_SERVICE_UNAVAILABLE",
                "Cannot connect to Identity service",
                502,
                {},
            ) from exc

        if not isinstance(identity, dict):
            raise ServiceError(
                "IDENTITY_SERVICE_UNAVAILABLE",
                "Identity service returned malformed response",
                502,
                {},
            )

        role = identity.get("role")
        return Caller(
            user_id=_required_string(identity, "id"),
            email=_required_string(identity, "email"),
            name=_required_string(identity, "full_name"),
            role=role if isinstance(role, str) else None,
        )
