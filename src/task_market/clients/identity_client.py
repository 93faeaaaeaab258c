"""Async HTTP client for the Identity gateway."""

from __future__ import annotations

from typing import Any

import httpx

from task_market.core.exceptions import ServiceError
from task_market.logging import get_logger


class IdentityClient:
    """
    Client that resolves bearer credentials to caller identities.

    The gateway owns credential issuance and verification; this service only
    forwards the opaque token via POST {resolve_path} and trusts the answer.
    """

    def __init__(
        self,
        base_url: str,
        resolve_path: str,
        timeout_seconds: int,
    ) -> None:
        self._base_url = base_url
        self._resolve_path = resolve_path
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
        )

    async def resolve(self, token: str) -> dict[str, Any]:
        """
        Resolve a bearer token to the caller identity.

        Args:
            token: Opaque bearer credential taken from the Authorization header

        Returns:
            dict with keys: id (str), email (str), full_name (str), role (str, optional)

        Raises:
            ServiceError: UNAUTHENTICATED (401) if the gateway rejects the token
            ServiceError: IDENTITY_SERVICE_UNAVAILABLE (502) on connection/timeout/unexpected errors
        """
        logger = get_logger(__name__)

        try:
            response = await self._client.post(self._resolve_path, json={"token": token})
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            logger.warning(
                "Identity gateway connection failed",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise ServiceError(
                error="IDENTITY_SERVICE_UNAVAILABLE",
                message="Cannot connect to Identity service",
                status_code=502,
                details={},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "Identity gateway HTTP error",
                extra={"error": str(exc), "base_url": self._base_url},
            )
            raise ServiceError(
                error="IDENTITY_SERVICE_UNAVAILABLE",
                message="Identity service request failed",
                status_code=502,
                details={},
            ) from exc

        if response.status_code in (401, 403):
            raise ServiceError(
                error="UNAUTHENTICATED",
                message="Bearer token was rejected",
                status_code=401,
                details={},
            )

        if response.status_code != 200:
            logger.warning(
                "Identity gateway unexpected status",
                extra={"status_code": response.status_code, "base_url": self._base_url},
            )
            raise ServiceError(
                error="IDENTITY_SERVICE_UNAVAILABLE",
                message="Identity service returned unexpected status",
                status_code=502,
                details={},
            )

        result: Any = response.json()
        if not isinstance(result, dict):
            raise ServiceError(
                error="IDENTITY_SERVICE_UNAVAILABLE",
                message="Identity service returned malformed response",
                status_code=502,
                details={},
            )
        return result

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
