"""HTTP client for user profile lookups."""

from __future__ import annotations

from typing import Any

import httpx

from task_market.core.exceptions import ServiceError


class ProfileClient:
    """Async client for reading a user's public reputation stats."""

    def __init__(
        self,
        base_url: str,
        profile_path: str,
        timeout_seconds: int,
    ) -> None:
        self._profile_path = profile_path.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=float(timeout_seconds),
        )

    async def get_profile(self, user_id: str) -> dict[str, Any] | None:
        """
        Fetch {rating, tasks_completed} for a user.

        Returns None when the profile service has no record of the user.
        """
        try:
            response = await self._client.get(f"{self._profile_path}/{user_id}")
        except httpx.HTTPError as exc:
            raise ServiceError(
                "PROFILE_SERVICE_UNAVAILABLE",
                "Cannot reach profile service",
                502,
                {},
            ) from exc

        if response.status_code == 404:
            return None

        if response.status_code == 200:
            body = response.json()
            if isinstance(body, dict):
                return body
            raise ServiceError(
                "PROFILE_SERVICE_UNAVAILABLE",
                "Profile service returned malformed response",
                502,
                {},
            )

        raise ServiceError(
            "PROFILE_SERVICE_UNAVAILABLE",
            f"Profile service returned unexpected status {response.status_code}",
            502,
            {},
        )

    async def close(self) -> None:
        """Close the underlying async client."""
        await self._client.aclose()
