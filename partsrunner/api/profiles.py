"""
Driver profiles

Thin PostgREST client for the hosted `driver_profiles` table. The status
tracker uses it to flip availability and publish coordinates.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from partsrunner.api.http import request_with_retry
from partsrunner.config import get_settings
from partsrunner.kernel.errors import UpstreamError

logger = structlog.get_logger()

PROFILE_TABLE = "driver_profiles"
DEFAULT_PROFILE = {"vehicleType": "car", "isAvailable": False}


class DriverProfileRepository:
    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        access_token: str | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=10.0)
        self._url = f"{base_url.rstrip('/')}/rest/v1/{PROFILE_TABLE}"
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        }
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, *, access_token: str | None = None) -> "DriverProfileRepository":
        settings = get_settings()
        return cls(
            base_url=settings.supabase_url,
            api_key=settings.supabase_anon_key,
            access_token=access_token,
            max_attempts=settings.http_max_attempts,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        response = await request_with_retry(
            self._client,
            method,
            self._url,
            max_attempts=self.max_attempts,
            headers=headers,
            **kwargs,
        )
        if not response.is_success:
            raise UpstreamError(
                message=f"Driver profile request failed ({response.status_code})",
                code="upstream.driver_profiles",
                meta={"method": method, "status_code": response.status_code, "body": response.text[:500]},
            )
        return response

    async def get_profile(self, user_id: str) -> dict[str, Any] | None:
        response = await self._request("GET", params={"id": f"eq.{user_id}", "select": "*"})
        rows = response.json()
        return rows[0] if rows else None

    async def ensure_profile(self, user_id: str) -> None:
        """Create the profile row with defaults if it does not exist yet."""
        if await self.get_profile(user_id) is not None:
            return
        logger.info("Creating driver profile", user_id=user_id)
        await self._request(
            "POST",
            json=[{"id": user_id, **DEFAULT_PROFILE}],
            headers={"Prefer": "return=minimal"},
        )

    async def update_profile(self, user_id: str, updates: dict[str, Any]) -> None:
        await self.ensure_profile(user_id)
        await self._request(
            "PATCH",
            params={"id": f"eq.{user_id}"},
            json=updates,
            headers={"Prefer": "return=minimal"},
        )
