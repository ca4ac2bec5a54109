"""
Driver API client

Endpoints the runner app posts to: delivery status updates, location pings,
earnings sync and delivery offers.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from partsrunner.api.http import request_with_retry
from partsrunner.config import get_settings
from partsrunner.kernel.serialization import to_jsonable
from partsrunner.sync.models import DeliveryUpdate, GeoPoint, ItemType, OfflineItem

logger = structlog.get_logger()

DELIVERY_UPDATE_PATH = "/api/driver/deliveries/update"
LOCATION_PATH = "/api/driver/location"
EARNINGS_SYNC_PATH = "/api/driver/earnings/sync"
PROFILE_PATH = "/api/driver/profile"


class DriverApiClient:
    def __init__(
        self,
        *,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        auth_token: str | None = None,
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        base_backoff: float = 0.5,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._base_url = base_url.rstrip("/")
        self._headers = headers
        self.max_attempts = max_attempts
        self.base_backoff = base_backoff

    @classmethod
    def from_settings(cls) -> "DriverApiClient":
        settings = get_settings()
        return cls(
            base_url=settings.api_base_url,
            auth_token=settings.api_auth_token,
            timeout_seconds=settings.api_timeout_seconds,
            max_attempts=settings.http_max_attempts,
        )

    @property
    def http(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "DriverApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _post(self, path: str, body: Any | None = None) -> httpx.Response:
        kwargs: dict[str, Any] = {"headers": self._headers}
        if body is not None:
            kwargs["json"] = body
        return await request_with_retry(
            self._client,
            "POST",
            f"{self._base_url}{path}",
            max_attempts=self.max_attempts,
            base_backoff=self.base_backoff,
            **kwargs,
        )

    async def _post_ok(self, path: str, body: Any | None = None) -> bool:
        response = await self._post(path, body)
        if not response.is_success:
            logger.warning("Driver API rejected request", path=path, status_code=response.status_code)
        return response.is_success

    async def post_delivery_update(self, update: DeliveryUpdate) -> bool:
        return await self._post_ok(DELIVERY_UPDATE_PATH, update.to_wire())

    async def post_location(self, point: GeoPoint, *, timestamp: int | None = None) -> bool:
        body = point.to_wire()
        if timestamp is not None:
            body["timestamp"] = timestamp
        return await self._post_ok(LOCATION_PATH, body)

    async def sync_earnings(self) -> bool:
        return await self._post_ok(EARNINGS_SYNC_PATH)

    async def accept_delivery(self, delivery_id: str) -> bool:
        return await self._post_ok("/api/driver/deliveries/accept", {"deliveryId": delivery_id})

    async def decline_delivery(self, delivery_id: str) -> bool:
        return await self._post_ok("/api/driver/deliveries/decline", {"deliveryId": delivery_id})

    async def sync_item(self, item: OfflineItem) -> bool:
        """Deliver one offline-queue item to the endpoint for its type."""
        if item.type == ItemType.DELIVERY:
            path = DELIVERY_UPDATE_PATH
        elif item.type == ItemType.LOCATION:
            path = LOCATION_PATH
        elif item.type == ItemType.PROFILE:
            path = PROFILE_PATH
        else:
            path = f"/api/driver/sync/{item.type.value}"
        return await self._post_ok(
            path,
            {"id": item.id, "action": item.action.value, "timestamp": item.timestamp, "data": to_jsonable(item.data)},
        )
