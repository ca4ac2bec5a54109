"""Offline tracking helpers built on the retrying sync queue."""

from __future__ import annotations

from typing import Any, Generic, Literal, TypeVar

from partsrunner.kernel.errors import ValidationError
from partsrunner.kernel.ids import new_timestamp_id
from partsrunner.kernel.time import isoformat_z, utc_now
from partsrunner.storage import KeyValueStore, load_json, save_json
from partsrunner.sync.models import ItemAction, ItemType
from partsrunner.sync.offline_queue import OfflineSyncQueue

T = TypeVar("T")

DeliveryEventType = Literal["pickup", "delivery", "failed", "returned"]
DELIVERY_EVENT_TYPES = {"pickup", "delivery", "failed", "returned"}


class OfflineDeliveryTracker:
    """Queues location pings and delivery events for later sync."""

    def __init__(self, queue: OfflineSyncQueue) -> None:
        self._queue = queue
        self.tracking_data: list[dict[str, Any]] = []

    @property
    def is_online(self) -> bool:
        return self._queue.is_online

    async def track_location(self, lat: float, lng: float, timestamp: str | None = None) -> dict[str, Any]:
        tracking = {
            "lat": lat,
            "lng": lng,
            "timestamp": timestamp or isoformat_z(utc_now()),
            "id": new_timestamp_id("location"),
        }
        self.tracking_data.append(tracking)
        await self._queue.queue_data(ItemType.LOCATION, ItemAction.CREATE, tracking)
        return tracking

    async def track_delivery_event(
        self,
        delivery_id: str,
        event_type: DeliveryEventType,
        *,
        timestamp: str | None = None,
        notes: str | None = None,
        photos: list[str] | None = None,
    ) -> dict[str, Any]:
        if event_type not in DELIVERY_EVENT_TYPES:
            raise ValidationError(
                message=f"Unknown delivery event type: {event_type!r}",
                code="tracking.invalid_event_type",
            )
        event: dict[str, Any] = {
            "deliveryId": delivery_id,
            "eventType": event_type,
            "timestamp": timestamp or isoformat_z(utc_now()),
            "id": new_timestamp_id("event"),
        }
        if notes is not None:
            event["notes"] = notes
        if photos is not None:
            event["photos"] = photos
        await self._queue.queue_data(ItemType.DELIVERY, ItemAction.CREATE, event)
        return event


class OfflineSetting(Generic[T]):
    """A locally persisted value whose edits are queued as profile updates."""

    def __init__(self, *, store: KeyValueStore, queue: OfflineSyncQueue, key: str, default: T) -> None:
        self._store = store
        self._queue = queue
        self.key = key
        self.value: T = default

    async def load(self) -> T:
        self.value = await load_json(self._store, self.key, self.value)
        return self.value

    async def update(self, value: T) -> None:
        self.value = value
        await save_json(self._store, self.key, value)
        await self._queue.queue_data(ItemType.PROFILE, ItemAction.UPDATE, {"key": self.key, "value": value})
