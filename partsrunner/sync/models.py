"""Offline sync records.

Field aliases keep the camelCase names the driver API and previously
persisted queues use.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class DeliveryStatus(str, Enum):
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ")


class ItemType(str, Enum):
    ORDER = "order"
    DELIVERY = "delivery"
    MESSAGE = "message"
    LOCATION = "location"
    PHOTO = "photo"
    PROFILE = "profile"


class ItemAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GeoPoint(_WireModel):
    latitude: float
    longitude: float


class DeliveryUpdate(_WireModel):
    id: str
    delivery_id: str = Field(alias="deliveryId")
    status: DeliveryStatus
    timestamp: int
    location: GeoPoint | None = None
    photos: list[str] | None = None
    notes: str | None = None
    signature: str | None = None
    synced: bool = False


class OfflineDelivery(_WireModel):
    id: str
    customer_name: str = Field(default="", alias="customerName")
    pickup_address: str = Field(default="", alias="pickupAddress")
    delivery_address: str = Field(default="", alias="deliveryAddress")
    items: list[str] = Field(default_factory=list)
    pay_amount: float = Field(default=0, alias="payAmount")
    tips: float = 0
    status: str = ""
    local_updates: list[DeliveryUpdate] = Field(default_factory=list, alias="localUpdates")
    last_synced: int = Field(default=0, alias="lastSynced")


class OfflineItem(_WireModel):
    id: str
    type: ItemType
    action: ItemAction
    data: Any = None
    timestamp: str
    sync_status: SyncStatus = Field(default=SyncStatus.PENDING, alias="syncStatus")
    retry_count: int = Field(default=0, alias="retryCount")

    @property
    def is_unsynced(self) -> bool:
        return self.sync_status != SyncStatus.SYNCED
