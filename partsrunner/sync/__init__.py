"""
Offline sync

Queues that hold driver updates while offline and flush them when
connectivity returns.
"""

from partsrunner.sync.delivery_queue import OfflineDeliveryQueue
from partsrunner.sync.models import (
    DeliveryStatus,
    DeliveryUpdate,
    GeoPoint,
    ItemAction,
    ItemType,
    OfflineDelivery,
    OfflineItem,
    SyncStatus,
)
from partsrunner.sync.offline_queue import OfflineSyncQueue, SyncOptions
from partsrunner.sync.tracking import OfflineDeliveryTracker, OfflineSetting

__all__ = [
    # Queues
    "OfflineDeliveryQueue",
    "OfflineSyncQueue",
    "SyncOptions",
    # Tracking
    "OfflineDeliveryTracker",
    "OfflineSetting",
    # Models
    "DeliveryStatus",
    "DeliveryUpdate",
    "GeoPoint",
    "ItemAction",
    "ItemType",
    "OfflineDelivery",
    "OfflineItem",
    "SyncStatus",
]
