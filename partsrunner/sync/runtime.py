"""Wiring for entry points: storage, API client, connectivity and both queues."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from partsrunner.api.client import DriverApiClient
from partsrunner.config import get_settings
from partsrunner.connectivity import ConnectivityMonitor
from partsrunner.notifications import Notifier, log_notifier
from partsrunner.storage import KeyValueStore, get_key_value_store
from partsrunner.sync.delivery_queue import OfflineDeliveryQueue
from partsrunner.sync.models import ItemType
from partsrunner.sync.offline_queue import OfflineSyncQueue, SyncOptions


@dataclass
class SyncRuntime:
    store: KeyValueStore
    api: DriverApiClient
    connectivity: ConnectivityMonitor
    deliveries: OfflineDeliveryQueue
    offline: OfflineSyncQueue


def build_offline_queue(
    *,
    store: KeyValueStore,
    api: DriverApiClient,
    connectivity: ConnectivityMonitor,
    options: SyncOptions | None = None,
    notifier: Notifier = log_notifier,
) -> OfflineSyncQueue:
    """Offline queue with every item type routed through the driver API."""
    return OfflineSyncQueue(
        store=store,
        connectivity=connectivity,
        handlers={item_type: api.sync_item for item_type in ItemType},
        options=options,
        notifier=notifier,
    )


@asynccontextmanager
async def open_runtime(
    *,
    online: bool = True,
    store: KeyValueStore | None = None,
    api: DriverApiClient | None = None,
    notifier: Notifier = log_notifier,
) -> AsyncIterator[SyncRuntime]:
    settings = get_settings()
    store = store or get_key_value_store()
    api = api or DriverApiClient.from_settings()
    connectivity = ConnectivityMonitor(online=online, probe_url=settings.connectivity_probe_url)

    deliveries = OfflineDeliveryQueue(store=store, sender=api, connectivity=connectivity, notifier=notifier)
    offline = build_offline_queue(
        store=store,
        api=api,
        connectivity=connectivity,
        options=SyncOptions.from_settings(),
        notifier=notifier,
    )
    await deliveries.load()
    await offline.load()

    try:
        yield SyncRuntime(
            store=store,
            api=api,
            connectivity=connectivity,
            deliveries=deliveries,
            offline=offline,
        )
    finally:
        await offline.aclose()
        await api.aclose()
