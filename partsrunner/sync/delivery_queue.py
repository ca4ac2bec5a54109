"""
Offline Delivery Sync Queue

Buffers delivery status updates (pickup, in transit, delivered, failed) made
while the runner has no connectivity and flushes them to the driver API once
it returns.

- Pending updates and cached deliveries persist under fixed storage keys and
  are reloaded by `load()`.
- Enqueue persists first, then sends immediately only when online.
- A flush walks the unsynced updates in order; an acknowledged update is
  dropped from the persisted list, a rejected one stays for the next flush.

Best effort only: no cross-device ordering and no deduplication beyond the
generated update id.
"""

from __future__ import annotations

import base64
from typing import Any, Protocol

import httpx
import structlog

from partsrunner.connectivity import ConnectivityMonitor
from partsrunner.kernel.errors import PartsRunnerError, StorageError
from partsrunner.kernel.ids import new_prefixed_id
from partsrunner.kernel.time import epoch_millis
from partsrunner.monitoring.metrics import pending_queue_depth, sync_attempts_total
from partsrunner.notifications import Notice, Notifier, log_notifier
from partsrunner.storage import KeyValueStore, load_json, save_json
from partsrunner.sync.models import DeliveryStatus, DeliveryUpdate, GeoPoint, OfflineDelivery

logger = structlog.get_logger()

DELIVERIES_KEY = "driver_offline_deliveries"
UPDATES_KEY = "driver_pending_updates"
PHOTO_KEY_PREFIX = "delivery_photo_"


class DeliveryUpdateSender(Protocol):
    async def post_delivery_update(self, update: DeliveryUpdate) -> bool: ...


class OfflineDeliveryQueue:
    def __init__(
        self,
        *,
        store: KeyValueStore,
        sender: DeliveryUpdateSender,
        connectivity: ConnectivityMonitor,
        notifier: Notifier = log_notifier,
    ) -> None:
        self._store = store
        self._sender = sender
        self._connectivity = connectivity
        self._notify = notifier
        self._deliveries: list[OfflineDelivery] = []
        self._pending: list[DeliveryUpdate] = []
        self._sync_in_progress = False
        connectivity.subscribe(self._on_connectivity_change)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def offline_deliveries(self) -> list[OfflineDelivery]:
        return list(self._deliveries)

    @property
    def pending_updates(self) -> list[DeliveryUpdate]:
        return [u for u in self._pending if not u.synced]

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_in_progress

    @property
    def has_unsynced_data(self) -> bool:
        return any(not u.synced for u in self._pending)

    @property
    def last_sync_time(self) -> int:
        return max((d.last_synced for d in self._deliveries), default=0)

    def get_pending_updates_count(self) -> int:
        return len(self.pending_updates)

    def get_delivery_by_id(self, delivery_id: str) -> OfflineDelivery | None:
        return next((d for d in self._deliveries if d.id == delivery_id), None)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        deliveries = await load_json(self._store, DELIVERIES_KEY, [])
        updates = await load_json(self._store, UPDATES_KEY, [])
        try:
            self._deliveries = [OfflineDelivery.model_validate(d) for d in deliveries]
            self._pending = [DeliveryUpdate.model_validate(u) for u in updates]
        except ValueError as exc:
            logger.error("Failed to load offline data", error=str(exc))
            self._deliveries, self._pending = [], []
        self._record_depth()
        logger.info(
            "Offline delivery data loaded",
            deliveries=len(self._deliveries),
            pending_updates=len(self._pending),
        )

    async def _persist(self) -> None:
        self._record_depth()
        try:
            await save_json(self._store, DELIVERIES_KEY, [d.to_wire() for d in self._deliveries])
            await save_json(self._store, UPDATES_KEY, [u.to_wire() for u in self._pending])
        except StorageError as exc:
            logger.error("Failed to save offline data", error=exc.message, meta=exc.meta)
            self._notify(
                Notice(
                    title="Storage Error",
                    description="Failed to save data locally. Please free up storage space.",
                    variant="destructive",
                )
            )

    def _record_depth(self) -> None:
        pending_queue_depth.labels(queue="delivery").set(len(self.pending_updates))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def cache_delivery(self, delivery: dict[str, Any] | OfflineDelivery) -> OfflineDelivery:
        """Keep a local copy of an assigned delivery for offline use."""
        source = delivery if isinstance(delivery, OfflineDelivery) else OfflineDelivery.model_validate(delivery)
        cached = source.model_copy(update={"local_updates": [], "last_synced": epoch_millis()})

        self._deliveries = [d for d in self._deliveries if d.id != cached.id] + [cached]
        await self._persist()
        return cached

    async def update_delivery_status(
        self,
        delivery_id: str,
        status: DeliveryStatus | str,
        *,
        location: GeoPoint | None = None,
        photos: list[str] | None = None,
        notes: str | None = None,
        signature: str | None = None,
    ) -> DeliveryUpdate:
        """Record a status change locally, then try to send it if online."""
        status = DeliveryStatus(status)
        update = DeliveryUpdate(
            id=new_prefixed_id("update"),
            delivery_id=delivery_id,
            status=status,
            timestamp=epoch_millis(),
            location=location,
            photos=photos,
            notes=notes,
            signature=signature,
            synced=False,
        )

        delivery = self.get_delivery_by_id(delivery_id)
        if delivery is not None:
            delivery.status = status.value
            delivery.local_updates.append(update.model_copy())

        self._pending.append(update)
        await self._persist()

        online = self._connectivity.is_online
        self._notify(
            Notice(
                title=f"Delivery {status.label}",
                description="Syncing with server..." if online else "Saved locally, will sync when online",
            )
        )

        if online:
            await self.sync_single_update(update)

        return update

    async def sync_single_update(self, update: DeliveryUpdate) -> bool:
        """Send one update. True once the server acknowledged it."""
        if update.synced:
            return True

        try:
            ok = await self._sender.post_delivery_update(update)
        except (httpx.HTTPError, PartsRunnerError) as exc:
            logger.warning("Failed to sync update", update_id=update.id, error=str(exc))
            ok = False

        if not ok:
            sync_attempts_total.labels(queue="delivery", outcome="failed").inc()
            return False

        sync_attempts_total.labels(queue="delivery", outcome="synced").inc()
        update.synced = True
        self._pending = [u for u in self._pending if u.id != update.id and not u.synced]
        delivery = self.get_delivery_by_id(update.delivery_id)
        if delivery is not None:
            for local in delivery.local_updates:
                if local.id == update.id:
                    local.synced = True
        await self._persist()
        logger.info("Delivery update synced", update_id=update.id, delivery_id=update.delivery_id)
        return True

    async def sync_pending_updates(self) -> int:
        """Flush every unsynced update in order. Returns how many were acknowledged."""
        if self._sync_in_progress or not self._pending:
            return 0

        self._sync_in_progress = True
        synced_count = 0
        try:
            for update in list(self.pending_updates):
                if await self.sync_single_update(update):
                    synced_count += 1
        finally:
            self._sync_in_progress = False

        if synced_count > 0:
            self._notify(
                Notice(title="Sync Complete", description=f"{synced_count} update(s) synced successfully")
            )
        elif self.pending_updates:
            self._notify(
                Notice(
                    title="Sync Failed",
                    description="Some updates could not be synced. Will retry automatically.",
                    variant="destructive",
                )
            )
        return synced_count

    async def store_photo(self, delivery_id: str, data: bytes, *, content_type: str = "image/jpeg") -> list[str]:
        """Store a proof-of-delivery photo locally as a data URL. Returns its storage keys."""
        encoded = base64.b64encode(data).decode("ascii")
        photo_key = f"{PHOTO_KEY_PREFIX}{delivery_id}_{epoch_millis()}"
        await self._store.set(photo_key, f"data:{content_type};base64,{encoded}")
        return [photo_key]

    async def get_stored_photo(self, photo_key: str) -> str | None:
        try:
            return await self._store.get(photo_key)
        except StorageError as exc:
            logger.error("Failed to retrieve photo", photo_key=photo_key, error=exc.message)
            return None

    async def clear_offline_data(self) -> None:
        self._deliveries = []
        self._pending = []
        await self._store.remove(DELIVERIES_KEY)
        await self._store.remove(UPDATES_KEY)
        for key in await self._store.keys(PHOTO_KEY_PREFIX):
            await self._store.remove(key)
        self._record_depth()

    async def _on_connectivity_change(self, online: bool) -> None:
        if online:
            self._notify(Notice(title="Back Online", description="Syncing pending updates..."))
            await self.sync_pending_updates()
        else:
            self._notify(
                Notice(
                    title="Offline Mode",
                    description="Your updates will be saved locally and synced when back online.",
                    variant="destructive",
                )
            )
