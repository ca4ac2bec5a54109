"""
Retrying offline sync queue

General-purpose variant of the delivery queue: any record type (orders,
deliveries, messages, locations, photos, profile edits) is queued with a
retry counter and handed to the handler registered for its type.

Retry policy:
- a failed item is retried while `retry_count < max_retries`
- `sync_all` schedules one delayed retry per failure after
  `retry_delay * retry_count` seconds
- items at the cap stay queued as `failed` and are never retried
  automatically again
- an acknowledged item is dropped from the persisted queue at once
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
import structlog

from partsrunner.config import get_settings
from partsrunner.connectivity import ConnectivityMonitor
from partsrunner.kernel.errors import PartsRunnerError, StorageError
from partsrunner.kernel.ids import new_prefixed_id
from partsrunner.kernel.time import isoformat_z, utc_now
from partsrunner.monitoring.metrics import pending_queue_depth, sync_attempts_total
from partsrunner.notifications import Notice, Notifier, log_notifier
from partsrunner.storage import KeyValueStore, load_json, save_json
from partsrunner.sync.models import ItemAction, ItemType, OfflineItem, SyncStatus

logger = structlog.get_logger()

QUEUE_KEY = "mypartsrunner_offline_queue"

SyncHandler = Callable[[OfflineItem], Awaitable[bool]]


@dataclass(frozen=True)
class SyncOptions:
    max_retries: int = 3
    retry_delay: float = 5.0
    sync_on_connect: bool = True
    batch_size: int = 5
    batch_pause: float = 0.1
    max_queue_size: int = 1000

    @classmethod
    def from_settings(cls) -> "SyncOptions":
        settings = get_settings()
        return cls(
            max_retries=settings.sync_max_retries,
            retry_delay=settings.sync_retry_delay_seconds,
            sync_on_connect=settings.sync_on_connect,
            batch_size=settings.sync_batch_size,
            batch_pause=settings.sync_batch_pause_seconds,
            max_queue_size=settings.sync_max_queue_size,
        )


class OfflineSyncQueue:
    def __init__(
        self,
        *,
        store: KeyValueStore,
        connectivity: ConnectivityMonitor,
        handlers: dict[ItemType, SyncHandler] | None = None,
        options: SyncOptions | None = None,
        notifier: Notifier = log_notifier,
    ) -> None:
        self._store = store
        self._notify = notifier
        self._connectivity = connectivity
        self._handlers: dict[ItemType, SyncHandler] = dict(handlers or {})
        self.options = options or SyncOptions()
        self._items: list[OfflineItem] = []
        self._retry_tasks: set[asyncio.Task[None]] = set()
        self.sync_progress: float = 0.0
        connectivity.subscribe(self._on_connectivity_change)

    def register_handler(self, item_type: ItemType, handler: SyncHandler) -> None:
        self._handlers[item_type] = handler

    @property
    def pending_items(self) -> list[OfflineItem]:
        return list(self._items)

    @property
    def is_online(self) -> bool:
        return self._connectivity.is_online

    def get_queue_size(self) -> int:
        return len(self._items)

    def _get(self, item_id: str) -> OfflineItem | None:
        return next((i for i in self._items if i.id == item_id), None)

    def _is_eligible(self, item: OfflineItem) -> bool:
        if item.sync_status == SyncStatus.PENDING:
            return True
        return item.sync_status == SyncStatus.FAILED and item.retry_count < self.options.max_retries

    async def load(self) -> None:
        raw = await load_json(self._store, QUEUE_KEY, [])
        try:
            self._items = [OfflineItem.model_validate(i) for i in raw]
        except ValueError as exc:
            logger.error("Failed to load offline queue", error=str(exc))
            self._items = []
        # An item caught mid-send by a restart is sent again.
        for item in self._items:
            if item.sync_status == SyncStatus.SYNCING:
                item.sync_status = SyncStatus.PENDING
        self._record_depth()

    async def _persist(self) -> None:
        self._record_depth()
        try:
            await save_json(self._store, QUEUE_KEY, [i.to_wire() for i in self._items])
        except StorageError as exc:
            logger.error("Failed to save offline queue", error=exc.message, meta=exc.meta)
            self._notify(
                Notice(
                    title="Storage Error",
                    description="Failed to save data locally. Please free up storage space.",
                    variant="destructive",
                )
            )

    def _record_depth(self) -> None:
        pending_queue_depth.labels(queue="offline").set(sum(1 for i in self._items if i.is_unsynced))

    async def queue_data(
        self,
        item_type: ItemType | str,
        action: ItemAction | str,
        data: Any,
    ) -> OfflineItem:
        item = OfflineItem(
            id=new_prefixed_id("item"),
            type=ItemType(item_type),
            action=ItemAction(action),
            data=data,
            timestamp=isoformat_z(utc_now()),
        )

        if len(self._items) >= self.options.max_queue_size:
            dropped = self._items[: len(self._items) - self.options.max_queue_size + 1]
            logger.warning(
                "Offline queue is full, removing oldest items",
                dropped=[i.id for i in dropped],
                max_queue_size=self.options.max_queue_size,
            )
            self._items = self._items[len(dropped):]

        self._items.append(item)
        await self._persist()

        if self.is_online:
            await self.sync_item(item)
        return item

    async def sync_item(self, item: OfflineItem) -> bool:
        current = self._get(item.id)
        if current is None:
            return False
        if current.sync_status == SyncStatus.SYNCED:
            return True

        current.sync_status = SyncStatus.SYNCING
        handler = self._handlers.get(current.type)
        try:
            if handler is None:
                logger.warning("Unknown sync type", item_id=current.id, item_type=current.type.value)
                success = False
            else:
                success = await handler(current)
        except (httpx.HTTPError, PartsRunnerError) as exc:
            logger.error("Failed to sync item", item_id=current.id, error=str(exc))
            success = False
        except Exception as exc:
            # A broken handler must not leave the item stuck in `syncing`.
            logger.exception("Sync handler crashed", item_id=current.id, item_type=current.type.value, error=str(exc))
            success = False

        if success:
            current.sync_status = SyncStatus.SYNCED
            self._items = [i for i in self._items if i.id != current.id]
            sync_attempts_total.labels(queue="offline", outcome="synced").inc()
        else:
            current.sync_status = SyncStatus.FAILED
            current.retry_count += 1
            sync_attempts_total.labels(queue="offline", outcome="failed").inc()
            logger.warning(
                "Offline item sync failed",
                item_id=current.id,
                item_type=current.type.value,
                retry_count=current.retry_count,
                max_retries=self.options.max_retries,
            )
        await self._persist()
        return success

    async def sync_all(self) -> None:
        if not self.is_online:
            logger.info("Cannot sync: offline")
            return

        to_sync = [i for i in self._items if self._is_eligible(i)]
        if not to_sync:
            self.sync_progress = 100.0
            return

        self.sync_progress = 0.0
        completed = 0
        size = max(1, self.options.batch_size)

        async def _run(item: OfflineItem) -> None:
            nonlocal completed
            success = await self.sync_item(item)
            if not success and item.retry_count < self.options.max_retries:
                self._schedule_retry(item.id, self.options.retry_delay * item.retry_count)
            completed += 1
            self.sync_progress = completed / len(to_sync) * 100

        for start in range(0, len(to_sync), size):
            batch = to_sync[start : start + size]
            results = await asyncio.gather(*(_run(i) for i in batch), return_exceptions=True)
            for item, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error("Unhandled error syncing item", item_id=item.id, error=str(result))
            if start + size < len(to_sync):
                await asyncio.sleep(self.options.batch_pause)

    def _schedule_retry(self, item_id: str, delay: float) -> None:
        task = asyncio.create_task(self._retry_later(item_id, delay))
        self._retry_tasks.add(task)
        task.add_done_callback(self._retry_tasks.discard)

    async def _retry_later(self, item_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        item = self._get(item_id)
        if item is None or item.sync_status != SyncStatus.FAILED:
            return
        if item.retry_count >= self.options.max_retries or not self.is_online:
            return
        await self.sync_item(item)

    async def retry_failed(self) -> None:
        for item in [i for i in self._items if i.sync_status == SyncStatus.FAILED]:
            if item.retry_count < self.options.max_retries:
                await self.sync_item(item)

    async def clear_synced(self) -> None:
        before = len(self._items)
        self._items = [i for i in self._items if i.sync_status != SyncStatus.SYNCED]
        if len(self._items) != before:
            await self._persist()

    async def wait_for_retries(self) -> None:
        """Wait until every scheduled retry has run."""
        while self._retry_tasks:
            await asyncio.gather(*list(self._retry_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._retry_tasks):
            task.cancel()
        await asyncio.gather(*list(self._retry_tasks), return_exceptions=True)
        self._retry_tasks.clear()
        self._connectivity.unsubscribe(self._on_connectivity_change)

    async def _on_connectivity_change(self, online: bool) -> None:
        if online and self.options.sync_on_connect:
            await self.sync_all()
