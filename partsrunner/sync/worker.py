"""
Background Sync Worker

Headless counterpart of the driver app's background sync: keeps probing
connectivity and flushes both offline queues whenever the device is online.
"""

from __future__ import annotations

import asyncio
import signal
from typing import Any

import structlog

from partsrunner.config import get_settings
from partsrunner.driver.location import LocationError, LocationProvider
from partsrunner.kernel.errors import ValidationError
from partsrunner.monitoring.logging import configure_logging
from partsrunner.sync.models import GeoPoint
from partsrunner.sync.runtime import SyncRuntime, open_runtime

logger = structlog.get_logger()

SYNC_TAGS = ("delivery-update", "location-update", "earnings-sync")


class SyncWorker:
    def __init__(
        self,
        runtime: SyncRuntime,
        *,
        poll_interval: float | None = None,
        location_provider: LocationProvider | None = None,
    ) -> None:
        self.runtime = runtime
        self.poll_interval = (
            poll_interval if poll_interval is not None else get_settings().sync_worker_poll_interval_seconds
        )
        self._location_provider = location_provider
        self._shutdown = asyncio.Event()

    async def run_forever(self) -> None:
        logger.info("Sync worker starting", poll_interval=self.poll_interval)
        while not self._shutdown.is_set():
            # Never crash the worker loop because of a single pass.
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("Sync pass failed", error=str(exc))

            try:
                await asyncio.wait_for(self._shutdown.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Sync worker stopped")

    async def shutdown(self) -> None:
        self._shutdown.set()

    async def run_once(self) -> dict[str, Any]:
        runtime = self.runtime
        was_online = runtime.connectivity.is_online
        online = await runtime.connectivity.probe(runtime.api.http)
        if not online:
            logger.debug("Skipping sync pass while offline")
            return {"online": False, "deliveries_synced": 0}

        synced = 0
        if was_online:
            synced = await runtime.deliveries.sync_pending_updates()
            await runtime.offline.sync_all()
        else:
            # The reconnect itself flushed the queues through their subscriptions.
            logger.info("Connectivity restored, queues flushed on reconnect")
            if not runtime.offline.options.sync_on_connect:
                await runtime.offline.sync_all()
        return {
            "online": True,
            "deliveries_synced": synced,
            "deliveries_pending": runtime.deliveries.get_pending_updates_count(),
            "offline_queue_size": runtime.offline.get_queue_size(),
        }

    async def dispatch(self, tag: str) -> dict[str, Any]:
        """Run one background sync by tag."""
        if tag == "delivery-update":
            synced = await self.runtime.deliveries.sync_pending_updates()
            return {"tag": tag, "synced": synced}
        if tag == "location-update":
            return await self._sync_location()
        if tag == "earnings-sync":
            ok = await self.runtime.api.sync_earnings()
            return {"tag": tag, "synced": ok}
        raise ValidationError(
            message=f"Unknown sync tag: {tag!r}",
            code="sync.unknown_tag",
            meta={"supported": list(SYNC_TAGS)},
        )

    async def _sync_location(self) -> dict[str, Any]:
        if self._location_provider is None:
            logger.info("Location sync skipped (no provider)")
            return {"tag": "location-update", "synced": False}
        try:
            fix = await self._location_provider.get_current_position(
                high_accuracy=True, timeout=10.0, maximum_age=0.0
            )
        except LocationError as exc:
            logger.warning("Location sync failed", error=exc.message)
            return {"tag": "location-update", "synced": False}
        ok = await self.runtime.api.post_location(
            GeoPoint(latitude=fix.latitude, longitude=fix.longitude),
            timestamp=fix.timestamp,
        )
        return {"tag": "location-update", "synced": ok}


async def _run() -> None:
    configure_logging()
    async with open_runtime() as runtime:
        worker = SyncWorker(runtime)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: asyncio.create_task(worker.shutdown()))
            except NotImplementedError:
                signal.signal(sig, lambda *_: asyncio.create_task(worker.shutdown()))

        await worker.run_forever()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
