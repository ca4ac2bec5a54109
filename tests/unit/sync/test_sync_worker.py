from __future__ import annotations

import asyncio

import pytest

from partsrunner.kernel.errors import ValidationError
from partsrunner.sync.offline_queue import SyncOptions
from partsrunner.sync.worker import SyncWorker
from tests.support.fakes import FakeLocationProvider, fix
from tests.support.runtime import DriverApiStub, build_runtime

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_run_once_flushes_both_queues_when_probe_succeeds():
    stub = DriverApiStub(status=503)
    runtime = build_runtime(stub, online=True)
    await runtime.deliveries.update_delivery_status("d1", "picked_up")
    await runtime.offline.queue_data("message", "create", {"text": "arrived"})
    stub.status = 200
    worker = SyncWorker(runtime, poll_interval=0)

    result = await worker.run_once()

    assert result == {
        "online": True,
        "deliveries_synced": 1,
        "deliveries_pending": 0,
        "offline_queue_size": 0,
    }
    assert "/api/driver/deliveries/update" in stub.paths
    assert "/api/driver/sync/message" in stub.paths
    await runtime.offline.aclose()


@pytest.mark.asyncio
async def test_run_once_skips_when_unreachable():
    stub = DriverApiStub(reachable=False)
    runtime = build_runtime(stub, online=False)
    await runtime.offline.queue_data("order", "create", {})

    result = await SyncWorker(runtime, poll_interval=0).run_once()

    assert result == {"online": False, "deliveries_synced": 0}
    assert runtime.connectivity.is_online is False
    assert stub.requests == []


@pytest.mark.asyncio
async def test_dispatch_delivery_update_tag():
    stub = DriverApiStub(status=503)
    runtime = build_runtime(stub, online=True)
    await runtime.deliveries.update_delivery_status("d1", "delivered")
    stub.status = 200

    result = await SyncWorker(runtime, poll_interval=0).dispatch("delivery-update")

    assert result == {"tag": "delivery-update", "synced": 1}


@pytest.mark.asyncio
async def test_dispatch_earnings_sync_tag():
    stub = DriverApiStub()
    runtime = build_runtime(stub, online=True)

    result = await SyncWorker(runtime, poll_interval=0).dispatch("earnings-sync")

    assert result == {"tag": "earnings-sync", "synced": True}
    assert stub.paths == ["/api/driver/earnings/sync"]


@pytest.mark.asyncio
async def test_dispatch_location_update_posts_current_fix():
    stub = DriverApiStub()
    runtime = build_runtime(stub, online=True)
    provider = FakeLocationProvider(fixes=[fix(lat=41.0, lng=-73.0)])

    result = await SyncWorker(runtime, poll_interval=0, location_provider=provider).dispatch("location-update")

    assert result == {"tag": "location-update", "synced": True}
    body = stub.bodies("/api/driver/location")[0]
    assert body["latitude"] == 41.0
    assert body["longitude"] == -73.0


@pytest.mark.asyncio
async def test_dispatch_location_update_without_provider_is_skipped():
    stub = DriverApiStub()
    runtime = build_runtime(stub, online=True)

    result = await SyncWorker(runtime, poll_interval=0).dispatch("location-update")

    assert result == {"tag": "location-update", "synced": False}
    assert stub.requests == []


@pytest.mark.asyncio
async def test_dispatch_unknown_tag_raises():
    runtime = build_runtime(DriverApiStub())

    with pytest.raises(ValidationError) as exc_info:
        await SyncWorker(runtime, poll_interval=0).dispatch("push-everything")

    assert exc_info.value.code == "sync.unknown_tag"


@pytest.mark.asyncio
async def test_run_forever_stops_on_shutdown():
    stub = DriverApiStub()
    runtime = build_runtime(stub)
    worker = SyncWorker(runtime, poll_interval=0.01)

    task = asyncio.create_task(worker.run_forever())
    await asyncio.sleep(0.05)
    await worker.shutdown()
    await asyncio.wait_for(task, timeout=1.0)

    assert runtime.connectivity.is_online is True


@pytest.mark.asyncio
async def test_reconnect_pass_posts_each_item_once():
    stub = DriverApiStub(status=400)
    runtime = build_runtime(stub, online=False, options=SyncOptions(retry_delay=60, batch_pause=0))
    await runtime.deliveries.update_delivery_status("d1", "picked_up")
    await runtime.offline.queue_data("order", "create", {"sku": "BP-100"})

    result = await SyncWorker(runtime, poll_interval=0).run_once()

    assert result["online"] is True
    assert sorted(stub.paths) == ["/api/driver/deliveries/update", "/api/driver/sync/order"]
    assert runtime.offline.pending_items[0].retry_count == 1
    assert runtime.deliveries.get_pending_updates_count() == 1
    await runtime.offline.aclose()


@pytest.mark.asyncio
async def test_reconnect_pass_flushes_offline_queue_without_sync_on_connect():
    stub = DriverApiStub()
    options = SyncOptions(retry_delay=0, batch_pause=0, sync_on_connect=False)
    runtime = build_runtime(stub, online=False, options=options)
    await runtime.offline.queue_data("order", "create", {})

    await SyncWorker(runtime, poll_interval=0).run_once()

    assert stub.paths == ["/api/driver/sync/order"]
    assert runtime.offline.get_queue_size() == 0
