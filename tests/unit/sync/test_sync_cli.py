from __future__ import annotations

import argparse
import json

import pytest

from partsrunner.sync.cli import _build_parser, cmd_clear, cmd_flush, cmd_inspect
from tests.support.runtime import DriverApiStub, build_runtime

pytestmark = pytest.mark.unit


def _lines(capsys) -> list[dict]:
    out = capsys.readouterr().out
    return [json.loads(line) for line in out.splitlines() if line.strip()]


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        _build_parser().parse_args([])


def test_parser_wires_subcommands():
    args = _build_parser().parse_args(["inspect", "--limit", "5"])
    assert args.func is cmd_inspect
    assert args.limit == 5
    assert _build_parser().parse_args(["clear"]).yes is False


@pytest.mark.asyncio
async def test_inspect_lists_both_queues(capsys):
    runtime = build_runtime(DriverApiStub(), online=False)
    await runtime.deliveries.update_delivery_status("d1", "picked_up")
    await runtime.offline.queue_data("location", "create", {"lat": 1, "lng": 2})
    capsys.readouterr()

    code = await cmd_inspect(runtime, argparse.Namespace(limit=100))

    rows = _lines(capsys)
    assert code == 0
    assert [r["queue"] for r in rows] == ["delivery", "offline"]
    assert rows[0]["deliveryId"] == "d1"
    assert rows[1]["syncStatus"] == "pending"


@pytest.mark.asyncio
async def test_inspect_honours_limit(capsys):
    runtime = build_runtime(DriverApiStub(), online=False)
    for n in range(3):
        await runtime.deliveries.update_delivery_status(f"d{n}", "in_transit")
    capsys.readouterr()

    await cmd_inspect(runtime, argparse.Namespace(limit=2))

    assert len(_lines(capsys)) == 2


@pytest.mark.asyncio
async def test_flush_reports_counts(capsys):
    stub = DriverApiStub()
    runtime = build_runtime(stub, online=False)
    await runtime.deliveries.update_delivery_status("d1", "delivered")
    await runtime.connectivity.set_online(True)
    await runtime.deliveries.update_delivery_status("d2", "delivered")
    capsys.readouterr()

    code = await cmd_flush(runtime, argparse.Namespace())

    assert code == 0
    assert _lines(capsys) == [
        {"status": "flushed", "deliveries_synced": 0, "deliveries_pending": 0, "offline_queue_size": 0}
    ]
    assert stub.paths.count("/api/driver/deliveries/update") == 2


@pytest.mark.asyncio
async def test_clear_requires_confirmation(capsys):
    runtime = build_runtime(DriverApiStub(), online=False)
    await runtime.deliveries.update_delivery_status("d1", "failed")

    code = await cmd_clear(runtime, argparse.Namespace(yes=False))

    assert code == 2
    assert "--yes" in capsys.readouterr().err
    assert runtime.deliveries.get_pending_updates_count() == 1


@pytest.mark.asyncio
async def test_clear_drops_offline_data(capsys):
    runtime = build_runtime(DriverApiStub(), online=False)
    await runtime.deliveries.update_delivery_status("d1", "failed")
    capsys.readouterr()

    code = await cmd_clear(runtime, argparse.Namespace(yes=True))

    assert code == 0
    assert _lines(capsys) == [{"status": "cleared", "dropped_updates": 1}]
    assert runtime.deliveries.get_pending_updates_count() == 0
