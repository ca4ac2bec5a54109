"""
Offline queue tooling (Inspect / Flush / Clear)

  python -m partsrunner.sync.cli inspect
  python -m partsrunner.sync.cli flush
  python -m partsrunner.sync.cli clear
"""

from __future__ import annotations

import argparse
import sys
from typing import Any

import structlog

from partsrunner.kernel.serialization import json_dumps
from partsrunner.sync.runtime import SyncRuntime

logger = structlog.get_logger()


def _print_json(data: dict[str, Any]) -> None:
    sys.stdout.write(json_dumps(data) + "\n")
    sys.stdout.flush()


async def cmd_inspect(runtime: SyncRuntime, args: argparse.Namespace) -> int:
    shown = 0
    for update in runtime.deliveries.pending_updates:
        if shown >= args.limit:
            return 0
        _print_json({"queue": "delivery", **update.to_wire()})
        shown += 1
    for item in runtime.offline.pending_items:
        if shown >= args.limit:
            return 0
        _print_json({"queue": "offline", **item.to_wire()})
        shown += 1
    return 0


async def cmd_flush(runtime: SyncRuntime, args: argparse.Namespace) -> int:
    synced = await runtime.deliveries.sync_pending_updates()
    await runtime.offline.sync_all()
    _print_json(
        {
            "status": "flushed",
            "deliveries_synced": synced,
            "deliveries_pending": runtime.deliveries.get_pending_updates_count(),
            "offline_queue_size": runtime.offline.get_queue_size(),
        }
    )
    return 0


async def cmd_clear(runtime: SyncRuntime, args: argparse.Namespace) -> int:
    if not args.yes:
        sys.stderr.write("Refusing to clear offline data without --yes\n")
        return 2
    dropped = runtime.deliveries.get_pending_updates_count()
    await runtime.deliveries.clear_offline_data()
    _print_json({"status": "cleared", "dropped_updates": dropped})
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="partsrunner-sync", description="Inspect/flush/clear offline queues")
    sub = parser.add_subparsers(dest="cmd", required=True)

    inspect_p = sub.add_parser("inspect", help="Print pending delivery updates and queued items")
    inspect_p.add_argument("--limit", type=int, default=100)
    inspect_p.set_defaults(func=cmd_inspect)

    flush_p = sub.add_parser("flush", help="Run one sync pass against the driver API")
    flush_p.set_defaults(func=cmd_flush)

    clear_p = sub.add_parser("clear", help="Drop cached deliveries, pending updates and photos")
    clear_p.add_argument("--yes", action="store_true", default=False)
    clear_p.set_defaults(func=cmd_clear)

    return parser


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = _build_parser()
    args = parser.parse_args(argv)

    import asyncio

    from partsrunner.monitoring.logging import configure_logging
    from partsrunner.sync.runtime import open_runtime

    configure_logging()

    async def _run() -> int:
        async with open_runtime(online=args.cmd == "flush") as runtime:
            return await args.func(runtime, args)

    return asyncio.run(_run())


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
