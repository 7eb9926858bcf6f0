"""Command line entry point: ``spec-sync serve | tick | mcp``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys

from spec_sync.config import SYNC_SETTINGS, SyncSettings
from spec_sync.sync.manager import SyncManager

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


async def _serve(settings: SyncSettings) -> None:
    manager = SyncManager(settings)
    await manager.run_forever()


async def _tick(settings: SyncSettings) -> int:
    """Run one tick without starting background services."""
    manager = SyncManager(settings)
    try:
        report = await manager.scheduler.tick()
    finally:
        await manager.stop()

    for sync_report in report.reports:
        print(f"{sync_report.repository_name}: {sync_report.summary}")
    print(f"Succeeded: {report.succeeded}, Failed: {report.failed}, Skipped: {report.skipped}")
    return 1 if report.failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spec-sync", description=__doc__)
    parser.add_argument("--log-level", default=None, help="Override SPEC_SYNC_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("serve", help="Run the scheduler and webhook server until interrupted")
    sub.add_parser("tick", help="Sync every active, due repository once")
    sub.add_parser("mcp", help="Run the MCP server over stdio")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = SYNC_SETTINGS
    _configure_logging(args.log_level or settings.log_level)

    if args.command == "mcp":
        from spec_sync.mcp.server import main as mcp_main

        mcp_main()
        return 0

    if args.command == "tick":
        return asyncio.run(_tick(settings))

    logger.info("Starting spec-sync (store: %s)", settings.store_path)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_serve(settings))
    return 0


if __name__ == "__main__":
    sys.exit(main())
