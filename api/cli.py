#!/usr/bin/env python3
"""CLI for Streak Challenge API operations.

Usage:
    python -m cli <command>

Commands:
    serve                      Run the API with uvicorn
    show-clock COMMUNITY       Print the community's effective clock
    repair-stats COMMUNITY     Recompute today's check-in count from the day set
"""

import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def cmd_serve(host: str, port: int) -> int:
    """Run the API server."""
    import uvicorn

    uvicorn.run("main:app", host=host, port=port)
    return 0


async def _show_clock(community_id: str) -> None:
    from core.store import create_store, dispose_store
    from services import clock_service

    store = create_store()
    try:
        reading = await clock_service.now(store, community_id)
    finally:
        await dispose_store(store)

    logger.info(
        "Community %s: effective day %d (wall day %d, offset %ds), "
        "%ds until reset",
        community_id,
        reading.day_number,
        reading.wall_day_number,
        reading.offset_seconds,
        reading.seconds_until_reset,
    )


def cmd_show_clock(community_id: str) -> int:
    asyncio.run(_show_clock(community_id))
    return 0


async def _repair_stats(community_id: str) -> None:
    from core.store import create_store, dispose_store
    from services import clock_service, stats_service

    store = create_store()
    try:
        day = await clock_service.today(store, community_id)
        result = await stats_service.repair_checkins_today(store, community_id, day)
    finally:
        await dispose_store(store)

    logger.info(
        "Day %d checkins_today: %d -> %d", result.day, result.before, result.after
    )


def cmd_repair_stats(community_id: str) -> int:
    """Recompute today's check-in counter for one community."""
    asyncio.run(_repair_stats(community_id))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Streak Challenge API CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve = subparsers.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    clock = subparsers.add_parser(
        "show-clock",
        help="Print the community's effective clock",
    )
    clock.add_argument("community_id")

    repair = subparsers.add_parser(
        "repair-stats",
        help="Recompute today's check-in count from the day-membership set",
    )
    repair.add_argument("community_id")

    args = parser.parse_args(argv)

    if args.command == "serve":
        return cmd_serve(args.host, args.port)
    elif args.command == "show-clock":
        return cmd_show_clock(args.community_id)
    elif args.command == "repair-stats":
        return cmd_repair_stats(args.community_id)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
