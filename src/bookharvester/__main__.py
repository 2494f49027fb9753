"""BookHarvester - unified entry point.

Harvest once (default):
    python -m bookharvester harvest-all --count 10

List books with warnings:
    python -m bookharvester harvest-warnings

Harvest every HARVESTER_POLL_INTERVAL_SEC seconds (APScheduler):
    python -m bookharvester watch

Start Temporal worker:
    python -m bookharvester temporal
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv


def setup_logging(level: str = "INFO"):
    """Setup logging configuration."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="BookHarvester - converts and publishes books")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL env or INFO)",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Extra .env file loaded over the default one",
    )
    subparsers = parser.add_subparsers(dest="command")

    harvest = subparsers.add_parser("harvest-all", help="Harvest all matching books once")
    harvest.add_argument(
        "--count",
        "-n",
        type=int,
        default=None,
        help="Stop after this many books (default: HARVESTER_MAX_ITEMS, <=0 = no limit)",
    )
    harvest.add_argument(
        "--query-where",
        default=None,
        help='Parse where filter as JSON, e.g. \'{"title":"Foo"}\'',
    )
    harvest.add_argument(
        "--read-only",
        action="store_true",
        help="Download books but skip conversion, upload and the Done write",
    )

    subparsers.add_parser("harvest-warnings", help="List books that carry warnings")
    subparsers.add_parser("watch", help="Harvest on a fixed interval (APScheduler)")

    temporal = subparsers.add_parser("temporal", help="Start Temporal worker")
    temporal.add_argument(
        "--temporal-host",
        default=None,
        help="Temporal server address (default: TEMPORAL_HOST env or localhost:7233)",
    )
    return parser


def main(argv=None):
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    load_dotenv()
    if args.env_file:
        load_dotenv(args.env_file, override=True)

    from .config import get_config

    config = get_config()
    setup_logging(args.log_level or config.log_level)
    logger = logging.getLogger(__name__)

    command = args.command or "harvest-all"

    try:
        if command == "harvest-all":
            if getattr(args, "read_only", False):
                config.harvester.read_only = True

            from .harvester.run import run_harvest_all

            summary = asyncio.run(
                run_harvest_all(
                    config,
                    max_items=getattr(args, "count", None),
                    query_where=getattr(args, "query_where", None),
                )
            )
            print(json.dumps(summary, indent=2))
            if summary["failed"]:
                sys.exit(1)

        elif command == "harvest-warnings":
            from .harvester.run import run_harvest_warnings

            for line in asyncio.run(run_harvest_warnings(config)):
                print(line)

        elif command == "watch":
            from .harvester.scheduler import run_scheduler

            asyncio.run(run_scheduler(config))

        elif command == "temporal":
            from .worker import run_worker

            asyncio.run(run_worker(config, temporal_host=args.temporal_host))

    except KeyboardInterrupt:
        logger.info("Shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    main()
