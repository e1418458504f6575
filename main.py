# main.py

"""Entry point for the pricesync engine (headless CLI)."""

import argparse
import asyncio
import logging
import sys

from pricesync.config.logging_config import setup_logging

logger = logging.getLogger("pricesync.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="pricesync",
        description=(
            "Marketplace price synchronization engine. With no arguments "
            "every stale listing is synced."
        ),
    )
    parser.add_argument(
        "identifiers",
        nargs="*",
        help="Listing identifiers to sync (default: all stale listings).",
    )
    parser.add_argument(
        "--queue",
        action="store_true",
        default=False,
        help="Drain the refresh queue instead of scanning.",
    )
    parser.add_argument(
        "--ratings",
        action="store_true",
        default=False,
        help="Refresh average rating and review count for every listing.",
    )
    parser.add_argument(
        "--trend",
        default=None,
        metavar="ID",
        help="Print the price trend snapshot of one listing.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Echo INFO lines to stderr, not only warnings.",
    )
    parser.add_argument(
        "--stale-hours",
        type=float,
        default=None,
        dest="stale_hours",
        help="Override the staleness window in hours.",
    )
    return parser


def main() -> None:
    """Route to the selected runner and exit with its code."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(
        console_level=logging.INFO if args.verbose else logging.WARNING,
    )
    logger.info("pricesync starting, log file: %s", log_file)

    from pricesync.cli import runner

    try:
        if args.trend:
            exit_code = runner.show_trend(args.trend)
        elif args.ratings:
            exit_code = runner.run_ratings()
        elif args.queue:
            exit_code = asyncio.run(runner.run_queue())
        else:
            exit_code = asyncio.run(
                runner.run_sync(args.identifiers, args.stale_hours)
            )
    except Exception:
        logger.critical("Fatal error during run", exc_info=True)
        raise
    finally:
        logger.info("pricesync shutting down")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
