#!/usr/bin/env python3
"""
Run the expired QR token cleanup from a shell, cron or systemd timer.

Usage:
    python -m qr_cleanup.cli
    python -m qr_cleanup.cli --dry-run
    python -m qr_cleanup.cli --loop --interval 600
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

from pydantic import ValidationError

from qr_cleanup.core.config import get_settings
from qr_cleanup.core.database import ConnectionFactory
from qr_cleanup.core.logging import setup_logging
from qr_cleanup.handler import build_response
from qr_cleanup.modules.sessions.cleanup import (
    CleanupError,
    CleanupFailure,
    count_expired_qr_tokens,
    default_connection_factory,
    run,
)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Clear expired QR login tokens from the sessions table"
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Only report how many tokens would be cleared'
    )
    parser.add_argument(
        '--loop',
        action='store_true',
        help='Keep running the cleanup periodically instead of once'
    )
    parser.add_argument(
        '--interval',
        type=int,
        default=None,
        help='Seconds between runs with --loop (default: CLEANUP_INTERVAL_SECONDS)'
    )
    parser.add_argument(
        '--max-runs',
        type=int,
        default=None,
        help='Stop the loop after this many runs'
    )

    args = parser.parse_args(argv)
    if args.interval is not None and args.interval <= 0:
        parser.error("--interval must be a positive number of seconds")
    if args.max_runs is not None and args.max_runs <= 0:
        parser.error("--max-runs must be a positive number")
    return args


async def periodic_cleanup(interval: int, factory: Optional[ConnectionFactory] = None,
                           max_runs: Optional[int] = None) -> int:
    """Run the cleanup every `interval` seconds; returns the number of failed runs."""
    runs = 0
    failures = 0
    while True:
        outcome = run(factory)
        runs += 1
        if isinstance(outcome, CleanupFailure):
            failures += 1
        if max_runs is not None and runs >= max_runs:
            return failures
        await asyncio.sleep(interval)


def dry_run(factory: Optional[ConnectionFactory] = None) -> int:
    owns_factory = factory is None
    try:
        factory = factory or default_connection_factory()
        count = count_expired_qr_tokens(factory)
    except CleanupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if owns_factory and factory is not None:
            factory.dispose()

    print(json.dumps({"message": f"{count} expired QR tokens would be cleaned up"}))
    return 0


def main(argv=None, factory: Optional[ConnectionFactory] = None) -> int:
    args = parse_args(argv)
    setup_logging()

    if args.dry_run:
        return dry_run(factory)

    if args.loop:
        interval = args.interval
        if interval is None:
            try:
                interval = get_settings().CLEANUP_INTERVAL_SECONDS
            except ValidationError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1
        failures = asyncio.run(periodic_cleanup(interval, factory, args.max_runs))
        return 1 if failures else 0

    response = build_response(run(factory))
    print(response["body"])
    return 0 if response["statusCode"] == 200 else 1


if __name__ == '__main__':
    sys.exit(main())
