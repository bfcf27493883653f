#!/usr/bin/env python3
"""
Run the Win Room reconciliation poller.

Loads configuration through get_active_config() (shipped defaults, optional
overlay file, then environment), connects to the database, and either runs
one tick or polls until interrupted.

Usage:
    python3 scripts/run_poller.py [--config overlay.yaml] [--once] [--create-tables]

Examples:
    # Poll continuously against DATABASE_URL
    DATABASE_URL=postgresql+psycopg2://winroom@localhost/winroom python3 scripts/run_poller.py

    # Local SQLite database: create tables, run a single tick, exit
    python3 scripts/run_poller.py --create-tables --once
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the Win Room reconciliation poller.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML overlay applied on top of the shipped defaults.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick, print its result and exit.",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables before polling (local/dev databases).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log at DEBUG level.",
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    from winroom_config import get_active_config
    from winroom_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from winroom_kernel.logging_config import configure_logging, get_logger

    from winroom_batch.orchestrator import PollerOrchestrator

    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    logger = get_logger("scripts.run_poller")

    try:
        config = get_active_config(path=args.config)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
    )
    if args.create_tables:
        create_tables()

    orchestrator = PollerOrchestrator.from_config(config, get_session_factory())

    if args.once:
        result = orchestrator.poller.tick()
        print(json.dumps(
            {
                "status": result.status.value,
                "records_seen": result.records_seen,
                "records_failed": result.records_failed,
                "queued": result.queued,
                "jackpots": result.jackpots,
                "duplicates": result.duplicates,
                "cursor_after": result.cursor_after.isoformat() if result.cursor_after else None,
                "jobs": {job.job_name: job.status.value for job in result.jobs},
                "error": result.error_message,
            },
            indent=2,
        ))
        return 0 if result.status.value == "completed" else 1

    stop_requested = threading.Event()

    def _request_stop(signum, frame):
        logger.info("shutdown_requested", extra={"signal": signal.Signals(signum).name})
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    worker = orchestrator.create_worker()
    worker.start()
    try:
        while not stop_requested.wait(timeout=1.0):
            pass
    finally:
        worker.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
