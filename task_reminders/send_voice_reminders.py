#!/usr/bin/env python3
"""
Voice reminders for overdue tasks.

Runs a single reminder pass right away (default) or arms the daily trigger and
keeps running until interrupted (``--daemon``).
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path

from .core.config import PROJECT_ROOT, load_config
from .core.errors import ConfigurationError
from .reminder_service import ReminderDispatcher
from .scheduler import DailyTrigger, SingleFlightRunner, ensure_store_reachable

LOG_DIR_ENV_VAR = "LOG_DIR"
DEFAULT_LOG_DIR = PROJECT_ROOT / "var" / "logs"

LOGGER = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Call task owners about their overdue tasks.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run a single reminder pass now (default).",
    )
    mode.add_argument(
        "--daemon",
        action="store_true",
        help="Arm the daily trigger and keep running until SIGINT/SIGTERM.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the planned calls without contacting Twilio.",
    )
    parser.add_argument(
        "--limit",
        type=_positive_int,
        help="Limit amount of tasks handled in one run (default: all overdue).",
    )
    parser.add_argument(
        "--config",
        help="Path to config.json. Falls back to CONFIG_PATH or the project root.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser.parse_args(argv)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)

    log_dir = Path(os.getenv(LOG_DIR_ENV_VAR) or DEFAULT_LOG_DIR)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(
            log_dir / f"reminders_{datetime.now().strftime('%Y-%m-%d')}.log",
            encoding="utf-8",
        )
    except OSError as exc:
        logging.warning("File logging disabled: %s", exc)
        return
    handler.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"))
    logging.getLogger().addHandler(handler)


def run_daemon(dispatcher: ReminderDispatcher, config) -> None:
    runner = SingleFlightRunner(dispatcher, policy=config.overlap_policy)
    trigger = DailyTrigger(runner, config.schedule)
    trigger.start()

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        LOGGER.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        stop_main.wait()
    finally:
        trigger.stop()


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        dispatcher = ReminderDispatcher.from_config(config, dry_run=args.dry_run)
        if args.daemon:
            run_daemon(dispatcher, config)
            return 0
        ensure_store_reachable(dispatcher.task_store)
        summary = dispatcher.run_once(limit=args.limit)
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return 2
    except Exception as exc:
        logging.exception("Unexpected failure while sending reminders: %s", exc)
        return 1

    logging.info(
        "Voice reminders: attempted=%s succeeded=%s failed=%s skipped=%s",
        summary.attempted,
        summary.succeeded,
        summary.failed,
        summary.skipped,
    )
    return 1 if summary.aborted else 0


if __name__ == "__main__":
    sys.exit(main())
