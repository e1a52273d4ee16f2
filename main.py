#!/usr/bin/env python3
# =============================================================================
# PROPOSAL RELAY
# Module: main.py
# Purpose: CLI entry point
# =============================================================================
#
# USAGE:
# python main.py --once               # one tick (cron / scheduled trigger)
# python main.py                      # tick every interval until Ctrl+C
# python main.py --once --dry-run     # fetch + compose, send nothing
#
# OPTIONS:
# --once         Run a single tick and exit
# --interval     Seconds between ticks in continuous mode
# --dry-run      Don't dispatch or record, just log the messages
# --config       Path to relay.yaml
# --state-file   Override the idempotency ledger path
# --verbose      Enable debug logging
#
# EXIT CODES:
# 0 success, 1 fatal error (configuration / failed tick), 130 interrupted
#
# =============================================================================

import argparse
import logging
import sys
import time
from pathlib import Path

from app.orchestrator import Orchestrator, TickReport
from shared.config import load_settings
from shared.exceptions import ConfigurationError, RelayError
from shared.logging_config import AuditLogger, setup_logging

logger = logging.getLogger("relay")


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="python main.py",
        description="Proposal Relay - announce new DAO proposals on Telegram and the docs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --once
  python main.py --interval 120
  python main.py --once --dry-run --verbose

Secrets are read from the environment (.env): TELEGRAM_BOT_TOKEN,
TELEGRAM_CHANNEL_ID, GITHUB_TOKEN, GITHUB_OWNER, GITHUB_REPO, ETH_RPC.
        """,
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single tick and exit",
    )

    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between ticks in continuous mode (default: from config)",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and compose only; nothing is sent or recorded",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to relay.yaml (default: config/relay.yaml)",
    )

    parser.add_argument(
        "--state-file",
        type=Path,
        default=None,
        help="Idempotency ledger path (default: from config)",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def print_summary(report: TickReport, dry_run: bool) -> None:
    print("\n" + "=" * 60)
    print("TICK SUMMARY")
    print("=" * 60)
    print(f"Run:         {report.run_id}")
    print(f"State:       {report.state.value}")
    print(f"Fetched:     {report.fetched}")
    print(f"Dispatched:  {report.dispatched}")
    print(f"Skipped:     {report.skipped}")
    print(f"Failed:      {report.failed}")
    print(f"Duration:    {report.duration_seconds:.1f}s")
    for error in report.source_errors:
        print(f"Source error: {error}")
    if dry_run:
        print("[DRY RUN - nothing sent or recorded]")
    print("=" * 60)


def run(args: argparse.Namespace) -> int:
    try:
        settings = load_settings(config_path=args.config)
    except ConfigurationError as e:
        setup_logging(level=logging.INFO, file_output=False)
        logger.error(f"Configuration error: {e}")
        return 1

    if args.state_file:
        settings.state_path = args.state_file

    setup_logging(
        level=logging.DEBUG if args.verbose else settings.log_level,
        log_dir=settings.log_dir,
        file_output=settings.log_dir is not None,
    )

    audit = None if args.dry_run else AuditLogger(settings.log_dir)
    orchestrator = Orchestrator.from_settings(settings, dry_run=args.dry_run, audit=audit)

    logger.info("=" * 50)
    logger.info("PROPOSAL RELAY STARTED")
    logger.info(f"Ledger: {settings.state_path}")
    logger.info(f"Mode: {'Single tick' if args.once else 'Continuous'}")
    logger.info("=" * 50)

    if args.once:
        try:
            report = orchestrator.run_tick()
        except RelayError as e:
            logger.error(f"Tick failed: {e}")
            return 1
        print_summary(report, args.dry_run)
        return 0

    interval = args.interval or settings.interval_seconds
    while True:
        try:
            report = orchestrator.run_tick()
            print_summary(report, args.dry_run)
        except RelayError as e:
            # Nothing was recorded for the failed part; the next tick retries it
            logger.error(f"Tick failed: {e}")
        except Exception as e:
            logger.exception(f"Tick crashed: {e}")
        time.sleep(interval)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    try:
        return run(args)
    except KeyboardInterrupt:
        logger.info("Stopped by user")
        return 130
    except Exception as e:
        logger.exception(f"Relay crashed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
