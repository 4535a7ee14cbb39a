#!/usr/bin/env python3
"""Entrypoint for the periodic scheduling and delivery triggers.

Usage:
    # Single run (one scheduling scan + one delivery batch)
    python scripts/run_workers.py --once

    # Continuous loop (Ctrl+C to stop)
    python scripts/run_workers.py --loop

    # Loop with custom interval
    python scripts/run_workers.py --loop --interval 10

    # Only create due notifications, or only send them
    python scripts/run_workers.py --once --schedule-only
    python scripts/run_workers.py --once --deliver-only

Environment variables:
    DATABASE_URL: Database connection string (required)
    WORKER_BATCH_SIZE: Records per delivery batch (default: 50)
    WORKER_MAX_RETRIES: Delivery attempts per record (default: 3)
    WORKER_POLL_INTERVAL_SECONDS: Seconds between cycles (default: 60)
    MAILER_API_URL: Mail API endpoint (emails are only logged when unset)
    SERVICE_CATALOG_URL: Dashboard endpoint listing services with expiry dates
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from notification_engine.config import get_settings
from notification_engine.workers.runner import (
    configure_worker_logging,
    run_worker_loop,
    run_worker_once,
)


def main() -> int:
    """Main entrypoint for the worker runner."""
    parser = argparse.ArgumentParser(
        description="Run notification scheduling and delivery",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run one cycle and exit",
    )
    mode.add_argument(
        "--loop",
        action="store_true",
        help="Run cycles continuously",
    )

    # Step selection
    steps = parser.add_mutually_exclusive_group()
    steps.add_argument(
        "--schedule-only",
        action="store_true",
        help="Only create due notifications",
    )
    steps.add_argument(
        "--deliver-only",
        action="store_true",
        help="Only send due notifications",
    )

    # Configuration
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between cycles (loop mode only)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations before stopping (loop mode only)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Records to attempt per delivery batch",
    )

    # Logging
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging to warnings only",
    )

    args = parser.parse_args()

    if args.verbose:
        configure_worker_logging(logging.DEBUG)
    elif args.quiet:
        configure_worker_logging(logging.WARNING)
    else:
        configure_worker_logging(logging.INFO)

    logger = logging.getLogger(__name__)

    schedule = not args.deliver_only
    deliver = not args.schedule_only

    try:
        get_settings().validate()

        if args.once:
            logger.info("Running one cycle...")
            result = run_worker_once(
                batch_size=args.batch_size,
                schedule=schedule,
                deliver=deliver,
            )

            print("\n--- Notification Run Summary ---")
            if result.schedule_result is not None:
                print(f"Scheduled: {result.total_scheduled}")
                print(f"Already scheduled: {result.schedule_result.skipped_existing}")
                for notification_type, count in sorted(result.schedule_result.by_type.items()):
                    print(f"  {notification_type}: {count}")
            if result.delivery_result is not None:
                print(f"Sent: {result.total_processed}")
                print(f"Failed: {result.total_failed}")
                print(f"Skipped (claimed elsewhere): {result.delivery_result.skipped_count}")

            if result.errors:
                print(f"Errors: {len(result.errors)}")
                for err in result.errors:
                    print(f"  - {err}")

            return 0 if not result.errors else 1

        elif args.loop:
            logger.info("Starting worker loop (Ctrl+C to stop)...")
            run_worker_loop(
                interval_seconds=args.interval,
                max_iterations=args.max_iterations,
                batch_size=args.batch_size,
                schedule=schedule,
                deliver=deliver,
            )
            return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
