"""
CLI entry point for the notification worker.

Commands:
    worker   Run recovery, then execute due notifications until SIGINT/SIGTERM
    recover  Run crash recovery once and print the statistics
    stats    Print item and trigger counts
"""

import argparse
import json
import logging
import signal
import sys
import threading
from typing import List, Optional

from src.broadcast import create_bus
from src.infra.config import Settings, load_settings
from src.infra.logging_config import setup_logging

from .sender import create_sender
from .service import SchedulerService


EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_RECOVERY_ERROR = 2

logger = logging.getLogger(__name__)


def build_service(settings: Settings, bus, concurrency: Optional[int] = None) -> SchedulerService:
    """Wire a SchedulerService from settings."""
    return SchedulerService.create(
        db_path=settings.database_path,
        bus=bus,
        sender=create_sender(settings.webhook_url, settings.send_failure_rate),
        concurrency=concurrency or settings.worker_concurrency,
        poll_interval=settings.queue_poll_interval,
        lease_seconds=settings.queue_lease_seconds,
        max_deliveries=settings.queue_max_deliveries,
        base_delay_ms=settings.retry_base_delay_ms,
    )


def cmd_worker(args: argparse.Namespace, settings: Settings) -> int:
    """
    Run the worker pool until a shutdown signal arrives.

    Shutdown order: stop the pool (drain in-flight attempts), then close
    the bus.
    """
    bus = create_bus(settings.redis_url, settings.broadcast_channel)
    service = build_service(settings, bus, concurrency=args.concurrency)

    shutdown = threading.Event()

    def signal_handler(signum, frame):
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logger.info(f"{signal_name} received - finishing in-flight attempts before exit")
        shutdown.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    logger.info("=" * 60)
    logger.info("Notification worker starting")
    logger.info(f"  - database: {settings.database_path}")
    logger.info(f"  - concurrency: {service.worker_pool.concurrency}")
    logger.info(f"  - broadcast: {'redis' if settings.redis_url else 'in-memory'}")
    logger.info("=" * 60)

    try:
        stats = service.start(run_recovery=not args.no_recovery)
        if stats.get("errors"):
            logger.warning(f"Recovery finished with errors: {stats['errors']}")

        while not shutdown.is_set():
            shutdown.wait(1.0)
    finally:
        service.stop()
        bus.close()

    logger.info("Notification worker stopped")
    return EXIT_SUCCESS


def cmd_recover(args: argparse.Namespace, settings: Settings) -> int:
    """Run crash recovery once."""
    bus = create_bus(settings.redis_url, settings.broadcast_channel)
    try:
        service = build_service(settings, bus)
        stats = service.recover()
    finally:
        bus.close()

    print(json.dumps(stats, indent=2))
    return EXIT_RECOVERY_ERROR if stats["errors"] else EXIT_SUCCESS


def cmd_stats(args: argparse.Namespace, settings: Settings) -> int:
    """Print item and trigger counts."""
    bus = create_bus(settings.redis_url, settings.broadcast_channel)
    try:
        service = build_service(settings, bus)
        stats = service.get_queue_stats()
    finally:
        bus.close()

    print(json.dumps(stats, indent=2))
    return EXIT_SUCCESS


def create_parser() -> argparse.ArgumentParser:
    """
    Create argument parser.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="notifier",
        description="Event notification scheduler - worker process",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--db-path",
        help="SQLite database path (default: DATABASE_PATH or data/notifier.db)"
    )
    parser.add_argument(
        "--log-dir",
        default=None,
        help="Directory for daily log files (default: LOG_DIR or logs)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # worker command
    worker_parser = subparsers.add_parser("worker", help="Run the worker pool")
    worker_parser.add_argument(
        "-c", "--concurrency",
        type=int,
        default=None,
        help="Number of worker threads (default: WORKER_CONCURRENCY or 5)"
    )
    worker_parser.add_argument(
        "--no-recovery",
        action="store_true",
        help="Skip crash recovery on startup"
    )

    # recover command
    subparsers.add_parser("recover", help="Run crash recovery once")

    # stats command
    subparsers.add_parser("stats", help="Print event and job counts")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.db_path:
        settings.database_path = args.db_path

    setup_logging("DEBUG" if args.verbose else settings.log_level, log_dir=args.log_dir or settings.log_dir)

    if args.command == "worker":
        return cmd_worker(args, settings)
    elif args.command == "recover":
        return cmd_recover(args, settings)
    elif args.command == "stats":
        return cmd_stats(args, settings)
    else:
        parser.print_help()
        return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
