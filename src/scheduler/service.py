"""
Scheduler Service - Main entry point for the notification scheduler.

This service orchestrates all scheduler components:
- StatusStore (durable records)
- DelayQueue (deferred triggers)
- StatusTracker (mutations + broadcasts)
- EventScheduler (accepting new items)
- AttemptExecutor + WorkerPool (execution)
- RecoveryManager (crash recovery)

The broadcast bus is passed in; the caller owns its lifecycle.

Usage:
    service = SchedulerService.create(db_path, bus)
    service.start()
    # ... workers run in background ...
    service.stop()
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from .delay_queue import DEFAULT_LEASE_SECONDS, DEFAULT_MAX_DELIVERIES, DelayQueue
from .entities import NotificationStatus, ScheduledItem, utc_now
from .event_scheduler import EventScheduler
from .executor import AttemptExecutor
from .persistence import StatusStore
from .recovery import RecoveryManager
from .retry_controller import DEFAULT_BASE_DELAY_MS, RetryController
from .sender import NotificationSender, SimulatedSender
from .tracker import StatusTracker
from .worker_pool import DEFAULT_CONCURRENCY, DEFAULT_POLL_INTERVAL, WorkerPool

if TYPE_CHECKING:
    from src.broadcast.bus import BroadcastBus


logger = logging.getLogger(__name__)


class SchedulerService:
    """
    Main service that coordinates all scheduler components.

    Provides:
    - Component initialization and wiring
    - Startup with recovery
    - Graceful shutdown
    - API-friendly methods for scheduling and listing
    """

    def __init__(
        self,
        store: StatusStore,
        queue: DelayQueue,
        tracker: StatusTracker,
        scheduler: EventScheduler,
        executor: AttemptExecutor,
        worker_pool: WorkerPool,
        recovery_manager: RecoveryManager,
    ):
        """
        Initialize SchedulerService with all components.

        Use SchedulerService.create() for convenient construction.
        """
        self.store = store
        self.queue = queue
        self.tracker = tracker
        self.scheduler = scheduler
        self.executor = executor
        self.worker_pool = worker_pool
        self.recovery_manager = recovery_manager

        self._started = False

    @classmethod
    def create(
        cls,
        db_path: str | Path,
        bus: "BroadcastBus",
        sender: Optional[NotificationSender] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
        max_deliveries: int = DEFAULT_MAX_DELIVERIES,
        base_delay_ms: int = DEFAULT_BASE_DELAY_MS,
        clock: Callable[[], datetime] = utc_now,
    ) -> "SchedulerService":
        """
        Create a SchedulerService with all components wired together.

        Args:
            db_path: Path to SQLite database (shared by store and queue)
            bus: BroadcastBus for status announcements
            sender: NotificationSender (defaults to SimulatedSender)
            concurrency: Number of worker threads
            poll_interval: Idle worker poll interval in seconds
            lease_seconds: Lease duration before a job counts as stalled
            max_deliveries: Transport redelivery cap per trigger
            base_delay_ms: Retry backoff base
            clock: Source of "now"

        Returns:
            Configured SchedulerService
        """
        store = StatusStore(db_path, clock=clock)
        queue = DelayQueue(
            db_path,
            clock=clock,
            lease_seconds=lease_seconds,
            max_deliveries=max_deliveries,
        )
        tracker = StatusTracker(store, bus)

        scheduler = EventScheduler(tracker, queue, clock=clock)

        executor = AttemptExecutor(
            tracker=tracker,
            queue=queue,
            sender=sender or SimulatedSender(),
            retry_controller=RetryController(base_delay_ms=base_delay_ms),
            clock=clock,
        )

        worker_pool = WorkerPool(
            queue=queue,
            executor=executor,
            concurrency=concurrency,
            poll_interval=poll_interval,
        )

        recovery_manager = RecoveryManager(store, queue, clock=clock)

        return cls(
            store=store,
            queue=queue,
            tracker=tracker,
            scheduler=scheduler,
            executor=executor,
            worker_pool=worker_pool,
            recovery_manager=recovery_manager,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, run_recovery: bool = True) -> dict:
        """
        Start the worker pool.

        Args:
            run_recovery: Whether to run crash recovery first

        Returns:
            Recovery statistics if recovery was run
        """
        if self._started:
            raise RuntimeError("Scheduler already started")

        logger.info("Starting scheduler service...")

        recovery_stats = {}
        if run_recovery:
            recovery_stats = self.recover()

        self.worker_pool.start()
        self._started = True

        logger.info("Scheduler service started")
        return recovery_stats

    def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the worker pool gracefully.

        Waits for in-flight attempts to complete (no preemption).
        """
        if not self._started:
            return

        logger.info("Stopping scheduler service...")
        self.worker_pool.stop(timeout=timeout)
        self._started = False
        logger.info("Scheduler service stopped")

    @property
    def is_running(self) -> bool:
        """Check if workers are running."""
        return self._started and self.worker_pool.is_running()

    def recover(self) -> dict:
        """Run crash recovery once."""
        return self.recovery_manager.recover_on_startup()

    # =========================================================================
    # Event Operations (API-friendly)
    # =========================================================================

    def schedule(
        self,
        message: str,
        recipient_email: str,
        send_at: datetime,
    ) -> ScheduledItem:
        """Schedule a notification; see EventScheduler.schedule."""
        return self.scheduler.schedule(message, recipient_email, send_at)

    def get_item(self, item_id: str) -> Optional[ScheduledItem]:
        """Get an item by ID."""
        return self.store.get(item_id)

    def list_items(
        self,
        status: Optional[NotificationStatus | str] = None,
        limit: Optional[int] = None,
    ) -> list[ScheduledItem]:
        """
        List items, newest first.

        Raises:
            InvalidStatusError: If status is not a known value
        """
        if status is not None:
            status = NotificationStatus.parse(status)
        return self.store.list_items(status=status, limit=limit)

    # =========================================================================
    # Queue Status
    # =========================================================================

    def get_queue_stats(self) -> dict:
        """
        Get item and trigger statistics.

        Returns:
            Dict with per-status item counts, per-state job counts and
            worker pool state
        """
        return {
            "events": self.store.count_by_status(),
            "jobs": self.queue.count_by_state(),
            "in_flight": self.worker_pool.in_flight,
            "is_running": self.is_running,
        }
