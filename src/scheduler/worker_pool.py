"""
Worker Pool for the notification scheduler.

- Runs `concurrency` worker threads, each pulling released jobs
- Hands every job to the AttemptExecutor
- Resolves the queue entry from the attempt's result
- Drains in-flight attempts on stop (no preemption)

Job resolution:
- Attempt resolved (sent, retried, failed, skipped) → complete
- Missing record → abandon (never re-armed)
- Lease lost to another worker → left alone for the new holder
- Any other exception → release for transport-level redelivery; the
  item's retry_count is not touched
"""

import logging
import os
import socket
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .delay_queue import DelayQueue
from .entities import QueuedJob
from .errors import ItemNotFoundError, LeaseLostError
from .executor import AttemptExecutor, AttemptResult


logger = logging.getLogger(__name__)


DEFAULT_CONCURRENCY = 5
DEFAULT_POLL_INTERVAL = 0.2


class WorkerPoolState(str, Enum):
    """Worker pool lifecycle states."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"


class JobResolution(str, Enum):
    """What happened to the queue entry after an attempt."""

    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"
    RELEASED = "RELEASED"
    LOST = "LOST"


class LeaseHeartbeat:
    """
    Keeps the lease on a claimed job alive while its attempt runs.

    Renews every `interval` seconds on a daemon thread; stops renewing once
    the lease turns out to be held by someone else.
    """

    def __init__(self, queue: DelayQueue, job: QueuedJob, interval: float):
        self.queue = queue
        self.job = job
        self.interval = interval
        self.lost = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def __enter__(self) -> "LeaseHeartbeat":
        self._thread = threading.Thread(
            target=self._run,
            name=f"lease-{self.job.job_key}",
            daemon=True,
        )
        self._thread.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                if not self.queue.extend_lease(self.job):
                    logger.warning(
                        f"Lease on job {self.job.job_key} held by {self.job.lease_owner} was lost"
                    )
                    self.lost = True
                    return
            except Exception as e:
                # The lease may still expire; the next tick tries again
                logger.error(f"Failed to renew lease on job {self.job.job_key}: {e}")


@dataclass
class DispatchResult:
    """Outcome of dispatching one job."""

    job: QueuedJob
    resolution: JobResolution
    attempt: Optional[AttemptResult] = None
    error: Optional[str] = None


class WorkerPool:
    """
    Pulls released jobs from the Delay Queue and executes them concurrently.

    No two workers hold the same job_key: the queue keeps one entry per key
    and leases it to a single worker at a time.
    """

    def __init__(
        self,
        queue: DelayQueue,
        executor: AttemptExecutor,
        concurrency: int = DEFAULT_CONCURRENCY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        name: Optional[str] = None,
        heartbeat_interval: Optional[float] = None,
    ):
        """
        Initialize WorkerPool.

        Args:
            queue: DelayQueue to claim jobs from
            executor: AttemptExecutor running the attempt procedure
            concurrency: Number of worker threads
            poll_interval: Seconds an idle worker waits before polling again
            name: Prefix for worker ids (defaults to host and pid)
            heartbeat_interval: Seconds between lease renewals while an
                attempt runs (defaults to a third of the queue's lease)
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1 (got {concurrency})")

        self.queue = queue
        self.executor = executor
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.name = name or f"{socket.gethostname()}-{os.getpid()}"
        self.heartbeat_interval = heartbeat_interval or queue.lease_seconds / 3

        self._state = WorkerPoolState.STOPPED
        self._threads: list[threading.Thread] = []
        self._stop_event = threading.Event()
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()

    @property
    def state(self) -> WorkerPoolState:
        """Get current pool state."""
        return self._state

    @property
    def in_flight(self) -> int:
        """Number of attempts currently executing."""
        with self._in_flight_lock:
            return len(self._in_flight)

    def worker_id(self, index: int) -> str:
        return f"{self.name}-{index}"

    # =========================================================================
    # Single Dispatch Operation
    # =========================================================================

    def dispatch_one(self, worker_id: Optional[str] = None) -> Optional[DispatchResult]:
        """
        Claim and execute a single released job.

        Returns:
            DispatchResult if a job was claimed, None if nothing is due
        """
        worker_id = worker_id or self.worker_id(0)

        job = self.queue.claim_next(worker_id)
        if job is None:
            return None

        logger.debug(f"{worker_id} claimed job {job.job_key} (delivery {job.deliveries})")

        with self._in_flight_lock:
            self._in_flight.add(job.job_key)

        try:
            return self._execute(job)
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(job.job_key)

    def _execute(self, job: QueuedJob) -> DispatchResult:
        try:
            with LeaseHeartbeat(self.queue, job, self.heartbeat_interval):
                attempt = self.executor.run(job)
        except LeaseLostError as e:
            # The current holder resolves the entry
            logger.warning(f"Job {job.job_key} left to its new lease holder: {e}")
            return DispatchResult(
                job=job,
                resolution=JobResolution.LOST,
                error=str(e),
            )
        except ItemNotFoundError as e:
            self.queue.abandon(job, str(e))
            logger.error(f"Job {job.job_key} abandoned: {e}")
            return DispatchResult(
                job=job,
                resolution=JobResolution.ABANDONED,
                error=str(e),
            )
        except Exception as e:
            logger.error(f"Error processing job {job.job_key}: {e}", exc_info=True)
            self.queue.release(job, str(e))
            return DispatchResult(
                job=job,
                resolution=JobResolution.RELEASED,
                error=str(e),
            )

        self.queue.complete(job)
        logger.info(f"Job {job.job_key} completed with outcome {attempt.outcome.value}")
        return DispatchResult(
            job=job,
            resolution=JobResolution.COMPLETED,
            attempt=attempt,
        )

    # =========================================================================
    # Worker Loop
    # =========================================================================

    def start(self) -> None:
        """Start the worker threads."""
        if self._state != WorkerPoolState.STOPPED:
            raise RuntimeError(f"Cannot start worker pool in {self._state.value} state")

        self._stop_event.clear()
        self._state = WorkerPoolState.RUNNING

        self._threads = [
            threading.Thread(
                target=self._worker_loop,
                args=(self.worker_id(index),),
                name=self.worker_id(index),
                daemon=True,
            )
            for index in range(self.concurrency)
        ]
        for thread in self._threads:
            thread.start()

        logger.info(f"Worker pool started with {self.concurrency} workers")

    def stop(self, timeout: float = 30.0) -> None:
        """
        Stop the worker threads gracefully.

        Each worker finishes its current attempt before exiting.

        Args:
            timeout: Maximum seconds to wait for in-flight attempts
        """
        if self._state == WorkerPoolState.STOPPED:
            return

        logger.info("Stopping worker pool...")
        self._state = WorkerPoolState.STOPPING
        self._stop_event.set()

        for thread in self._threads:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"Worker {thread.name} did not stop within timeout")
        self._threads = []

        self._state = WorkerPoolState.STOPPED
        logger.info("Worker pool stopped")

    def _worker_loop(self, worker_id: str) -> None:
        """Main loop of one worker thread."""
        logger.debug(f"Worker {worker_id} loop started")

        while not self._stop_event.is_set():
            try:
                result = self.dispatch_one(worker_id)

                if result is None:
                    # Nothing due, wait before polling again
                    self._stop_event.wait(self.poll_interval)

            except Exception as e:
                logger.error(f"Error in worker loop {worker_id}: {e}", exc_info=True)
                self._stop_event.wait(self.poll_interval)

        logger.debug(f"Worker {worker_id} loop ended")

    def is_running(self) -> bool:
        """Check if the pool is running."""
        return self._state == WorkerPoolState.RUNNING

    def is_busy(self) -> bool:
        """Check if any attempt is executing."""
        return self.in_flight > 0
