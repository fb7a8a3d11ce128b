"""
Worker Pool Tests.

Runs real worker threads against a temporary database with the wall clock:
- Every due item is attempted exactly once per trigger
- Attempts run concurrently
- stop() drains in-flight attempts
- A long attempt keeps its lease
"""

import threading
import time
from datetime import timedelta

import pytest

from src.broadcast import InMemoryBroadcastBus
from src.scheduler import (
    AttemptExecutor,
    DelayQueue,
    EventScheduler,
    JobResolution,
    NotificationSender,
    NotificationStatus,
    RetryController,
    StatusStore,
    StatusTracker,
    WorkerPool,
    WorkerPoolState,
)
from src.scheduler.entities import utc_now


class SlowSender(NotificationSender):
    """Sender that takes `delay` seconds and tracks peak concurrency."""

    def __init__(self, delay: float = 0.2):
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.calls = []
        self._lock = threading.Lock()

    def send(self, recipient: str, content: str) -> bool:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.calls.append(recipient)
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1
        return True


def build_pool(
    db_path: str,
    sender: NotificationSender,
    concurrency: int = 5,
    lease_seconds: float = 30.0,
):
    store = StatusStore(db_path)
    queue = DelayQueue(db_path, lease_seconds=lease_seconds)
    bus = InMemoryBroadcastBus(record=True)
    tracker = StatusTracker(store, bus)
    scheduler = EventScheduler(tracker, queue)
    executor = AttemptExecutor(
        tracker=tracker,
        queue=queue,
        sender=sender,
        retry_controller=RetryController(base_delay_ms=10),
    )
    pool = WorkerPool(queue, executor, concurrency=concurrency, poll_interval=0.01, name="pool")
    return store, scheduler, pool


def wait_for(predicate, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


class TestLifecycle:

    def test_start_and_stop(self, worker_pool: WorkerPool):
        assert worker_pool.state == WorkerPoolState.STOPPED

        worker_pool.start()
        assert worker_pool.is_running()

        worker_pool.stop(timeout=5)
        assert worker_pool.state == WorkerPoolState.STOPPED
        assert not worker_pool.is_running()

    def test_double_start_rejected(self, worker_pool: WorkerPool):
        worker_pool.start()
        try:
            with pytest.raises(RuntimeError):
                worker_pool.start()
        finally:
            worker_pool.stop(timeout=5)

    def test_stop_when_stopped_is_noop(self, worker_pool: WorkerPool):
        worker_pool.stop()
        assert worker_pool.state == WorkerPoolState.STOPPED

    def test_invalid_concurrency(self, queue, executor):
        with pytest.raises(ValueError):
            WorkerPool(queue, executor, concurrency=0)


class TestConcurrentExecution:

    def test_each_item_attempted_once(self, temp_db_path, mock_sender):
        sender = mock_sender
        store, scheduler, pool = build_pool(temp_db_path, sender)
        items = [
            scheduler.schedule(f"msg {i}", f"user{i}@example.com", utc_now())
            for i in range(12)
        ]

        pool.start()
        try:
            done = wait_for(
                lambda: all(store.get(i.id).status == NotificationStatus.SENT for i in items)
            )
        finally:
            pool.stop(timeout=5)

        assert done
        recipients = [recipient for recipient, _ in sender.calls]
        assert sorted(recipients) == sorted(f"user{i}@example.com" for i in range(12))

    def test_attempts_overlap(self, temp_db_path):
        sender = SlowSender(delay=0.3)
        store, scheduler, pool = build_pool(temp_db_path, sender, concurrency=5)
        items = [scheduler.schedule("hi", f"u{i}@example.com", utc_now()) for i in range(5)]

        pool.start()
        try:
            assert wait_for(
                lambda: all(store.get(i.id).status == NotificationStatus.SENT for i in items)
            )
        finally:
            pool.stop(timeout=5)

        assert sender.peak > 1

    def test_retries_complete_under_threads(self, temp_db_path, mock_sender):
        sender = mock_sender
        sender.script(False, False)
        store, scheduler, pool = build_pool(temp_db_path, sender, concurrency=2)
        item = scheduler.schedule("flaky", "f@example.com", utc_now())

        pool.start()
        try:
            assert wait_for(lambda: store.get(item.id).status == NotificationStatus.SENT)
        finally:
            pool.stop(timeout=5)

        assert store.get(item.id).retry_count == 2

    def test_stop_drains_in_flight_attempt(self, temp_db_path):
        sender = SlowSender(delay=0.5)
        store, scheduler, pool = build_pool(temp_db_path, sender, concurrency=1)
        item = scheduler.schedule("slow", "s@example.com", utc_now())

        pool.start()
        assert wait_for(lambda: pool.in_flight == 1, timeout=5)
        pool.stop(timeout=5)

        assert store.get(item.id).status == NotificationStatus.SENT
        assert pool.in_flight == 0

    def test_future_item_not_attempted_early(self, temp_db_path, mock_sender):
        sender = mock_sender
        store, scheduler, pool = build_pool(temp_db_path, sender)
        item = scheduler.schedule("later", "l@example.com", utc_now() + timedelta(hours=1))

        pool.start()
        try:
            time.sleep(0.2)
        finally:
            pool.stop(timeout=5)

        assert sender.calls == []
        assert store.get(item.id).status == NotificationStatus.SCHEDULED


class OutlivingSender(NotificationSender):
    """Sends for longer than the lease, then lets a rival worker try to claim."""

    def __init__(self, delay: float):
        self.delay = delay
        self.calls = []
        self.rival_results = []
        self.pool = None

    def send(self, recipient: str, content: str) -> bool:
        self.calls.append(recipient)
        time.sleep(self.delay)
        self.rival_results.append(self.pool.dispatch_one("rival-worker"))
        return True


class TestLeaseRenewal:

    def test_long_attempt_keeps_its_lease(self, temp_db_path):
        sender = OutlivingSender(delay=0.9)
        store, scheduler, pool = build_pool(temp_db_path, sender, lease_seconds=0.3)
        sender.pool = pool
        item = scheduler.schedule("long", "slow@example.com", utc_now())

        result = pool.dispatch_one("worker-1")

        assert pool.heartbeat_interval == pytest.approx(0.1)
        assert sender.rival_results == [None]
        assert sender.calls == ["slow@example.com"]
        assert result.resolution == JobResolution.COMPLETED
        assert store.get(item.id).status == NotificationStatus.SENT
        assert pool.queue.get(item.id) is None

    def test_extend_lease_requires_current_holder(self, temp_db_path, mock_sender):
        store, scheduler, pool = build_pool(temp_db_path, mock_sender)
        item = scheduler.schedule("hi", "h@example.com", utc_now())
        job = pool.queue.claim_next("worker-1")

        assert pool.queue.extend_lease(job) is True

        # A re-armed trigger for the key replaces the token
        pool.queue.enqueue(item.id, utc_now())
        assert pool.queue.extend_lease(job) is False
