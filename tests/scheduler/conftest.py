"""
Scheduler Test Fixtures.

Base fixtures:
  - Empty database (temporary file shared by store and queue)
  - Mocked clock at fixed time
  - In-memory broadcast bus recording every publish
  - Scripted sender

Tests never sleep through backoff delays: they advance the mock clock and
dispatch synchronously with WorkerPool.dispatch_one().
"""

import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator, Iterable, Optional

import pytest

from src.broadcast import InMemoryBroadcastBus
from src.scheduler import (
    AttemptExecutor,
    DelayQueue,
    EventScheduler,
    NotificationSender,
    RecoveryManager,
    RetryController,
    StatusStore,
    StatusTracker,
    WorkerPool,
)


# Fixed time for deterministic tests
FIXED_DATETIME = datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class MockClock:
    """
    Mock clock for deterministic time control.

    - Starts at fixed epoch
    - Advances only when explicitly ticked
    - Callable, so it can be passed wherever a clock is expected
    """

    def __init__(self, start_time: datetime = FIXED_DATETIME):
        self._current = start_time
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        return self.now()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def tick(self, seconds: float = 0, milliseconds: float = 0) -> None:
        """Advance time by the given amount."""
        with self._lock:
            self._current += timedelta(seconds=seconds, milliseconds=milliseconds)

    def set(self, time: datetime) -> None:
        """Set time to specific value."""
        with self._lock:
            self._current = time


class MockSender(NotificationSender):
    """
    Scripted sender for testing.

    Returns queued outcomes in order, then the default outcome. An outcome
    that is an Exception instance is raised instead of returned.
    """

    def __init__(self, outcomes: Optional[Iterable] = None, default: bool = True):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def script(self, *outcomes) -> None:
        with self._lock:
            self.outcomes.extend(outcomes)

    def send(self, recipient: str, content: str) -> bool:
        with self._lock:
            self.calls.append((recipient, content))
            outcome = self.outcomes.pop(0) if self.outcomes else self.default

        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def temp_db_path() -> Generator[str, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    yield db_path

    # Cleanup
    Path(db_path).unlink(missing_ok=True)
    # Also cleanup WAL and SHM files
    Path(f"{db_path}-wal").unlink(missing_ok=True)
    Path(f"{db_path}-shm").unlink(missing_ok=True)


@pytest.fixture
def mock_clock() -> MockClock:
    """Create a mock clock at fixed time."""
    return MockClock()


@pytest.fixture
def store(temp_db_path: str, mock_clock: MockClock) -> StatusStore:
    """Create a fresh StatusStore with empty database."""
    return StatusStore(temp_db_path, clock=mock_clock)


@pytest.fixture
def queue(temp_db_path: str, mock_clock: MockClock) -> DelayQueue:
    """Create a DelayQueue sharing the store's database."""
    return DelayQueue(temp_db_path, clock=mock_clock)


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def bus() -> InMemoryBroadcastBus:
    return InMemoryBroadcastBus(record=True)


@pytest.fixture
def tracker(store: StatusStore, bus: InMemoryBroadcastBus) -> StatusTracker:
    return StatusTracker(store, bus)


@pytest.fixture
def scheduler(tracker: StatusTracker, queue: DelayQueue, mock_clock: MockClock) -> EventScheduler:
    return EventScheduler(tracker, queue, clock=mock_clock)


@pytest.fixture
def mock_sender() -> MockSender:
    return MockSender()


@pytest.fixture
def executor(
    tracker: StatusTracker,
    queue: DelayQueue,
    mock_sender: MockSender,
    mock_clock: MockClock,
) -> AttemptExecutor:
    """Create an AttemptExecutor with the scripted sender."""
    return AttemptExecutor(
        tracker=tracker,
        queue=queue,
        sender=mock_sender,
        retry_controller=RetryController(),
        clock=mock_clock,
    )


@pytest.fixture
def worker_pool(queue: DelayQueue, executor: AttemptExecutor) -> WorkerPool:
    """Create a WorkerPool; tests drive it with dispatch_one()."""
    return WorkerPool(queue=queue, executor=executor, concurrency=5, poll_interval=0.01, name="test")


@pytest.fixture
def recovery_manager(store: StatusStore, queue: DelayQueue, mock_clock: MockClock) -> RecoveryManager:
    return RecoveryManager(store, queue, clock=mock_clock)


@pytest.fixture
def schedule_item(scheduler: EventScheduler, mock_clock: MockClock):
    """Factory scheduling an item due after `delay_seconds`."""

    def _schedule(
        message: str = "Reminder: standup at 10",
        recipient_email: str = "alice@example.com",
        delay_seconds: float = 0,
    ):
        send_at = mock_clock.now() + timedelta(seconds=delay_seconds)
        return scheduler.schedule(message, recipient_email, send_at)

    return _schedule


@pytest.fixture
def broadcast_statuses(bus: InMemoryBroadcastBus):
    """Statuses broadcast for one item, in publish order."""

    def _statuses(item_id: str) -> list[str]:
        return [m.status for m in bus.messages_for(item_id)]

    return _statuses
