"""
Invariant Tests for the notification scheduler.

Runs many items through randomized send outcomes and checks, for every item:
- retry_count stays within 0..MAX_RETRIES and never decreases
- FAILED only with retry_count == MAX_RETRIES
- every broadcast equals a state the store actually held
- one broadcast per mutation, none after a terminal state
"""

import random

import pytest

from src.scheduler import (
    MAX_RETRIES,
    NotificationSender,
    NotificationStatus,
    TERMINAL_STATUSES,
    TerminalStateError,
    WorkerPool,
)


class RandomSender(NotificationSender):
    """Sender failing with a fixed probability from a seeded generator."""

    def __init__(self, seed: int, failure_rate: float):
        self._rng = random.Random(seed)
        self.failure_rate = failure_rate

    def send(self, recipient: str, content: str) -> bool:
        return self._rng.random() >= self.failure_rate


def drain(worker_pool: WorkerPool, mock_clock, max_steps: int = 10000) -> int:
    """Dispatch until nothing is due, advancing time across backoffs."""
    steps = 0
    idle_ticks = 0
    while steps < max_steps:
        result = worker_pool.dispatch_one()
        if result is None:
            idle_ticks += 1
            if idle_ticks > 10:
                return steps
            mock_clock.tick(5)
            continue
        idle_ticks = 0
        steps += 1
    raise AssertionError("queue did not drain")


@pytest.mark.parametrize("seed", [1, 7, 42])
@pytest.mark.parametrize("failure_rate", [0.0, 0.5, 0.9, 1.0])
def test_random_outcomes_keep_invariants(
    seed, failure_rate, schedule_item, worker_pool, executor, store, queue, bus, mock_clock
):
    executor.sender = RandomSender(seed, failure_rate)
    rng = random.Random(seed)
    items = [
        schedule_item(recipient_email=f"user{i}@example.com", delay_seconds=rng.randint(0, 20))
        for i in range(15)
    ]

    drain(worker_pool, mock_clock)

    assert queue.list_jobs() == []

    for item in items:
        stored = store.get(item.id)
        messages = bus.messages_for(item.id)
        statuses = [m.status for m in messages]
        retry_counts = [m.data["retryCount"] for m in messages]

        assert stored.status in TERMINAL_STATUSES
        assert 0 <= stored.retry_count <= MAX_RETRIES
        if stored.status == NotificationStatus.FAILED:
            assert stored.retry_count == MAX_RETRIES

        # Monotonic and bounded as observed
        assert retry_counts == sorted(retry_counts)
        assert all(0 <= r <= MAX_RETRIES for r in retry_counts)

        # Creation plus two mutations per attempt
        attempts = statuses.count("PROCESSING")
        assert len(messages) == 1 + 2 * attempts
        assert statuses[0] == "SCHEDULED"

        # Terminal state is last and broadcast exactly once
        terminal = [s for s in statuses if s in ("SENT", "FAILED")]
        assert terminal == [stored.status.value]
        assert statuses[-1] == stored.status.value
        assert messages[-1].data == stored.to_dict()


def test_always_failing_item_makes_exactly_four_attempts(schedule_item, worker_pool, mock_sender, store, mock_clock):
    mock_sender.default = False
    item = schedule_item()

    drain(worker_pool, mock_clock)

    assert len(mock_sender.calls) == MAX_RETRIES + 1
    assert store.get(item.id).status == NotificationStatus.FAILED


def test_terminal_item_rejects_further_mutation(schedule_item, worker_pool, tracker, bus):
    item = schedule_item()
    worker_pool.dispatch_one()
    published_before = len(bus.published)

    with pytest.raises(TerminalStateError):
        tracker.transition(item.id, NotificationStatus.PROCESSING)

    assert len(bus.published) == published_before
