"""
Scheduler-specific exceptions.

Business retries never surface as exceptions: a failed send is an expected
outcome handled by the retry controller. These exceptions cover invariant
violations, missing records and infrastructure faults.
"""

from typing import Any


class SchedulerError(Exception):
    """Base exception for all scheduler errors."""
    pass


class InvalidOperationError(SchedulerError):
    """
    Raised when an operation violates scheduler invariants.

    Examples:
    - Decrementing retry_count
    - retry_count above the retry ceiling
    - FAILED with retries remaining
    """
    pass


class TerminalStateError(InvalidOperationError):
    """Raised when mutating an item that is already SENT or FAILED."""

    def __init__(self, item_id: str, status: str):
        self.item_id = item_id
        self.status = status
        super().__init__(f"Item {item_id} is terminal ({status}); no further mutation allowed")


class InvalidStatusError(SchedulerError):
    """Raised when a status value is not one of the five known states."""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Unknown notification status: {value!r}")


class ItemNotFoundError(SchedulerError):
    """
    Raised when a scheduled item does not exist.

    In a worker this is the missing-record fault: the job is abandoned and
    never re-armed.
    """

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Scheduled item not found: {item_id}")


class ScheduleError(SchedulerError):
    """Raised when scheduling a new item fails as a whole."""
    pass


class BroadcastError(SchedulerError):
    """Raised when a status change cannot be published to the broadcast bus."""
    pass


class LeaseLostError(SchedulerError):
    """
    Raised when a worker no longer holds the lease on the job it is running.

    Another worker has claimed the trigger (or it was replaced), so the
    outcome of this attempt must not be applied.
    """

    def __init__(self, job_key: str, worker_id: str | None):
        self.job_key = job_key
        self.worker_id = worker_id
        super().__init__(f"Lease on job {job_key} no longer held by {worker_id}")
