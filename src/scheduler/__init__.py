"""
Notification Scheduler Core Module.

Durable status records, a delay queue of triggers, a worker pool that
executes due notifications, and a bounded retry state machine.
"""

from .entities import (
    MAX_RETRIES,
    NotificationStatus,
    QueuedJobState,
    TERMINAL_STATUSES,
    ScheduledItem,
    QueuedJob,
    BroadcastMessage,
)
from .errors import (
    SchedulerError,
    InvalidOperationError,
    TerminalStateError,
    InvalidStatusError,
    ItemNotFoundError,
    LeaseLostError,
    ScheduleError,
    BroadcastError,
)
from .persistence import StatusStore
from .delay_queue import DelayQueue
from .tracker import StatusTracker
from .event_scheduler import EventScheduler
from .retry_controller import RetryController, RetryDecision, backoff_ms, decide
from .sender import NotificationSender, SimulatedSender, WebhookSender, create_sender
from .executor import AttemptExecutor, AttemptOutcome, AttemptResult
from .worker_pool import WorkerPool, WorkerPoolState, JobResolution, DispatchResult
from .recovery import RecoveryManager
from .service import SchedulerService

__all__ = [
    # Entities
    "MAX_RETRIES",
    "NotificationStatus",
    "QueuedJobState",
    "TERMINAL_STATUSES",
    "ScheduledItem",
    "QueuedJob",
    "BroadcastMessage",
    # Errors
    "SchedulerError",
    "InvalidOperationError",
    "TerminalStateError",
    "InvalidStatusError",
    "ItemNotFoundError",
    "LeaseLostError",
    "ScheduleError",
    "BroadcastError",
    # Storage
    "StatusStore",
    "DelayQueue",
    "StatusTracker",
    # Scheduling
    "EventScheduler",
    # Retry
    "RetryController",
    "RetryDecision",
    "backoff_ms",
    "decide",
    # Execution
    "NotificationSender",
    "SimulatedSender",
    "WebhookSender",
    "create_sender",
    "AttemptExecutor",
    "AttemptOutcome",
    "AttemptResult",
    "WorkerPool",
    "WorkerPoolState",
    "JobResolution",
    "DispatchResult",
    # Recovery
    "RecoveryManager",
    # Service
    "SchedulerService",
]
