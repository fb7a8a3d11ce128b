"""
Attempt Executor for the notification scheduler.

Runs the attempt procedure for one released job:
1. Re-read the item (authoritative retry_count, never the queued payload)
2. Missing → ItemNotFoundError; already terminal → SKIPPED
3. Mark PROCESSING and publish
4. Send
5. Ask the retry controller for a decision
6. Confirm the lease is still held (LeaseLostError otherwise)
7. Apply the decision and publish
8. Re-arm the trigger when the decision says so

What AttemptExecutor MUST NOT do:
- Resolve the queue entry (WorkerPool's responsibility)
- Retry infrastructure faults (they propagate to the WorkerPool)
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from .delay_queue import DelayQueue
from .entities import NotificationStatus, QueuedJob, ScheduledItem, utc_now
from .errors import ItemNotFoundError, LeaseLostError
from .retry_controller import RetryController, RetryDecision
from .sender import NotificationSender
from .tracker import StatusTracker


logger = logging.getLogger(__name__)


class AttemptOutcome(str, Enum):
    """How an attempt resolved."""

    SENT = "SENT"
    RETRIED = "RETRIED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


@dataclass
class AttemptResult:
    """Result of one attempt procedure."""

    outcome: AttemptOutcome
    item: ScheduledItem
    decision: Optional[RetryDecision] = None
    retry_at: Optional[datetime] = None


class AttemptExecutor:
    """Executes the attempt procedure for released jobs."""

    def __init__(
        self,
        tracker: StatusTracker,
        queue: DelayQueue,
        sender: NotificationSender,
        retry_controller: Optional[RetryController] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize AttemptExecutor.

        Args:
            tracker: StatusTracker for mutations + broadcasts
            queue: DelayQueue for re-arming retries
            sender: NotificationSender performing the delivery
            retry_controller: Retry ceiling and backoff configuration
            clock: Source of "now" for retry scheduling
        """
        self.tracker = tracker
        self.queue = queue
        self.sender = sender
        self.retry_controller = retry_controller or RetryController()
        self.clock = clock

    def run(self, job: QueuedJob) -> AttemptResult:
        """
        Run one attempt for a released job.

        Raises:
            ItemNotFoundError: If the item vanished (missing-record fault)
            LeaseLostError: If another worker took over the job during the send
            Exception: Store/bus faults propagate unchanged
        """
        item_id = job.job_key

        item = self.tracker.get(item_id)
        if item is None:
            logger.error(f"Worker: Event {item_id} not found in store, abandoning job")
            raise ItemNotFoundError(item_id)

        if item.is_terminal():
            logger.info(
                f"Worker: Event {item_id} already {item.status.value}, skipping redelivered job"
            )
            return AttemptResult(outcome=AttemptOutcome.SKIPPED, item=item)

        retry_count = item.retry_count
        logger.info(
            f"Worker: Processing event {item_id} "
            f"(attempt {retry_count + 1}, delivery {job.deliveries})"
        )

        self.tracker.transition(item_id, NotificationStatus.PROCESSING)

        success = self._send(item)
        decision = self.retry_controller.decide(success, retry_count)

        if not self.queue.extend_lease(job):
            logger.warning(
                f"Worker: Lease on event {item_id} lost during send, "
                "leaving the outcome to the current holder"
            )
            raise LeaseLostError(item_id, job.lease_owner)

        item = self.tracker.transition(
            item_id,
            decision.next_status,
            retry_count=decision.next_retry_count,
        )

        if decision.re_arm:
            retry_at = self.clock() + timedelta(milliseconds=decision.delay_ms)
            self.queue.enqueue(item_id, retry_at, item.job_payload())
            logger.warning(
                f"Worker: Event {item_id} failed. Retrying "
                f"(Attempt {decision.next_retry_count}/{self.retry_controller.max_retries}) "
                f"in {decision.delay_ms / 1000} seconds."
            )
            return AttemptResult(
                outcome=AttemptOutcome.RETRIED,
                item=item,
                decision=decision,
                retry_at=retry_at,
            )

        if decision.next_status == NotificationStatus.SENT:
            logger.info(f"Worker: Event {item_id} successfully sent and marked as SENT.")
            return AttemptResult(outcome=AttemptOutcome.SENT, item=item, decision=decision)

        # Exhausting retries is an expected end state, not an incident
        logger.warning(
            f"Worker: Event {item_id} failed permanently after {item.retry_count} retries."
        )
        return AttemptResult(outcome=AttemptOutcome.FAILED, item=item, decision=decision)

    def _send(self, item: ScheduledItem) -> bool:
        """Call the sender; a raising sender counts as a failed delivery."""
        try:
            return bool(self.sender.send(item.recipient_email, item.message))
        except Exception as e:
            logger.warning(f"Worker: Sender raised for event {item.id}: {e}")
            return False
