"""
Event Scheduler: turns "send at T" into a bounded-delay trigger.

Side effects happen strictly in this order:
1. Status Store create (SCHEDULED, retry_count=0)
2. Delay Queue enqueue (not_before = now + max(0, send_at - now))
3. Broadcast of the new item

so no observer sees an item that is not durably recorded, and no worker
finds a job for an item that is not durably recorded.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from .delay_queue import DelayQueue
from .entities import ScheduledItem, ensure_utc, utc_now
from .errors import ScheduleError
from .tracker import StatusTracker


logger = logging.getLogger(__name__)


def compute_delay_ms(send_at: datetime, now: datetime) -> int:
    """Milliseconds until send_at, never negative."""
    delta = ensure_utc(send_at) - ensure_utc(now)
    return max(0, int(delta.total_seconds() * 1000))


class EventScheduler:
    """Accepts new items and arms their first trigger."""

    def __init__(
        self,
        tracker: StatusTracker,
        queue: DelayQueue,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.tracker = tracker
        self.queue = queue
        self.clock = clock

    def schedule(
        self,
        message: str,
        recipient_email: str,
        send_at: datetime,
    ) -> ScheduledItem:
        """
        Schedule a notification for send_at.

        send_at in the past is not rejected; it becomes eligible
        immediately. Format validation is the caller's job.

        Raises:
            ScheduleError: If any step fails. When the create itself fails,
                nothing is enqueued or published.
        """
        now = self.clock()
        item = ScheduledItem.create(
            message=message,
            recipient_email=recipient_email,
            send_at=send_at,
            now=now,
        )

        try:
            item = self.tracker.create(item)
        except Exception as e:
            logger.error(f"Error scheduling event: {e}")
            raise ScheduleError("Failed to schedule event.") from e

        delay_ms = compute_delay_ms(item.send_at, now)
        not_before = now + timedelta(milliseconds=delay_ms)

        try:
            self.queue.enqueue(item.id, not_before, item.job_payload())
            logger.info(
                f"Job {item.id} added to queue with delay {delay_ms}ms"
            )
            self.tracker.announce(item)
        except Exception as e:
            # The record stays SCHEDULED; startup recovery re-arms it
            logger.error(f"Error arming event {item.id}: {e}")
            raise ScheduleError("Failed to schedule event.") from e

        return item
