"""
Recovery Manager for the notification scheduler.

Runs when a worker process starts:
- Re-arms non-terminal items whose trigger was lost
- Abandons pending triggers whose item no longer exists
- Removes pending triggers whose item already reached SENT or FAILED

Recovery is idempotent: running multiple times produces same result.
Leased (ACTIVE) triggers are left alone; their lease expiry already makes
them claimable again.
"""

import logging
from datetime import datetime
from typing import Callable

from .delay_queue import DelayQueue
from .entities import NotificationStatus, QueuedJobState, ScheduledItem, utc_now
from .persistence import StatusStore


logger = logging.getLogger(__name__)


RECOVERY_SCAN_LIMIT = 10000


class RecoveryManager:
    """Reconciles the Status Store and the Delay Queue after a crash."""

    def __init__(
        self,
        store: StatusStore,
        queue: DelayQueue,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.queue = queue
        self.clock = clock

    def recover_on_startup(self) -> dict:
        """
        Perform full recovery.

        Each step's failure is logged and recorded without aborting the
        others.

        Returns:
            Recovery statistics
        """
        stats = {
            "items_rearmed": 0,
            "jobs_abandoned": 0,
            "jobs_removed": 0,
            "errors": [],
        }

        logger.info("Starting crash recovery...")

        # 1. Items with no live trigger
        try:
            rearmed = self._rearm_orphaned_items()
            stats["items_rearmed"] = len(rearmed)
        except Exception as e:
            logger.error(f"Error re-arming orphaned events: {e}")
            stats["errors"].append(f"Orphaned events: {e}")

        # 2. and 3. Triggers pointing at missing or finished items
        try:
            abandoned, removed = self._clean_stale_jobs()
            stats["jobs_abandoned"] = abandoned
            stats["jobs_removed"] = removed
        except Exception as e:
            logger.error(f"Error cleaning stale jobs: {e}")
            stats["errors"].append(f"Stale jobs: {e}")

        logger.info(
            f"Recovery complete: "
            f"{stats['items_rearmed']} events re-armed, "
            f"{stats['jobs_abandoned']} jobs abandoned, "
            f"{stats['jobs_removed']} jobs removed"
        )

        return stats

    def _rearm_orphaned_items(self) -> list[ScheduledItem]:
        """
        Re-arm non-terminal items that have no PENDING or ACTIVE trigger.

        SCHEDULED items keep their original send time (or fire now if it
        passed); PROCESSING and RETRIED items were interrupted mid-flight and
        fire now.
        """
        rearmed = []
        now = self.clock()

        for item in self.store.list_non_terminal():
            if self.queue.has_pending(item.id):
                continue

            if item.status == NotificationStatus.SCHEDULED:
                not_before = max(item.send_at, now)
            else:
                not_before = now

            self.queue.enqueue(item.id, not_before, item.job_payload())
            logger.info(
                f"Re-armed event {item.id} ({item.status.value}, "
                f"retry {item.retry_count}) for {not_before.isoformat()}"
            )
            rearmed.append(item)

        return rearmed

    def _clean_stale_jobs(self) -> tuple[int, int]:
        abandoned = 0
        removed = 0

        pending = self.queue.list_jobs(
            state=QueuedJobState.PENDING,
            limit=RECOVERY_SCAN_LIMIT,
        )

        for job in pending:
            item = self.store.get(job.job_key)

            if item is None:
                logger.warning(f"Job {job.job_key} has no event record, abandoning")
                if self.queue.abandon(job, "Event not found during recovery"):
                    abandoned += 1
            elif item.is_terminal():
                logger.info(
                    f"Job {job.job_key} points at {item.status.value} event, removing"
                )
                if self.queue.complete(job):
                    removed += 1

        return abandoned, removed
