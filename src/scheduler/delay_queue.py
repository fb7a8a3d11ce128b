"""
Delay Queue for the notification scheduler.

Durable, crash-tolerant release of jobs no earlier than a given instant:
- One entry per job_key; enqueue overwrites any prior trigger for the key
- claim_next() leases a due job to exactly one worker (atomic across processes)
- Expired leases make a stalled job claimable again (liveness)
- Transport-level redelivery with its own backoff and delivery cap

What DelayQueue MUST NOT do:
- Read or mutate ScheduledItem status or retry_count
- Decide business retries (RetryController's responsibility)
"""

import json
import logging
import sqlite3
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from .entities import (
    QueuedJob,
    QueuedJobState,
    from_epoch_ms,
    generate_uuid,
    to_epoch_ms,
    utc_now,
)
from .persistence import SQLiteAdapter


logger = logging.getLogger(__name__)


DEFAULT_LEASE_SECONDS = 30.0
DEFAULT_MAX_DELIVERIES = 5
REDELIVERY_BASE_DELAY_SECONDS = 1.0
REDELIVERY_MAX_DELAY_SECONDS = 60.0


class DelayQueue(SQLiteAdapter):
    """
    SQLite-backed delayed job queue keyed by item id.

    Entry lifecycle:
        enqueue → PENDING ──claim──→ ACTIVE ──complete──→ (deleted)
                     ↑                 │
                     └────release──────┤  (infrastructure fault, lease expiry)
                                       └──abandon──→ DEAD
    """

    def __init__(
        self,
        db_path: str | Path,
        clock: Callable[[], datetime] = utc_now,
        lease_seconds: float = DEFAULT_LEASE_SECONDS,
        max_deliveries: int = DEFAULT_MAX_DELIVERIES,
    ):
        """
        Initialize the delay queue.

        Args:
            db_path: Path to SQLite database file
            clock: Source of "now" for release decisions
            lease_seconds: How long a claimed job stays leased before it is
                considered stalled and becomes claimable again
            max_deliveries: Transport deliveries of one trigger before it is
                abandoned as DEAD
        """
        super().__init__(db_path)
        self.clock = clock
        self.lease_seconds = lease_seconds
        self.max_deliveries = max_deliveries
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS delayed_jobs (
                    job_key TEXT PRIMARY KEY,
                    token TEXT NOT NULL,
                    payload TEXT NOT NULL DEFAULT '{}',
                    state TEXT NOT NULL DEFAULT 'PENDING',
                    not_before_ms INTEGER NOT NULL,
                    deliveries INTEGER NOT NULL DEFAULT 0,
                    lease_owner TEXT,
                    leased_until_ms INTEGER,
                    last_error TEXT,
                    enqueued_at_ms INTEGER NOT NULL
                )
            """)

            # Index for release ordering
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_delayed_jobs_due
                ON delayed_jobs (state, not_before_ms)
            """)

    def _row_to_job(self, row: sqlite3.Row) -> QueuedJob:
        leased_until = row["leased_until_ms"]
        return QueuedJob(
            job_key=row["job_key"],
            not_before=from_epoch_ms(row["not_before_ms"]),
            payload=json.loads(row["payload"]),
            token=row["token"],
            state=QueuedJobState(row["state"]),
            deliveries=row["deliveries"],
            lease_owner=row["lease_owner"],
            leased_until=from_epoch_ms(leased_until) if leased_until is not None else None,
            last_error=row["last_error"],
            enqueued_at=from_epoch_ms(row["enqueued_at_ms"]),
        )

    # =========================================================================
    # Producer Side
    # =========================================================================

    def enqueue(
        self,
        job_key: str,
        not_before: datetime,
        payload: Optional[dict] = None,
    ) -> QueuedJob:
        """
        Arm a trigger for job_key at not_before.

        Idempotent per key: any prior trigger for the same key (pending,
        leased or dead) is replaced, so at most one remains.
        """
        job = QueuedJob(
            job_key=job_key,
            not_before=not_before,
            payload=payload or {},
            token=generate_uuid(),
            enqueued_at=self.clock(),
        )

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO delayed_jobs
                (job_key, token, payload, state, not_before_ms, deliveries,
                 lease_owner, leased_until_ms, last_error, enqueued_at_ms)
                VALUES (?, ?, ?, ?, ?, 0, NULL, NULL, NULL, ?)
                """,
                (
                    job.job_key,
                    job.token,
                    json.dumps(job.payload),
                    QueuedJobState.PENDING.value,
                    to_epoch_ms(job.not_before),
                    to_epoch_ms(job.enqueued_at),
                ),
            )

        logger.debug(f"Enqueued job {job_key} not before {job.not_before.isoformat()}")
        return job

    # =========================================================================
    # Consumer Side
    # =========================================================================

    def claim_next(self, worker_id: str) -> Optional[QueuedJob]:
        """
        Lease the next due job to worker_id.

        Due means PENDING with not_before <= now, or ACTIVE with an expired
        lease (the previous holder stalled or crashed). A stalled job that
        has used up its deliveries is marked DEAD instead of being handed out.

        Returns:
            The leased job, or None if nothing is due
        """
        now = self.clock()
        now_ms = to_epoch_ms(now)

        with self._transaction(immediate=True) as conn:
            while True:
                row = conn.execute(
                    """
                    SELECT * FROM delayed_jobs
                    WHERE (state = ? AND not_before_ms <= ?)
                       OR (state = ? AND leased_until_ms <= ?)
                    ORDER BY not_before_ms ASC, enqueued_at_ms ASC
                    LIMIT 1
                    """,
                    (
                        QueuedJobState.PENDING.value,
                        now_ms,
                        QueuedJobState.ACTIVE.value,
                        now_ms,
                    ),
                ).fetchone()

                if row is None:
                    return None

                stalled = row["state"] == QueuedJobState.ACTIVE.value
                if stalled and row["deliveries"] >= self.max_deliveries:
                    logger.error(
                        f"Job {row['job_key']} stalled after {row['deliveries']} "
                        "deliveries, abandoning"
                    )
                    conn.execute(
                        """
                        UPDATE delayed_jobs
                        SET state = ?, lease_owner = NULL, leased_until_ms = NULL, last_error = ?
                        WHERE job_key = ?
                        """,
                        (QueuedJobState.DEAD.value, "Lease expired", row["job_key"]),
                    )
                    continue

                if stalled:
                    logger.warning(
                        f"Job {row['job_key']} lease held by {row['lease_owner']} "
                        f"expired, re-releasing to {worker_id}"
                    )

                leased_until_ms = now_ms + int(self.lease_seconds * 1000)
                conn.execute(
                    """
                    UPDATE delayed_jobs
                    SET state = ?, lease_owner = ?, leased_until_ms = ?, deliveries = deliveries + 1
                    WHERE job_key = ?
                    """,
                    (
                        QueuedJobState.ACTIVE.value,
                        worker_id,
                        leased_until_ms,
                        row["job_key"],
                    ),
                )

                job = self._row_to_job(row)
                job.state = QueuedJobState.ACTIVE
                job.lease_owner = worker_id
                job.leased_until = from_epoch_ms(leased_until_ms)
                job.deliveries += 1
                return job

    def extend_lease(self, job: QueuedJob) -> bool:
        """
        Push the lease of a claimed job lease_seconds past now.

        Only succeeds while the entry is still the same trigger (token),
        ACTIVE and leased to job.lease_owner.

        Returns:
            True if the lease is still held and was extended
        """
        leased_until_ms = to_epoch_ms(self.clock()) + int(self.lease_seconds * 1000)

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE delayed_jobs
                SET leased_until_ms = ?
                WHERE job_key = ? AND token = ? AND state = ? AND lease_owner = ?
                """,
                (
                    leased_until_ms,
                    job.job_key,
                    job.token,
                    QueuedJobState.ACTIVE.value,
                    job.lease_owner,
                ),
            )
            if cursor.rowcount == 0:
                return False

        job.leased_until = from_epoch_ms(leased_until_ms)
        return True

    def complete(self, job: QueuedJob) -> bool:
        """
        Remove a resolved trigger.

        Only deletes the entry if it is still the trigger that was claimed;
        a re-armed trigger (new token) for the same key is left in place.

        Returns:
            True if the entry was removed
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM delayed_jobs WHERE job_key = ? AND token = ?",
                (job.job_key, job.token),
            )
            return cursor.rowcount > 0

    def release(self, job: QueuedJob, error: str) -> Optional[QueuedJob]:
        """
        Hand a job back after an infrastructure fault.

        Schedules transport-level redelivery with exponential backoff; after
        max_deliveries the job is abandoned instead.

        Returns:
            The job as stored afterwards, or None if the trigger was replaced
        """
        if job.deliveries >= self.max_deliveries:
            logger.error(
                f"Job {job.job_key} failed {job.deliveries} deliveries, abandoning: {error}"
            )
            return self.abandon(job, error)

        delay = min(
            REDELIVERY_BASE_DELAY_SECONDS * (2 ** max(job.deliveries - 1, 0)),
            REDELIVERY_MAX_DELAY_SECONDS,
        )
        not_before = self.clock() + timedelta(seconds=delay)

        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE delayed_jobs
                SET state = ?, not_before_ms = ?, lease_owner = NULL,
                    leased_until_ms = NULL, last_error = ?
                WHERE job_key = ? AND token = ?
                """,
                (
                    QueuedJobState.PENDING.value,
                    to_epoch_ms(not_before),
                    error,
                    job.job_key,
                    job.token,
                ),
            )
            if cursor.rowcount == 0:
                return None

        logger.warning(
            f"Job {job.job_key} released for redelivery in {delay:.1f}s "
            f"(delivery {job.deliveries}/{self.max_deliveries}): {error}"
        )
        return self.get(job.job_key)

    def abandon(self, job: QueuedJob, reason: str) -> Optional[QueuedJob]:
        """
        Mark a job DEAD; it is never released again.

        Returns:
            The dead job, or None if the trigger was replaced
        """
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE delayed_jobs
                SET state = ?, lease_owner = NULL, leased_until_ms = NULL, last_error = ?
                WHERE job_key = ? AND token = ?
                """,
                (QueuedJobState.DEAD.value, reason, job.job_key, job.token),
            )
            if cursor.rowcount == 0:
                return None

        return self.get(job.job_key)

    def remove(self, job_key: str) -> bool:
        """Remove any entry for job_key regardless of state."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM delayed_jobs WHERE job_key = ?",
                (job_key,),
            )
            return cursor.rowcount > 0

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, job_key: str) -> Optional[QueuedJob]:
        """Get the entry for job_key, if any."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM delayed_jobs WHERE job_key = ?",
                (job_key,),
            ).fetchone()

        if row is None:
            return None

        return self._row_to_job(row)

    def has_pending(self, job_key: str) -> bool:
        """True if job_key has a live (PENDING or ACTIVE) trigger."""
        job = self.get(job_key)
        return job is not None and job.state != QueuedJobState.DEAD

    def list_jobs(
        self,
        state: Optional[QueuedJobState] = None,
        limit: int = 100,
    ) -> list[QueuedJob]:
        """List entries in release order, optionally filtered by state."""
        query = "SELECT * FROM delayed_jobs"
        params: list = []

        if state is not None:
            query += " WHERE state = ?"
            params.append(QueuedJobState(state).value)

        query += " ORDER BY not_before_ms ASC, enqueued_at_ms ASC LIMIT ?"
        params.append(limit)

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_job(row) for row in rows]

    def count_by_state(self) -> dict[str, int]:
        """Count entries per state; every state is present in the result."""
        counts = {state.value: 0 for state in QueuedJobState}

        with self._connection() as conn:
            rows = conn.execute(
                "SELECT state, COUNT(*) AS total FROM delayed_jobs GROUP BY state"
            ).fetchall()

        for row in rows:
            counts[row["state"]] = row["total"]

        return counts
