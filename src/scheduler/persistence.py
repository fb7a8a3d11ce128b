"""
Status Store for the notification scheduler.

SQLite-backed durable record of every ScheduledItem:
- WAL mode so API and worker processes can share one database file
- Atomic single-item create/get/update (no multi-item transactions)
- Status normalized at the read boundary (unknown values are rejected)
- Retry/terminal invariants enforced inside the update transaction

Does NOT publish broadcasts; StatusTracker pairs each mutation with one.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Optional

from .entities import (
    MAX_RETRIES,
    NotificationStatus,
    ScheduledItem,
    parse_iso,
    to_iso,
    utc_now,
)
from .errors import (
    InvalidOperationError,
    ItemNotFoundError,
    TerminalStateError,
)


# Seconds a connection waits on a locked database before failing
BUSY_TIMEOUT_SECONDS = 30.0


class SQLiteAdapter:
    """Connection handling shared by the Status Store and the Delay Queue."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with WAL mode enabled."""
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for read-only access."""
        conn = self._get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database transactions.

        immediate=True takes the write lock up front so a read-then-write
        sequence cannot interleave with another process.
        """
        conn = self._get_connection()
        try:
            if immediate:
                conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


class StatusStore(SQLiteAdapter):
    """
    Durable record store for ScheduledItems.

    Invariants enforced on update:
    - SENT and FAILED are terminal
    - retry_count never decreases and never exceeds MAX_RETRIES
    - FAILED requires retry_count == MAX_RETRIES
    """

    def __init__(
        self,
        db_path: str | Path,
        clock: Callable[[], datetime] = utc_now,
        max_retries: int = MAX_RETRIES,
    ):
        """
        Initialize the status store.

        Args:
            db_path: Path to SQLite database file
            clock: Source of "now" for created_at/updated_at
            max_retries: Retry ceiling enforced on every update
        """
        super().__init__(db_path)
        self.clock = clock
        self.max_retries = max_retries
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS events (
                    id TEXT PRIMARY KEY,
                    message TEXT NOT NULL,
                    recipient_email TEXT NOT NULL,
                    send_at TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'SCHEDULED',
                    retry_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_events_status
                ON events (status, created_at)
            """)

    def _row_to_item(self, row: sqlite3.Row) -> ScheduledItem:
        return ScheduledItem(
            id=row["id"],
            message=row["message"],
            recipient_email=row["recipient_email"],
            send_at=parse_iso(row["send_at"]),
            status=NotificationStatus.parse(row["status"]),
            retry_count=row["retry_count"],
            created_at=parse_iso(row["created_at"]),
            updated_at=parse_iso(row["updated_at"]),
        )

    # =========================================================================
    # Item Operations
    # =========================================================================

    def create(self, item: ScheduledItem) -> ScheduledItem:
        """Persist a new item."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO events
                (id, message, recipient_email, send_at, status, retry_count, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    item.message,
                    item.recipient_email,
                    to_iso(item.send_at),
                    item.status.value,
                    item.retry_count,
                    to_iso(item.created_at),
                    to_iso(item.updated_at),
                ),
            )
        return item

    def get(self, item_id: str) -> Optional[ScheduledItem]:
        """Get an item by ID, or None if absent."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM events WHERE id = ?",
                (item_id,),
            ).fetchone()

        if row is None:
            return None

        return self._row_to_item(row)

    def update(
        self,
        item_id: str,
        status: Optional[NotificationStatus] = None,
        retry_count: Optional[int] = None,
    ) -> ScheduledItem:
        """
        Atomically update status and/or retry_count of one item.

        Returns:
            The item as stored after the update

        Raises:
            ItemNotFoundError: If the item does not exist
            TerminalStateError: If the item is already SENT or FAILED
            InvalidOperationError: If the update would break retry invariants
        """
        with self._transaction(immediate=True) as conn:
            row = conn.execute(
                "SELECT * FROM events WHERE id = ?",
                (item_id,),
            ).fetchone()
            if row is None:
                raise ItemNotFoundError(item_id)

            current = self._row_to_item(row)
            if current.is_terminal():
                raise TerminalStateError(item_id, current.status.value)

            new_status = NotificationStatus.parse(status) if status is not None else current.status
            new_retry_count = current.retry_count if retry_count is None else retry_count

            if new_retry_count < current.retry_count:
                raise InvalidOperationError(
                    f"retry_count of {item_id} cannot decrease "
                    f"({current.retry_count} -> {new_retry_count})"
                )
            if new_retry_count > self.max_retries:
                raise InvalidOperationError(
                    f"retry_count of {item_id} cannot exceed {self.max_retries} "
                    f"(got {new_retry_count})"
                )
            if new_status == NotificationStatus.FAILED and new_retry_count != self.max_retries:
                raise InvalidOperationError(
                    f"Item {item_id} cannot be FAILED with {new_retry_count} of "
                    f"{self.max_retries} retries used"
                )

            updated_at = self.clock()
            conn.execute(
                "UPDATE events SET status = ?, retry_count = ?, updated_at = ? WHERE id = ?",
                (new_status.value, new_retry_count, to_iso(updated_at), item_id),
            )

        current.status = new_status
        current.retry_count = new_retry_count
        current.updated_at = updated_at
        return current

    def delete(self, item_id: str) -> bool:
        """
        Delete an item.

        The scheduling core never deletes; archival is an external concern.

        Returns:
            True if a row was deleted
        """
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM events WHERE id = ?", (item_id,))
            return cursor.rowcount > 0

    # =========================================================================
    # Listing
    # =========================================================================

    def list_items(
        self,
        status: Optional[NotificationStatus] = None,
        limit: Optional[int] = None,
    ) -> list[ScheduledItem]:
        """List items, newest first, optionally filtered by status."""
        query = "SELECT * FROM events"
        params: list = []

        if status is not None:
            query += " WHERE status = ?"
            params.append(NotificationStatus.parse(status).value)

        query += " ORDER BY created_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_item(row) for row in rows]

    def list_non_terminal(self) -> list[ScheduledItem]:
        """List items that may still be mutated (used by recovery)."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM events WHERE status NOT IN (?, ?) ORDER BY created_at ASC",
                (NotificationStatus.SENT.value, NotificationStatus.FAILED.value),
            ).fetchall()

        return [self._row_to_item(row) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        """Count items per status; every status is present in the result."""
        counts = {status.value: 0 for status in NotificationStatus}

        with self._connection() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS total FROM events GROUP BY status"
            ).fetchall()

        for row in rows:
            counts[NotificationStatus.parse(row["status"]).value] += row["total"]

        return counts
