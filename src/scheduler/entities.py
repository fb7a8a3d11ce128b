"""
Scheduler Domain Entities.

- ScheduledItem: durable record of one notification to be delivered
- QueuedJob: Delay Queue view of an item's next execution
- BroadcastMessage: announcement of an item's full current state

Status values are a closed set; anything read back from storage is
normalized through NotificationStatus.parse().
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any
import json
import uuid

from .errors import InvalidStatusError


# Retry ceiling: an item may be retried at most this many times
MAX_RETRIES = 3


class NotificationStatus(str, Enum):
    """
    Lifecycle state of a ScheduledItem.

    SCHEDULED → PROCESSING → SENT | RETRIED | FAILED
    RETRIED → PROCESSING (next attempt)
    """

    SCHEDULED = "SCHEDULED"
    PROCESSING = "PROCESSING"
    SENT = "SENT"
    RETRIED = "RETRIED"
    FAILED = "FAILED"

    @classmethod
    def parse(cls, value: Any) -> "NotificationStatus":
        """
        Normalize a raw status value into a NotificationStatus.

        Raises:
            InvalidStatusError: If the value is not one of the five states
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized in cls.__members__:
                return cls[normalized]
        raise InvalidStatusError(value)

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({NotificationStatus.SENT, NotificationStatus.FAILED})


class QueuedJobState(str, Enum):
    """Delay Queue entry states."""

    PENDING = "PENDING"  # waiting for not_before
    ACTIVE = "ACTIVE"  # leased to a worker
    DEAD = "DEAD"  # abandoned, kept for inspection


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision, e.g. 2026-01-01T00:00:00.000Z."""
    value = ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (a trailing Z is accepted) into aware UTC."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(value))


def to_epoch_ms(value: datetime) -> int:
    return int(ensure_utc(value).timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass
class ScheduledItem:
    """
    Single notification scheduled for delivery at send_at.

    Mutability rules:
    - id, message, recipient_email, send_at, created_at: Immutable
    - status, retry_count: Mutable until a terminal status is reached
    - updated_at: Set on every mutation of status or retry_count
    """

    id: str
    message: str
    recipient_email: str
    send_at: datetime
    status: NotificationStatus = NotificationStatus.SCHEDULED
    retry_count: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def create(
        cls,
        message: str,
        recipient_email: str,
        send_at: datetime,
        now: Optional[datetime] = None,
    ) -> "ScheduledItem":
        """Create a new SCHEDULED item with generated ID."""
        now = ensure_utc(now) if now is not None else utc_now()
        return cls(
            id=generate_uuid(),
            message=message,
            recipient_email=recipient_email,
            send_at=ensure_utc(send_at),
            status=NotificationStatus.SCHEDULED,
            retry_count=0,
            created_at=now,
            updated_at=now,
        )

    def is_terminal(self) -> bool:
        """Check if item is in a terminal state (SENT or FAILED)."""
        return self.status.is_terminal

    def job_payload(self) -> dict:
        """Copy of what a worker needs to attempt the send."""
        return {
            "eventId": self.id,
            "recipientEmail": self.recipient_email,
            "message": self.message,
        }

    def to_dict(self) -> dict:
        """Wire representation with instants as absolute ISO timestamps."""
        return {
            "id": self.id,
            "message": self.message,
            "recipientEmail": self.recipient_email,
            "sendAt": to_iso(self.send_at),
            "status": self.status.value,
            "retryCount": self.retry_count,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }


@dataclass
class QueuedJob:
    """
    Delay Queue entry for an item's next execution.

    job_key equals the ScheduledItem id, so at most one trigger is pending
    per item. token changes on every enqueue; a worker holding a stale token
    cannot delete a trigger that was re-armed underneath it.

    deliveries counts transport-level releases of this trigger and is
    unrelated to ScheduledItem.retry_count.
    """

    job_key: str
    not_before: datetime
    payload: dict
    token: str
    state: QueuedJobState = QueuedJobState.PENDING
    deliveries: int = 0
    lease_owner: Optional[str] = None
    leased_until: Optional[datetime] = None
    last_error: Optional[str] = None
    enqueued_at: datetime = field(default_factory=utc_now)


@dataclass
class BroadcastMessage:
    """Announcement of a ScheduledItem's full post-mutation state."""

    data: dict
    type: str = "eventUpdate"

    @classmethod
    def for_item(cls, item: ScheduledItem) -> "BroadcastMessage":
        return cls(data=item.to_dict())

    @property
    def item_id(self) -> Optional[str]:
        return self.data.get("id")

    @property
    def status(self) -> Optional[str]:
        return self.data.get("status")

    def to_json(self) -> str:
        return json.dumps({"type": self.type, "data": self.data})

    @classmethod
    def from_json(cls, raw: str | bytes) -> "BroadcastMessage":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        body = json.loads(raw)
        return cls(data=body["data"], type=body.get("type", "eventUpdate"))
