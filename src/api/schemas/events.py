"""
Event API schemas.

Request validation for scheduling and the response shapes of the
/api/events endpoints. Wire field names are camelCase.
"""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.scheduler.entities import ensure_utc


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# =============================================================================
# Requests
# =============================================================================


class EventCreateRequest(BaseModel):
    """Request to schedule a notification."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(
        ...,
        min_length=1,
        description="Notification content"
    )
    recipient_email: str = Field(
        ...,
        alias="recipientEmail",
        description="Recipient email address"
    )
    send_at: datetime = Field(
        ...,
        description="When to send (ISO-8601; naive values are taken as UTC)"
    )

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value

    @field_validator("recipient_email")
    @classmethod
    def valid_email(cls, value: str) -> str:
        value = value.strip()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("recipientEmail must be a valid email address")
        return value

    @field_validator("send_at")
    @classmethod
    def utc_send_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# =============================================================================
# Responses
# =============================================================================


class EventSummary(BaseModel):
    """Scheduled event as returned on creation."""

    id: str = Field(..., description="Event identifier")
    message: str
    recipientEmail: str
    sendAt: str = Field(..., description="Send time (ISO-8601, UTC)")
    status: str = Field(..., description="Event status")


class EventResponse(EventSummary):
    """Full event record."""

    retryCount: int = Field(default=0, description="Failed attempts so far (0-3)")
    createdAt: str
    updatedAt: str


class EventCreateResponse(BaseModel):
    """Response from scheduling an event."""

    message: str = "Event scheduled successfully!"
    event: EventSummary


class EventListResponse(BaseModel):
    """Response for event list endpoint."""

    message: str = "Events retrieved successfully."
    events: List[EventResponse] = Field(default_factory=list)


class QueueStatsResponse(BaseModel):
    """Item and trigger counts."""

    events: dict = Field(default_factory=dict, description="Event count per status")
    jobs: dict = Field(default_factory=dict, description="Queue entry count per state")
    in_flight: int = Field(default=0, description="Attempts executing in this process")
    is_running: bool = Field(default=False, description="Whether this process runs workers")
    observers: Optional[int] = Field(default=None, description="Observers on this process")
