"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .events import (
    EventCreateRequest,
    EventCreateResponse,
    EventListResponse,
    EventResponse,
    EventSummary,
    QueueStatsResponse,
)

__all__ = [
    "EventCreateRequest",
    "EventCreateResponse",
    "EventListResponse",
    "EventResponse",
    "EventSummary",
    "QueueStatsResponse",
]
