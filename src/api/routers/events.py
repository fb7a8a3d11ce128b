"""
Events router.

Endpoints for scheduling notifications, listing them, and the WebSocket
channel on which live status updates are pushed.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, WebSocket

from src.broadcast.websocket import WebSocketObserver
from src.scheduler.entities import NotificationStatus
from src.scheduler.errors import InvalidStatusError, ScheduleError

from ..schemas.events import (
    EventCreateRequest,
    EventCreateResponse,
    EventListResponse,
    EventResponse,
    EventSummary,
    QueueStatsResponse,
)
from .._scheduler_state import get_hub, get_scheduler_service


logger = logging.getLogger(__name__)

router = APIRouter()
ws_router = APIRouter()


@router.post("/events", response_model=EventCreateResponse, status_code=201)
def create_event(request: EventCreateRequest):
    """
    Schedule a notification.

    send_at in the past is accepted and becomes due immediately.
    """
    service = get_scheduler_service()

    try:
        item = service.schedule(
            message=request.message,
            recipient_email=request.recipient_email,
            send_at=request.send_at,
        )
    except ScheduleError as e:
        raise HTTPException(status_code=500, detail=str(e))

    data = item.to_dict()
    return EventCreateResponse(
        event=EventSummary(
            id=data["id"],
            message=data["message"],
            recipientEmail=data["recipientEmail"],
            sendAt=data["sendAt"],
            status=data["status"],
        )
    )


@router.get("/events", response_model=EventListResponse)
def list_events(status: Optional[str] = None):
    """
    List events, newest first.

    Optional status filter: SCHEDULED, PROCESSING, SENT, RETRIED, FAILED.
    """
    service = get_scheduler_service()

    status_filter = None
    if status:
        try:
            status_filter = NotificationStatus.parse(status)
        except InvalidStatusError:
            allowed = ", ".join(s.value for s in NotificationStatus)
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status filter: {status}. Allowed values: {allowed}",
            )

    try:
        items = service.list_items(status=status_filter)
    except InvalidStatusError as e:
        # A stored row with an unknown status, not a bad request
        logger.error(f"Failed to list events: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to list events: {str(e)}")

    return EventListResponse(
        events=[EventResponse(**item.to_dict()) for item in items],
    )


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: str):
    """Get one event by ID."""
    service = get_scheduler_service()

    item = service.get_item(event_id)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Event not found: {event_id}")

    return EventResponse(**item.to_dict())


@router.get("/queue/stats", response_model=QueueStatsResponse)
def queue_stats():
    """Event counts per status and queue entry counts per state."""
    service = get_scheduler_service()

    try:
        stats = service.get_queue_stats()
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get queue stats: {str(e)}"
        )

    return QueueStatsResponse(**stats, observers=get_hub().observer_count)


@ws_router.websocket("/ws")
async def events_websocket(websocket: WebSocket):
    """
    Live status updates.

    Every status change is pushed as {"type": "eventUpdate", "data": {...}}.
    Nothing is replayed on connect.
    """
    await websocket.accept()

    observer = WebSocketObserver(websocket)
    get_hub().register(observer)

    await observer.run()
