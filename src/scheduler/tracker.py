"""
Status Tracker: the only path through which item state changes.

Every Status Store mutation is followed by exactly one BroadcastMessage
carrying the identical post-mutation state. Publishing happens in the
mutating thread, right after the write, so updates to one item are
announced in the order they were made.
"""

import logging
from typing import TYPE_CHECKING, Optional

from .entities import BroadcastMessage, NotificationStatus, ScheduledItem
from .persistence import StatusStore

if TYPE_CHECKING:
    from src.broadcast.bus import BroadcastBus


logger = logging.getLogger(__name__)


class StatusTracker:
    """Pairs Status Store writes with broadcasts."""

    def __init__(self, store: StatusStore, bus: "BroadcastBus"):
        self.store = store
        self.bus = bus

    def create(self, item: ScheduledItem) -> ScheduledItem:
        """Persist a new item without announcing it (the caller publishes)."""
        created = self.store.create(item)
        logger.info(f"Event {created.id} created in store")
        return created

    def transition(
        self,
        item_id: str,
        status: NotificationStatus,
        retry_count: Optional[int] = None,
    ) -> ScheduledItem:
        """
        Update an item and announce its new state.

        Raises:
            ItemNotFoundError: If the item does not exist
            TerminalStateError: If the item is already SENT or FAILED
            BroadcastError: If the write succeeded but the publish failed
        """
        updated = self.store.update(item_id, status=status, retry_count=retry_count)
        logger.info(
            f"Event {item_id} status updated to {updated.status.value}. "
            f"Retry count: {updated.retry_count}"
        )
        self.announce(updated)
        return updated

    def announce(self, item: ScheduledItem) -> None:
        """Publish an item's current state."""
        self.bus.publish(BroadcastMessage.for_item(item))

    def get(self, item_id: str) -> Optional[ScheduledItem]:
        return self.store.get(item_id)
