"""
Broadcast Bus for status change announcements.

Any process that mutates the Status Store publishes here; every process that
owns live observers subscribes once and relays to its own Fan-out Hub.

- InMemoryBroadcastBus: single-process dispatch (and test assertions)
- RedisBroadcastBus: Redis pub/sub for API and worker processes on one channel

Delivery is best-effort: nothing is persisted or replayed.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis

from src.scheduler.entities import BroadcastMessage
from src.scheduler.errors import BroadcastError


logger = logging.getLogger(__name__)


DEFAULT_CHANNEL = "websocket:broadcast"

MessageHandler = Callable[[BroadcastMessage], None]


class BroadcastBus(ABC):
    """Publish/subscribe channel for BroadcastMessages."""

    def __init__(self):
        self._handlers: list[MessageHandler] = []
        self._handlers_lock = threading.Lock()

    @abstractmethod
    def publish(self, message: BroadcastMessage) -> None:
        """
        Announce a status change to every subscriber on every process.

        Raises:
            BroadcastError: If the bus is unavailable
        """
        ...

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        """
        Register a handler for every message received by this process.

        Returns:
            A callable that removes the handler again
        """
        with self._handlers_lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._handlers_lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def close(self) -> None:
        """Release connections; subscribers stop receiving."""
        with self._handlers_lock:
            self._handlers.clear()

    def _dispatch(self, message: BroadcastMessage) -> None:
        """Hand a received message to every local handler, in order."""
        with self._handlers_lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(message)
            except Exception:
                logger.exception(
                    f"Broadcast handler failed for item {message.item_id}"
                )


class InMemoryBroadcastBus(BroadcastBus):
    """
    Bus confined to the current process.

    Handlers run synchronously in the publishing thread. With record=True
    every published message is also kept in `published` for inspection;
    the default keeps nothing.
    """

    def __init__(self, record: bool = False):
        super().__init__()
        self.record = record
        self.published: list[BroadcastMessage] = []
        self._publish_lock = threading.RLock()

    def publish(self, message: BroadcastMessage) -> None:
        with self._publish_lock:
            if self.record:
                self.published.append(message)
            self._dispatch(message)

    def messages_for(self, item_id: str) -> list[BroadcastMessage]:
        """Published messages concerning one item, in publish order."""
        return [m for m in self.published if m.item_id == item_id]


class RedisBroadcastBus(BroadcastBus):
    """
    Bus backed by a Redis pub/sub channel.

    Publishing is a synchronous PUBLISH from the caller's thread, so two
    mutations of the same item made in order by one worker are published in
    order. Receiving uses one listener thread per process which dispatches
    messages to local handlers in arrival order.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        channel: str = DEFAULT_CHANNEL,
        client: Optional[redis.Redis] = None,
        poll_interval: float = 0.1,
    ):
        """
        Initialize the Redis bus.

        Args:
            url: Redis URL (ignored when client is given)
            channel: Pub/sub channel shared by all processes
            client: Pre-built redis client (injectable for testing)
            poll_interval: Listener thread sleep between polls
        """
        super().__init__()
        if client is None:
            if not url:
                raise ValueError("RedisBroadcastBus requires a url or a client")
            client = redis.Redis.from_url(url)

        self.channel = channel
        self.poll_interval = poll_interval
        self._client = client
        self._pubsub = None
        self._listener = None
        self._listener_lock = threading.Lock()

    def publish(self, message: BroadcastMessage) -> None:
        try:
            receivers = self._client.publish(self.channel, message.to_json())
        except redis.RedisError as e:
            raise BroadcastError(
                f"Failed to publish update for item {message.item_id}: {e}"
            ) from e

        logger.debug(
            f"Published update for item {message.item_id} "
            f"(status={message.status}, receivers={receivers})"
        )

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        unsubscribe = super().subscribe(handler)
        self._ensure_listener()
        return unsubscribe

    def _ensure_listener(self) -> None:
        """Start the pub/sub listener thread once per process."""
        with self._listener_lock:
            if self._listener is not None:
                return

            self._pubsub = self._client.pubsub(ignore_subscribe_messages=True)
            self._pubsub.subscribe(**{self.channel: self._on_message})
            self._listener = self._pubsub.run_in_thread(
                sleep_time=self.poll_interval,
                daemon=True,
            )
            logger.info(f"Subscribed to broadcast channel '{self.channel}'")

    def _on_message(self, raw: dict) -> None:
        try:
            message = BroadcastMessage.from_json(raw["data"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding malformed broadcast message: {e}")
            return

        self._dispatch(message)

    def close(self) -> None:
        super().close()

        with self._listener_lock:
            if self._listener is not None:
                self._listener.stop()
                self._listener.join(timeout=5.0)
                self._listener = None
            if self._pubsub is not None:
                self._pubsub.close()
                self._pubsub = None

        self._client.close()
        logger.info("Broadcast bus closed")


def create_bus(redis_url: Optional[str] = None, channel: str = DEFAULT_CHANNEL) -> BroadcastBus:
    """
    Build the bus for this process.

    Without a Redis URL only observers in the publishing process are
    reached, which is enough for a single process running API and workers.
    """
    if redis_url:
        logger.info(f"Using Redis broadcast bus on channel '{channel}'")
        return RedisBroadcastBus(url=redis_url, channel=channel)

    logger.warning("REDIS_URL not set, broadcasts stay within this process")
    return InMemoryBroadcastBus()
