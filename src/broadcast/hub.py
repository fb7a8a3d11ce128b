"""
Fan-out Hub: per-process registry of live observers.

The registry is owned by one process and synchronized only with the
Broadcast Bus, never with other processes' registries. Relay is
at-most-once and best-effort: observers that are not ready are skipped,
observers whose send fails are dropped, and nothing is replayed to late
joiners.
"""

import logging
import threading
from typing import Callable, Optional, Protocol, runtime_checkable

from src.scheduler.entities import BroadcastMessage

from .bus import BroadcastBus


logger = logging.getLogger(__name__)


@runtime_checkable
class Observer(Protocol):
    """Duplex connection that can receive broadcast frames."""

    @property
    def is_ready(self) -> bool:
        """Whether the observer can accept a frame right now."""
        ...

    def send(self, text: str) -> None:
        """Queue a frame for delivery; must not block."""
        ...

    def on_close(self, callback: Callable[[], None]) -> None:
        """Register a callback fired once when the connection closes."""
        ...


class FanOutHub:
    """
    Relays every message received from the bus to every ready observer.

    Usage:
        hub = FanOutHub()
        hub.attach(bus)          # once per process, at startup
        hub.register(observer)   # per connection
    """

    def __init__(self, name: str = "hub"):
        self.name = name
        self._observers: list[Observer] = []
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    # =========================================================================
    # Bus Wiring
    # =========================================================================

    def attach(self, bus: BroadcastBus) -> None:
        """Subscribe to the bus. Calling twice is an error."""
        if self._unsubscribe is not None:
            raise RuntimeError(f"Hub '{self.name}' is already attached to a bus")
        self._unsubscribe = bus.subscribe(self.relay)
        logger.info(f"Hub '{self.name}' attached to broadcast bus")

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    @property
    def is_attached(self) -> bool:
        return self._unsubscribe is not None

    # =========================================================================
    # Observer Registry
    # =========================================================================

    def register(self, observer: Observer) -> None:
        """Add an observer; it is removed automatically when it closes."""
        with self._lock:
            if observer in self._observers:
                return
            self._observers.append(observer)
            total = len(self._observers)

        observer.on_close(lambda: self.unregister(observer))
        logger.info(f"Observer connected to hub '{self.name}'. Total observers: {total}")

    def unregister(self, observer: Observer) -> bool:
        with self._lock:
            if observer not in self._observers:
                return False
            self._observers.remove(observer)
            total = len(self._observers)

        logger.info(f"Observer disconnected from hub '{self.name}'. Total observers: {total}")
        return True

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    # =========================================================================
    # Relay
    # =========================================================================

    def relay(self, message: BroadcastMessage) -> int:
        """
        Send a message to every currently ready observer.

        Returns:
            Number of observers the message was handed to
        """
        with self._lock:
            observers = list(self._observers)

        text = message.to_json()
        delivered = 0

        for observer in observers:
            if not observer.is_ready:
                continue
            try:
                observer.send(text)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping observer after failed send: {e}")
                self.unregister(observer)

        logger.debug(
            f"Relayed update for item {message.item_id} (status={message.status}) "
            f"to {delivered}/{len(observers)} observers"
        )
        return delivered
