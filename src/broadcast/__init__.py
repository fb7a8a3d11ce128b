"""
Broadcast fan-out of status changes.

- BroadcastBus: cross-process publish/subscribe (in-memory or Redis)
- FanOutHub: per-process registry of live observers
- WebSocketObserver: observer adapter for FastAPI WebSocket connections
"""

from .bus import (
    BroadcastBus,
    InMemoryBroadcastBus,
    RedisBroadcastBus,
    DEFAULT_CHANNEL,
    create_bus,
)
from .hub import FanOutHub, Observer

__all__ = [
    # Bus
    "BroadcastBus",
    "InMemoryBroadcastBus",
    "RedisBroadcastBus",
    "DEFAULT_CHANNEL",
    "create_bus",
    # Hub
    "FanOutHub",
    "Observer",
]
