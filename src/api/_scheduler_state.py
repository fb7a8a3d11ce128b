"""
Scheduler state management for API integration.

Provides singleton access to the process's SchedulerService, BroadcastBus
and FanOutHub. Initialized during FastAPI lifespan.

Usage:
    from ._scheduler_state import get_scheduler_service, init_scheduler_service

    # In lifespan:
    init_scheduler_service(settings)

    # In routers:
    service = get_scheduler_service()
    hub = get_hub()
"""

import logging
from typing import Optional

from src.broadcast import BroadcastBus, FanOutHub, create_bus
from src.infra.config import Settings
from src.scheduler.sender import NotificationSender, create_sender
from src.scheduler.service import SchedulerService


logger = logging.getLogger(__name__)


# Global instances, one set per process
_scheduler_service: Optional[SchedulerService] = None
_bus: Optional[BroadcastBus] = None
_hub: Optional[FanOutHub] = None


def init_scheduler_service(
    settings: Settings,
    bus: Optional[BroadcastBus] = None,
    sender: Optional[NotificationSender] = None,
) -> SchedulerService:
    """
    Initialize the scheduler service, bus and hub singletons.

    Called during FastAPI lifespan startup. Returns the existing service
    if already initialized. Workers are started only when
    settings.run_workers_in_api is set.

    Args:
        settings: Process configuration
        bus: Pre-built bus (defaults to one built from settings)
        sender: Pre-built sender (defaults to one built from settings)

    Returns:
        Initialized SchedulerService
    """
    global _scheduler_service, _bus, _hub

    if _scheduler_service is not None:
        return _scheduler_service

    _bus = bus or create_bus(settings.redis_url, settings.broadcast_channel)

    _hub = FanOutHub(name="api")
    _hub.attach(_bus)

    _scheduler_service = SchedulerService.create(
        db_path=settings.database_path,
        bus=_bus,
        sender=sender or create_sender(settings.webhook_url, settings.send_failure_rate),
        concurrency=settings.worker_concurrency,
        poll_interval=settings.queue_poll_interval,
        lease_seconds=settings.queue_lease_seconds,
        max_deliveries=settings.queue_max_deliveries,
        base_delay_ms=settings.retry_base_delay_ms,
    )

    if settings.run_workers_in_api:
        logger.info("RUN_WORKERS_IN_API enabled, starting workers in API process")
        _scheduler_service.start()

    return _scheduler_service


def get_scheduler_service() -> SchedulerService:
    """
    Get the scheduler service singleton.

    Raises:
        RuntimeError: If scheduler service not initialized
    """
    if _scheduler_service is None:
        raise RuntimeError(
            "Scheduler service not initialized. "
            "Ensure init_scheduler_service() is called during startup."
        )

    return _scheduler_service


def get_hub() -> FanOutHub:
    """
    Get the process's fan-out hub.

    Raises:
        RuntimeError: If scheduler service not initialized
    """
    if _hub is None:
        raise RuntimeError(
            "Fan-out hub not initialized. "
            "Ensure init_scheduler_service() is called during startup."
        )

    return _hub


def shutdown_scheduler_service() -> None:
    """
    Shutdown the scheduler service.

    Called during FastAPI lifespan shutdown. Stops workers (draining
    in-flight attempts), detaches the hub, then closes the bus.
    """
    global _scheduler_service, _bus, _hub

    if _scheduler_service is not None:
        if _scheduler_service.is_running:
            _scheduler_service.stop()
        _scheduler_service = None

    if _hub is not None:
        _hub.detach()
        _hub = None

    if _bus is not None:
        _bus.close()
        _bus = None
