"""
Runtime configuration.

Values come from environment variables (a .env file is loaded by the
process entry points via python-dotenv before load_settings() runs).
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_DATABASE_PATH = "data/notifier.db"
DEFAULT_BROADCAST_CHANNEL = "websocket:broadcast"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Process configuration."""

    database_path: str = DEFAULT_DATABASE_PATH
    redis_url: Optional[str] = None
    broadcast_channel: str = DEFAULT_BROADCAST_CHANNEL
    worker_concurrency: int = 5
    retry_base_delay_ms: int = 1000
    queue_poll_interval: float = 0.2
    queue_lease_seconds: float = 30.0
    queue_max_deliveries: int = 5
    send_failure_rate: float = 0.1
    webhook_url: Optional[str] = None
    run_workers_in_api: bool = False
    log_level: str = "INFO"
    log_dir: Optional[str] = "logs"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number (got {raw!r})") from None


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _get_optional(name: str) -> Optional[str]:
    raw = os.getenv(name, "").strip()
    return raw or None


def load_settings() -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ValueError: If a numeric variable cannot be parsed
    """
    return Settings(
        database_path=os.getenv("DATABASE_PATH", DEFAULT_DATABASE_PATH),
        redis_url=_get_optional("REDIS_URL"),
        broadcast_channel=os.getenv("BROADCAST_CHANNEL", DEFAULT_BROADCAST_CHANNEL),
        worker_concurrency=_get_int("WORKER_CONCURRENCY", 5),
        retry_base_delay_ms=_get_int("RETRY_BASE_DELAY_MS", 1000),
        queue_poll_interval=_get_float("QUEUE_POLL_INTERVAL", 0.2),
        queue_lease_seconds=_get_float("QUEUE_LEASE_SECONDS", 30.0),
        queue_max_deliveries=_get_int("QUEUE_MAX_DELIVERIES", 5),
        send_failure_rate=_get_float("SEND_FAILURE_RATE", 0.1),
        webhook_url=_get_optional("NOTIFIER_WEBHOOK_URL"),
        run_workers_in_api=_get_bool("RUN_WORKERS_IN_API", False),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_dir=os.getenv("LOG_DIR", "logs").strip() or None,
        host=os.getenv("HOST", DEFAULT_HOST),
        port=_get_int("PORT", DEFAULT_PORT),
    )
