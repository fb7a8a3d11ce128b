"""
Infrastructure module - configuration and logging.
"""

from .config import Settings, load_settings
from .logging_config import setup_logging, DailyRotatingFileHandler

__all__ = [
    # config
    "Settings",
    "load_settings",
    # logging
    "setup_logging",
    "DailyRotatingFileHandler",
]
