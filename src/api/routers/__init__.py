"""
API Routers package.
"""

from . import events

__all__ = ["events"]
