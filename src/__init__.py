"""
Event notification scheduler.
"""

__version__ = "1.0.0"
