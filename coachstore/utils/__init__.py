"""
Utilities package for coachstore.

Exports shared helpers for logging, timing, and other cross-cutting concerns.
Keep this package lightweight and free of domain-specific logic.
"""

from coachstore.utils.logging import configure_logging, get_logger
from coachstore.utils.timing import TimingStats, timed_block

__all__ = [
    "configure_logging",
    "get_logger",
    "TimingStats",
    "timed_block",
]
