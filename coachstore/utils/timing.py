"""
Wall-clock timing helpers.

`timed_block` measures a block with `time.perf_counter` and keeps the result on
a small stats object, so latency is available even when the block raises
(health checks report latency on failure too).

Usage:
    from coachstore.utils.timing import timed_block

    with timed_block("health-ping") as stats:
        await backend.ping()

    print(stats.duration_ms)
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from typing import Any, Generator


@dataclass
class TimingStats:
    """
    Container for timing measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        return self.duration_seconds * 1000.0


@contextlib.contextmanager
def timed_block(label: str) -> Generator[TimingStats, None, None]:
    """
    Context manager to time a block of code (sync or awaited inside an async function).

    Parameters
    ----------
    label : str
        Human-friendly label for the timed block.
    """
    stats = TimingStats(label=label)
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts


__all__ = ["TimingStats", "timed_block"]
