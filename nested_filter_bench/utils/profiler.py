"""
Profiling utilities for the nested filter benchmark.

``profile_block`` measures the wall-clock duration of a block with
``time.perf_counter`` and, via psutil, the peak RSS (background sampling
thread) and CPU percent of this process. Python-level allocation tracing is
deliberately absent: it slows down every allocation of the client-side filter
and would bias the comparison.

Usage:
    from nested_filter_bench.utils.profiler import profile_block

    with profile_block("server_filter") as stats:
        strategy.execute(collection)

    print(stats.duration_ms, stats.peak_rss_bytes)
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass, field
from typing import Generator, Optional

import psutil

DEFAULT_SAMPLE_INTERVAL_MS = 50


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)

    @property
    def duration_ms(self) -> float:
        return self.duration_seconds * 1000.0


@contextlib.contextmanager
def profile_block(
    label: str,
    sample_interval_ms: int = DEFAULT_SAMPLE_INTERVAL_MS,
    track_memory: bool = True,
) -> Generator[ProfileStats, None, None]:
    """
    Context manager to profile a block of code.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    sample_interval_ms : int
        Interval in milliseconds between RSS samples.
    track_memory : bool
        Whether to run the RSS sampling thread at all.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    peak_rss = process.memory_info().rss if track_memory else 0
    stop_sampling = threading.Event()

    def _sample_memory() -> None:
        nonlocal peak_rss
        while not stop_sampling.is_set():
            try:
                peak_rss = max(peak_rss, process.memory_info().rss)
            except psutil.Error:
                return
            stop_sampling.wait(timeout=sample_interval_ms / 1000.0)

    sampler: Optional[threading.Thread] = None
    if track_memory:
        sampler = threading.Thread(target=_sample_memory, name=f"rss-{label}", daemon=True)
        sampler.start()

    # CPU percent needs a priming call
    process.cpu_percent(interval=None)

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        stats.cpu_percent = process.cpu_percent(interval=None)

        if sampler is not None:
            stop_sampling.set()
            sampler.join(timeout=1.0)
            stats.peak_rss_bytes = peak_rss or None


__all__ = ["DEFAULT_SAMPLE_INTERVAL_MS", "ProfileStats", "profile_block"]
