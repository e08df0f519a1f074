"""
Utilities package for the nested filter benchmark.

Exports shared helpers for logging and profiling. Keep this package
lightweight and free of domain-specific logic.
"""

from nested_filter_bench.utils.logging import configure_logging, get_logger
from nested_filter_bench.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
