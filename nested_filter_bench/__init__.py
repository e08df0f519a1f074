"""
Nested Filter Bench - MongoDB nested array filtering micro-benchmark.

Compares two ways of dropping soft-deleted elements from arrays nested in
MongoDB documents:

- Server-side filtering with an aggregation ``$filter`` stage
- Client-side filtering of fully fetched documents in Python

Every measurement runs against a freshly provisioned, freshly seeded
MongoDB instance across a grid of dataset shapes.
"""

from __future__ import annotations

__version__ = "0.1.0"

# Public API exports
from nested_filter_bench.config import Settings, get_settings
from nested_filter_bench.domain import (
    ExperimentConfig,
    ExperimentGrid,
    RunResult,
    generate_documents,
    iter_documents,
)
from nested_filter_bench.errors import BenchmarkError
from nested_filter_bench.orchestrator import RunConfig, available_strategies, run_benchmark
from nested_filter_bench.strategies import (
    ClientSideFilterStrategy,
    FilterStrategy,
    ServerSideFilterStrategy,
)
from nested_filter_bench.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "ExperimentConfig",
    "ExperimentGrid",
    "RunResult",
    "generate_documents",
    "iter_documents",
    # Orchestration
    "BenchmarkError",
    "RunConfig",
    "available_strategies",
    "run_benchmark",
    # Strategies
    "FilterStrategy",
    "ClientSideFilterStrategy",
    "ServerSideFilterStrategy",
    # Logging
    "configure_logging",
    "get_logger",
]
