"""
Strategies package for the nested filter benchmark.

This module re-exports the abstract interfaces and the concrete strategy classes
so downstream code can import from `nested_filter_bench.strategies` directly.
"""

from nested_filter_bench.strategies.abstract import (
    AbstractFilterStrategy,
    FilteredDocuments,
    FilterStrategy,
)
from nested_filter_bench.strategies.client_filter import ClientSideFilterStrategy
from nested_filter_bench.strategies.server_filter import ServerSideFilterStrategy

__all__ = [
    # Abstracts
    "AbstractFilterStrategy",
    "FilterStrategy",
    "FilteredDocuments",
    # Concrete strategies
    "ClientSideFilterStrategy",
    "ServerSideFilterStrategy",
]
