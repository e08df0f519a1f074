"""
Exception hierarchy for the nested filter benchmark.

Every failure mode of a benchmark run maps to one of these classes so the CLI
can report a clean message while the original driver exception stays
available through ``__cause__``.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "BenchmarkError",
    "ProvisioningError",
    "SeedingError",
    "IterationError",
    "ResultMismatchError",
]


class BenchmarkError(RuntimeError):
    """Base exception for benchmark failures."""


class ProvisioningError(BenchmarkError):
    """Raised when an ephemeral MongoDB instance cannot be started or reached."""


class SeedingError(BenchmarkError):
    """Raised when generated documents cannot be inserted."""


class IterationError(BenchmarkError):
    """Raised when a measured iteration fails; aborts the run."""

    def __init__(
        self,
        message: str,
        *,
        label: str,
        iteration: int,
        strategy: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.label = label
        self.iteration = iteration
        self.strategy = strategy


class ResultMismatchError(BenchmarkError):
    """Raised when a strategy returns documents that violate the filter contract."""
