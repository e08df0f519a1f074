"""
Abstract strategy interfaces for the nested filter benchmark.

A strategy receives a populated collection and must return every outer
document with its element array reduced to the live (not soft-deleted)
elements. Strategies never time themselves; the orchestrator does.
"""

from __future__ import annotations

import abc
from typing import Any, Dict, List, Protocol, runtime_checkable

from pymongo.collection import Collection

FilteredDocuments = List[Dict[str, Any]]


@runtime_checkable
class FilterStrategy(Protocol):
    """
    Common interface all filter strategies must implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    description : str
        A human-friendly summary of the approach.
    """

    name: str
    description: str

    def execute(self, collection: Collection) -> FilteredDocuments:
        """
        Fetch every document of ``collection`` with deleted elements removed.

        Database errors propagate to the caller; a single attempt is made.
        """
        ...


class AbstractFilterStrategy(abc.ABC):
    """
    Optional ABC helper for class-based implementations.

    Subclasses should set `name` and `description` and implement `execute`.
    """

    name: str
    description: str

    @abc.abstractmethod
    def execute(self, collection: Collection) -> FilteredDocuments:  # pragma: no cover - interface only
        """Run the query and return the filtered documents."""
        raise NotImplementedError


__all__ = [
    "AbstractFilterStrategy",
    "FilterStrategy",
    "FilteredDocuments",
]
