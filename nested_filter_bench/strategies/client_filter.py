"""
Client-side strategy: fetch-all, then filter element arrays in Python.

Intended as the baseline the server-side pipeline is compared against: the
full unfiltered payload crosses the wire and is decoded before any element is
discarded.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping

from pymongo.collection import Collection

from nested_filter_bench.domain.models import DELETED_AT_FIELD, ELEMENTS_FIELD
from nested_filter_bench.strategies.abstract import AbstractFilterStrategy, FilteredDocuments


def is_live(element: Mapping[str, Any]) -> bool:
    """True when the element carries no deletion timestamp (null or missing)."""
    return element.get(DELETED_AT_FIELD) is None


def strip_deleted(document: Dict[str, Any]) -> Dict[str, Any]:
    """Replace the element array of ``document`` in place with its live elements."""
    document[ELEMENTS_FIELD] = [
        element for element in document.get(ELEMENTS_FIELD) or [] if is_live(element)
    ]
    return document


class ClientSideFilterStrategy(AbstractFilterStrategy):
    """
    Load every document with ``find({})`` and discard deleted elements in memory.
    """

    name: str = "client_filter"
    description: str = "find({}) of full documents; filtering happens in the application."

    def execute(self, collection: Collection) -> FilteredDocuments:
        documents = list(collection.find({}))
        for document in documents:
            strip_deleted(document)
        return documents


__all__ = ["ClientSideFilterStrategy", "is_live", "strip_deleted"]
