"""
Server-side strategy: let MongoDB drop deleted elements before transfer.

A single ``$addFields`` stage overwrites the element array with the result of
``$filter``, so only live elements travel over the wire.
"""

from __future__ import annotations

from typing import Any, Dict, List

from pymongo.collection import Collection

from nested_filter_bench.domain.models import DELETED_AT_FIELD, ELEMENTS_FIELD
from nested_filter_bench.strategies.abstract import AbstractFilterStrategy, FilteredDocuments


def live_element_condition() -> Dict[str, Any]:
    """
    Aggregation expression that is true when ``$$this`` has no deletion timestamp.

    ``$ifNull`` folds a missing field into null; a bare ``$eq`` against null
    is false for missing fields.
    """
    return {"$eq": [{"$ifNull": [f"$$this.{DELETED_AT_FIELD}", None]}, None]}


def build_pipeline() -> List[Dict[str, Any]]:
    return [
        {
            "$addFields": {
                ELEMENTS_FIELD: {
                    "$filter": {
                        "input": f"${ELEMENTS_FIELD}",
                        "cond": live_element_condition(),
                    }
                }
            }
        }
    ]


class ServerSideFilterStrategy(AbstractFilterStrategy):
    """
    Filter nested arrays inside the database with an aggregation pipeline.
    """

    name: str = "server_filter"
    description: str = "Aggregation $addFields + $filter; filtering happens in mongod."

    def execute(self, collection: Collection) -> FilteredDocuments:
        return list(collection.aggregate(build_pipeline()))


__all__ = ["ServerSideFilterStrategy", "build_pipeline", "live_element_condition"]
