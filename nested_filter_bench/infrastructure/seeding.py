"""
Bulk loading of generated datasets into a collection.
"""

from __future__ import annotations

from datetime import datetime
from itertools import islice
from typing import Optional

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from nested_filter_bench.domain.generator import DEFAULT_SEED, iter_documents
from nested_filter_bench.domain.models import ExperimentConfig
from nested_filter_bench.errors import SeedingError

DEFAULT_BATCH_ELEMENTS = 50_000


def documents_per_batch(config: ExperimentConfig, batch_elements: int) -> int:
    """Number of documents whose elements fit in one ``batch_elements`` budget (at least 1)."""
    return max(1, batch_elements // max(config.element_count, 1))


def seed_collection(
    collection: Collection,
    config: ExperimentConfig,
    seed: int = DEFAULT_SEED,
    batch_elements: int = DEFAULT_BATCH_ELEMENTS,
    deleted_at: Optional[datetime] = None,
) -> int:
    """
    Insert the dataset described by ``config`` and return the number of documents written.

    Documents are generated lazily and written in ``insert_many`` batches
    holding roughly ``batch_elements`` array elements, so memory use is bounded
    by the batch rather than by the width of the grid cell.

    Raises
    ------
    SeedingError
        If any insert fails. The partially seeded collection is left as is.
    """
    documents = iter_documents(config, seed=seed, deleted_at=deleted_at)
    batch_size = documents_per_batch(config, batch_elements)
    inserted = 0
    try:
        while True:
            batch = list(islice(documents, batch_size))
            if not batch:
                break
            collection.insert_many(batch)
            inserted += len(batch)
    except PyMongoError as exc:
        raise SeedingError(
            f"Failed to seed {collection.full_name} after {inserted} documents: {exc}"
        ) from exc
    return inserted


__all__ = ["DEFAULT_BATCH_ELEMENTS", "documents_per_batch", "seed_collection"]
