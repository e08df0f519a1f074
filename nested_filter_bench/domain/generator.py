"""
Deterministic synthetic dataset generation.

Every value (document ids, element ids, deletion flags) is drawn from a single
``random.Random(seed)`` stream and deleted elements carry a fixed timestamp
unless the caller pins another, so the same config and seed always produce the
same dataset and both strategies are measured against identical data.
"""

from __future__ import annotations

import random
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from nested_filter_bench.domain.models import (
    DELETED_AT_FIELD,
    ELEMENTS_FIELD,
    ID_FIELD,
    ExperimentConfig,
    OuterDocument,
)

DEFAULT_SEED = 32
DEFAULT_DELETED_AT = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _next_id(rng: random.Random) -> str:
    return str(uuid.UUID(int=rng.getrandbits(128), version=4))


def _truncate_to_millis(value: datetime) -> datetime:
    # BSON datetimes carry millisecond precision.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.replace(microsecond=value.microsecond - value.microsecond % 1000)


def iter_documents(
    config: ExperimentConfig,
    seed: int = DEFAULT_SEED,
    deleted_at: Optional[datetime] = None,
) -> Iterator[Dict[str, Any]]:
    """
    Lazily yield ``config.outer_count`` BSON-ready documents.

    Each element is deleted iff ``rng.random() < config.deletion_ratio``, so a
    ratio of 0 never deletes and a ratio of 1 always does. Deleted elements
    share one timestamp (``deleted_at``, defaulting to ``DEFAULT_DELETED_AT``);
    live elements store an explicit null.
    """
    rng = random.Random(seed)
    stamp = _truncate_to_millis(deleted_at or DEFAULT_DELETED_AT)
    ratio = config.deletion_ratio

    for _ in range(config.outer_count):
        document_id = _next_id(rng)
        elements = []
        for _ in range(config.element_count):
            element_id = _next_id(rng)
            elements.append(
                {
                    ID_FIELD: element_id,
                    DELETED_AT_FIELD: stamp if rng.random() < ratio else None,
                }
            )
        yield {ID_FIELD: document_id, ELEMENTS_FIELD: elements}


def generate_documents(
    config: ExperimentConfig,
    seed: int = DEFAULT_SEED,
    deleted_at: Optional[datetime] = None,
) -> List[OuterDocument]:
    """Materialise the dataset of ``iter_documents`` as typed models."""
    return [
        OuterDocument.from_bson(document)
        for document in iter_documents(config, seed=seed, deleted_at=deleted_at)
    ]


__all__ = ["DEFAULT_DELETED_AT", "DEFAULT_SEED", "generate_documents", "iter_documents"]
