"""
Domain package for the nested filter benchmark.

Exports the document and experiment models plus the deterministic dataset
generator. Keep this package free of database I/O.
"""

from nested_filter_bench.domain.generator import (
    DEFAULT_DELETED_AT,
    DEFAULT_SEED,
    generate_documents,
    iter_documents,
)
from nested_filter_bench.domain.models import (
    DELETED_AT_FIELD,
    ELEMENTS_FIELD,
    ID_FIELD,
    ExperimentConfig,
    ExperimentGrid,
    InnerElement,
    OuterDocument,
    RunResult,
)

__all__ = [
    "DEFAULT_DELETED_AT",
    "DEFAULT_SEED",
    "DELETED_AT_FIELD",
    "ELEMENTS_FIELD",
    "ID_FIELD",
    "ExperimentConfig",
    "ExperimentGrid",
    "InnerElement",
    "OuterDocument",
    "RunResult",
    "generate_documents",
    "iter_documents",
]
