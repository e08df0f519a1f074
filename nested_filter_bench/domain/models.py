"""
Domain models for the nested filter benchmark.

Defines the stored document shape (outer documents holding an array of
soft-deletable elements) and the experiment bookkeeping types shared by the
generator, the strategies, the orchestrator and the reporter.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Stored field names are kept short; they dominate the payload of wide arrays.
ID_FIELD = "_id"
ELEMENTS_FIELD = "e"
DELETED_AT_FIELD = "da"


class InnerElement(BaseModel):
    """
    A single array element; a present ``deleted_at`` marks it soft-deleted.
    """

    id: str = Field(..., alias=ID_FIELD)
    deleted_at: Optional[datetime] = Field(None, alias=DELETED_AT_FIELD)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_bson(self) -> Dict[str, Any]:
        return {ID_FIELD: self.id, DELETED_AT_FIELD: self.deleted_at}


class OuterDocument(BaseModel):
    """
    Top-level stored document owning an ordered sequence of elements.
    """

    id: str = Field(..., alias=ID_FIELD)
    elements: Tuple[InnerElement, ...] = Field(default=(), alias=ELEMENTS_FIELD)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def to_bson(self) -> Dict[str, Any]:
        return {
            ID_FIELD: self.id,
            ELEMENTS_FIELD: [element.to_bson() for element in self.elements],
        }

    @classmethod
    def from_bson(cls, document: Mapping[str, Any]) -> "OuterDocument":
        return cls.model_validate(dict(document))

    def live_elements(self) -> Tuple[InnerElement, ...]:
        return tuple(element for element in self.elements if not element.is_deleted)


class ExperimentConfig(BaseModel):
    """
    One cell of the experiment grid.
    """

    outer_count: int = Field(..., ge=0, description="Number of outer documents.")
    element_count: int = Field(..., ge=0, description="Elements per outer document.")
    deletion_ratio: float = Field(
        ..., ge=0.0, le=1.0, description="Probability that an element is soft-deleted."
    )

    model_config = ConfigDict(frozen=True)

    @property
    def label(self) -> str:
        return (
            f"Outer: {self.outer_count}\tElements: {self.element_count}"
            f"\tPercentage: {self.deletion_ratio}"
        )


class ExperimentGrid(BaseModel):
    """
    Explicit parameter grid; expanded outer count first, deletion ratio last.
    """

    outer_counts: Tuple[int, ...]
    element_counts: Tuple[int, ...]
    deletion_ratios: Tuple[float, ...]

    model_config = ConfigDict(frozen=True)

    def configs(self) -> List[ExperimentConfig]:
        configs: List[ExperimentConfig] = []
        for outer_count in self.outer_counts:
            for element_count in self.element_counts:
                for deletion_ratio in self.deletion_ratios:
                    configs.append(
                        ExperimentConfig(
                            outer_count=outer_count,
                            element_count=element_count,
                            deletion_ratio=deletion_ratio,
                        )
                    )
        return configs


class RunResult(BaseModel):
    """
    Aggregated timings of every strategy for one experiment config.

    ``timings`` maps a strategy name to its summary statistics in
    milliseconds (``mean``, ``median``, ``stddev``, ``min``, ``max``) plus
    ``peak_rss_bytes`` when it was sampled.
    """

    config: ExperimentConfig
    iterations: int
    server_avg_ms: Optional[float] = None
    client_avg_ms: Optional[float] = None
    timings: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def label(self) -> str:
        return self.config.label

    @property
    def speedup(self) -> Optional[float]:
        """How many times slower the client-side filter was than the server-side one."""
        if not self.server_avg_ms or self.client_avg_ms is None:
            return None
        return self.client_avg_ms / self.server_avg_ms


__all__ = [
    "DELETED_AT_FIELD",
    "ELEMENTS_FIELD",
    "ID_FIELD",
    "ExperimentConfig",
    "ExperimentGrid",
    "InnerElement",
    "OuterDocument",
    "RunResult",
]
