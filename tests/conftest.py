"""
Pytest configuration for the nested filter benchmark.

Provides fixtures for:
- Settings override for integration tests
- In-memory stand-ins for a MongoDB collection and the iteration factory
- Ephemeral MongoDB instances for integration tests
"""

from __future__ import annotations

import copy
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Iterator, List, Optional

import pytest

from nested_filter_bench.config import Settings
from nested_filter_bench.domain.generator import iter_documents
from nested_filter_bench.domain.models import ExperimentConfig
from nested_filter_bench.infrastructure.provisioner import EphemeralMongo
from nested_filter_bench.orchestrator import IterationContext

FIXED_DELETED_AT = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
TEST_SEED = 32


_MISSING = object()


def _evaluate(expression: Any, variables: Dict[str, Any], document: Dict[str, Any]) -> Any:
    """Evaluate the subset of aggregation expressions used by the server-side filter."""
    if isinstance(expression, str) and expression.startswith("$$"):
        name, *path = expression[2:].split(".")
        value = variables[name]
        for key in path:
            value = value.get(key, _MISSING) if isinstance(value, dict) else _MISSING
        return value
    if isinstance(expression, str) and expression.startswith("$"):
        return document.get(expression[1:], _MISSING)
    if isinstance(expression, dict) and len(expression) == 1:
        (operator, argument), = expression.items()
        if operator == "$eq":
            left, right = (_evaluate(arg, variables, document) for arg in argument)
            # missing only compares equal to missing
            return left is right if _MISSING in (left, right) else left == right
        if operator == "$ifNull":
            value, fallback = argument
            value = _evaluate(value, variables, document)
            if value is _MISSING or value is None:
                return _evaluate(fallback, variables, document)
            return value
        if operator == "$filter":
            items = _evaluate(argument["input"], variables, document)
            if items is _MISSING or items is None:
                return None
            return [
                item
                for item in items
                if _evaluate(argument["cond"], {**variables, "this": item}, document) is True
            ]
        raise NotImplementedError(f"Unsupported expression operator {operator}")
    return expression


def _apply_stage(stage: Dict[str, Any], document: Dict[str, Any]) -> Dict[str, Any]:
    (name, fields), = stage.items()
    if name != "$addFields":
        raise NotImplementedError(f"Unsupported pipeline stage {name}")
    updated = dict(document)
    for field, expression in fields.items():
        updated[field] = _evaluate(expression, {}, document)
    return updated


class FakeCollection:
    """
    Minimal stand-in for ``pymongo.collection.Collection``.

    ``aggregate`` interprets ``$addFields`` stages and the handful of
    expression operators the server-side filter uses, with MongoDB's
    distinction between a missing field and an explicit null.
    """

    full_name = "testdb.fake"

    def __init__(
        self, documents: List[Dict[str, Any]], fail_with: Optional[Exception] = None
    ) -> None:
        self._documents = copy.deepcopy(documents)
        self.fail_with = fail_with
        self.find_filters: List[Dict[str, Any]] = []
        self.pipelines: List[List[Dict[str, Any]]] = []
        self.insert_batches: List[int] = []

    @property
    def documents(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._documents)

    def find(self, filter: Optional[Dict[str, Any]] = None) -> Iterator[Dict[str, Any]]:
        if self.fail_with is not None:
            raise self.fail_with
        self.find_filters.append(filter)
        return iter(copy.deepcopy(self._documents))

    def aggregate(self, pipeline: List[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
        if self.fail_with is not None:
            raise self.fail_with
        self.pipelines.append(pipeline)
        results = []
        for document in copy.deepcopy(self._documents):
            for stage in pipeline:
                document = _apply_stage(stage, document)
            results.append(document)
        return iter(results)

    def insert_many(self, documents: List[Dict[str, Any]]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.insert_batches.append(len(documents))
        self._documents.extend(copy.deepcopy(documents))


class FakeIterationFactory:
    """Records every iteration it opens and hands out seeded fake collections."""

    def __init__(
        self,
        fail_with: Optional[Exception] = None,
        documents: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        self.fail_with = fail_with
        self.documents = documents
        self.opened: List[tuple[ExperimentConfig, int]] = []
        self.closed = 0
        self.collections: List[FakeCollection] = []

    @contextmanager
    def __call__(self, config: ExperimentConfig, iteration: int) -> Iterator[IterationContext]:
        self.opened.append((config, iteration))
        documents = self.documents
        if documents is None:
            documents = list(
                iter_documents(config, seed=TEST_SEED, deleted_at=FIXED_DELETED_AT)
            )
        collection = FakeCollection(documents, fail_with=self.fail_with)
        self.collections.append(collection)
        try:
            yield IterationContext(
                config=config, iteration=iteration, seed=TEST_SEED, collection=collection
            )
        finally:
            self.closed += 1


@pytest.fixture
def fixed_deleted_at() -> datetime:
    return FIXED_DELETED_AT


@pytest.fixture
def fake_collection():
    """Factory building a FakeCollection from raw documents."""
    return FakeCollection


@pytest.fixture
def fake_iterations() -> FakeIterationFactory:
    return FakeIterationFactory()


@pytest.fixture
def fake_iteration_factory():
    """Factory for FakeIterationFactory with custom failure/document behaviour."""
    return FakeIterationFactory


@pytest.fixture
def unit_settings(tmp_path) -> Settings:
    """Small grid, no persistence surprises: results land in tmp_path."""
    return Settings(
        benchmark_outer_counts=[2, 3],
        benchmark_element_counts=[4],
        benchmark_deletion_ratios=[0.0, 1.0],
        benchmark_iterations=2,
        benchmark_seed=TEST_SEED,
        results_dir=str(tmp_path / "results"),
    )


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture for integration tests.

    Uses a private mongod by default; set MONGO_MODE=external and MONGO_URI to
    run against an existing server instead.
    """
    return Settings(
        mongo_mode=os.getenv("MONGO_MODE", "mongod"),
        mongod_binary=os.getenv("MONGOD_BINARY", "mongod"),
        mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
        mongo_single_node_replset=os.getenv("MONGO_SINGLE_NODE_REPLSET", "1") == "1",
        mongo_startup_timeout_seconds=60.0,
        log_level="DEBUG",
    )


@pytest.fixture
def ephemeral_mongo(test_settings: Settings) -> Generator[EphemeralMongo, None, None]:
    """A fresh, disposable MongoDB database per test."""
    with EphemeralMongo(test_settings) as mongo:
        yield mongo
