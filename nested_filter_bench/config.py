"""
Configuration settings for the nested filter benchmark.

Uses Pydantic Settings to load environment variables for the MongoDB
provisioner, logging, and the default experiment grid. List-valued fields
are read from the environment as JSON, e.g. ``BENCHMARK_OUTER_COUNTS='[10, 100]'``.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from nested_filter_bench.domain.models import ExperimentGrid

# Driver timeouts long enough that the 10M-element grid cells are never cut short.
LONG_TIMEOUT_MS = 99_999_999


class Settings(BaseSettings):
    # MongoDB
    mongo_mode: Literal["mongod", "external"] = Field("mongod", alias="MONGO_MODE")
    mongod_binary: str = Field("mongod", alias="MONGOD_BINARY")
    mongo_uri: str = Field("mongodb://localhost:27017", alias="MONGO_URI")
    mongo_db_name: str = Field("testdb", alias="MONGO_DB_NAME")
    mongo_single_node_replset: bool = Field(True, alias="MONGO_SINGLE_NODE_REPLSET")
    mongo_startup_timeout_seconds: float = Field(30.0, alias="MONGO_STARTUP_TIMEOUT_SECONDS")
    mongo_socket_timeout_ms: int = Field(LONG_TIMEOUT_MS, alias="MONGO_SOCKET_TIMEOUT_MS")
    mongo_connect_timeout_ms: int = Field(LONG_TIMEOUT_MS, alias="MONGO_CONNECT_TIMEOUT_MS")
    mongo_wtimeout_ms: int = Field(LONG_TIMEOUT_MS, alias="MONGO_WTIMEOUT_MS")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Benchmark defaults
    benchmark_outer_counts: List[int] = Field(
        default_factory=lambda: [1000, 100], alias="BENCHMARK_OUTER_COUNTS"
    )
    benchmark_element_counts: List[int] = Field(
        default_factory=lambda: [100, 10_000], alias="BENCHMARK_ELEMENT_COUNTS"
    )
    benchmark_deletion_ratios: List[float] = Field(
        default_factory=lambda: [0.5, 1.0], alias="BENCHMARK_DELETION_RATIOS"
    )
    benchmark_iterations: int = Field(20, ge=1, alias="BENCHMARK_ITERATIONS")
    benchmark_seed: int = Field(32, alias="BENCHMARK_SEED")
    benchmark_insert_batch_elements: int = Field(
        50_000, ge=1, alias="BENCHMARK_INSERT_BATCH_ELEMENTS"
    )
    results_dir: str = Field("results", alias="RESULTS_DIR")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def grid(self) -> ExperimentGrid:
        """Experiment grid described by the benchmark_* fields."""
        return ExperimentGrid(
            outer_counts=tuple(self.benchmark_outer_counts),
            element_counts=tuple(self.benchmark_element_counts),
            deletion_ratios=tuple(self.benchmark_deletion_ratios),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["LONG_TIMEOUT_MS", "Settings", "get_settings"]
