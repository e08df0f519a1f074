"""
Orchestrator for running the filter strategies over the experiment grid.

Every measurement gets its own ``IterationContext``: a freshly provisioned
MongoDB instance seeded with a freshly generated dataset. Iterations run
strictly one after another so concurrent instances never compete for CPU or
disk while a timing is taken.

Usage (example from CLI):
    from nested_filter_bench.orchestrator import RunConfig, run_benchmark

    results = run_benchmark(RunConfig(iterations=5, persist=False))
    print(results[0].server_avg_ms, results[0].client_avg_ms)

Outputs are saved to `results/` by default:
- `results/latest.json` (last run)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import json
import statistics
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import (
    Any,
    Callable,
    ContextManager,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
)

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from nested_filter_bench.config import Settings, get_settings
from nested_filter_bench.domain.models import (
    ELEMENTS_FIELD,
    ExperimentConfig,
    ExperimentGrid,
    RunResult,
)
from nested_filter_bench.errors import (
    BenchmarkError,
    IterationError,
    ProvisioningError,
    ResultMismatchError,
)
from nested_filter_bench.infrastructure.provisioner import EphemeralMongo
from nested_filter_bench.infrastructure.seeding import seed_collection
from nested_filter_bench.strategies.abstract import FilteredDocuments, FilterStrategy
from nested_filter_bench.strategies.client_filter import ClientSideFilterStrategy, is_live
from nested_filter_bench.strategies.server_filter import ServerSideFilterStrategy
from nested_filter_bench.utils.logging import get_logger
from nested_filter_bench.utils.profiler import ProfileStats, profile_block

log = get_logger(__name__)


@dataclass(frozen=True)
class IterationContext:
    """Everything one measured strategy call is allowed to touch."""

    config: ExperimentConfig
    iteration: int
    seed: int
    collection: Collection


IterationFactory = Callable[[ExperimentConfig, int], ContextManager[IterationContext]]


@dataclass
class RunConfig:
    """
    Parameters of one benchmark run; ``None`` falls back to settings.
    """

    grid: Optional[ExperimentGrid] = None
    iterations: Optional[int] = None
    strategy_names: Sequence[str] = ("all",)
    seed: Optional[int] = None
    persist: bool = True
    results_dir: Optional[Path | str] = None
    verify: bool = True


def _strategy_factories() -> Dict[str, Callable[[], FilterStrategy]]:
    """Registry of available strategies, in measurement order."""
    return {
        ServerSideFilterStrategy.name: ServerSideFilterStrategy,
        ClientSideFilterStrategy.name: ClientSideFilterStrategy,
    }


def available_strategies() -> List[str]:
    """List available strategy names in measurement order."""
    return list(_strategy_factories().keys())


def _resolve_strategy(name: str) -> FilterStrategy:
    factories = _strategy_factories()
    if name not in factories:
        raise ValueError(f"Unknown strategy '{name}'. Available: {', '.join(factories)}")
    return factories[name]()


def _resolve_names(strategy_names: Sequence[str]) -> List[str]:
    names = list(strategy_names)
    if not names or names == ["all"]:
        return available_strategies()
    return names


def iteration_factory(settings: Settings, seed: int) -> IterationFactory:
    """
    Build the default iteration factory: new instance, new collection, new data.
    """

    @contextmanager
    def open_iteration(config: ExperimentConfig, iteration: int) -> Iterator[IterationContext]:
        with EphemeralMongo(settings) as mongo:
            collection = mongo.database[str(uuid.uuid4())]
            seed_collection(
                collection,
                config,
                seed=seed,
                batch_elements=settings.benchmark_insert_batch_elements,
            )
            yield IterationContext(
                config=config, iteration=iteration, seed=seed, collection=collection
            )

    return open_iteration


def _verify(documents: FilteredDocuments, context: IterationContext, strategy_name: str) -> None:
    expected = context.config.outer_count
    if len(documents) != expected:
        raise ResultMismatchError(
            f"{strategy_name} returned {len(documents)} documents, expected {expected}"
        )
    for document in documents:
        if not all(is_live(element) for element in document.get(ELEMENTS_FIELD) or []):
            raise ResultMismatchError(
                f"{strategy_name} returned deleted elements in document {document.get('_id')!r}"
            )


def _measure(strategy: FilterStrategy, context: IterationContext, verify: bool) -> ProfileStats:
    with profile_block(strategy.name) as stats:
        documents = strategy.execute(context.collection)
    if verify:
        _verify(documents, context, strategy.name)
    return stats


def _run_iteration(
    strategy: FilterStrategy,
    config: ExperimentConfig,
    iteration: int,
    open_iteration: IterationFactory,
    verify: bool,
) -> ProfileStats:
    try:
        with open_iteration(config, iteration) as context:
            return _measure(strategy, context, verify)
    except ProvisioningError:
        raise
    except (BenchmarkError, PyMongoError) as exc:
        log.error(
            f"[ITERATION FAILED] {strategy.name}",
            extra={"strategy": strategy.name, "iteration": iteration, "error": str(exc)},
        )
        raise IterationError(
            f"Iteration {iteration} failed for {strategy.name} "
            f"({config.label.expandtabs(1)}): {exc}",
            label=config.label,
            iteration=iteration,
            strategy=strategy.name,
        ) from exc


def _summarize(samples: List[ProfileStats]) -> Dict[str, Any]:
    """
    Aggregate the measurements of one strategy into summary statistics.

    Durations are in milliseconds; ``peak_rss_bytes`` is the maximum and
    ``cpu_percent`` the median over the samples that recorded them.
    """
    durations = [stats.duration_ms for stats in samples]
    summary: Dict[str, Any] = {
        "mean": round(statistics.mean(durations), 2),
        "median": round(statistics.median(durations), 2),
        "stddev": round(statistics.stdev(durations), 2) if len(durations) > 1 else 0.0,
        "min": round(min(durations), 2),
        "max": round(max(durations), 2),
    }
    peak_rss_values = [stats.peak_rss_bytes for stats in samples if stats.peak_rss_bytes]
    if peak_rss_values:
        summary["peak_rss_bytes"] = max(peak_rss_values)
    cpu_values = [stats.cpu_percent for stats in samples if stats.cpu_percent is not None]
    if cpu_values:
        summary["cpu_percent"] = round(statistics.median(cpu_values), 1)
    return summary


def _build_result(
    config: ExperimentConfig, iterations: int, samples: Dict[str, List[ProfileStats]]
) -> RunResult:
    timings = {name: _summarize(stats) for name, stats in samples.items() if stats}
    server = timings.get(ServerSideFilterStrategy.name)
    client = timings.get(ClientSideFilterStrategy.name)
    return RunResult(
        config=config,
        iterations=iterations,
        server_avg_ms=server["mean"] if server else None,
        client_avg_ms=client["mean"] if client else None,
        timings=timings,
    )


def _persist_results(payload: dict, results_dir: Path) -> None:
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"run-{timestamp}.json"

    for path in (latest_path, archive_path):
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})


def run_benchmark(
    run_config: Optional[RunConfig] = None,
    settings: Optional[Settings] = None,
    open_iteration: Optional[IterationFactory] = None,
    on_result: Optional[Callable[[RunResult], None]] = None,
) -> List[RunResult]:
    """
    Measure every selected strategy on every config of the grid.

    Parameters
    ----------
    run_config : RunConfig | None
        Grid, iteration count, strategies and persistence options.
    settings : Settings | None
        Defaults for anything ``run_config`` leaves unset.
    open_iteration : IterationFactory | None
        Provides a seeded collection per measurement. Defaults to
        ``iteration_factory`` (ephemeral MongoDB per measurement).
    on_result : callable | None
        Invoked with each ``RunResult`` as soon as its config completes.

    Returns
    -------
    List[RunResult]
        One result per grid config, in grid order.

    Raises
    ------
    ProvisioningError
        An ephemeral instance could not be started; the run is aborted.
    IterationError
        Seeding, querying or result verification failed; the run is aborted.
    """
    settings = settings or get_settings()
    run_config = run_config or RunConfig()
    grid = run_config.grid or settings.grid()
    iterations = (
        settings.benchmark_iterations if run_config.iterations is None else run_config.iterations
    )
    if iterations < 1:
        raise ValueError(f"iterations must be >= 1, got {iterations}")
    seed = settings.benchmark_seed if run_config.seed is None else run_config.seed

    names = _resolve_names(run_config.strategy_names)
    strategies = [_resolve_strategy(name) for name in names]
    if open_iteration is None:
        open_iteration = iteration_factory(settings, seed)

    configs = grid.configs()
    results: List[RunResult] = []
    for index, config in enumerate(configs, start=1):
        log.info(
            f"[CONFIG {index}/{len(configs)}] {config.label.expandtabs(1)}",
            extra={
                "outer_count": config.outer_count,
                "element_count": config.element_count,
                "deletion_ratio": config.deletion_ratio,
                "iterations": iterations,
            },
        )
        samples: Dict[str, List[ProfileStats]] = {strategy.name: [] for strategy in strategies}
        for iteration in range(1, iterations + 1):
            for strategy in strategies:
                stats = _run_iteration(
                    strategy, config, iteration, open_iteration, run_config.verify
                )
                samples[strategy.name].append(stats)
                log.debug(
                    f"[RUN {iteration}/{iterations}] {strategy.name}",
                    extra={
                        "strategy": strategy.name,
                        "iteration": iteration,
                        "duration_ms": round(stats.duration_ms, 2),
                    },
                )

        result = _build_result(config, iterations, samples)
        results.append(result)
        log.info(
            f"[CONFIG COMPLETE] {index}/{len(configs)}",
            extra={"server_avg_ms": result.server_avg_ms, "client_avg_ms": result.client_avg_ms},
        )
        if on_result is not None:
            on_result(result)

    if run_config.persist:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "seed": seed,
            "iterations": iterations,
            "strategies": names,
            "grid": grid.model_dump(mode="json"),
            "results": [result.model_dump(mode="json") for result in results],
        }
        _persist_results(payload, Path(run_config.results_dir or settings.results_dir))

    log.info(
        f"[ORCHESTRATOR COMPLETE] {len(configs)} config(s) x {len(names)} strategy/strategies",
        extra={"strategies": names, "configs": len(configs)},
    )
    return results


__all__ = [
    "IterationContext",
    "IterationFactory",
    "RunConfig",
    "available_strategies",
    "iteration_factory",
    "run_benchmark",
]
