from __future__ import annotations

import json

import pytest
from pymongo.errors import AutoReconnect

from nested_filter_bench import orchestrator
from nested_filter_bench.domain.models import ExperimentConfig, ExperimentGrid, RunResult
from nested_filter_bench.errors import IterationError, ProvisioningError, ResultMismatchError
from nested_filter_bench.orchestrator import RunConfig, _summarize, run_benchmark
from nested_filter_bench.utils.profiler import ProfileStats

SMALL_GRID = ExperimentGrid(outer_counts=(2,), element_counts=(3,), deletion_ratios=(0.5, 1.0))
ITERATIONS = 3


def test_every_measurement_gets_a_fresh_iteration(unit_settings, fake_iterations) -> None:
    results = run_benchmark(
        RunConfig(grid=SMALL_GRID, iterations=ITERATIONS, persist=False),
        settings=unit_settings,
        open_iteration=fake_iterations,
    )

    configs = SMALL_GRID.configs()
    assert len(results) == len(configs)
    # one provisioned iteration per strategy per repetition
    assert len(fake_iterations.opened) == len(configs) * ITERATIONS * 2
    assert fake_iterations.closed == len(fake_iterations.opened)
    assert len({id(c) for c in fake_iterations.collections}) == len(fake_iterations.collections)
    assert [iteration for _, iteration in fake_iterations.opened[:6]] == [1, 1, 2, 2, 3, 3]


def test_server_filter_is_measured_before_client_filter(unit_settings, fake_iterations) -> None:
    run_benchmark(
        RunConfig(grid=SMALL_GRID, iterations=1, persist=False),
        settings=unit_settings,
        open_iteration=fake_iterations,
    )

    first, second = fake_iterations.collections[:2]
    assert first.pipelines and not first.find_filters
    assert second.find_filters and not second.pipelines


def test_results_carry_averages_and_timings(unit_settings, fake_iterations) -> None:
    seen: list[RunResult] = []

    results = run_benchmark(
        RunConfig(grid=SMALL_GRID, iterations=ITERATIONS, persist=False),
        settings=unit_settings,
        open_iteration=fake_iterations,
        on_result=seen.append,
    )

    assert seen == results
    for result, config in zip(results, SMALL_GRID.configs()):
        assert result.config == config
        assert result.iterations == ITERATIONS
        assert result.server_avg_ms is not None and result.server_avg_ms >= 0
        assert result.client_avg_ms is not None and result.client_avg_ms >= 0
        assert result.server_avg_ms == result.timings["server_filter"]["mean"]
        assert set(result.timings["client_filter"]) >= {
            "mean",
            "median",
            "stddev",
            "min",
            "max",
            "cpu_percent",
        }


def test_defaults_come_from_settings(unit_settings, fake_iterations) -> None:
    results = run_benchmark(
        RunConfig(persist=False), settings=unit_settings, open_iteration=fake_iterations
    )

    assert [r.config for r in results] == unit_settings.grid().configs()
    assert all(r.iterations == unit_settings.benchmark_iterations for r in results)


def test_single_strategy_leaves_other_average_empty(unit_settings, fake_iterations) -> None:
    (result,) = run_benchmark(
        RunConfig(
            grid=ExperimentGrid(outer_counts=(1,), element_counts=(5,), deletion_ratios=(0.0,)),
            iterations=2,
            strategy_names=["client_filter"],
            persist=False,
        ),
        settings=unit_settings,
        open_iteration=fake_iterations,
    )

    assert result.server_avg_ms is None
    assert result.client_avg_ms is not None
    assert result.speedup is None
    assert len(fake_iterations.opened) == 2


def test_unknown_strategy_is_rejected(unit_settings, fake_iterations) -> None:
    with pytest.raises(ValueError, match="Unknown strategy 'bogus'"):
        run_benchmark(
            RunConfig(strategy_names=["bogus"], persist=False),
            settings=unit_settings,
            open_iteration=fake_iterations,
        )
    assert fake_iterations.opened == []


def test_iterations_must_be_positive(unit_settings, fake_iterations) -> None:
    with pytest.raises(ValueError, match="iterations"):
        run_benchmark(
            RunConfig(iterations=0, persist=False),
            settings=unit_settings,
            open_iteration=fake_iterations,
        )


def test_query_failure_aborts_run_with_context(unit_settings, fake_iteration_factory) -> None:
    failing = fake_iteration_factory(fail_with=AutoReconnect("connection lost"))

    with pytest.raises(IterationError) as excinfo:
        run_benchmark(
            RunConfig(grid=SMALL_GRID, iterations=ITERATIONS, persist=False),
            settings=unit_settings,
            open_iteration=failing,
        )

    error = excinfo.value
    assert error.strategy == "server_filter"
    assert error.iteration == 1
    assert isinstance(error.__cause__, AutoReconnect)
    # no retry: the first failure stops everything
    assert len(failing.opened) == 1
    assert failing.closed == 1


def test_wrong_document_count_is_reported(unit_settings, fake_iteration_factory) -> None:
    truncated = fake_iteration_factory(documents=[{"_id": "only", "e": []}])

    with pytest.raises(IterationError) as excinfo:
        run_benchmark(
            RunConfig(grid=SMALL_GRID, iterations=1, persist=False),
            settings=unit_settings,
            open_iteration=truncated,
        )

    assert isinstance(excinfo.value.__cause__, ResultMismatchError)


def test_verification_can_be_disabled(unit_settings, fake_iteration_factory) -> None:
    truncated = fake_iteration_factory(documents=[{"_id": "only", "e": []}])

    results = run_benchmark(
        RunConfig(grid=SMALL_GRID, iterations=1, persist=False, verify=False),
        settings=unit_settings,
        open_iteration=truncated,
    )

    assert len(results) == len(SMALL_GRID.configs())


def test_provisioning_failure_propagates_unwrapped(unit_settings, monkeypatch) -> None:
    class _BrokenMongo:
        def __init__(self, settings) -> None:
            del settings

        def __enter__(self):
            raise ProvisioningError("mongod not found")

        def __exit__(self, exc_type, exc, tb) -> None:
            del exc_type, exc, tb

    monkeypatch.setattr(orchestrator, "EphemeralMongo", _BrokenMongo)

    with pytest.raises(ProvisioningError, match="mongod not found"):
        run_benchmark(RunConfig(grid=SMALL_GRID, persist=False), settings=unit_settings)


def test_results_are_persisted(unit_settings, fake_iterations, tmp_path) -> None:
    results_dir = tmp_path / "out"

    run_benchmark(
        RunConfig(grid=SMALL_GRID, iterations=1, results_dir=results_dir),
        settings=unit_settings,
        open_iteration=fake_iterations,
    )

    latest = json.loads((results_dir / "latest.json").read_text(encoding="utf-8"))
    archives = list(results_dir.glob("run-*.json"))
    assert len(archives) == 1
    assert latest["iterations"] == 1
    assert latest["seed"] == unit_settings.benchmark_seed
    assert latest["strategies"] == ["server_filter", "client_filter"]
    assert len(latest["results"]) == len(SMALL_GRID.configs())
    assert latest["results"][0]["config"] == {
        "outer_count": 2,
        "element_count": 3,
        "deletion_ratio": 0.5,
    }


def test_summarize_rounds_and_handles_single_sample() -> None:
    single = _summarize([ProfileStats(label="x", duration_seconds=0.0123456)])
    assert single == {
        "mean": 12.35,
        "median": 12.35,
        "stddev": 0.0,
        "min": 12.35,
        "max": 12.35,
    }

    several = _summarize(
        [
            ProfileStats(label="x", duration_seconds=0.010, peak_rss_bytes=100, cpu_percent=40.0),
            ProfileStats(label="x", duration_seconds=0.030, peak_rss_bytes=300, cpu_percent=90.05),
        ]
    )
    assert several["mean"] == 20.0
    assert several["min"] == 10.0
    assert several["max"] == 30.0
    assert several["peak_rss_bytes"] == 300
    assert several["cpu_percent"] == 65.0


def test_run_result_speedup() -> None:
    config = ExperimentConfig(outer_count=1, element_count=1, deletion_ratio=0.5)
    result = RunResult(config=config, iterations=1, server_avg_ms=2.0, client_avg_ms=5.0)
    assert result.speedup == 2.5
    assert result.label == config.label
