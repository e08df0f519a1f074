from __future__ import annotations

import sys
from typing import List, Optional

import typer
from pydantic import ValidationError

from nested_filter_bench.config import get_settings
from nested_filter_bench.domain.models import ExperimentGrid
from nested_filter_bench.errors import BenchmarkError
from nested_filter_bench.orchestrator import RunConfig, available_strategies, run_benchmark
from nested_filter_bench.reporter import print_config_result, print_summary
from nested_filter_bench.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Nested array filtering benchmark: MongoDB $filter vs in-app filtering.")
log = get_logger(__name__)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    target = settings.mongod_binary if settings.mongo_mode == "mongod" else settings.mongo_uri
    typer.echo(
        f"MongoDB={settings.mongo_mode}:{target} db={settings.mongo_db_name} "
        f"replset={settings.mongo_single_node_replset} | "
        f"outer={settings.benchmark_outer_counts} elements={settings.benchmark_element_counts} "
        f"deleted={settings.benchmark_deletion_ratios} iterations={settings.benchmark_iterations} "
        f"seed={settings.benchmark_seed}"
    )


@app.command()
def run(
    strategy: str = typer.Option(
        "all",
        "--strategy",
        "-s",
        help="Strategy to run (server_filter, client_filter, all) or 'list'.",
    ),
    iterations: Optional[int] = typer.Option(
        None,
        "--iterations",
        "-n",
        min=1,
        help="Measurements per strategy and config (default from settings).",
    ),
    outer: Optional[List[int]] = typer.Option(
        None, "--outer", help="Outer document count; repeat for several values."
    ),
    elements: Optional[List[int]] = typer.Option(
        None, "--elements", help="Elements per document; repeat for several values."
    ),
    deleted: Optional[List[float]] = typer.Option(
        None, "--deleted", help="Deletion ratio in [0, 1]; repeat for several values."
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Dataset RNG seed."),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Write results JSON."),
    wait: bool = typer.Option(
        True, "--wait/--no-wait", help="Wait for Enter before exiting."
    ),
) -> None:
    """
    Run the benchmark grid and print per-config averages plus a summary table.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    if strategy == "list":
        typer.echo("Available strategies: " + ", ".join(available_strategies()))
        return
    if strategy != "all" and strategy not in available_strategies():
        raise typer.BadParameter(
            f"Unknown strategy '{strategy}'. Available: {', '.join(available_strategies())}",
            param_hint="'--strategy'",
        )

    try:
        grid = ExperimentGrid(
            outer_counts=tuple(outer or settings.benchmark_outer_counts),
            element_counts=tuple(elements or settings.benchmark_element_counts),
            deletion_ratios=tuple(deleted or settings.benchmark_deletion_ratios),
        )
        configs = grid.configs()
    except ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        raise typer.BadParameter(messages, param_hint="'--outer/--elements/--deleted'") from exc

    run_config = RunConfig(
        grid=grid,
        iterations=iterations,
        strategy_names=[strategy],
        seed=seed,
        persist=persist,
    )
    typer.echo(
        f"Running strategy='{strategy}' over {len(configs)} config(s) "
        f"(iterations={iterations or settings.benchmark_iterations}, mongo={settings.mongo_mode})."
    )
    try:
        results = run_benchmark(run_config, settings=settings, on_result=print_config_result)
    except BenchmarkError:
        log.exception("Benchmark aborted")
        raise typer.Exit(code=1)

    print_summary(results)
    if wait:
        typer.prompt("Press Enter to exit", default="", show_default=False)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
