from __future__ import annotations

from typing import List, Optional

import psutil
from rich import box
from rich.console import Console
from rich.table import Table

from nested_filter_bench.domain.models import RunResult


def _format_ms(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:,.2f}"


def host_resources() -> str:
    """Short description of the CPU and memory available to the benchmark."""
    cpus = psutil.cpu_count(logical=True) or 0
    memory_gb = psutil.virtual_memory().total / (1024**3)
    return f"CPU: {cpus} cores │ Memory: {memory_gb:.1f}GB"


def print_config_result(result: RunResult, console: Optional[Console] = None) -> None:
    """
    Print the averages of one experiment config as soon as it completes.
    """
    console = console or Console()
    config = result.config
    console.print(f"Outer objects: {config.outer_count}", style="white")
    console.print(f"Inner elements: {config.element_count}", style="white")
    console.print(f"Deleted percentage: {config.deletion_ratio}", style="white")
    console.print(f"Server-side filter: {_format_ms(result.server_avg_ms)} ms", style="red")
    console.print(f"Client-side filter: {_format_ms(result.client_avg_ms)} ms", style="red")


def print_summary(results: List[RunResult], console: Optional[Console] = None) -> None:
    """
    Render every config of the run as a rich table, in grid order.
    """
    console = console or Console()

    if not results:
        console.print("[yellow]No results to display.[/yellow]")
        return

    table = Table(
        title=f"Nested Filter Benchmark Results\n[dim]{host_resources()}[/dim]",
        box=box.ROUNDED,
        caption="Average wall-clock latency per query (ms)",
    )
    table.add_column("Outer", justify="right", style="cyan")
    table.add_column("Elements", justify="right", style="cyan")
    table.add_column("Deleted %", justify="right", style="magenta")
    table.add_column("Runs", justify="right", style="blue")
    table.add_column("Server-side (ms)", justify="right", style="green")
    table.add_column("Client-side (ms)", justify="right", style="yellow")
    table.add_column("Client / Server", justify="right", style="bold")

    for result in results:
        config = result.config
        speedup = result.speedup
        table.add_row(
            f"{config.outer_count:,}",
            f"{config.element_count:,}",
            f"{config.deletion_ratio * 100:.0f}",
            str(result.iterations),
            _format_ms(result.server_avg_ms),
            _format_ms(result.client_avg_ms),
            "N/A" if speedup is None else f"{speedup:.2f}x",
        )

    console.print(table)


__all__ = ["host_resources", "print_config_result", "print_summary"]
