"""
Dataset generation script for the nested filter benchmark.

Generates one deterministic dataset (the same one a benchmark iteration would
use) and writes it as MongoDB Extended JSON lines and/or loads it into a
MongoDB collection for manual inspection.
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

import typer
from bson import json_util
from pymongo import MongoClient

from nested_filter_bench.domain.generator import DEFAULT_SEED, iter_documents
from nested_filter_bench.domain.models import ExperimentConfig
from nested_filter_bench.infrastructure.seeding import DEFAULT_BATCH_ELEMENTS, seed_collection

app = typer.Typer(help="Generate a synthetic nested dataset (JSON lines and/or MongoDB).")


def _write_jsonl(path: Path, config: ExperimentConfig, seed: int) -> int:
    written = 0
    with path.open("w", encoding="utf-8") as f:
        for document in iter_documents(config, seed=seed):
            f.write(json_util.dumps(document, json_options=json_util.RELAXED_JSON_OPTIONS))
            f.write("\n")
            written += 1
    return written


def _load_into_mongo(
    uri: str,
    database: str,
    collection: str,
    config: ExperimentConfig,
    seed: int,
    batch_elements: int,
) -> int:
    client = MongoClient(uri, tz_aware=True)
    try:
        target = client[database][collection]
        target.drop()
        return seed_collection(target, config, seed=seed, batch_elements=batch_elements)
    finally:
        client.close()


@app.command()
def main(
    outer: int = typer.Option(100, "--outer", "-o", min=0, help="Outer document count."),
    elements: int = typer.Option(100, "--elements", "-e", min=0, help="Elements per document."),
    deleted: float = typer.Option(
        0.5, "--deleted", "-d", min=0.0, max=1.0, help="Deletion ratio in [0, 1]."
    ),
    seed: int = typer.Option(DEFAULT_SEED, "--seed", help="Deterministic RNG seed."),
    output: Path | None = typer.Option(
        None, "--output", help="Optional JSON lines output path."
    ),
    uri: str | None = typer.Option(
        None, "--uri", help="MongoDB URI to load the dataset into."
    ),
    database: str = typer.Option("testdb", "--database", help="Target database name."),
    collection: str = typer.Option("outers", "--collection", help="Target collection name."),
    batch_elements: int = typer.Option(
        DEFAULT_BATCH_ELEMENTS,
        "--batch-elements",
        "-b",
        min=1,
        help="Approximate array elements per insert_many call.",
    ),
) -> None:
    """
    Generate a dataset and write it to a file, a MongoDB collection, or both.
    """
    if output is None and uri is None:
        raise typer.BadParameter("Pass --output and/or --uri.")

    config = ExperimentConfig(outer_count=outer, element_count=elements, deletion_ratio=deleted)
    typer.echo(f"Dataset {config.label.expandtabs(1)} (seed={seed})")

    if output is not None:
        start = time.perf_counter()
        output.parent.mkdir(parents=True, exist_ok=True)
        written = _write_jsonl(output, config, seed)
        typer.echo(f"Wrote {written:,} documents -> {output} in {time.perf_counter() - start:.2f}s")

    if uri is not None:
        start = time.perf_counter()
        inserted = _load_into_mongo(uri, database, collection, config, seed, batch_elements)
        typer.echo(
            f"Loaded {inserted:,} documents into {database}.{collection} "
            f"in {time.perf_counter() - start:.2f}s"
        )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
