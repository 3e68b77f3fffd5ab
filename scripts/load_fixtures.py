"""
Fixture loading script for coachstore.

Reads a JSON file mapping collection names to lists of documents and writes
them through `DocumentStoreClient.batch_write` in chunks no larger than the
client's batch limit. Documents that carry an `id` keep it.

Example fixture:
    {"sports": [{"id": "hockey", "name": "Hockey"}], "skills": [{"name": "Skating", "sportId": "hockey"}]}
"""

from __future__ import annotations

import asyncio
import json
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from coachstore.client import DocumentStoreClient
from coachstore.config import get_settings
from coachstore.domain.results import BatchOperation
from coachstore.infrastructure.db_factory import create_backend
from coachstore.utils.logging import configure_logging

app = typer.Typer(help="Load JSON fixtures into the configured document store.")

Fixtures = Dict[str, List[Dict[str, Any]]]


def _read_fixtures(path: Path) -> Fixtures:
    with path.open("r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ValueError("Fixture file must contain an object of collection -> documents")
    for collection, documents in raw.items():
        if not isinstance(documents, list) or not all(isinstance(doc, dict) for doc in documents):
            raise ValueError(f"Collection '{collection}' must be a list of objects")
    return raw


def _build_operations(fixtures: Fixtures) -> List[BatchOperation]:
    operations: List[BatchOperation] = []
    for collection, documents in fixtures.items():
        for document in documents:
            data = {key: value for key, value in document.items() if key != "id"}
            operations.append(BatchOperation.create(collection, data, id=document.get("id")))
    return operations


async def _load(client: DocumentStoreClient, fixtures: Fixtures, chunk_size: Optional[int] = None) -> Dict[str, int]:
    """Write every fixture document; returns the number loaded per collection."""
    size = min(chunk_size or client.batch_max_operations, client.batch_max_operations)
    operations = _build_operations(fixtures)
    for start in range(0, len(operations), size):
        result = await client.batch_write(operations[start : start + size])
        result.unwrap()
    return {collection: len(documents) for collection, documents in fixtures.items()}


async def _run(path: Path, chunk_size: Optional[int]) -> Dict[str, int]:
    settings = get_settings()
    backend = await create_backend(settings)
    async with DocumentStoreClient(backend, settings=settings) as client:
        return await _load(client, _read_fixtures(path), chunk_size)


@app.command()
def main(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON fixture file."),
    chunk_size: Optional[int] = typer.Option(
        None,
        "--chunk-size",
        "-c",
        min=1,
        help="Operations per batch (capped at BATCH_MAX_OPERATIONS).",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Only parse and count the fixtures; write nothing.",
    ),
) -> None:
    """
    Load fixtures into the store configured by the environment.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)

    if dry_run:
        fixtures = _read_fixtures(path)
        for collection, documents in fixtures.items():
            typer.echo(f"{collection}: {len(documents):,} document(s)")
        return

    start = time.perf_counter()
    counts = asyncio.run(_run(path, chunk_size))
    duration = time.perf_counter() - start
    total = sum(counts.values())
    typer.echo(f"Loaded {total:,} document(s) into {len(counts)} collection(s) in {duration:.2f}s")


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
