#!/usr/bin/env -S uv run
"""
Store Adapter Benchmark Tool for docqueue

Benchmarks InMemoryStore and LocalFileSystemStore using the queue operations
a worker actually performs (enqueue / claim / acknowledge).

Usage:
    uv run tools/benchmark_store.py
    uv run tools/benchmark_store.py --operations 5000 --concurrency 50
    uv run tools/benchmark_store.py --stores memory
"""
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "docqueue",
#     "typer>=0.9.0",
#     "rich>=13.0",
# ]
# ///

from __future__ import annotations

import asyncio
import statistics
import tempfile
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Awaitable, Callable

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from docqueue import InMemoryStore, LocalFileSystemStore, Queue, QueueItem
from docqueue.ports.store import DocumentStorePort

app = typer.Typer(
    help="Benchmark docqueue store adapters",
    add_completion=False,
)
console = Console()


@dataclass
class BenchmarkResult:
    """Latencies of one operation against one store."""

    store_name: str
    operation: str
    total_time: float
    latencies: list[float]  # seconds

    @property
    def ops_per_sec(self) -> float:
        return len(self.latencies) / self.total_time if self.total_time > 0 else 0.0

    def percentile(self, q: float) -> float:
        if not self.latencies:
            return 0.0
        ordered = sorted(self.latencies)
        return ordered[min(int(len(ordered) * q), len(ordered) - 1)]

    @property
    def p50(self) -> float:
        return statistics.median(self.latencies) if self.latencies else 0.0


def _ms(seconds: float) -> str:
    ms = seconds * 1000
    if ms < 1:
        return f"{ms:.3f}ms"
    if ms < 10:
        return f"{ms:.2f}ms"
    return f"{ms:.1f}ms"


async def _timed(
    n: int,
    concurrency: int,
    op: Callable[[int], Awaitable[object]],
) -> tuple[float, list[float]]:
    """Run op(i) n times, `concurrency` at a time. Returns (wall time, latencies)."""
    latencies: list[float] = []

    async def one(i: int) -> None:
        start = perf_counter()
        await op(i)
        latencies.append(perf_counter() - start)

    started = perf_counter()
    for offset in range(0, n, concurrency):
        await asyncio.gather(*(one(i) for i in range(offset, min(offset + concurrency, n))))
    return perf_counter() - started, latencies


def _make_store(name: str, temp_dir: Path) -> DocumentStorePort:
    match name:
        case "memory":
            return InMemoryStore()
        case "filesystem":
            return LocalFileSystemStore(temp_dir / "queue.json")
        case _:
            raise typer.BadParameter(f"unknown store {name!r}")


async def run_store_benchmark(
    name: str,
    operations: int,
    concurrency: int,
    payload_size: int,
    temp_dir: Path,
) -> list[BenchmarkResult]:
    """Enqueue, claim and acknowledge `operations` items against one store."""
    payload = "x" * payload_size
    claimed: list[QueueItem] = []

    async with _make_store(name, temp_dir) as store:
        queue = Queue(store, "benchmark", lease_seconds=600)
        await queue.ensure_schema()

        async def claim(_: int) -> None:
            item = await queue.claim()
            if isinstance(item, QueueItem):
                claimed.append(item)

        results = []
        for operation, op in (
            ("enqueue", lambda i: queue.enqueue({"n": i, "body": payload})),
            ("claim", claim),
            ("acknowledge", lambda i: queue.acknowledge(claimed[i] if i < len(claimed) else None)),
        ):
            total, latencies = await _timed(operations, concurrency, op)
            results.append(BenchmarkResult(name, operation, total, latencies))
        await queue.purge()
    return results


def print_results(results: list[BenchmarkResult]) -> None:
    console.print()
    console.print(Panel("[bold cyan]Store Adapter Benchmark Results[/bold cyan]", expand=False))

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Store", style="yellow")
    table.add_column("Operation", style="cyan", width=12)
    table.add_column("Ops/sec", justify="right", style="green")
    table.add_column("P50", justify="right")
    table.add_column("P95", justify="right")
    table.add_column("P99", justify="right")

    for result in results:
        table.add_row(
            result.store_name,
            result.operation,
            f"{result.ops_per_sec:.1f}",
            _ms(result.p50),
            _ms(result.percentile(0.95)),
            _ms(result.percentile(0.99)),
        )
    console.print(table)


@app.command()
def main(
    operations: int = typer.Option(1000, "--operations", "-n", help="Items per benchmark"),
    concurrency: int = typer.Option(10, "--concurrency", "-c", help="Concurrent callers"),
    payload_size: int = typer.Option(1000, "--payload-size", help="Payload bytes"),
    stores: str = typer.Option(
        "memory,filesystem", "--stores", "-s", help="Comma-separated stores to test"
    ),
) -> None:
    """Measure throughput and latency percentiles of the queue operations."""
    all_results: list[BenchmarkResult] = []
    with tempfile.TemporaryDirectory() as temp_dir_str:
        for name in (s.strip() for s in stores.split(",")):
            all_results.extend(
                asyncio.run(
                    run_store_benchmark(
                        name, operations, concurrency, payload_size, Path(temp_dir_str)
                    )
                )
            )

    if not all_results:
        console.print("[red]No benchmark results to display.[/red]")
        raise typer.Exit(code=1)
    print_results(all_results)


if __name__ == "__main__":
    app()
