"""Rendering benchmark results as JSON and rich tables."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable, List

from rich.table import Table

from .schemas import BenchmarkResult


def results_to_json(results: Iterable[BenchmarkResult], indent: int = 2) -> str:
    return json.dumps([r.to_dict() for r in results], indent=indent)


def write_results_jsonl(results: Iterable[BenchmarkResult], path: Path) -> int:
    """Write one JSON object per line. Returns the number of results written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", encoding="utf-8") as f:
        for result in results:
            f.write(result.to_json() + "\n")
            count += 1
    return count


def read_results_jsonl(path: Path) -> List[dict]:
    with Path(path).open(encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


def results_table(results: Iterable[BenchmarkResult]) -> Table:
    """Per-query stage timings, one row per result."""
    table = Table(title="Query Benchmarks", show_header=True, header_style="bold")
    table.add_column("Query", style="cyan")
    for column in ("Parse", "Analyze", "Optimize", "Plan", "Execute"):
        table.add_column(f"{column} (ms)", justify="right")
    table.add_column("Joins")
    table.add_column("Tables")

    for r in results:
        table.add_row(
            r.name,
            f"{r.parsing_ms:.2f}",
            f"{r.analysis_ms:.2f}",
            f"{r.optimization_ms:.2f}",
            f"{r.planning_ms:.2f}",
            f"{r.execution_ms:.2f}",
            ", ".join(r.join_operators) or "-",
            ", ".join(r.tables) or "-",
        )
    return table


def breakdown_table(result: BenchmarkResult) -> Table:
    """Per-operator timings of a single result."""
    table = Table(title=f"Operator Breakdown: {result.name}", show_header=True, header_style="bold")
    table.add_column("#", justify="right", width=4)
    table.add_column("Operator", style="cyan")
    table.add_column("Detail")
    table.add_column("Time (ms)", justify="right")

    for b in result.breakdown:
        detail = b.operator_detail
        if len(detail) > 80:
            detail = detail[:77] + "..."
        table.add_row(str(b.index), b.operator_name, detail, f"{b.elapsed_ms:.2f}")
    return table
