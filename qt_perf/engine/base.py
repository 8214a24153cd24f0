"""Protocols for the query engine a benchmark drives.

The runner never parses, plans or executes SQL itself. It forces the plans an
engine produces (logical -> analyzed -> optimized -> physical), walks the
physical operator tree, and consumes the result rows.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, List, Protocol, Sequence, Tuple


class PlanNode(Protocol):
    """A single physical operator."""

    @property
    def name(self) -> str:
        """Operator kind, e.g. 'HashJoin', 'Filter'."""
        ...

    @property
    def description(self) -> str:
        """Single-line human readable description."""
        ...

    def execute(self) -> Iterable[Any]:
        """Run this operator (and its inputs) alone and stream its rows."""
        ...


class PhysicalPlan(Protocol):
    """Executable operator tree.

    ``nodes()`` is the pre-order node sequence; ``tree_string()`` prints the
    same sequence, one line per node.
    """

    def nodes(self) -> Sequence[PlanNode]:
        ...

    def tree_string(self) -> str:
        ...

    def __getitem__(self, index: int) -> PlanNode:
        ...


class LogicalPlan(Protocol):
    """Parsed (unresolved) plan."""

    def unresolved_relations(self) -> List[Tuple[str, ...]]:
        """Qualified identifier parts of every table reference, in traversal order."""
        ...


class QueryExecution(Protocol):
    """Lazy compilation and execution of one query.

    Each ``*_plan`` method forces that representation and memoizes it, so
    calling them in order attributes each stage's cost to its own call.
    """

    def logical_plan(self) -> LogicalPlan:
        ...

    def analyzed_plan(self) -> Any:
        ...

    def optimized_plan(self) -> Any:
        ...

    def physical_plan(self) -> PhysicalPlan:
        ...

    def collect(self) -> List[Any]:
        """Materialize the whole result in memory."""
        ...

    def foreach(self, fn: Callable[[Any], None]) -> None:
        """Stream every result row through ``fn``."""
        ...

    def write(self, path: str) -> None:
        """Write the whole result durably to ``path``."""
        ...


class QueryEngine(Protocol):
    """Session handle a benchmark runs against."""

    output_extension: str
    """File extension used for persisted results (e.g. 'parquet')."""

    def set_job_description(self, description: str) -> None:
        """Advisory label for the current unit of work."""
        ...

    def compile(self, sql: str) -> QueryExecution:
        ...


def render_tree(entries: Iterable[Tuple[int, str]]) -> str:
    """Render ``(depth, text)`` pairs as a plan tree, one line per entry."""
    lines = []
    for depth, text in entries:
        if depth == 0:
            lines.append(text)
        else:
            lines.append("   " * (depth - 1) + "+- " + text)
    return "\n".join(lines)
