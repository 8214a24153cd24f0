"""Query engines a benchmark can run against.

Engine imports are lazy, so the Spark engine is usable without DuckDB
installed and vice versa.
"""

from .base import (
    LogicalPlan,
    PhysicalPlan,
    PlanNode,
    QueryEngine,
    QueryExecution,
    render_tree,
)


def __getattr__(name: str):
    """Lazy import for concrete engine classes."""
    if name == "DuckDBEngine":
        from .duckdb_engine import DuckDBEngine
        return DuckDBEngine
    if name == "SparkEngine":
        from .spark_engine import SparkEngine
        return SparkEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Engines (lazy)
    "DuckDBEngine",
    "SparkEngine",
    # Protocols
    "QueryEngine",
    "QueryExecution",
    "LogicalPlan",
    "PhysicalPlan",
    "PlanNode",
    "render_tree",
]
