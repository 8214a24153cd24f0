"""qt-perf: per-stage timing of SQL queries on a query engine.

Pipeline (one run per query):
1. Parse:      force the logical plan
2. Analyze:    force the analyzed plan
3. Optimize:   force the optimized plan
4. Plan:       force the physical plan
5. Breakdown:  (optional) run every physical operator alone
6. Execute:    collect, discard or persist the full result

Usage:
    from qt_perf import BenchmarkRequest, ExecutionMode, Query, run
    from qt_perf.engine import DuckDBEngine

    with DuckDBEngine("tpch.duckdb", read_only=True) as engine:
        query = Query("q1", "SELECT count(*) FROM lineitem", mode=ExecutionMode.discard_each())
        result = run(BenchmarkRequest(query, include_breakdown=True, engine=engine))
"""

__version__ = "0.1.0"

from .errors import (
    BenchmarkExecutionError,
    BreakdownError,
    CompileError,
    ExecutionError,
    MetadataError,
)
from .query import COLLECT_ALL, DISCARD_EACH, ExecutionMode, ExecutionModeKind, Query
from .runner import extract_join_operators, extract_tables, output_path, run
from .schemas import BenchmarkRequest, BenchmarkResult, BreakdownResult, SuiteResult
from .suite import load_queries, run_suite
from .timing import benchmark_ms, timed

__all__ = [
    # Queries
    "Query",
    "ExecutionMode",
    "ExecutionModeKind",
    "COLLECT_ALL",
    "DISCARD_EACH",
    # Running
    "BenchmarkRequest",
    "run",
    "run_suite",
    "load_queries",
    "output_path",
    "extract_join_operators",
    "extract_tables",
    "benchmark_ms",
    "timed",
    # Results
    "BenchmarkResult",
    "BreakdownResult",
    "SuiteResult",
    # Errors
    "BenchmarkExecutionError",
    "CompileError",
    "BreakdownError",
    "ExecutionError",
    "MetadataError",
]
