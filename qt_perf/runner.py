"""Benchmark runner: times one query's compile stages and execution.

A run is all-or-nothing:

1. Tag the engine session with the query name
2. Compile the query (possibly lazily)
3. Force and time parse, analysis, optimization, physical planning
4. Optionally time every physical operator alone (breakdown)
5. Time full execution under the query's ExecutionMode
6. Read join operators from the physical plan
7. Read table names from the logical plan
8. Optionally persist the result again, untimed
9. Return a BenchmarkResult

Any failure in steps 1-8 is raised once as a BenchmarkExecutionError (or subclass)
naming the query, chained to the engine's original exception.
"""

import copy
import logging
from typing import Any, List, Optional

from .engine.base import LogicalPlan, PhysicalPlan, QueryEngine, QueryExecution
from .errors import (
    BenchmarkExecutionError,
    BreakdownError,
    CompileError,
    ExecutionError,
    MetadataError,
)
from .query import ExecutionModeKind, Query
from .schemas import BenchmarkRequest, BenchmarkResult, BreakdownResult
from .timing import benchmark_ms

logger = logging.getLogger(__name__)


def output_path(location: str, name: str, extension: str) -> str:
    """Destination for a persisted result: ``{location}/{name}.{extension}``."""
    return f"{location.rstrip('/')}/{name}.{extension}"


def _discard(row: Any) -> None:
    pass


def _drain(rows) -> None:
    """Consume every row, copying each before dropping it."""
    for row in rows:
        copy.copy(row)


def run(
    request: BenchmarkRequest,
    query_output_location: Optional[str] = None,
    description: str = "",
) -> BenchmarkResult:
    """Benchmark ``request.query`` on ``request.engine``.

    Args:
        request: Query, engine and breakdown flag for this run.
        query_output_location: If set, the result is also written under this
            directory after timing; the write is not included in execution_ms.
        description: Free text appended to the engine job description.

    Raises:
        BenchmarkExecutionError: tagging the engine session failed.
        CompileError, BreakdownError, ExecutionError, MetadataError: all
            subclasses of BenchmarkExecutionError.
    """
    query = request.query
    engine = request.engine
    logger.info(
        f"Benchmarking {query.name} (mode={query.mode}, breakdown={request.include_breakdown})"
    )
    stage = BenchmarkExecutionError
    try:
        engine.set_job_description(f"Query: {query.name}, {description}")

        stage = CompileError
        execution = engine.compile(query.text)
        parsing_ms = benchmark_ms(execution.logical_plan)
        analysis_ms = benchmark_ms(execution.analyzed_plan)
        optimization_ms = benchmark_ms(execution.optimized_plan)
        planning_ms = benchmark_ms(execution.physical_plan)
        logger.debug(
            f"  {query.name} compile: parse={parsing_ms:.2f}ms analyze={analysis_ms:.2f}ms "
            f"optimize={optimization_ms:.2f}ms plan={planning_ms:.2f}ms"
        )

        breakdown: List[BreakdownResult] = []
        if request.include_breakdown:
            stage = BreakdownError
            breakdown = _run_breakdown(query, execution.physical_plan())

        stage = ExecutionError
        execution_ms = _time_execution(query, engine, execution)

        stage = MetadataError
        join_operators = extract_join_operators(execution.physical_plan())
        tables = extract_tables(execution.logical_plan())

        if query_output_location:
            stage = ExecutionError
            path = output_path(query_output_location, query.name, engine.output_extension)
            logger.debug(f"  {query.name} writing result to {path}")
            execution.write(path)
    except BreakdownError:
        raise
    except Exception as e:
        logger.warning(f"Benchmark of {query.name} failed during {stage.stage}: {e}")
        raise stage(query.name, e) from e

    result = BenchmarkResult(
        name=query.name,
        join_operators=tuple(join_operators),
        tables=tuple(tables),
        parsing_ms=parsing_ms,
        analysis_ms=analysis_ms,
        optimization_ms=optimization_ms,
        planning_ms=planning_ms,
        execution_ms=execution_ms,
        breakdown=tuple(breakdown),
    )
    logger.info(
        f"Benchmarked {query.name}: compile={result.compile_ms:.2f}ms "
        f"execution={execution_ms:.2f}ms"
    )
    return result


def _run_breakdown(query: Query, plan: PhysicalPlan) -> List[BreakdownResult]:
    """Execute each physical operator alone, in pre-order, timing each one."""
    results = []
    for index, node in enumerate(plan.nodes()):
        try:
            elapsed_ms = benchmark_ms(lambda: _drain(node.execute()))
        except Exception as e:
            logger.warning(
                f"Breakdown of {query.name} failed at operator #{index} {node.name}: {e}"
            )
            raise BreakdownError(query.name, e, index=index, operator_name=node.name) from e
        logger.debug(f"  #{index} {node.name}: {elapsed_ms:.2f}ms")
        results.append(BreakdownResult(node.name, node.description, index, elapsed_ms))
    return results


def _time_execution(query: Query, engine: QueryEngine, execution: QueryExecution) -> float:
    mode = query.mode
    if mode.kind is ExecutionModeKind.COLLECT_ALL:
        return benchmark_ms(execution.collect)
    if mode.kind is ExecutionModeKind.DISCARD_EACH:
        return benchmark_ms(lambda: execution.foreach(_discard))
    path = output_path(mode.location, query.name, engine.output_extension)
    return benchmark_ms(lambda: execution.write(path))


def extract_join_operators(plan: PhysicalPlan) -> List[str]:
    """Names of all physical operators that are joins, in pre-order."""
    return [node.name for node in plan.nodes() if "Join" in node.name]


def extract_tables(plan: LogicalPlan) -> List[str]:
    """Referenced table names with any database/schema qualifier dropped."""
    return [parts[-1] for parts in plan.unresolved_relations() if parts]

