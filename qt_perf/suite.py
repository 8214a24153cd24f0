"""Running a set of queries, and loading them from a directory of .sql files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .config import get_settings
from .engine.base import QueryEngine
from .errors import BenchmarkExecutionError
from .query import COLLECT_ALL, ExecutionMode, Query
from .runner import run
from .schemas import BenchmarkRequest, SuiteResult

logger = logging.getLogger(__name__)


def _leading_comment(sql: str) -> str:
    """First ``--`` comment line before any SQL, used as the query description."""
    for line in sql.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("--"):
            return stripped.lstrip("-").strip()
        break
    return ""


def load_queries(
    queries_dir: Path,
    mode: ExecutionMode = COLLECT_ALL,
    pattern: str = "*.sql",
) -> List[Query]:
    """Load one Query per SQL file, named after the file stem, sorted by name.

    Raises:
        FileNotFoundError: If ``queries_dir`` does not exist.
    """
    queries_dir = Path(queries_dir)
    if not queries_dir.is_dir():
        raise FileNotFoundError(f"Query directory not found: {queries_dir}")

    queries = []
    for path in sorted(queries_dir.glob(pattern)):
        sql = path.read_text(encoding="utf-8")
        text = sql.strip().rstrip(";").strip()
        if not text:
            logger.warning(f"Skipping empty query file: {path}")
            continue
        queries.append(
            Query(name=path.stem, text=text, description=_leading_comment(sql), mode=mode)
        )
    logger.info(f"Loaded {len(queries)} queries from {queries_dir}")
    return queries


def run_suite(
    queries: Iterable[Query],
    engine: QueryEngine,
    include_breakdown: Optional[bool] = None,
    query_output_location: Optional[str] = None,
) -> SuiteResult:
    """Benchmark each query in order on ``engine``.

    A failed query is recorded in ``SuiteResult.failures`` and the remaining
    queries still run. ``include_breakdown`` and ``query_output_location``
    default to the configured settings when not given; pass ``""`` as the
    location to skip the extra write.

    Raises:
        ValueError: If two queries share a name.
    """
    settings = get_settings()
    if include_breakdown is None:
        include_breakdown = settings.include_breakdown
    if query_output_location is None:
        query_output_location = settings.query_output_location

    queries = list(queries)
    seen = set()
    for query in queries:
        if query.name in seen:
            raise ValueError(f"Duplicate query name in suite: {query.name}")
        seen.add(query.name)

    suite = SuiteResult()
    for i, query in enumerate(queries, 1):
        logger.info(f"[{i}/{len(queries)}] {query.name}")
        request = BenchmarkRequest(query=query, include_breakdown=include_breakdown, engine=engine)
        try:
            suite.results.append(run(request, query_output_location))
        except BenchmarkExecutionError as e:
            logger.warning(f"{query.name} failed: {e}")
            suite.failures[query.name] = str(e)
    logger.info(f"Suite finished: {suite.succeeded} succeeded, {suite.failed} failed")
    return suite
