"""Benchmark failure types.

Every failure inside a run surfaces as a BenchmarkExecutionError. The
subclasses tag which part of the run failed; the engine's original exception
is kept on ``cause`` and chained as ``__cause__``.
"""

from __future__ import annotations

from typing import Optional


class BenchmarkExecutionError(RuntimeError):
    """A benchmark run failed; no result was produced."""

    stage = "benchmark"

    def __init__(self, query_name: str, cause: BaseException, detail: str = ""):
        self.query_name = query_name
        self.cause = cause
        message = f"Failed to benchmark query {query_name}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(f"{message}: {type(cause).__name__}: {cause}")
        self.__cause__ = cause

    def to_dict(self) -> dict:
        return {
            "query": self.query_name,
            "stage": self.stage,
            "error_type": type(self.cause).__name__,
            "error": str(self.cause),
        }


class CompileError(BenchmarkExecutionError):
    """Parsing, analysis, optimization or physical planning failed."""

    stage = "compile"


class BreakdownError(BenchmarkExecutionError):
    """Executing a single physical operator during the breakdown failed."""

    stage = "breakdown"

    def __init__(
        self,
        query_name: str,
        cause: BaseException,
        index: Optional[int] = None,
        operator_name: Optional[str] = None,
    ):
        self.index = index
        self.operator_name = operator_name
        detail = ""
        if index is not None:
            detail = f"operator #{index} {operator_name or ''}".rstrip()
        super().__init__(query_name, cause, detail)


class ExecutionError(BenchmarkExecutionError):
    """Full-query execution or a durable write failed."""

    stage = "execution"


class MetadataError(BenchmarkExecutionError):
    """Reading join operators or table references from the plans failed."""

    stage = "metadata"
