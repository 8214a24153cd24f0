"""Benchmark request and result structures.

- Request: BenchmarkRequest (one query bound to one engine for one run)
- Results: BreakdownResult, BenchmarkResult, SuiteResult
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

from .query import Query

if TYPE_CHECKING:
    from .engine.base import QueryEngine


@dataclass
class BenchmarkRequest:
    """Ties a Query to the engine it runs on. Used for a single ``run`` call."""

    query: Query
    include_breakdown: bool
    engine: "QueryEngine"

    @property
    def name(self) -> str:
        return self.query.name


@dataclass(frozen=True)
class BreakdownResult:
    """Timing of one physical operator executed in isolation."""

    operator_name: str
    operator_detail: str
    index: int
    elapsed_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operator_name": self.operator_name,
            "operator_detail": self.operator_detail,
            "index": self.index,
            "elapsed_ms": round(self.elapsed_ms, 3),
        }


@dataclass(frozen=True)
class BenchmarkResult:
    """Measurements from one successful benchmark run.

    The four compile-stage timings are measured independently; each covers
    only the call that forced that plan.
    """

    name: str
    join_operators: Tuple[str, ...]
    tables: Tuple[str, ...]
    parsing_ms: float
    analysis_ms: float
    optimization_ms: float
    planning_ms: float
    execution_ms: float
    breakdown: Tuple[BreakdownResult, ...] = ()

    @property
    def compile_ms(self) -> float:
        return self.parsing_ms + self.analysis_ms + self.optimization_ms + self.planning_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "join_operators": list(self.join_operators),
            "tables": list(self.tables),
            "parsing_ms": round(self.parsing_ms, 3),
            "analysis_ms": round(self.analysis_ms, 3),
            "optimization_ms": round(self.optimization_ms, 3),
            "planning_ms": round(self.planning_ms, 3),
            "execution_ms": round(self.execution_ms, 3),
            "breakdown": [b.to_dict() for b in self.breakdown],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class SuiteResult:
    """Outcome of running several queries; failed queries map to their error."""

    results: List[BenchmarkResult] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)

    def get(self, name: str) -> BenchmarkResult:
        for result in self.results:
            if result.name == name:
                return result
        raise KeyError(name)
