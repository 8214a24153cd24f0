"""Pytest configuration and fixtures for qt-perf tests."""

import os
from typing import Any, Callable, List, Optional, Sequence, Tuple

import pytest

from qt_perf.engine.base import render_tree
from qt_perf.query import Query


# =============================================================================
# FAKE ENGINE
# =============================================================================

class FakeNode:
    """Physical operator stand-in that records how often it ran."""

    def __init__(self, name: str, rows: Sequence[Any] = ((1,), (2,)), error: Exception = None):
        self.name = name
        self.description = f"{name} [fake]"
        self.rows = list(rows)
        self.error = error
        self.executions = 0

    def execute(self):
        self.executions += 1
        if self.error is not None:
            raise self.error
        return iter(self.rows)


class FakePhysicalPlan:
    """Left-deep chain of nodes: node i is the only child of node i-1."""

    def __init__(self, nodes: List[FakeNode]):
        self._nodes = list(nodes)

    def nodes(self):
        return list(self._nodes)

    def tree_string(self):
        return render_tree((depth, node.description) for depth, node in enumerate(self._nodes))

    def __getitem__(self, index):
        return self._nodes[index]


class FakeLogicalPlan:
    def __init__(self, relations: Sequence[Tuple[str, ...]]):
        self.relations = [tuple(r) for r in relations]

    def unresolved_relations(self):
        return list(self.relations)


class FakeExecution:
    def __init__(self, engine: "FakeEngine"):
        self.engine = engine

    def _stage(self, stage: str, value: Any) -> Any:
        self.engine.calls.append(stage)
        if self.engine.fail_stage == stage:
            raise self.engine.error
        return value

    def logical_plan(self):
        return self._stage("logical", FakeLogicalPlan(self.engine.relations))

    def analyzed_plan(self):
        return self._stage("analyzed", "analyzed")

    def optimized_plan(self):
        return self._stage("optimized", "optimized")

    def physical_plan(self):
        return self._stage("physical", self.engine.plan)

    def collect(self):
        return self._stage("collect", list(self.engine.rows))

    def foreach(self, fn: Callable[[Any], None]):
        self._stage("foreach", None)
        for row in self.engine.rows:
            fn(row)

    def write(self, path: str):
        self._stage("write", None)
        self.engine.written.append(path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            for row in self.engine.rows:
                f.write(f"{row}\n")


class FakeEngine:
    """Query engine stand-in.

    ``fail_stage`` names the call that raises ``error``: one of compile,
    logical, analyzed, optimized, physical, collect, foreach, write.
    """

    output_extension = "out"

    def __init__(
        self,
        nodes: Optional[List[FakeNode]] = None,
        relations: Sequence[Tuple[str, ...]] = (),
        rows: Sequence[Any] = ((1,),),
        fail_stage: Optional[str] = None,
        error: Optional[Exception] = None,
    ):
        self.plan = FakePhysicalPlan(nodes if nodes is not None else [FakeNode("Project")])
        self.relations = list(relations)
        self.rows = list(rows)
        self.fail_stage = fail_stage
        self.error = error or RuntimeError(f"{fail_stage} exploded")
        self.calls: List[str] = []
        self.written: List[str] = []
        self.job_descriptions: List[str] = []
        self.compiled: List[str] = []

    def set_job_description(self, description: str) -> None:
        self.job_descriptions.append(description)

    def compile(self, sql: str) -> FakeExecution:
        self.calls.append("compile")
        self.compiled.append(sql)
        if self.fail_stage == "compile":
            raise self.error
        return FakeExecution(self)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def select_one() -> Query:
    return Query(name="q1", text="SELECT 1")


# =============================================================================
# DUCKDB FIXTURES
# =============================================================================

SAMPLE_SCHEMA = """
CREATE TABLE customers (id INTEGER, name VARCHAR, region VARCHAR);
CREATE TABLE orders (id INTEGER, customer_id INTEGER, amount DOUBLE);
INSERT INTO customers VALUES (1, 'alice', 'EU'), (2, 'bob', 'US'), (3, 'carol', 'EU');
INSERT INTO orders VALUES (10, 1, 25.0), (11, 1, 5.0), (12, 2, 40.0), (13, 3, 12.5);
"""


@pytest.fixture
def duckdb_engine():
    """In-memory DuckDB engine with small customers/orders tables."""
    from qt_perf.engine.duckdb_engine import DuckDBEngine

    with DuckDBEngine(":memory:", fetch_batch_size=2) as engine:
        engine.execute_script(SAMPLE_SCHEMA)
        yield engine


@pytest.fixture
def join_sql() -> str:
    return """
    SELECT c.name, SUM(o.amount) AS total
    FROM orders o
    JOIN customers c ON o.customer_id = c.id
    WHERE o.amount > 1
    GROUP BY c.name
    ORDER BY total DESC
    LIMIT 2
    """
