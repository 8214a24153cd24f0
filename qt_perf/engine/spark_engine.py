"""Spark SQL engine for query benchmarking.

Drives Spark's QueryExecution through py4j: ``logical`` / ``analyzed`` /
``optimizedPlan`` / ``executedPlan`` are lazy on the JVM side, so touching each
one in turn forces exactly that stage.

Breakdown runs are only meaningful with adaptive execution disabled
(``spark.sql.adaptive.enabled=false``); with AQE on, the walk descends into
the initial plan held by AdaptiveSparkPlanExec.

pyspark itself is not imported here; the engine only talks to the session
object it is given.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional, Tuple

from ..config import get_settings
from .base import render_tree

if TYPE_CHECKING:
    from pyspark.sql import DataFrame, SparkSession

logger = logging.getLogger(__name__)


def _seq_to_list(seq: Any) -> List[Any]:
    """Convert a Scala Seq proxied by py4j into a Python list."""
    return [seq.apply(i) for i in range(seq.size())]


def _simple_name(jobj: Any) -> str:
    return jobj.getClass().getSimpleName()


def _children(jnode: Any) -> List[Any]:
    if _simple_name(jnode) == "AdaptiveSparkPlanExec":
        return [jnode.executedPlan()]
    return _seq_to_list(jnode.children())


def _walk(jroot: Any) -> List[Tuple[int, Any]]:
    """Pre-order (depth, node) pairs over a Catalyst tree."""
    entries = []
    stack = [(0, jroot)]
    while stack:
        depth, jnode = stack.pop()
        entries.append((depth, jnode))
        for child in reversed(_children(jnode)):
            stack.append((depth + 1, child))
    return entries


class SparkLogicalPlan:
    """Parsed Catalyst plan; table references are UnresolvedRelation nodes."""

    def __init__(self, jplan: Any):
        self.jplan = jplan

    def unresolved_relations(self) -> List[Tuple[str, ...]]:
        relations = []
        for _, jnode in _walk(self.jplan):
            if _simple_name(jnode) == "UnresolvedRelation":
                parts = _seq_to_list(jnode.multipartIdentifier())
                relations.append(tuple(str(p) for p in parts))
        return relations


class SparkPlanNode:
    """A SparkPlan operator.

    Running an operator alone counts its RDD instead of copying each
    InternalRow. The copy protects rows that outlive the iterator step, and
    counting keeps no rows, so nothing needs protecting. A per-row copy would
    need a Scala closure, which py4j cannot ship to the executors. Breakdown
    timings therefore leave out the per-row copy cost.
    """

    def __init__(self, jnode: Any, max_fields: int):
        self.jnode = jnode
        self.name = jnode.nodeName()
        self.description = " ".join(str(jnode.simpleString(max_fields)).split())

    def execute(self) -> Iterator[Any]:
        """Force this operator's RDD.

        Rows never leave the JVM: the count drains every partition there, and
        the Python iterator itself yields nothing.
        """
        self.jnode.execute().count()
        return iter(())


class SparkPhysicalPlan:
    def __init__(self, jplan: Any, max_fields: int):
        self.jplan = jplan
        self._entries = [
            (depth, SparkPlanNode(jnode, max_fields)) for depth, jnode in _walk(jplan)
        ]

    def nodes(self) -> List[SparkPlanNode]:
        return [node for _, node in self._entries]

    def tree_string(self) -> str:
        return render_tree((depth, node.description) for depth, node in self._entries)

    def __getitem__(self, index: int) -> SparkPlanNode:
        return self._entries[index][1]

    def __len__(self) -> int:
        return len(self._entries)


class SparkQueryExecution:
    def __init__(self, dataframe: "DataFrame", max_fields: int):
        self.dataframe = dataframe
        self.max_fields = max_fields
        self._jqe = dataframe._jdf.queryExecution()
        self._physical: Optional[SparkPhysicalPlan] = None

    def logical_plan(self) -> SparkLogicalPlan:
        return SparkLogicalPlan(self._jqe.logical())

    def analyzed_plan(self) -> Any:
        return self._jqe.analyzed()

    def optimized_plan(self) -> Any:
        return self._jqe.optimizedPlan()

    def physical_plan(self) -> SparkPhysicalPlan:
        if self._physical is None:
            self._physical = SparkPhysicalPlan(self._jqe.executedPlan(), self.max_fields)
        return self._physical

    def collect(self) -> List[Any]:
        # Includes conversion of every row to a Python Row
        return self.dataframe.rdd.collect()

    def foreach(self, fn: Callable[[Any], None]) -> None:
        self.dataframe.rdd.foreach(fn)

    def write(self, path: str) -> None:
        self.dataframe.write.parquet(path)


class SparkEngine:
    """Benchmark engine backed by a live SparkSession.

    Args:
        spark: Active session.
        max_fields: Field limit passed to ``simpleString`` for operator details.
    """

    output_extension = "parquet"

    def __init__(self, spark: "SparkSession", max_fields: Optional[int] = None):
        self.spark = spark
        self.max_fields = max_fields if max_fields is not None else get_settings().spark_max_fields

    def set_job_description(self, description: str) -> None:
        self.spark.sparkContext.setJobDescription(description)

    def compile(self, sql: str) -> SparkQueryExecution:
        return SparkQueryExecution(self.spark.sql(sql), self.max_fields)
