"""Tests for the Spark engine using py4j stand-ins (no JVM required)."""

from typing import List, Optional, Sequence
from unittest.mock import MagicMock

import pytest

from qt_perf.engine.spark_engine import SparkEngine, SparkLogicalPlan, SparkPhysicalPlan
from qt_perf.errors import BreakdownError
from qt_perf.query import ExecutionMode, Query
from qt_perf.runner import run
from qt_perf.schemas import BenchmarkRequest


class JSeq:
    """Scala Seq as seen through py4j."""

    def __init__(self, items: Sequence):
        self.items = list(items)

    def size(self):
        return len(self.items)

    def apply(self, i):
        return self.items[i]


class JClass:
    def __init__(self, simple_name: str):
        self.simple_name = simple_name

    def getSimpleName(self):
        return self.simple_name


class JNode:
    """Catalyst TreeNode stand-in."""

    def __init__(
        self,
        class_name: str,
        children: Sequence["JNode"] = (),
        parts: Optional[List[str]] = None,
        fail: bool = False,
        initial_plan: Optional["JNode"] = None,
    ):
        self.class_name = class_name
        self._children = list(children)
        self.parts = parts or []
        self.fail = fail
        self.initial_plan = initial_plan
        self.executions = 0
        self.max_fields_seen = []

    def getClass(self):
        return JClass(self.class_name)

    def nodeName(self):
        return self.class_name.replace("Exec", "")

    def simpleString(self, max_fields):
        self.max_fields_seen.append(max_fields)
        return f"{self.nodeName()} [a#1,\n b#2]"

    def children(self):
        return JSeq(self._children)

    def multipartIdentifier(self):
        return JSeq(self.parts)

    def executedPlan(self):
        return self.initial_plan

    def execute(self):
        self.executions += 1
        if self.fail:
            raise RuntimeError(f"{self.class_name} failed")
        rdd = MagicMock()
        rdd.count.return_value = 3
        return rdd


def _physical_tree():
    scan_a = JNode("FileSourceScanExec")
    scan_b = JNode("FileSourceScanExec")
    join = JNode("SortMergeJoinExec", [scan_a, scan_b])
    return JNode("ProjectExec", [join]), [scan_a, scan_b, join]


def _logical_tree():
    return JNode(
        "Project",
        [
            JNode(
                "Join",
                [
                    JNode("UnresolvedRelation", parts=["db1", "orders"]),
                    JNode("SubqueryAlias", [JNode("UnresolvedRelation", parts=["customers"])]),
                ],
            )
        ],
    )


def _session(physical_root, logical_root=None):
    jqe = MagicMock()
    jqe.logical.return_value = logical_root or JNode("OneRowRelation")
    jqe.executedPlan.return_value = physical_root

    df = MagicMock()
    df._jdf.queryExecution.return_value = jqe

    spark = MagicMock()
    spark.sql.return_value = df
    return spark, df, jqe


class TestPlans:
    def test_unresolved_relations_in_preorder(self):
        plan = SparkLogicalPlan(_logical_tree())
        assert plan.unresolved_relations() == [("db1", "orders"), ("customers",)]

    def test_physical_nodes_preorder(self):
        root, _ = _physical_tree()
        plan = SparkPhysicalPlan(root, max_fields=10)

        assert [n.name for n in plan.nodes()] == ["Project", "SortMergeJoin", "FileSourceScan", "FileSourceScan"]
        assert plan[1].name == "SortMergeJoin"
        assert root.max_fields_seen == [10]

    def test_tree_string_one_line_per_node(self):
        root, _ = _physical_tree()
        plan = SparkPhysicalPlan(root, max_fields=10)
        lines = plan.tree_string().split("\n")

        assert len(lines) == len(plan)
        assert lines[0] == "Project [a#1, b#2]"
        assert lines[1] == "+- SortMergeJoin [a#1, b#2]"
        assert lines[2] == "   +- FileSourceScan [a#1, b#2]"

    def test_adaptive_plan_walks_initial_plan(self):
        inner, _ = _physical_tree()
        root = JNode("AdaptiveSparkPlanExec", initial_plan=inner)
        plan = SparkPhysicalPlan(root, max_fields=5)
        assert [n.name for n in plan.nodes()][:2] == ["AdaptiveSparkPlan", "Project"]

    def test_node_execute_forces_rdd(self):
        root, _ = _physical_tree()
        node = SparkPhysicalPlan(root, max_fields=5)[0]
        assert list(node.execute()) == []
        assert root.executions == 1


class TestSparkRun:
    def test_run_with_breakdown(self):
        root, others = _physical_tree()
        spark, df, jqe = _session(root, _logical_tree())
        engine = SparkEngine(spark, max_fields=25)

        result = run(
            BenchmarkRequest(Query("q5", "SELECT ..."), include_breakdown=True, engine=engine),
            description="tpcds",
        )

        spark.sql.assert_called_once_with("SELECT ...")
        spark.sparkContext.setJobDescription.assert_called_once_with("Query: q5, tpcds")
        jqe.analyzed.assert_called_once()
        jqe.optimizedPlan.assert_called_once()
        df.rdd.collect.assert_called_once()
        assert result.join_operators == ("SortMergeJoin",)
        assert result.tables == ("orders", "customers")
        assert [b.index for b in result.breakdown] == [0, 1, 2, 3]
        assert root.executions == 1
        assert all(n.executions == 1 for n in others)

    def test_discard_each_uses_rdd_foreach(self):
        root, _ = _physical_tree()
        spark, df, _ = _session(root)
        engine = SparkEngine(spark, max_fields=25)

        run(BenchmarkRequest(Query("q1", "SELECT 1", mode=ExecutionMode.discard_each()), False, engine))

        df.rdd.foreach.assert_called_once()
        df.rdd.collect.assert_not_called()

    def test_persist_and_output_location(self):
        root, _ = _physical_tree()
        spark, df, _ = _session(root)
        engine = SparkEngine(spark, max_fields=25)
        query = Query("q1", "SELECT 1", mode=ExecutionMode.persist_to("/out"))

        run(BenchmarkRequest(query, False, engine), query_output_location="/copies")

        paths = [c.args[0] for c in df.write.parquet.call_args_list]
        assert paths == ["/out/q1.parquet", "/copies/q1.parquet"]

    def test_breakdown_failure_at_index_two(self):
        scan_a = JNode("FileSourceScanExec", fail=True)
        join = JNode("SortMergeJoinExec", [scan_a, JNode("FileSourceScanExec")])
        root = JNode("ProjectExec", [join])
        spark, df, _ = _session(root)

        with pytest.raises(BreakdownError) as exc_info:
            run(BenchmarkRequest(Query("q1", "SELECT 1"), True, SparkEngine(spark, max_fields=25)))

        assert exc_info.value.query_name == "q1"
        assert exc_info.value.index == 2
        assert str(exc_info.value.cause) == "FileSourceScanExec failed"
        df.rdd.collect.assert_not_called()
