"""DuckDB engine for query benchmarking.

Compile stages are driven through sqlglot so each one can be forced and timed
on its own:

1. Parse:     sqlglot.parse_one (unresolved logical plan)
2. Analyze:   qualify against the live DuckDB catalog
3. Optimize:  sqlglot optimizer
4. Plan:      DuckDB EXPLAIN (binding + physical planning inside DuckDB) and
              an executable operator tree derived from the optimized statement

Every operator in that tree renders to a standalone SELECT (with the
statement's CTEs attached), so it can be run in isolation for a breakdown.

Usage:
    with DuckDBEngine("tpch.duckdb", read_only=True) as engine:
        result = run(BenchmarkRequest(query, include_breakdown=True, engine=engine))
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

try:
    import duckdb
except ImportError as e:
    raise ImportError(
        "DuckDB is not installed. Install with: pip install duckdb"
    ) from e

import sqlglot
from sqlglot import exp
from sqlglot.optimizer import optimize
from sqlglot.optimizer.qualify import qualify
from sqlglot.tokens import TokenType

from ..config import Settings, get_settings
from .base import render_tree

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_CHARS = 200

CATALOG_COLUMNS_SQL = """
SELECT table_schema, table_name, column_name, data_type
FROM information_schema.columns
WHERE table_catalog = current_database()
ORDER BY table_schema, table_name, ordinal_position
"""


def _one_line(text: str) -> str:
    """Collapse whitespace and cap length so a description fits one tree line."""
    line = " ".join(text.split())
    if len(line) > MAX_DESCRIPTION_CHARS:
        line = line[: MAX_DESCRIPTION_CHARS - 3] + "..."
    return line


def _statement_text(sql: str, dialect: str) -> str:
    """The single statement in ``sql``, without trailing semicolons or comments.

    Raises:
        ValueError: If ``sql`` holds no statement or more than one.
    """
    spans: List[Tuple[int, int]] = []
    start = end = None
    for token in sqlglot.tokenize(sql, read=dialect):
        if token.token_type == TokenType.SEMICOLON:
            if start is not None:
                spans.append((start, end))
                start = None
            continue
        if start is None:
            start = token.start
        end = token.end
    if start is not None:
        spans.append((start, end))

    if not spans:
        raise ValueError("Query text contains no SQL statement")
    if len(spans) > 1:
        raise ValueError(f"Query text contains {len(spans)} statements, expected exactly one")
    start, end = spans[0]
    return sql[start : end + 1]


def _clause(expression: exp.Expression, clause_type: type) -> Optional[exp.Expression]:
    """Direct child clause of the given type (FROM, WITH, ...), if any."""
    for value in expression.args.values():
        if isinstance(value, clause_type):
            return value
    return None


def _is_aggregate(select: exp.Select) -> bool:
    if select.args.get("group"):
        return True
    for projection in select.expressions:
        for agg in projection.find_all(exp.AggFunc):
            if agg.find_ancestor(exp.Window) is None:
                return True
    return False


def _join_name(join: exp.Join) -> str:
    """Operator name for a join, e.g. InnerJoin, LeftJoin, CrossJoin, LeftSemiJoin."""
    side = join.side.title()
    kind = join.kind.upper()
    method = join.text("method").title()
    if method:
        return f"{method}{side}Join"
    if kind in ("SEMI", "ANTI"):
        return f"{side or 'Left'}{kind.title()}Join"
    if kind == "CROSS":
        return "CrossJoin"
    if side:
        return f"{side}Join"
    if join.args.get("on") is None and not join.args.get("using"):
        return "CrossJoin"
    return "InnerJoin"


@dataclass
class SqlglotLogicalPlan:
    """Parsed statement; table references are still unresolved names."""

    expression: exp.Expression
    dialect: str = "duckdb"

    def unresolved_relations(self) -> List[Tuple[str, ...]]:
        relations = []
        for table in self.expression.find_all(exp.Table, bfs=False):
            # Table functions such as read_parquet(...) are not named relations
            if not isinstance(table.this, exp.Identifier):
                continue
            relations.append(tuple(part.name for part in table.parts))
        return relations

    def sql(self) -> str:
        return self.expression.sql(dialect=self.dialect)


@dataclass
class DuckDBPlanNode:
    """One operator of the executable tree."""

    name: str
    description: str
    sql: str
    children: List["DuckDBPlanNode"] = field(default_factory=list)
    engine: Optional["DuckDBEngine"] = field(default=None, repr=False, compare=False)

    def execute(self) -> Iterator[Tuple[Any, ...]]:
        """Run this operator's subtree alone and stream the rows it produces."""
        if self.engine is None:
            raise RuntimeError(f"Operator {self.name} is not bound to an engine")
        return self.engine.stream(self.sql)


class DuckDBPhysicalPlan:
    """Operator tree plus DuckDB's own EXPLAIN output for the statement."""

    def __init__(self, root: DuckDBPlanNode, engine_plan: str = ""):
        self.root = root
        self.engine_plan = engine_plan
        self._entries = self._preorder(root)

    @staticmethod
    def _preorder(root: DuckDBPlanNode) -> List[Tuple[int, DuckDBPlanNode]]:
        entries = []
        stack = [(0, root)]
        while stack:
            depth, node = stack.pop()
            entries.append((depth, node))
            for child in reversed(node.children):
                stack.append((depth + 1, child))
        return entries

    def nodes(self) -> List[DuckDBPlanNode]:
        return [node for _, node in self._entries]

    def tree_string(self) -> str:
        return render_tree((depth, node.description) for depth, node in self._entries)

    def __getitem__(self, index: int) -> DuckDBPlanNode:
        return self._entries[index][1]

    def __len__(self) -> int:
        return len(self._entries)


class _OperatorTreeBuilder:
    """Builds the executable operator tree for an optimized statement."""

    def __init__(self, engine: "DuckDBEngine", statement: exp.Expression):
        self.engine = engine
        self.dialect = engine.dialect
        self.statement = statement
        with_clause = _clause(statement, exp.With)
        self.with_sql = with_clause.sql(dialect=self.dialect) if with_clause else None
        self.ctes: Dict[str, exp.Expression] = {}
        if with_clause is not None:
            for cte in with_clause.expressions:
                self.ctes[cte.alias_or_name] = cte.this
        self._expanding: set = set()

    def build(self) -> DuckDBPlanNode:
        if isinstance(self.statement, exp.Query):
            return self._query(self.statement)
        # DDL/DML: a single opaque operator
        return self._node(
            type(self.statement).__name__,
            _one_line(self.statement.sql(dialect=self.dialect)),
            self.statement.sql(dialect=self.dialect),
        )

    def _sql(self, query: exp.Expression) -> str:
        text = query.sql(dialect=self.dialect)
        if self.with_sql is None or _clause(query, exp.With) is not None:
            return text
        return f"{self.with_sql} {text}"

    def _node(self, name: str, description: str, sql: str, children=None) -> DuckDBPlanNode:
        return DuckDBPlanNode(
            name=name,
            description=description,
            sql=sql,
            children=[c for c in (children or []) if c is not None],
            engine=self.engine,
        )

    def _render(self, expressions) -> str:
        return ", ".join(e.sql(dialect=self.dialect) for e in expressions)

    def _query(self, query: exp.Expression) -> DuckDBPlanNode:
        if isinstance(query, exp.Subquery):
            return self._query(query.this)
        if isinstance(query, (exp.Union, exp.Intersect, exp.Except)):
            name = type(query).__name__
            distinct = "DISTINCT" if query.args.get("distinct") else "ALL"
            core = query.copy()
            for key in ("order", "limit", "offset"):
                core.set(key, None)
            node = self._node(
                name,
                f"{name} {distinct}",
                self._sql(core),
                [self._query(query.left), self._query(query.right)],
            )
            return self._sort_and_limit(query, node)
        if isinstance(query, exp.Select):
            return self._select(query)
        return self._node(
            type(query).__name__,
            _one_line(query.sql(dialect=self.dialect)),
            self._sql(query),
        )

    def _select(self, select: exp.Select) -> DuckDBPlanNode:
        source = self._source(select)

        where = select.args.get("where")
        if where is not None and source is not None:
            from_clause = _clause(select, exp.From)
            filtered = exp.select("*").from_(from_clause.this.copy())
            filtered.set("joins", [j.copy() for j in select.args.get("joins") or []])
            filtered.set("where", where.copy())
            source = self._node(
                "Filter",
                _one_line(f"Filter {where.this.sql(dialect=self.dialect)}"),
                self._sql(filtered),
                [source],
            )

        core = select.copy()
        for key in ("order", "limit", "offset"):
            core.set(key, None)
        group = select.args.get("group")
        if _is_aggregate(select):
            keys = self._render(group.expressions) if group else ""
            description = f"Aggregate [{keys}], [{self._render(select.expressions)}]"
            name = "Aggregate"
        else:
            description = f"Project [{self._render(select.expressions)}]"
            name = "Project"
        node = self._node(name, _one_line(description), self._sql(core), [source])
        return self._sort_and_limit(select, node)

    def _sort_and_limit(self, query: exp.Expression, node: DuckDBPlanNode) -> DuckDBPlanNode:
        """Stack Sort and Limit operators for the query's ORDER BY / LIMIT above ``node``."""
        order = query.args.get("order")
        if order is not None:
            sorted_query = query.copy()
            sorted_query.set("limit", None)
            sorted_query.set("offset", None)
            node = self._node(
                "Sort",
                _one_line(f"Sort [{self._render(order.expressions)}]"),
                self._sql(sorted_query),
                [node],
            )

        limit = query.args.get("limit")
        if limit is not None:
            count = limit.args.get("expression")
            label = count.sql(dialect=self.dialect) if count is not None else limit.sql(dialect=self.dialect)
            node = self._node("Limit", _one_line(f"Limit {label}"), self._sql(query), [node])
        return node

    def _source(self, select: exp.Select) -> Optional[DuckDBPlanNode]:
        from_clause = _clause(select, exp.From)
        if from_clause is None:
            return None
        joins = select.args.get("joins") or []
        node = self._relation(from_clause.this)
        for i, join in enumerate(joins):
            joined = exp.select("*").from_(from_clause.this.copy())
            joined.set("joins", [j.copy() for j in joins[: i + 1]])
            name = _join_name(join)
            condition = ""
            if join.args.get("on") is not None:
                condition = f" ON {join.args['on'].sql(dialect=self.dialect)}"
            elif join.args.get("using"):
                condition = f" USING ({self._render(join.args['using'])})"
            node = self._node(
                name,
                _one_line(f"{name}{condition}"),
                self._sql(joined),
                [node, self._relation(join.this)],
            )
        return node

    def _relation(self, relation: exp.Expression) -> DuckDBPlanNode:
        scan_sql = self._sql(exp.select("*").from_(relation.copy()))
        if isinstance(relation, exp.Table) and isinstance(relation.this, exp.Identifier):
            name = relation.name
            if name in self.ctes and not relation.args.get("db") and name not in self._expanding:
                self._expanding.add(name)
                try:
                    child = self._query(self.ctes[name])
                finally:
                    self._expanding.discard(name)
                return self._node(
                    "SubqueryAlias", f"SubqueryAlias {relation.alias_or_name}", scan_sql, [child]
                )
            return self._node(
                "Scan", _one_line(f"Scan {relation.sql(dialect=self.dialect)}"), scan_sql
            )
        if isinstance(relation, exp.Subquery):
            return self._node(
                "SubqueryAlias",
                f"SubqueryAlias {relation.alias_or_name}",
                scan_sql,
                [self._query(relation.this)],
            )
        name = "Scan" if isinstance(relation, exp.Table) else type(relation).__name__
        return self._node(name, _one_line(f"{name} {relation.sql(dialect=self.dialect)}"), scan_sql)


class DuckDBQueryExecution:
    """Lazily compiled query; each plan is built once, on first access."""

    def __init__(self, engine: "DuckDBEngine", sql: str):
        self.engine = engine
        self.sql = sql
        self._schema: Optional[Dict[str, Dict[str, Dict[str, str]]]] = None
        self._db: Optional[str] = None
        self._logical: Optional[SqlglotLogicalPlan] = None
        self._analyzed: Optional[exp.Expression] = None
        self._optimized: Optional[exp.Expression] = None
        self._physical: Optional[DuckDBPhysicalPlan] = None

    def logical_plan(self) -> SqlglotLogicalPlan:
        if self._logical is None:
            expression = sqlglot.parse_one(self.sql, read=self.engine.dialect)
            self._logical = SqlglotLogicalPlan(expression, self.engine.dialect)
        return self._logical

    def analyzed_plan(self) -> exp.Expression:
        if self._analyzed is None:
            logical = self.logical_plan()
            self._schema = self.engine.catalog_schema()
            self._db = self.engine.current_schema()
            self._analyzed = qualify(
                logical.expression.copy(),
                db=self._db,
                dialect=self.engine.dialect,
                schema=self._schema or None,
            )
        return self._analyzed

    def optimized_plan(self) -> exp.Expression:
        if self._optimized is None:
            analyzed = self.analyzed_plan()
            self._optimized = optimize(
                analyzed.copy(),
                schema=self._schema or None,
                db=self._db,
                dialect=self.engine.dialect,
            )
        return self._optimized

    def physical_plan(self) -> DuckDBPhysicalPlan:
        if self._physical is None:
            optimized = self.optimized_plan()
            engine_plan = self.engine.explain(self.sql)
            root = _OperatorTreeBuilder(self.engine, optimized).build()
            self._physical = DuckDBPhysicalPlan(root, engine_plan)
        return self._physical

    def collect(self) -> List[Tuple[Any, ...]]:
        return self.engine.fetch_all(self.sql)

    def foreach(self, fn: Callable[[Any], None]) -> None:
        for row in self.engine.stream(self.sql):
            fn(row)

    def write(self, path: str) -> None:
        self.engine.copy_to(self.sql, path)


class DuckDBEngine:
    """DuckDB connection usable as a benchmark engine.

    Args:
        database: Path to database file or ":memory:".
        read_only: Open the database read-only.
        dialect: sqlglot dialect used for the compile stages.
        fetch_batch_size: Rows per fetchmany() call when streaming.
    """

    output_extension = "parquet"

    def __init__(
        self,
        database: str = ":memory:",
        read_only: bool = False,
        dialect: str = "duckdb",
        fetch_batch_size: int = 2048,
    ):
        self.database = database
        self.read_only = read_only
        self.dialect = dialect
        self.fetch_batch_size = fetch_batch_size
        self.job_description: Optional[str] = None
        self._conn: duckdb.DuckDBPyConnection | None = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "DuckDBEngine":
        settings = settings or get_settings()
        return cls(
            database=settings.duckdb_database,
            read_only=settings.duckdb_read_only,
            dialect=settings.dialect,
            fetch_batch_size=settings.fetch_batch_size,
        )

    def connect(self) -> None:
        """Open connection to DuckDB."""
        if self._conn is not None:
            return
        self._conn = duckdb.connect(database=self.database, read_only=self.read_only)

    def close(self) -> None:
        """Close connection to DuckDB."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "DuckDBEngine":
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def _ensure_connected(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            self.connect()
        assert self._conn is not None
        return self._conn

    def execute_script(self, sql_script: str) -> None:
        """Execute a multi-statement script (schema setup, data loading)."""
        self._ensure_connected().execute(sql_script)

    def set_job_description(self, description: str) -> None:
        self.job_description = description
        logger.debug(f"DuckDB job: {description}")

    def compile(self, sql: str) -> DuckDBQueryExecution:
        """Prepare one statement; trailing semicolons and comments are dropped.

        Raises:
            ValueError: If ``sql`` is empty or holds several statements.
        """
        return DuckDBQueryExecution(self, _statement_text(sql, self.dialect))

    def catalog_schema(self) -> Dict[str, Dict[str, Dict[str, str]]]:
        """Column types per schema and table: ``{schema: {table: {column: type}}}``."""
        rows = self._ensure_connected().execute(CATALOG_COLUMNS_SQL).fetchall()
        schema: Dict[str, Dict[str, Dict[str, str]]] = {}
        for table_schema, table_name, column_name, data_type in rows:
            schema.setdefault(table_schema, {}).setdefault(table_name, {})[column_name] = data_type
        return schema

    def current_schema(self) -> str:
        """Schema that unqualified table names resolve to."""
        return self._ensure_connected().execute("SELECT current_schema()").fetchone()[0]

    def explain(self, sql: str) -> str:
        rows = self._ensure_connected().execute(f"EXPLAIN {sql}").fetchall()
        return "\n".join(str(row[1] if len(row) > 1 else row[0]) for row in rows)

    def stream(self, sql: str) -> Iterator[Tuple[Any, ...]]:
        """Yield result rows in fetchmany() batches on a dedicated cursor."""
        cursor = self._ensure_connected().cursor()
        try:
            cursor.execute(sql)
            while True:
                batch = cursor.fetchmany(self.fetch_batch_size)
                if not batch:
                    break
                yield from batch
        finally:
            cursor.close()

    def fetch_all(self, sql: str) -> List[Tuple[Any, ...]]:
        cursor = self._ensure_connected().cursor()
        try:
            return cursor.execute(sql).fetchall()
        finally:
            cursor.close()

    def copy_to(self, sql: str, path: str) -> None:
        """Write the result of ``sql`` to ``path`` as Parquet."""
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        target = path.replace("'", "''")
        self._ensure_connected().execute(f"COPY (\n{sql}\n) TO '{target}' (FORMAT PARQUET)")
