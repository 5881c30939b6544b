"""Native query builders for the supported dialects.

Both builders consume a ``SelectSpec``: the resolved tables of one source,
the join chain, and slot-labelled projections. SQL dialects are compiled
through SQLAlchemy Core so quoting and bound parameters follow the target
database; document sources get a MongoDB aggregation pipeline.
"""

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import and_, false, func, literal, literal_column, null, or_, select, true
from sqlalchemy.dialects import sqlite
from sqlalchemy.dialects.postgresql import psycopg as postgresql_psycopg
from sqlalchemy.engine import Dialect as SQLDialect
from sqlalchemy.sql import ColumnElement, column, table
from sqlalchemy.sql.selectable import FromClause

from crossmodel.core.models.join_catalog import JoinType
from crossmodel.core.models.metadata import ColumnMetadata, TableMetadata
from crossmodel.core.models.query import Logic
from crossmodel.core.query.exceptions import CompilationError
from crossmodel.core.query.expressions import Expression, ExpressionVisitor, render
from crossmodel.core.query.plan import NativeQuery

# =============================================================================
# Select specification
# =============================================================================


@dataclass(frozen=True)
class ResolvedColumn:
    """A column of a table in the query, addressed by the table's ref name."""

    ref: str
    column: ColumnMetadata

    @property
    def key(self) -> str:
        """Canonical reference used inside expression trees."""
        return f"{self.ref}.{self.column.column_name}"


@dataclass(frozen=True)
class Comparison:
    logic: Logic
    left: ResolvedColumn
    operator: str
    right: ResolvedColumn


@dataclass(frozen=True)
class Predicate:
    column: ResolvedColumn
    operator: str
    value: Any


@dataclass
class JoinStep:
    """Attach ``new_ref`` to the tables joined so far.

    ``join_type`` is oriented as ``<joined so far> <join_type> <new_ref>``.
    """

    new_ref: str
    join_type: JoinType
    conditions: list[Comparison]


@dataclass
class SelectSpec:
    dialect: str
    tables: dict[str, TableMetadata]
    root_ref: str
    steps: list[JoinStep] = field(default_factory=list)
    cycle_filters: list[Comparison] = field(default_factory=list)
    projections: list[tuple[str, Expression]] = field(default_factory=list)
    where: list[list[Predicate]] = field(default_factory=list)
    group_slots: list[str] = field(default_factory=list)
    aggregates: list[tuple[str, str, Expression | None]] = field(default_factory=list)
    order_by: list[tuple[str, bool]] = field(default_factory=list)
    offset: int = -1
    limit: int = -1

    @property
    def columns(self) -> dict[str, ResolvedColumn]:
        found: dict[str, ResolvedColumn] = {}
        for ref, meta in self.tables.items():
            for col in meta.columns:
                resolved = ResolvedColumn(ref=ref, column=col)
                found[resolved.key] = resolved
        return found

    @property
    def fields(self) -> list[str]:
        return [slot for slot, _ in self.projections] + [slot for slot, _, _ in self.aggregates]


def group_conditions(items: list[tuple[Logic, Any]]) -> list[list[Any]]:
    """Split a left-to-right chain of AND/OR items into OR-ed AND-groups.

    AND binds tighter than OR, as in SQL. The first item's logic is ignored.
    """
    groups: list[list[Any]] = []
    for index, (logic, item) in enumerate(items):
        if index == 0 or logic == Logic.OR:
            groups.append([item])
        else:
            groups[-1].append(item)
    return groups


# =============================================================================
# SQL
# =============================================================================


def sql_dialect(name: str) -> SQLDialect:
    """SQLAlchemy dialect used to render queries for a source dialect."""
    if name == "postgresql":
        return postgresql_psycopg.dialect()
    if name == "sqlite":
        return sqlite.dialect(paramstyle="named")
    raise CompilationError(f"No SQL dialect named {name!r}")


class SQLExpressionVisitor(ExpressionVisitor):
    """Renders expression trees into SQLAlchemy column expressions."""

    def __init__(self, columns: dict[str, ColumnElement]) -> None:
        self.columns = columns

    def column(self, ref: str) -> ColumnElement:
        return self.columns[ref]

    def literal(self, value: Any) -> ColumnElement:
        if value is None:
            return null()
        return literal(value)

    def function(self, name: str, args: list[ColumnElement]) -> ColumnElement:
        if name == "CONCAT":
            result = args[0]
            for arg in args[1:]:
                result = result.concat(arg)
            return result
        return getattr(func, name.lower())(*args)

    def binary(self, op: str, left: ColumnElement, right: ColumnElement) -> ColumnElement:
        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        return left / right


def _compare(left: ColumnElement, operator: str, right: Any) -> ColumnElement:
    if operator == "=":
        return left == right
    if operator == "!=":
        return left != right
    if operator == "<":
        return left < right
    if operator == ">":
        return left > right
    if operator == "<=":
        return left <= right
    if operator == ">=":
        return left >= right
    raise CompilationError(f"Unsupported operator: {operator}")


def _predicate(element: ColumnElement, predicate: Predicate) -> ColumnElement:
    # IN lists are expanded into plain comparisons so every parameter is
    # rendered by name
    if predicate.operator == "IN":
        values = list(predicate.value)
        if not values:
            return false()
        return or_(*[element == literal(value) for value in values])
    if predicate.operator == "NOT IN":
        values = list(predicate.value)
        if not values:
            return true()
        return and_(*[element != literal(value) for value in values])
    return _compare(element, predicate.operator, literal(predicate.value))


def _any_of(groups: list[list[ColumnElement]]) -> ColumnElement:
    clauses = [and_(*group) if len(group) > 1 else group[0] for group in groups]
    return or_(*clauses) if len(clauses) > 1 else clauses[0]


def build_sql(spec: SelectSpec) -> NativeQuery:
    """Compile a select specification into SQL text and bound parameters.

    Raises:
        CompilationError: If the dialect is not a SQL dialect.
    """
    dialect = sql_dialect(spec.dialect)

    aliases: dict[str, FromClause] = {}
    for ref, meta in spec.tables.items():
        # SQLite attaches one database per connection, so names stay unqualified
        schema = meta.schema_name if spec.dialect != "sqlite" and meta.schema_name else None
        source = table(
            meta.table_name,
            *(column(col.column_name) for col in meta.columns),
            schema=schema,
        )
        aliases[ref] = source.alias(ref)

    elements: dict[str, ColumnElement] = {
        key: aliases[resolved.ref].c[resolved.column.column_name]
        for key, resolved in spec.columns.items()
    }
    visitor = SQLExpressionVisitor(elements)

    def condition(comparisons: list[Comparison]) -> ColumnElement:
        items = [
            (c.logic, _compare(elements[c.left.key], c.operator, elements[c.right.key]))
            for c in comparisons
        ]
        return _any_of(group_conditions(items))

    from_clause: FromClause = aliases[spec.root_ref]
    for step in spec.steps:
        target = aliases[step.new_ref]
        on = condition(step.conditions)
        if step.join_type == JoinType.INNER:
            from_clause = from_clause.join(target, on)
        elif step.join_type == JoinType.LEFT:
            from_clause = from_clause.join(target, on, isouter=True)
        elif step.join_type == JoinType.FULL:
            from_clause = from_clause.join(target, on, full=True)
        else:
            # RIGHT joins are written as the mirrored LEFT join
            from_clause = target.join(from_clause, on, isouter=True)

    columns: list[ColumnElement] = [
        render(expression, visitor).label(slot) for slot, expression in spec.projections
    ]
    for slot, function, argument in spec.aggregates:
        if argument is None:
            aggregate = func.count()
        else:
            aggregate = getattr(func, function.lower())(render(argument, visitor))
        columns.append(aggregate.label(slot))

    stmt = select(*columns).select_from(from_clause)

    filters: list[ColumnElement] = []
    for comparison in spec.cycle_filters:
        filters.append(
            _compare(
                elements[comparison.left.key],
                comparison.operator,
                elements[comparison.right.key],
            )
        )
    if spec.where:
        filters.append(
            _any_of([
                [_predicate(elements[p.column.key], p) for p in group]
                for group in spec.where
            ])
        )
    if filters:
        stmt = stmt.where(*filters)

    if spec.group_slots:
        stmt = stmt.group_by(*(literal_column(slot) for slot in spec.group_slots))
    for slot, descending in spec.order_by:
        key = literal_column(slot)
        stmt = stmt.order_by((key.desc() if descending else key.asc()).nulls_last())
    if spec.limit >= 0:
        stmt = stmt.limit(spec.limit)
    if spec.offset >= 0:
        stmt = stmt.offset(spec.offset)

    compiled = stmt.compile(dialect=dialect, compile_kwargs={"render_postcompile": True})
    return NativeQuery(
        dialect=spec.dialect,
        text=str(compiled),
        params=dict(compiled.params),
        fields=spec.fields,
    )


# =============================================================================
# MongoDB
# =============================================================================

_MONGO_FILTERS = {
    "=": "$eq",
    ">": "$gt",
    "<": "$lt",
    ">=": "$gte",
    "<=": "$lte",
}

_MONGO_ARITHMETIC = {"+": "$add", "-": "$subtract", "*": "$multiply", "/": "$divide"}

_MONGO_ACCUMULATORS = {"SUM": "$sum", "AVG": "$avg", "MIN": "$min", "MAX": "$max"}


class MongoExpressionVisitor(ExpressionVisitor):
    """Renders expression trees into aggregation expressions."""

    def __init__(self, paths: dict[str, str]) -> None:
        self.paths = paths

    def column(self, ref: str) -> Any:
        return f"${self.paths[ref]}"

    def literal(self, value: Any) -> Any:
        return {"$literal": value}

    def function(self, name: str, args: list[Any]) -> Any:
        if name == "UPPER":
            return {"$toUpper": args[0]}
        if name == "LOWER":
            return {"$toLower": args[0]}
        if name == "TRIM":
            return {"$trim": {"input": args[0]}}
        if name == "LENGTH":
            return {"$strLenCP": args[0]}
        if name == "ABS":
            return {"$abs": args[0]}
        if name == "ROUND":
            return {"$round": args[:2]}
        if name == "COALESCE":
            return {"$ifNull": args}
        if name == "CONCAT":
            return {"$concat": args}
        raise CompilationError(f"Function {name} is not supported by document sources")

    def binary(self, op: str, left: Any, right: Any) -> Any:
        return {_MONGO_ARITHMETIC[op]: [left, right]}


def _mongo_predicate(path: str, predicate: Predicate) -> dict[str, Any]:
    # Mongo's $ne/$nin also match missing and null fields; SQL never does
    if predicate.operator == "!=":
        return {path: {"$nin": [predicate.value, None]}}
    if predicate.operator == "NOT IN":
        if not predicate.value:
            return {"$expr": True}
        return {path: {"$nin": [*predicate.value, None]}}
    if predicate.operator == "IN":
        return {path: {"$in": list(predicate.value)}}
    return {path: {_MONGO_FILTERS[predicate.operator]: predicate.value}}


def _mongo_expr_compare(left: str, operator: str, right: str) -> dict[str, Any]:
    operators = {"=": "$eq", "!=": "$ne", "<": "$lt", ">": "$gt", "<=": "$lte", ">=": "$gte"}
    return {operators[operator]: [f"${left}", f"${right}"]}


def build_pipeline(spec: SelectSpec) -> NativeQuery:
    """Compile a select specification into an aggregation pipeline.

    Raises:
        CompilationError: For RIGHT/FULL joins, non-equality or multi-column
            join conditions, which ``$lookup`` cannot express.
    """
    root = spec.tables[spec.root_ref]
    paths: dict[str, str] = {}
    for key, resolved in spec.columns.items():
        if resolved.ref == spec.root_ref:
            paths[key] = resolved.column.column_name
        else:
            paths[key] = f"{resolved.ref}.{resolved.column.column_name}"

    pipeline: list[dict[str, Any]] = []
    for step in spec.steps:
        if step.join_type not in (JoinType.INNER, JoinType.LEFT):
            raise CompilationError(
                f"{step.join_type.value} joins are not supported by document sources",
                table=step.new_ref,
            )
        if len(step.conditions) != 1 or step.conditions[0].operator != "=":
            raise CompilationError(
                "Document sources only join on a single equality condition",
                table=step.new_ref,
            )
        comparison = step.conditions[0]
        if comparison.right.ref == step.new_ref:
            existing, new = comparison.left, comparison.right
        else:
            existing, new = comparison.right, comparison.left
        if step.join_type == JoinType.INNER:
            # $lookup pairs a null local key with null or missing foreign keys
            pipeline.append({"$match": {paths[existing.key]: {"$ne": None}}})
        pipeline.append({
            "$lookup": {
                "from": spec.tables[step.new_ref].table_name,
                "localField": paths[existing.key],
                "foreignField": new.column.column_name,
                "as": step.new_ref,
            }
        })
        pipeline.append({
            "$unwind": {
                "path": f"${step.new_ref}",
                "preserveNullAndEmptyArrays": step.join_type == JoinType.LEFT,
            }
        })

    for comparison in spec.cycle_filters:
        pipeline.append({
            "$match": {
                "$expr": _mongo_expr_compare(
                    paths[comparison.left.key],
                    comparison.operator,
                    paths[comparison.right.key],
                )
            }
        })

    if spec.where:
        groups = [
            [_mongo_predicate(paths[p.column.key], p) for p in group] for group in spec.where
        ]
        clauses = [{"$and": group} if len(group) > 1 else group[0] for group in groups]
        pipeline.append({"$match": {"$or": clauses} if len(clauses) > 1 else clauses[0]})

    visitor = MongoExpressionVisitor(paths)
    projected = {slot: render(expression, visitor) for slot, expression in spec.projections}
    if spec.group_slots or spec.aggregates:
        group: dict[str, Any] = {
            "_id": {slot: projected[slot] for slot in spec.group_slots} or None,
        }
        for slot, function, argument in spec.aggregates:
            if argument is None:
                group[slot] = {"$sum": 1}
            elif function == "COUNT":
                value = render(argument, visitor)
                group[slot] = {"$sum": {"$cond": [{"$gt": [value, None]}, 1, 0]}}
            else:
                group[slot] = {_MONGO_ACCUMULATORS[function]: render(argument, visitor)}
        pipeline.append({"$group": group})
        project: dict[str, Any] = {"_id": 0}
        project.update({slot: f"$_id.{slot}" for slot in spec.group_slots})
        project.update({slot: 1 for slot, _, _ in spec.aggregates})
        pipeline.append({"$project": project})
    else:
        pipeline.append({"$project": {"_id": 0, **projected}})

    if spec.order_by:
        pipeline.append({"$sort": {slot: -1 if desc else 1 for slot, desc in spec.order_by}})
    if spec.offset > 0:
        pipeline.append({"$skip": spec.offset})
    if spec.limit == 0:
        pipeline.append({"$match": {"$expr": {"$eq": [1, 0]}}})
    elif spec.limit > 0:
        pipeline.append({"$limit": spec.limit})

    return NativeQuery(
        dialect="mongodb",
        collection=root.table_name,
        pipeline=pipeline,
        fields=spec.fields,
    )


def build_native_query(spec: SelectSpec) -> NativeQuery:
    """Build the native query for the select's dialect."""
    if spec.dialect == "mongodb":
        return build_pipeline(spec)
    return build_sql(spec)
