"""Query compiler: turns a QueryDescriptor into an executable plan.

Tables are resolved against metadata supplied by the caller. A descriptor
whose tables live in one data source compiles to a single native query.
Otherwise tables are grouped into fragments (connected components of joins
within one source), each fetched with its own native query, and the joins
between fragments become merge steps executed in memory.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from crossmodel.core.models.join_catalog import JoinType
from crossmodel.core.models.metadata import ColumnMetadata, TableMetadata, TypeTag
from crossmodel.core.models.query import (
    Aggregate,
    JoinCondition,
    Logic,
    QueryDescriptor,
    TableRef,
)
from crossmodel.core.query.dialects import (
    Comparison,
    JoinStep,
    Predicate,
    ResolvedColumn,
    SelectSpec,
    build_native_query,
    group_conditions,
)
from crossmodel.core.query.exceptions import CompilationError, MergeSemanticsError
from crossmodel.core.query.expressions import (
    SUPPORTED_FUNCTIONS,
    BinaryOp,
    ColumnRef,
    Expression,
    FunctionCall,
    LiteralNode,
    function_names,
    substitute_refs,
)
from crossmodel.core.query.plan import (
    AggregateSlot,
    CompiledPlan,
    ComputedSlot,
    FederatedPlan,
    Fragment,
    MergeStep,
    OutputColumn,
    SingleSourcePlan,
    SlotComparison,
    SlotPredicate,
    SortKey,
)

logger = logging.getLogger(__name__)

DEFAULT_DIALECT = "postgresql"
SLOT_PREFIX = "_c"


@dataclass
class _Join:
    label: str
    left: ResolvedColumn
    right: ResolvedColumn
    join_type: JoinType
    operator: str
    extras: list[Comparison] = field(default_factory=list)

    @property
    def comparisons(self) -> list[Comparison]:
        return [Comparison(Logic.AND, self.left, self.operator, self.right), *self.extras]


@dataclass
class _Output:
    label: str
    expression: Expression
    type_tag: TypeTag


class _Slots:
    """Allocates slot names, one per distinct expression."""

    def __init__(self) -> None:
        self._by_key: dict[str, str] = {}
        self.expressions: dict[str, Expression] = {}

    def new(self) -> str:
        slot = f"{SLOT_PREFIX}{len(self.expressions)}"
        self.expressions[slot] = LiteralNode(value=None)
        return slot

    def slot_for(self, expression: Expression) -> str:
        key = expression.model_dump_json()
        if key not in self._by_key:
            slot = f"{SLOT_PREFIX}{len(self.expressions)}"
            self._by_key[key] = slot
            self.expressions[slot] = expression
        return self._by_key[key]


class QueryCompiler:
    """Compiles query descriptors against a set of known tables.

    Args:
        tables: Metadata for every table a descriptor may reference.
        dialects: Native dialect per data source id ("postgresql", "sqlite"
            or "mongodb"). Sources not listed use PostgreSQL.
    """

    def __init__(
        self,
        tables: list[TableMetadata],
        dialects: Mapping[int, str] | None = None,
    ) -> None:
        self.tables = list(tables)
        self.dialects = dict(dialects or {})

    def dialect_for(self, data_source_id: int) -> str:
        return self.dialects.get(data_source_id, DEFAULT_DIALECT)

    def compile(self, descriptor: QueryDescriptor) -> CompiledPlan:
        """Compile a descriptor into a single-source or federated plan.

        Raises:
            CompilationError: For unknown or ambiguous table/column references,
                non-equality cross-source joins, tables not connected by joins,
                or joins the target dialect cannot express.
            MergeSemanticsError: For OR-connected cross-source conditions or
                cyclic non-INNER cross-source joins.
        """
        return _Compilation(self, descriptor).build()


class _Compilation:
    """State for compiling one descriptor."""

    def __init__(self, compiler: QueryCompiler, descriptor: QueryDescriptor) -> None:
        self.compiler = compiler
        self.descriptor = descriptor
        self.tables: dict[str, TableMetadata] = {}
        self.order: list[str] = []
        self.columns: dict[str, ResolvedColumn] = {}

        self._register(descriptor.root_table, descriptor.root_table.ref_name)
        for join in descriptor.join_conditions:
            self._register(join.left.table_ref(), join.left.ref_name)
            self._register(join.right.table_ref(), join.right.ref_name)
        for alias, ref in descriptor.table_aliases.items():
            self._register(ref, alias)

        self.root_ref = descriptor.root_table.ref_name
        self.used: set[str] = {self.root_ref}
        self.joins = [
            self._resolve_join(index, join)
            for index, join in enumerate(descriptor.join_conditions)
        ]

        self.label_exprs: dict[str, Expression] = {}
        self.outputs = self._resolve_outputs()
        options = descriptor.query_options
        self.aggregates = [self._resolve_aggregate(agg) for agg in options.aggregates]
        self.group_exprs = [self._value(ref) for ref in options.group_by]
        self.where = self._resolve_where()
        self.order_items = [
            (self._order_target(order.column), order.direction.value == "DESC")
            for order in options.order_by
        ]
        self._check_labels()

        if not self.outputs and not self.aggregates:
            raise CompilationError("Query selects no columns")

    # -------------------------------------------------------------------------
    # Table and column resolution
    # -------------------------------------------------------------------------

    def _find_table(self, ref: TableRef) -> TableMetadata:
        lowered = ref.table_name.lower()
        matches = [
            table
            for table in self.compiler.tables
            if table.table_name.lower() == lowered
            and (ref.schema_name is None or table.schema_name == ref.schema_name)
            and (ref.data_source_id is None or table.data_source_id == ref.data_source_id)
        ]
        if not matches:
            raise CompilationError(
                f"Unknown table {ref.table_name!r}",
                table=ref.table_name,
                data_source_id=ref.data_source_id,
            )
        if len(matches) > 1:
            sources = sorted({t.data_source_id for t in matches})
            raise CompilationError(
                f"Table {ref.table_name!r} is ambiguous across data sources {sources}; "
                "qualify it with a schema or data source id",
                table=ref.table_name,
            )
        return matches[0]

    def _register(self, ref: TableRef, name: str) -> None:
        table = self._find_table(ref)
        existing = self.tables.get(name)
        if existing is None:
            self.tables[name] = table
            self.order.append(name)
            return
        if (existing.data_source_id, existing.schema_name, existing.table_name) != (
            table.data_source_id,
            table.schema_name,
            table.table_name,
        ):
            raise CompilationError(
                f"Table reference {name!r} is used for two different tables",
                table=name,
            )

    def _column_in(self, ref: str, column_name: str) -> ResolvedColumn:
        table = self.tables[ref]
        column = table.get_column(column_name)
        if column is None:
            raise CompilationError(
                f"Unknown column {column_name!r} in table {table.table_name!r}",
                table=table.table_name,
                column=column_name,
                data_source_id=table.data_source_id,
            )
        resolved = ResolvedColumn(ref=ref, column=column)
        self.columns[resolved.key] = resolved
        self.used.add(ref)
        return resolved

    def _table_ref_named(self, name: str) -> str:
        if name in self.tables:
            return name
        lowered = name.lower()
        matches = [ref for ref, t in self.tables.items() if t.table_name.lower() == lowered]
        if len(matches) == 1:
            return matches[0]
        if not matches:
            raise CompilationError(f"Unknown table {name!r}", table=name)
        raise CompilationError(
            f"Table {name!r} appears under several aliases; use the alias",
            table=name,
        )

    def _column(self, ref: str) -> ResolvedColumn:
        """Resolve ``column``, ``table_ref.column`` or ``schema.table.column``."""
        parts = ref.split(".")
        if len(parts) == 1:
            matches = [
                name for name, table in self.tables.items() if table.get_column(ref) is not None
            ]
            if not matches:
                raise CompilationError(f"Unknown column {ref!r}", column=ref)
            if len(matches) > 1:
                raise CompilationError(
                    f"Column {ref!r} is ambiguous; qualify it with a table",
                    column=ref,
                )
            return self._column_in(matches[0], ref)
        if len(parts) == 2:
            return self._column_in(self._table_ref_named(parts[0]), parts[1])
        if len(parts) == 3:
            schema, table_name, column_name = parts
            matches = [
                name
                for name, table in self.tables.items()
                if table.schema_name == schema and table.table_name.lower() == table_name.lower()
            ]
            if len(matches) != 1:
                raise CompilationError(
                    f"Cannot resolve table {schema}.{table_name} for column {ref!r}",
                    table=table_name,
                    column=column_name,
                )
            return self._column_in(matches[0], column_name)
        raise CompilationError(f"Invalid column reference {ref!r}", column=ref)

    def _value(self, ref: str) -> Expression:
        """Expression for a reference inside calculated columns and aggregates."""
        if ref in self.label_exprs:
            return self.label_exprs[ref]
        return ColumnRef(ref=self._column(ref).key)

    def _selected_column(self, column: ColumnMetadata) -> ResolvedColumn:
        if column.table_alias:
            if column.table_alias not in self.tables:
                raise CompilationError(
                    f"Unknown table alias {column.table_alias!r}",
                    table=column.table_alias,
                    column=column.column_name,
                )
            return self._column_in(column.table_alias, column.column_name)

        lowered = column.table_name.lower()
        matches = [
            name
            for name, table in self.tables.items()
            if table.table_name.lower() == lowered
            and (not column.schema_name or table.schema_name == column.schema_name)
            and (column.data_source_id is None or table.data_source_id == column.data_source_id)
        ]
        if not matches:
            raise CompilationError(
                f"Column {column.column_name!r} refers to unknown table {column.table_name!r}",
                table=column.table_name,
                column=column.column_name,
            )
        if len(matches) > 1:
            raise CompilationError(
                f"Table {column.table_name!r} appears under several aliases; "
                f"set table_alias on column {column.column_name!r}",
                table=column.table_name,
                column=column.column_name,
            )
        return self._column_in(matches[0], column.column_name)

    def _resolve_join(self, index: int, join: JoinCondition) -> _Join:
        label = join.id or f"#{index + 1}"
        left = self._column_in(join.left.ref_name, join.left.column)
        right = self._column_in(join.right.ref_name, join.right.column)

        extras: list[Comparison] = []
        for extra in join.additional_conditions:
            extra_left = (
                self._column(extra.left_column)
                if "." in extra.left_column
                else self._column_in(left.ref, extra.left_column)
            )
            extra_right = (
                self._column(extra.right_column)
                if "." in extra.right_column
                else self._column_in(right.ref, extra.right_column)
            )
            if (extra_left.ref, extra_right.ref) == (right.ref, left.ref):
                extra_left, extra_right = extra_right, extra_left
            if (extra_left.ref, extra_right.ref) != (left.ref, right.ref):
                raise CompilationError(
                    f"Additional condition of join {label} must compare "
                    f"{left.ref!r} with {right.ref!r}",
                )
            extras.append(Comparison(extra.logic, extra_left, extra.operator, extra_right))

        return _Join(
            label=label,
            left=left,
            right=right,
            join_type=join.join_type,
            operator=join.operator,
            extras=extras,
        )

    def _check_functions(self, expression: Expression) -> None:
        for name in function_names(expression):
            if name not in SUPPORTED_FUNCTIONS:
                raise CompilationError(f"Unsupported function {name!r}")

    def _resolve_outputs(self) -> list[_Output]:
        outputs: list[_Output] = []
        for column in self.descriptor.selected_columns:
            resolved = self._selected_column(column)
            expression: Expression = ColumnRef(ref=resolved.key)
            if column.transform is not None:
                expression = column.transform.apply(resolved.key)
                self._check_functions(expression)
            label = column.alias_name or f"{resolved.ref}.{resolved.column.column_name}"
            outputs.append(_Output(label, expression, self._type_of(expression)))
            if column.alias_name:
                self.label_exprs[column.alias_name] = expression

        for calculated in self.descriptor.calculated_columns:
            self._check_functions(calculated.expression)
            expression = substitute_refs(calculated.expression, self._value)
            outputs.append(
                _Output(calculated.column_name, expression, self._type_of(expression))
            )
            self.label_exprs[calculated.column_name] = expression
        return outputs

    def _resolve_aggregate(self, aggregate: Aggregate) -> tuple[str, str, Expression | None]:
        if aggregate.column == "*":
            if aggregate.function != "COUNT":
                raise CompilationError(f"{aggregate.function}(*) is not supported")
            return aggregate.label, aggregate.function, None
        return aggregate.label, aggregate.function, self._value(aggregate.column)

    def _resolve_where(self) -> list[list[Predicate]]:
        items = []
        for clause in self.descriptor.query_options.where:
            try:
                resolved = self._column(clause.column)
            except CompilationError:
                if clause.column in self.label_exprs:
                    raise CompilationError(
                        f"Filter on {clause.column!r} must reference a table column",
                        column=clause.column,
                    ) from None
                raise
            items.append((clause.logic, Predicate(resolved, clause.operator, clause.value)))
        return group_conditions(items) if items else []

    def _order_target(self, ref: str) -> tuple[str, Expression | None]:
        """Order by an aggregate label, an output label, or a table column."""
        for label, _, _ in self.aggregates:
            if label == ref:
                return label, None
        for output in self.outputs:
            if output.label == ref:
                return ref, output.expression
        return ref, self._value(ref)

    def _check_labels(self) -> None:
        seen: set[str] = set()
        for label in [o.label for o in self.outputs] + [a[0] for a in self.aggregates]:
            if label in seen:
                raise CompilationError(f"Duplicate output column {label!r}", column=label)
            seen.add(label)

    def _type_of(self, expression: Expression) -> TypeTag:
        if isinstance(expression, ColumnRef):
            return self.columns[expression.ref].column.type_tag
        if isinstance(expression, LiteralNode):
            value = expression.value
            if isinstance(value, bool):
                return TypeTag.BOOLEAN
            if isinstance(value, int):
                return TypeTag.INTEGER
            if isinstance(value, float):
                return TypeTag.NUMERIC
            if isinstance(value, str):
                return TypeTag.STRING
            return TypeTag.UNKNOWN
        if isinstance(expression, FunctionCall):
            name = expression.name.upper()
            if name in ("UPPER", "LOWER", "TRIM", "CONCAT"):
                return TypeTag.STRING
            if name == "LENGTH":
                return TypeTag.INTEGER
            if name == "ROUND":
                return TypeTag.NUMERIC
            arg_types = [self._type_of(arg) for arg in expression.args]
            return next((t for t in arg_types if t != TypeTag.UNKNOWN), TypeTag.UNKNOWN)
        if isinstance(expression, BinaryOp):
            left, right = self._type_of(expression.left), self._type_of(expression.right)
            if left == right == TypeTag.INTEGER:
                return TypeTag.INTEGER
            return TypeTag.NUMERIC
        return TypeTag.UNKNOWN

    def _aggregate_type(self, function: str, argument: Expression | None) -> TypeTag:
        if function == "COUNT":
            return TypeTag.INTEGER
        if function == "AVG":
            return TypeTag.NUMERIC
        return self._type_of(argument) if argument is not None else TypeTag.UNKNOWN

    # -------------------------------------------------------------------------
    # Join ordering
    # -------------------------------------------------------------------------

    def _chain(
        self,
        root_ref: str,
        refs: set[str],
        joins: list[_Join],
    ) -> tuple[list[JoinStep], list[Comparison]]:
        """Order joins into a chain starting at ``root_ref``.

        Joins between two tables already in the chain become filters; only
        INNER joins may do that.

        Raises:
            CompilationError: If a table cannot be reached from the root, or a
                non-INNER join closes a cycle.
        """
        joined = {root_ref}
        steps: list[JoinStep] = []
        cycles: list[Comparison] = []
        pending = list(joins)
        progressed = True
        while pending and progressed:
            progressed = False
            for join in list(pending):
                left_in, right_in = join.left.ref in joined, join.right.ref in joined
                if left_in and right_in:
                    if join.join_type != JoinType.INNER or any(
                        extra.logic == Logic.OR for extra in join.extras
                    ):
                        raise CompilationError(
                            f"Join {join.label} connects tables that are already joined; "
                            "only INNER joins with AND conditions may close a cycle",
                            table=join.right.ref,
                        )
                    cycles.extend(join.comparisons)
                elif left_in:
                    steps.append(JoinStep(join.right.ref, join.join_type, join.comparisons))
                    joined.add(join.right.ref)
                elif right_in:
                    steps.append(
                        JoinStep(join.left.ref, join.join_type.mirrored(), join.comparisons)
                    )
                    joined.add(join.left.ref)
                else:
                    continue
                pending.remove(join)
                progressed = True

        unconnected = [ref for ref in self.order if ref in refs and ref not in joined]
        if unconnected:
            raise CompilationError(
                f"Table {unconnected[0]!r} is not connected to {root_ref!r} by any join",
                table=unconnected[0],
            )
        return steps, cycles

    def _source(self, ref: str) -> int:
        return self.tables[ref].data_source_id

    # -------------------------------------------------------------------------
    # Plan construction
    # -------------------------------------------------------------------------

    def build(self) -> CompiledPlan:
        sources = {self._source(ref) for ref in self.used}
        if len(sources) == 1:
            return self._single_source(sources.pop())
        return self._federated()

    def _grouping(self, slots: _Slots) -> list[str]:
        grouped = bool(self.group_exprs or self.aggregates)
        group_slots = []
        for expression in self.group_exprs:
            slot = slots.slot_for(expression)
            if slot not in group_slots:
                group_slots.append(slot)
        if grouped:
            for output in self.outputs:
                if slots.slot_for(output.expression) not in group_slots:
                    raise CompilationError(
                        f"Column {output.label!r} must appear in group_by when aggregating",
                        column=output.label,
                    )
        return group_slots

    def _order_slots(
        self,
        slots: _Slots,
        aggregate_slots: dict[str, str],
        group_slots: list[str],
    ) -> list[tuple[str, bool]]:
        grouped = bool(self.group_exprs or self.aggregates)
        order: list[tuple[str, bool]] = []
        for (ref, expression), descending in self.order_items:
            if expression is None:
                slot = aggregate_slots[ref]
            else:
                slot = slots.slot_for(expression)
                if grouped and slot not in group_slots:
                    raise CompilationError(
                        f"Cannot order by {ref!r}: it is neither grouped nor aggregated",
                        column=ref,
                    )
            order.append((slot, descending))
        return order

    def _single_source(self, data_source_id: int) -> SingleSourcePlan:
        dialect = self.compiler.dialect_for(data_source_id)
        steps, cycles = self._chain(self.root_ref, self.used, self.joins)

        slots = _Slots()
        output_slots = [slots.slot_for(output.expression) for output in self.outputs]
        group_slots = self._grouping(slots)
        aggregate_slots = {label: slots.new() for label, _, _ in self.aggregates}
        order = self._order_slots(slots, aggregate_slots, group_slots)

        aggregate_slot_names = set(aggregate_slots.values())
        options = self.descriptor.query_options
        spec = SelectSpec(
            dialect=dialect,
            tables={ref: self.tables[ref] for ref in self.order if ref in self.used},
            root_ref=self.root_ref,
            steps=steps,
            cycle_filters=cycles,
            projections=[
                (slot, expression)
                for slot, expression in slots.expressions.items()
                if slot not in aggregate_slot_names
            ],
            where=self.where,
            group_slots=group_slots,
            aggregates=[
                (aggregate_slots[label], function, argument)
                for label, function, argument in self.aggregates
            ],
            order_by=order,
            offset=options.offset,
            limit=options.limit,
        )
        native_query = build_native_query(spec)

        outputs = [
            OutputColumn(label=output.label, slot=slot, type_tag=output.type_tag)
            for output, slot in zip(self.outputs, output_slots, strict=True)
        ]
        outputs.extend(
            OutputColumn(
                label=label,
                slot=aggregate_slots[label],
                type_tag=self._aggregate_type(function, argument),
            )
            for label, function, argument in self.aggregates
        )
        logger.debug(f"Compiled single-source query for data source {data_source_id}")
        return SingleSourcePlan(
            data_source_id=data_source_id,
            native_query=native_query,
            outputs=outputs,
        )

    def _fragments(self) -> tuple[dict[str, str], list[str]]:
        """Group used tables into connected components of same-source joins."""
        parent = {ref: ref for ref in self.used}

        def find(ref: str) -> str:
            while parent[ref] != ref:
                parent[ref] = parent[parent[ref]]
                ref = parent[ref]
            return ref

        for join in self.joins:
            if self._source(join.left.ref) == self._source(join.right.ref):
                a, b = find(join.left.ref), find(join.right.ref)
                if a != b:
                    parent[b] = a

        fragment_of: dict[str, str] = {}
        fragment_ids: dict[str, str] = {}
        ordered: list[str] = []
        for ref in self.order:
            if ref not in self.used:
                continue
            component = find(ref)
            if component not in fragment_ids:
                fragment_ids[component] = f"f{len(fragment_ids)}"
                ordered.append(fragment_ids[component])
            fragment_of[ref] = fragment_ids[component]
        return fragment_of, ordered

    def _federated(self) -> FederatedPlan:
        fragment_of, fragment_ids = self._fragments()
        seed = fragment_of[self.root_ref]

        cross = [j for j in self.joins if fragment_of[j.left.ref] != fragment_of[j.right.ref]]
        for join in cross:
            if join.operator != "=" or any(extra.operator != "=" for extra in join.extras):
                raise CompilationError(
                    f"Cross-source join {join.label} between {join.left.ref!r} and "
                    f"{join.right.ref!r} must use equality",
                    table=join.right.ref,
                    column=join.right.column.column_name,
                )
            if any(extra.logic == Logic.OR for extra in join.extras):
                raise MergeSemanticsError(
                    f"Cross-source join {join.label} combines conditions with OR, "
                    "which cannot be evaluated as a hash merge"
                )

        # Order merges starting from the root's fragment
        merged = {seed}
        merges: list[tuple[str, JoinType, list[ResolvedColumn], list[ResolvedColumn]]] = []
        cycles: list[_Join] = []
        pending = list(cross)
        progressed = True
        while pending and progressed:
            progressed = False
            for join in list(pending):
                left_frag, right_frag = fragment_of[join.left.ref], fragment_of[join.right.ref]
                pairs = [(c.left, c.right) for c in join.comparisons]
                if left_frag in merged and right_frag in merged:
                    cycles.append(join)
                elif left_frag in merged:
                    merges.append((
                        right_frag,
                        join.join_type,
                        [a for a, _ in pairs],
                        [b for _, b in pairs],
                    ))
                    merged.add(right_frag)
                elif right_frag in merged:
                    merges.append((
                        left_frag,
                        join.join_type.mirrored(),
                        [b for _, b in pairs],
                        [a for a, _ in pairs],
                    ))
                    merged.add(left_frag)
                else:
                    continue
                pending.remove(join)
                progressed = True

        for fragment_id in fragment_ids:
            if fragment_id not in merged:
                refs = [ref for ref, frag in fragment_of.items() if frag == fragment_id]
                raise CompilationError(
                    f"Tables {refs} are not connected to {self.root_ref!r} by any join",
                    table=refs[0],
                )
        for join in cycles:
            if join.join_type != JoinType.INNER:
                raise MergeSemanticsError(
                    f"Cross-source join {join.label} closes a cycle with a "
                    f"{join.join_type.value} join; only INNER joins may close a cycle"
                )

        # Fragments whose rows may be null-extended by an outer merge
        null_extended: set[str] = set()
        merged_so_far = {seed}
        for fragment_id, join_type, _, _ in merges:
            if join_type in (JoinType.RIGHT, JoinType.FULL):
                null_extended |= merged_so_far
            if join_type in (JoinType.LEFT, JoinType.FULL):
                null_extended.add(fragment_id)
            merged_so_far.add(fragment_id)

        pushed, post_where = self._split_where(fragment_of, null_extended)

        slots = _Slots()

        def raw_slot(key: str) -> str:
            return slots.slot_for(ColumnRef(ref=key))

        def slot_expression(expression: Expression) -> str:
            if isinstance(expression, ColumnRef):
                return raw_slot(expression.ref)
            rewritten = substitute_refs(expression, lambda key: ColumnRef(ref=raw_slot(key)))
            return slots.slot_for(rewritten)

        merge_steps = [
            MergeStep(
                fragment_id=fragment_id,
                join_type=join_type,
                left_slots=[raw_slot(c.key) for c in left_cols],
                right_slots=[raw_slot(c.key) for c in right_cols],
            )
            for fragment_id, join_type, left_cols, right_cols in merges
        ]
        join_filters = [
            SlotComparison(
                left_slot=raw_slot(c.left.key),
                operator=c.operator,
                right_slot=raw_slot(c.right.key),
            )
            for join in cycles
            for c in join.comparisons
        ]
        where = [
            [
                SlotPredicate(
                    slot=raw_slot(p.column.key),
                    operator=p.operator,
                    value=p.value,
                    type_tag=p.column.column.type_tag,
                )
                for p in group
            ]
            for group in post_where
        ]

        output_slots = [slot_expression(output.expression) for output in self.outputs]
        group_slots = []
        for expression in self.group_exprs:
            slot = slot_expression(expression)
            if slot not in group_slots:
                group_slots.append(slot)
        grouped = bool(self.group_exprs or self.aggregates)
        if grouped:
            for output, slot in zip(self.outputs, output_slots, strict=True):
                if slot not in group_slots:
                    raise CompilationError(
                        f"Column {output.label!r} must appear in group_by when aggregating",
                        column=output.label,
                    )

        aggregates: list[AggregateSlot] = []
        aggregate_slots: dict[str, str] = {}
        for label, function, argument in self.aggregates:
            source_slot = slot_expression(argument) if argument is not None else None
            slot = slots.new()
            aggregate_slots[label] = slot
            aggregates.append(
                AggregateSlot(slot=slot, function=function, source_slot=source_slot)
            )

        order_by: list[SortKey] = []
        for (ref, expression), descending in self.order_items:
            if expression is None:
                slot = aggregate_slots[ref]
            else:
                slot = slot_expression(expression)
                if grouped and slot not in group_slots:
                    raise CompilationError(
                        f"Cannot order by {ref!r}: it is neither grouped nor aggregated",
                        column=ref,
                    )
            order_by.append(SortKey(slot=slot, descending=descending))

        # Every table column referenced after the merge is fetched by its fragment
        raw_keys = {
            slot: expression.ref
            for slot, expression in slots.expressions.items()
            if isinstance(expression, ColumnRef) and expression.ref in self.columns
        }
        computed = [
            ComputedSlot(slot=slot, expression=expression)
            for slot, expression in slots.expressions.items()
            if slot not in raw_keys
            and slot not in aggregate_slots.values()
        ]

        fragments = [
            self._fragment(fragment_id, fragment_of, raw_keys, pushed.get(fragment_id, []))
            for fragment_id in fragment_ids
        ]

        outputs = [
            OutputColumn(label=output.label, slot=slot, type_tag=output.type_tag)
            for output, slot in zip(self.outputs, output_slots, strict=True)
        ]
        outputs.extend(
            OutputColumn(
                label=label,
                slot=aggregate_slots[label],
                type_tag=self._aggregate_type(function, argument),
            )
            for label, function, argument in self.aggregates
        )

        options = self.descriptor.query_options
        logger.debug(
            f"Compiled federated query: {len(fragments)} fragments, {len(merge_steps)} merges"
        )
        return FederatedPlan(
            fragments=fragments,
            seed_fragment_id=seed,
            merge_steps=merge_steps,
            join_filters=join_filters,
            where=where,
            computed=computed,
            group_by=group_slots,
            aggregates=aggregates,
            order_by=order_by,
            offset=options.offset,
            limit=options.limit,
            outputs=outputs,
        )

    def _split_where(
        self,
        fragment_of: dict[str, str],
        null_extended: set[str],
    ) -> tuple[dict[str, list[list[Predicate]]], list[list[Predicate]]]:
        """Decide which filters run inside fragments and which after the merge.

        A filter is pushed into a fragment only when no outer merge
        null-extends that fragment; OR-connected filters are pushed only when
        they all touch the same fragment.
        """
        if not self.where:
            return {}, []

        if len(self.where) == 1:
            pushed: dict[str, list[list[Predicate]]] = {}
            post: list[Predicate] = []
            for predicate in self.where[0]:
                fragment_id = fragment_of[predicate.column.ref]
                if fragment_id in null_extended:
                    post.append(predicate)
                else:
                    pushed.setdefault(fragment_id, [[]])[0].append(predicate)
            return pushed, [post] if post else []

        fragments = {fragment_of[p.column.ref] for group in self.where for p in group}
        if len(fragments) == 1:
            fragment_id = fragments.pop()
            if fragment_id not in null_extended:
                return {fragment_id: self.where}, []
        return {}, self.where

    def _fragment(
        self,
        fragment_id: str,
        fragment_of: dict[str, str],
        raw_keys: dict[str, str],
        where: list[list[Predicate]],
    ) -> Fragment:
        refs = [ref for ref in self.order if fragment_of.get(ref) == fragment_id]
        ref_set = set(refs)
        data_source_id = self._source(refs[0])
        joins = [
            j for j in self.joins if j.left.ref in ref_set and j.right.ref in ref_set
        ]
        root_ref = self.root_ref if self.root_ref in ref_set else refs[0]
        steps, cycles = self._chain(root_ref, ref_set, joins)

        projections: list[tuple[str, Expression]] = [
            (slot, ColumnRef(ref=key))
            for slot, key in raw_keys.items()
            if self.columns[key].ref in ref_set
        ]
        spec = SelectSpec(
            dialect=self.compiler.dialect_for(data_source_id),
            tables={ref: self.tables[ref] for ref in refs},
            root_ref=root_ref,
            steps=steps,
            cycle_filters=cycles,
            projections=projections,
            where=where,
        )
        return Fragment(
            fragment_id=fragment_id,
            data_source_id=data_source_id,
            table_refs=refs,
            native_query=build_native_query(spec),
            slot_types={
                slot: self.columns[key].column.type_tag
                for slot, key in raw_keys.items()
                if self.columns[key].ref in ref_set
            },
        )
