"""In-memory row operations for federated plans.

Rows are dicts keyed by slot. Values compared across sources are normalized
by type tag first, so an integer key from one source matches a numeric or
numeric-looking text key from another.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any

from crossmodel.core.models.join_catalog import JoinType
from crossmodel.core.query.plan import AggregateSlot, SlotComparison, SlotPredicate, SortKey

Row = dict[str, Any]


# =============================================================================
# Value normalization
# =============================================================================


def to_number(value: Any) -> Decimal | None:
    """Coerce a value to Decimal, or None if it is not numeric."""
    if value is None:
        return None
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, (float, Decimal)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return None
    if isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def to_text(value: Any) -> str:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def normalize_value(value: Any, numeric: bool) -> Any:
    """Normalize a value for equality and ordering.

    Args:
        value: Raw value from a source row.
        numeric: Whether the comparison is numeric.

    Returns:
        A Decimal for numeric comparisons, a string otherwise. None stays None,
        and so does a value that cannot be read as a number.
    """
    if value is None:
        return None
    if numeric:
        return to_number(value)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return to_number(value)
    return to_text(value)


# =============================================================================
# Filters
# =============================================================================


def _holds(left: Any, operator: str, right: Any) -> bool:
    try:
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
    except TypeError:
        return False
    raise ValueError(f"Unsupported operator: {operator}")


def predicate_matches(row: Row, predicate: SlotPredicate) -> bool:
    """Evaluate a filter on one row. NULL never satisfies a predicate.

    An empty IN list matches nothing and an empty NOT IN list matches every
    row, NULL included.
    """
    if predicate.operator in ("IN", "NOT IN") and not predicate.value:
        return predicate.operator == "NOT IN"

    value = row.get(predicate.slot)
    if value is None:
        return False

    numeric = predicate.type_tag.is_number
    left = normalize_value(value, numeric)
    if left is None:
        return False

    if predicate.operator in ("IN", "NOT IN"):
        candidates = [normalize_value(item, numeric) for item in predicate.value]
        found = any(c is not None and left == c for c in candidates)
        return found if predicate.operator == "IN" else not found

    right = normalize_value(predicate.value, numeric)
    if right is None:
        return False
    return _holds(left, predicate.operator, right)


def where_matches(row: Row, groups: Sequence[Sequence[SlotPredicate]]) -> bool:
    """Evaluate OR-ed AND-groups of filters. No groups means no filter."""
    if not groups:
        return True
    return any(all(predicate_matches(row, p) for p in group) for group in groups)


def comparison_holds(row: Row, comparison: SlotComparison, numeric: bool) -> bool:
    left = normalize_value(row.get(comparison.left_slot), numeric)
    right = normalize_value(row.get(comparison.right_slot), numeric)
    if left is None or right is None:
        return False
    return _holds(left, comparison.operator, right)


# =============================================================================
# Hash join
# =============================================================================


def _key(row: Row, slots: Sequence[str], numeric: Sequence[bool]) -> tuple | None:
    values = []
    for slot, is_numeric in zip(slots, numeric, strict=True):
        value = normalize_value(row.get(slot), is_numeric)
        if value is None:
            return None
        values.append(value)
    return tuple(values)


def hash_join(
    left_rows: Sequence[Row],
    right_rows: Sequence[Row],
    left_slots: Sequence[str],
    right_slots: Sequence[str],
    join_type: JoinType,
    left_fields: Iterable[str],
    right_fields: Iterable[str],
    numeric: Sequence[bool] | None = None,
) -> list[Row]:
    """Equality hash join of two row sets.

    The hash table is built on the smaller input. Rows with a NULL in any key
    never match, but are still kept by the outer side of LEFT, RIGHT and FULL
    joins. Output follows the left input's order, with unmatched right rows
    appended.

    Args:
        left_rows: Rows merged so far.
        right_rows: Rows of the fragment being merged in.
        left_slots: Key slots on the left rows.
        right_slots: Key slots on the right rows, paired with ``left_slots``.
        join_type: Join type, oriented as ``left <join_type> right``.
        left_fields: Every slot of a left row, used for null extension.
        right_fields: Every slot of a right row, used for null extension.
        numeric: Per key pair, whether to compare numerically.

    Returns:
        Merged rows.
    """
    numeric = list(numeric) if numeric is not None else [False] * len(left_slots)
    left_nulls = dict.fromkeys(left_fields)
    right_nulls = dict.fromkeys(right_fields)

    matches: dict[int, list[int]] = {}
    if len(right_rows) <= len(left_rows):
        table: dict[tuple, list[int]] = {}
        for index, row in enumerate(right_rows):
            key = _key(row, right_slots, numeric)
            if key is not None:
                table.setdefault(key, []).append(index)
        for index, row in enumerate(left_rows):
            key = _key(row, left_slots, numeric)
            if key is not None and key in table:
                matches[index] = table[key]
    else:
        table = {}
        for index, row in enumerate(left_rows):
            key = _key(row, left_slots, numeric)
            if key is not None:
                table.setdefault(key, []).append(index)
        for right_index, row in enumerate(right_rows):
            key = _key(row, right_slots, numeric)
            if key is None:
                continue
            for left_index in table.get(key, []):
                matches.setdefault(left_index, []).append(right_index)

    keep_left = join_type in (JoinType.LEFT, JoinType.FULL)
    keep_right = join_type in (JoinType.RIGHT, JoinType.FULL)

    merged: list[Row] = []
    matched_right: set[int] = set()
    for index, left in enumerate(left_rows):
        right_indexes = matches.get(index)
        if right_indexes:
            for right_index in right_indexes:
                merged.append({**left_nulls, **left, **right_rows[right_index]})
            matched_right.update(right_indexes)
        elif keep_left:
            merged.append({**left_nulls, **left, **right_nulls})

    if keep_right:
        for index, right in enumerate(right_rows):
            if index not in matched_right:
                merged.append({**left_nulls, **right_nulls, **right})
    return merged


# =============================================================================
# Grouping, sorting and paging
# =============================================================================


def _group_value(value: Any) -> Any:
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return to_number(value)
    return value


def _aggregate(function: str, values: list[Any], row_count: int, counts_rows: bool) -> Any:
    if function == "COUNT":
        return row_count if counts_rows else len(values)
    if not values:
        return None
    if function == "SUM":
        return sum(values)
    if function == "AVG":
        if any(isinstance(v, Decimal) for v in values):
            return sum(Decimal(str(v)) for v in values) / len(values)
        return sum(values) / len(values)
    if function == "MIN":
        return min(values)
    if function == "MAX":
        return max(values)
    raise ValueError(f"Unsupported aggregate: {function}")


def group_rows(
    rows: Sequence[Row],
    group_slots: Sequence[str],
    aggregates: Sequence[AggregateSlot],
) -> list[Row]:
    """Group rows and compute aggregates. NULLs are ignored by aggregates.

    Without group slots every row falls in one group, so aggregating an empty
    input still yields one row (COUNT 0, other aggregates NULL).
    """
    groups: dict[tuple, list[Row]] = {}
    for row in rows:
        key = tuple(_group_value(row.get(slot)) for slot in group_slots)
        groups.setdefault(key, []).append(row)
    if not group_slots and not groups:
        groups[()] = []

    result: list[Row] = []
    for members in groups.values():
        out: Row = {slot: members[0].get(slot) for slot in group_slots} if members else {}
        for aggregate in aggregates:
            if aggregate.source_slot is None:
                values: list[Any] = []
            else:
                values = [
                    row[aggregate.source_slot]
                    for row in members
                    if row.get(aggregate.source_slot) is not None
                ]
            out[aggregate.slot] = _aggregate(
                aggregate.function,
                values,
                len(members),
                aggregate.source_slot is None,
            )
        result.append(out)
    return result


def _sort_value(value: Any) -> tuple[int, Any]:
    number = None
    if isinstance(value, (int, float, Decimal)):
        number = to_number(value)
    if number is not None:
        return (0, number)
    return (1, to_text(value))


def sort_rows(rows: Sequence[Row], order_by: Sequence[SortKey]) -> list[Row]:
    """Sort rows by several keys. NULLs sort last in either direction."""
    ordered = list(rows)
    for key in reversed(order_by):
        present = [row for row in ordered if row.get(key.slot) is not None]
        missing = [row for row in ordered if row.get(key.slot) is None]
        present.sort(key=lambda row: _sort_value(row[key.slot]), reverse=key.descending)
        ordered = present + missing
    return ordered


def page_rows(rows: Sequence[Row], offset: int = -1, limit: int = -1) -> list[Row]:
    """Apply offset and limit; ``-1`` leaves either unset."""
    start = offset if offset > 0 else 0
    if limit < 0:
        return list(rows[start:])
    return list(rows[start : start + limit])
