"""Expression trees for derived columns.

Transforms and calculated columns are described as small trees of nodes
(column references, literals, function calls and arithmetic) instead of
strings. A tree can be rendered into a SQLAlchemy expression, a MongoDB
aggregation expression, or evaluated in Python against a merged row, and its
output is always balanced because it is built by composition.
"""

from collections.abc import Callable
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# Functions callers may use in transforms and calculated columns
SUPPORTED_FUNCTIONS = frozenset(
    {"UPPER", "LOWER", "TRIM", "LENGTH", "ROUND", "ABS", "COALESCE", "CONCAT"}
)

LiteralValue = str | int | float | bool | None


class ColumnRef(BaseModel):
    """Reference to a column, by ``table_ref.column`` or an output label."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["column"] = "column"
    ref: str


class LiteralNode(BaseModel):
    """A constant value."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["literal"] = "literal"
    value: LiteralValue = None


class FunctionCall(BaseModel):
    """A scalar function applied to argument expressions."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["function"] = "function"
    name: str
    args: list["Expression"] = Field(default_factory=list)


class BinaryOp(BaseModel):
    """An arithmetic operation between two expressions."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["binary"] = "binary"
    op: Literal["+", "-", "*", "/"]
    left: "Expression"
    right: "Expression"


Expression = Annotated[
    Union[ColumnRef, LiteralNode, FunctionCall, BinaryOp],
    Field(discriminator="kind"),
]

FunctionCall.model_rebuild()
BinaryOp.model_rebuild()


class Transform(BaseModel):
    """A function wrapped around a column value, optionally around another transform.

    ``Transform(function="ROUND", extra_args=[2], inner=Transform(function="ABS"))``
    applied to ``orders.total`` describes ``ROUND(ABS(orders.total), 2)``.
    """

    model_config = ConfigDict(frozen=True)

    function: str
    extra_args: list[LiteralValue] = Field(default_factory=list)
    inner: "Transform | None" = None

    def apply(self, ref: str) -> "Expression":
        """Build the expression tree for this transform applied to a column.

        Args:
            ref: Column reference the innermost transform wraps.

        Returns:
            A FunctionCall tree.
        """
        target: Expression = ColumnRef(ref=ref)
        if self.inner is not None:
            target = self.inner.apply(ref)
        args: list[Expression] = [target]
        args.extend(LiteralNode(value=value) for value in self.extra_args)
        return FunctionCall(name=self.function.upper(), args=args)


Transform.model_rebuild()


# =============================================================================
# Tree helpers
# =============================================================================


def function_names(expression: "Expression") -> list[str]:
    """List the function names used in an expression."""
    if isinstance(expression, FunctionCall):
        names = [expression.name.upper()]
        for arg in expression.args:
            names.extend(function_names(arg))
        return names
    if isinstance(expression, BinaryOp):
        return function_names(expression.left) + function_names(expression.right)
    return []


def substitute_refs(
    expression: "Expression",
    mapping: Callable[[str], "Expression"],
) -> "Expression":
    """Return a copy of the tree with every column reference replaced by a subtree.

    Args:
        expression: Tree to rewrite.
        mapping: Function from a reference to the expression replacing it.

    Returns:
        A new expression tree.
    """
    if isinstance(expression, ColumnRef):
        return mapping(expression.ref)
    if isinstance(expression, FunctionCall):
        return FunctionCall(
            name=expression.name,
            args=[substitute_refs(arg, mapping) for arg in expression.args],
        )
    if isinstance(expression, BinaryOp):
        return BinaryOp(
            op=expression.op,
            left=substitute_refs(expression.left, mapping),
            right=substitute_refs(expression.right, mapping),
        )
    return expression


def render(expression: "Expression", visitor: "ExpressionVisitor") -> Any:
    """Render an expression bottom-up with a visitor."""
    if isinstance(expression, ColumnRef):
        return visitor.column(expression.ref)
    if isinstance(expression, LiteralNode):
        return visitor.literal(expression.value)
    if isinstance(expression, FunctionCall):
        args = [render(arg, visitor) for arg in expression.args]
        return visitor.function(expression.name.upper(), args)
    return visitor.binary(
        expression.op,
        render(expression.left, visitor),
        render(expression.right, visitor),
    )


class ExpressionVisitor:
    """Interface for rendering expression nodes into a target representation."""

    def column(self, ref: str) -> Any:
        raise NotImplementedError

    def literal(self, value: LiteralValue) -> Any:
        raise NotImplementedError

    def function(self, name: str, args: list[Any]) -> Any:
        raise NotImplementedError

    def binary(self, op: str, left: Any, right: Any) -> Any:
        raise NotImplementedError


# =============================================================================
# Python evaluation
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class PythonEvaluator(ExpressionVisitor):
    """Evaluates an expression against one row, following SQL null semantics."""

    def __init__(self, lookup: Callable[[str], Any]) -> None:
        self.lookup = lookup

    def column(self, ref: str) -> Any:
        return self.lookup(ref)

    def literal(self, value: LiteralValue) -> Any:
        return value

    def function(self, name: str, args: list[Any]) -> Any:
        if name == "COALESCE":
            return next((arg for arg in args if arg is not None), None)
        if name == "CONCAT":
            if any(arg is None for arg in args):
                return None
            return "".join(_to_text(arg) for arg in args)

        value = args[0] if args else None
        if value is None:
            return None
        if name == "UPPER":
            return _to_text(value).upper()
        if name == "LOWER":
            return _to_text(value).lower()
        if name == "TRIM":
            return _to_text(value).strip()
        if name == "LENGTH":
            return len(_to_text(value))
        if name == "ABS":
            return abs(value)
        if name == "ROUND":
            digits = int(args[1]) if len(args) > 1 and args[1] is not None else 0
            rounded = round(float(value), digits)
            return int(rounded) if digits == 0 else rounded
        raise ValueError(f"Unsupported function: {name}")

    def binary(self, op: str, left: Any, right: Any) -> Any:
        if left is None or right is None:
            return None
        if not (_is_number(left) and _is_number(right)):
            raise ValueError(f"Operator {op!r} needs numeric operands")
        if isinstance(left, Decimal) or isinstance(right, Decimal):
            left, right = Decimal(str(left)), Decimal(str(right))
        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if right == 0:
            return None
        if isinstance(left, int) and isinstance(right, int):
            # Integer division truncates toward zero, as in SQL
            quotient = abs(left) // abs(right)
            return quotient if (left < 0) == (right < 0) else -quotient
        return left / right


def evaluate(expression: "Expression", lookup: Callable[[str], Any]) -> Any:
    """Evaluate an expression in Python.

    Args:
        expression: Tree to evaluate.
        lookup: Function returning the value of a column reference.

    Returns:
        The computed value, or None where SQL would produce NULL.
    """
    return render(expression, PythonEvaluator(lookup))
