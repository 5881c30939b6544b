"""Tests for expression trees."""

from decimal import Decimal

import pytest
from pydantic import TypeAdapter

from crossmodel.core.query.expressions import (
    BinaryOp,
    ColumnRef,
    Expression,
    FunctionCall,
    LiteralNode,
    Transform,
    evaluate,
    function_names,
    substitute_refs,
)


def _lookup(values: dict):
    return values.get


class TestTransform:
    """Tests for Transform.apply."""

    def test_single_function(self):
        tree = Transform(function="upper").apply("customers.name")

        assert tree == FunctionCall(name="UPPER", args=[ColumnRef(ref="customers.name")])

    def test_nested_with_extra_args(self):
        transform = Transform(function="ROUND", extra_args=[2], inner=Transform(function="ABS"))
        tree = transform.apply("orders.amount")

        assert tree == FunctionCall(
            name="ROUND",
            args=[
                FunctionCall(name="ABS", args=[ColumnRef(ref="orders.amount")]),
                LiteralNode(value=2),
            ],
        )


class TestTreeHelpers:
    """Tests for tree inspection and rewriting."""

    def test_function_names(self):
        tree = FunctionCall(
            name="upper",
            args=[FunctionCall(name="trim", args=[ColumnRef(ref="x")])],
        )
        assert function_names(tree) == ["UPPER", "TRIM"]

    def test_substitute_refs(self):
        tree = BinaryOp(op="*", left=ColumnRef(ref="price"), right=LiteralNode(value=2))
        rewritten = substitute_refs(tree, lambda ref: ColumnRef(ref=f"orders.{ref}"))

        assert rewritten.left == ColumnRef(ref="orders.price")
        assert rewritten.right == LiteralNode(value=2)
        # Original is untouched
        assert tree.left == ColumnRef(ref="price")

    def test_parse_from_json(self):
        tree = TypeAdapter(Expression).validate_python({
            "kind": "binary",
            "op": "-",
            "left": {"kind": "column", "ref": "orders.amount"},
            "right": {"kind": "literal", "value": 1},
        })
        assert isinstance(tree, BinaryOp)
        assert tree.left == ColumnRef(ref="orders.amount")


class TestEvaluate:
    """Tests for Python evaluation of expression trees."""

    def test_arithmetic(self):
        tree = BinaryOp(op="*", left=ColumnRef(ref="qty"), right=ColumnRef(ref="price"))
        assert evaluate(tree, _lookup({"qty": 3, "price": 2.5})) == 7.5

    def test_null_propagates(self):
        tree = BinaryOp(op="+", left=ColumnRef(ref="a"), right=LiteralNode(value=1))
        assert evaluate(tree, _lookup({"a": None})) is None

    def test_division_by_zero_is_null(self):
        tree = BinaryOp(op="/", left=LiteralNode(value=1), right=LiteralNode(value=0))
        assert evaluate(tree, _lookup({})) is None

    def test_integer_division_truncates_toward_zero(self):
        tree = BinaryOp(op="/", left=LiteralNode(value=-7), right=LiteralNode(value=2))
        assert evaluate(tree, _lookup({})) == -3

    def test_decimal_arithmetic(self):
        tree = BinaryOp(op="+", left=ColumnRef(ref="a"), right=LiteralNode(value=0.5))
        assert evaluate(tree, _lookup({"a": Decimal("1.25")})) == Decimal("1.75")

    def test_non_numeric_operands_raise(self):
        tree = BinaryOp(op="+", left=ColumnRef(ref="a"), right=LiteralNode(value=1))
        with pytest.raises(ValueError):
            evaluate(tree, _lookup({"a": "text"}))

    def test_string_functions(self):
        row = _lookup({"name": "  Alice "})
        assert evaluate(Transform(function="TRIM").apply("name"), row) == "Alice"
        assert evaluate(
            Transform(function="UPPER", inner=Transform(function="TRIM")).apply("name"), row
        ) == "ALICE"
        assert evaluate(Transform(function="LENGTH").apply("name"), row) == 8

    def test_concat_with_null_is_null(self):
        tree = FunctionCall(name="CONCAT", args=[ColumnRef(ref="a"), ColumnRef(ref="b")])
        assert evaluate(tree, _lookup({"a": "x", "b": None})) is None
        assert evaluate(tree, _lookup({"a": "x", "b": 1})) == "x1"

    def test_coalesce(self):
        tree = FunctionCall(
            name="COALESCE",
            args=[ColumnRef(ref="a"), LiteralNode(value="n/a")],
        )
        assert evaluate(tree, _lookup({"a": None})) == "n/a"

    def test_round(self):
        assert evaluate(
            Transform(function="ROUND", extra_args=[1]).apply("x"), _lookup({"x": 2.345})
        ) == 2.3
        assert evaluate(Transform(function="ROUND").apply("x"), _lookup({"x": 2.6})) == 3

    def test_unsupported_function_raises(self):
        with pytest.raises(ValueError, match="Unsupported function"):
            evaluate(Transform(function="REVERSE").apply("x"), _lookup({"x": "abc"}))
