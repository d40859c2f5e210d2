import pyarrow as pa
import pyarrow.compute as pc
import pytest

from keytables.compute.base import ColumnRef, Literal
from keytables.compute.expressions import (
    FunctionCallExpression,
    RowExpression,
    as_expression,
)
from keytables.errors import NotFoundError


@pytest.fixture
def sample_batch():
    return pa.RecordBatch.from_arrays(
        [pa.array([1, 2, 3, 4, 5]), pa.array(["a", "b", "c", "d", "e"])],
        names=["numbers", "letters"],
    )


def test_function_call_expression_init():
    expr = FunctionCallExpression(pc.add, ColumnRef("numbers"), 1)
    assert expr.func == pc.add
    assert len(expr.args) == 2
    assert isinstance(expr.args[0], ColumnRef)
    assert expr.args[1] == 1


def test_function_call_expression_str():
    expr = FunctionCallExpression(pc.add, ColumnRef("numbers"), 1)
    assert str(expr) == "pyarrow.compute.add(ColumnRef(numbers),1)"


def test_function_call_expression_apply_simple(sample_batch):
    expr = FunctionCallExpression(pc.add, ColumnRef("numbers"), 1)
    result = expr.apply(sample_batch)
    assert result.equals(pa.array([2, 3, 4, 5, 6]))


def test_function_call_expression_apply_nested(sample_batch):
    inner_expr = FunctionCallExpression(pc.multiply, ColumnRef("numbers"), 2)
    outer_expr = FunctionCallExpression(pc.add, inner_expr, 1)
    result = outer_expr.apply(sample_batch)
    assert result.equals(pa.array([3, 5, 7, 9, 11]))


def test_function_call_expression_apply_multiple_args(sample_batch):
    expr = FunctionCallExpression(
        pc.if_else,
        FunctionCallExpression(pc.greater, ColumnRef("numbers"), 3),
        ColumnRef("letters"),
        "x",
    )
    result = expr.apply(sample_batch)
    assert result.equals(pa.array(["x", "x", "x", "d", "e"]))


def test_function_call_expression_apply_null_handling(sample_batch):
    batch_with_null = pa.RecordBatch.from_arrays(
        [pa.array([1, None, 3, 4, 5]), sample_batch["letters"]],
        names=["numbers", "letters"],
    )
    expr = FunctionCallExpression(pc.add, ColumnRef("numbers"), 1)
    result = expr.apply(batch_with_null)
    assert result.equals(pa.array([2, None, 4, 5, 6]))


def test_function_call_expression_apply_invalid_column():
    batch = pa.RecordBatch.from_arrays([pa.array([1, 2, 3])], names=["numbers"])
    expr = FunctionCallExpression(pc.add, ColumnRef("non_existent"), 1)
    with pytest.raises(NotFoundError):
        expr.apply(batch)
    # NotFoundError is still a KeyError for code unaware of KeyTables.
    with pytest.raises(KeyError):
        expr.apply(batch)


def test_function_call_expression_apply_type_mismatch():
    batch = pa.RecordBatch.from_arrays([pa.array(["a", "b", "c"])], names=["letters"])
    expr = FunctionCallExpression(pc.add, ColumnRef("letters"), 1)
    with pytest.raises(pa.ArrowNotImplementedError):
        expr.apply(batch)


def test_literal(sample_batch):
    assert Literal(7).apply(sample_batch).to_pylist() == [7] * 5
    assert Literal(None).apply(sample_batch).null_count == 5
    assert str(Literal("x")) == "Literal('x')"


def test_row_expression_is_called_once_per_row(sample_batch):
    calls = []

    def describe(row):
        calls.append(row)
        return f"{row['letters']}{row['numbers']}"

    expr = RowExpression(describe)
    assert expr.apply(sample_batch).to_pylist() == ["a1", "b2", "c3", "d4", "e5"]
    assert len(calls) == 5
    assert calls[0] == {"numbers": 1, "letters": "a"}
    assert str(expr) == "RowExpression(describe)"


def test_as_expression():
    assert isinstance(as_expression("numbers"), ColumnRef)
    assert isinstance(as_expression(len), RowExpression)
    ref = ColumnRef("numbers")
    assert as_expression(ref) is ref
    with pytest.raises(ValueError):
        as_expression(3)
