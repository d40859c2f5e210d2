"""Expressions used by the query plan nodes.

Filters need a ``predicate``, an expression that tells
for each row if it has to be kept.

Aggregations will need the expressions that compute
the grouping keys, for example ``Age > 18``.

Expressions are usually vectorized, they compute
a whole column at once (:class:`FunctionCallExpression`).
When that's not convenient, :class:`RowExpression`
allows to use a plain Python function that is invoked
once per row.
"""

from typing import Any, Callable

import pyarrow as pa

from .. import utils
from ..types import make_column
from .base import ColumnRef, Expression


def apply_expression_if_needed(batch: pa.RecordBatch, o: Expression | Any) -> Any:
    """Resolve an argument that might be an expression.

    Expressions are applied to the batch, any other
    value (arrays, scalars) is returned as is.
    """
    if isinstance(o, Expression):
        o = o.apply(batch)
    return o


def as_expression(o: "str | Expression | Callable[[dict], Any]") -> Expression:
    """Convert a column name or a row function to an expression.

    Column names become :class:`ColumnRef`, plain
    callables become :class:`RowExpression`.
    """
    if isinstance(o, Expression):
        return o
    elif isinstance(o, str):
        return ColumnRef(o)
    elif callable(o):
        return RowExpression(o)
    raise ValueError(f"Unable to use {o!r} as an expression")


class FunctionCallExpression(Expression):
    """Call a vectorized function, usually one of :mod:`pyarrow.compute`.

    Arguments can be expressions, which are applied first,
    or plain values. The fare of a family ticket could be::

        FunctionCallExpression(pyarrow.compute.multiply, ColumnRef("Fare"), ColumnRef("Members"))

    """

    def __init__(self, func: Callable, *args: Expression | Any) -> None:
        """
        :param func: The function accepting the arguments.
        :param *args: The arguments for the function.
        """
        self.func = func
        self.args = args

    def __str__(self) -> str:
        func_qualname = utils.inspect.get_qualname(self.func)
        return f"{func_qualname}({','.join(map(str, self.args))})"

    def apply(self, batch: pa.RecordBatch) -> pa.Array:
        """Resolve the arguments on ``batch`` and call the function."""
        args = tuple(apply_expression_if_needed(batch, arg) for arg in self.args)
        return self.func(*args)


class RowExpression(Expression):
    """Compute a value for each row with a Python function.

    The function receives each row as a ``{column: value}``
    dictionary and returns the value for that row.
    It is evaluated exactly once per row.

    This is convenient for grouping by derived values,
    like grouping passengers by age range:

    >>> import pyarrow as pa
    >>> data = pa.record_batch({"age": [4, 30, 70]})
    >>> expr = RowExpression(lambda row: row["age"] >= 18, name="adult")
    >>> expr.apply(data).to_pylist()
    [False, True, True]
    """

    def __init__(self, func: Callable[[dict], Any], name: str | None = None) -> None:
        """
        :param func: The function computing the value of a row.
        :param name: A name for the computed values, used
                     when the expression is shown.
        """
        self.func = func
        self.name = name or getattr(func, "__name__", "row")

    def __str__(self) -> str:
        return f"RowExpression({self.name})"

    def apply(self, batch: pa.RecordBatch) -> pa.Array:
        """Invoke the function on every row of the batch."""
        return make_column([self.func(row) for row in batch.to_pylist()])
