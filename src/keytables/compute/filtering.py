"""Keeping only the rows that satisfy a predicate.

There are two ways to find the rows that respect a filter:

* **Vector scan**, the filter predicate is evaluated on every
  row of the table and the rows where it is ``true`` are kept.
  This works for any predicate, but always costs ``O(N)``.
* **Binary search**, when the filter is an equality on the
  key columns of a keyed table, the rows are already sorted
  by those columns and the matching rows can be found in
  ``O(log N)``. See :mod:`keytables.compute.keyindex`.

This module implements the vector scan, the binary search
lives with the key index.
"""

import functools
import math
from typing import Any

import pyarrow as pa
import pyarrow.compute as pc

from ..errors import TypeMismatchError
from .base import Expression, QueryPlanNode, RowSelection, col, lit
from .expressions import FunctionCallExpression


def scan(batch: pa.RecordBatch, predicate: Expression) -> RowSelection:
    """Find the rows of a batch for which predicate is true.

    The predicate is evaluated for every row, rows where
    the predicate is missing are treated as not matching.
    The positions are returned in the order the rows have in
    the batch.

    >>> import pyarrow as pa
    >>> import pyarrow.compute as pc
    >>> data = pa.record_batch({"values": [1, 5, None, 7]})
    >>> scan(data, FunctionCallExpression(pc.greater, col("values"), 3)).to_pylist()
    [1, 3]
    """
    mask = predicate.apply(batch)
    if isinstance(mask, pa.ChunkedArray):
        mask = mask.combine_chunks()
    if not pa.types.is_boolean(mask.type):
        raise TypeMismatchError(
            f"Filter predicate {predicate} must return booleans, got {mask.type}"
        )
    # filter() drops the rows where the mask is null,
    # so missing predicate results are the same as false.
    return RowSelection(RowSelection.all(batch.num_rows).positions.filter(mask), ascending=True)


def is_nan(values: pa.Array) -> pa.Array:
    """Which values are NaN, missing values and non float columns are never NaN.

    >>> is_nan(pa.array([1.0, float("nan"), None])).to_pylist()
    [False, True, False]
    """
    if not pa.types.is_floating(values.type):
        return pa.repeat(False, len(values))
    return pc.fill_null(pc.is_nan(values), False)


def key_equality(columns: list[str], values: tuple[Any, ...]) -> Expression:
    """Build the predicate that matches rows with the given key values.

    Missing values in ``values`` match the rows where the column
    is missing, which is different from the SQL ``=`` operator,
    but it's the same behavior of key lookups.
    NaN matches the rows where the column is NaN, as NaN
    keys are grouped together and found by key lookups.
    """
    conditions = []
    for name, value in zip(columns, values):
        if value is None:
            conditions.append(FunctionCallExpression(pc.is_null, col(name)))
        elif isinstance(value, float) and math.isnan(value):
            conditions.append(FunctionCallExpression(is_nan, col(name)))
        else:
            conditions.append(
                FunctionCallExpression(
                    pc.fill_null,
                    FunctionCallExpression(pc.equal, col(name), value),
                    False,
                )
            )
    if not conditions:
        return lit(True)
    return functools.reduce(
        lambda left, right: FunctionCallExpression(pc.and_, left, right), conditions
    )


class FilterNode(QueryPlanNode):
    """Emit the rows of the child where ``expression`` is ``true``.

    Rows where the predicate is missing are dropped.

    >>> import pyarrow as pa
    >>> import pyarrow.compute as pc
    >>> from keytables.compute import col, FunctionCallExpression, PyArrowTableDataSource
    >>> data = pa.record_batch({"values": [1, 2, 3, 4, 5]})
    >>> predicate = FunctionCallExpression(pc.greater, col("values"), 3)
    >>> predicate.apply(data).to_pylist()
    [False, False, False, True, True]
    >>> next(FilterNode(predicate, PyArrowTableDataSource(data)).batches()).to_pydict()
    {'values': [4, 5]}
    """

    def __init__(self, expression: Expression, child: QueryPlanNode) -> None:
        """
        :param expression: The predicate expression to filter with.
        :param child: The node emitting the data to be filtered.
        """
        self.expression = expression
        self.child = child

    def __str__(self) -> str:
        return f"FilterNode(filter={self.expression}, child={self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Apply the filtering to the child node.

        For each recordbatch yielded by the child node,
        scan it with the predicate and only keep
        the rows that matched.
        """
        for batch in self.child.batches():
            yield scan(batch, self.expression).take(batch)
