"""Grouping rows and summarizing each group.

Aggregations reduce every group of rows sharing the
same values to a single row of statistics. Given::

    Sex, Pclass, Fare
    male, 3, 7.25
    female, 1, 71.28
    female, 3, 7.92
    male, 1, 53.10

grouping by Sex and counting the passengers gives::

    Sex, count
    male, 2
    female, 2

Grouping happens in two steps:

1. The **partition** step evaluates the grouping expressions
   for every row and collects the positions of the rows
   that have the same values (the *group key tuple*).
   Missing values are valid group keys, rows where the key
   is missing form a group of their own.
2. The **aggregation** step materializes the rows of each
   group and computes each :class:`Aggregation` on them.

The groups are emitted in the order their first row
appears in the data, unless ``ordered=True`` is requested,
in which case they are sorted by their key like a key index would.
"""

import abc
import logging
import math
from typing import Any, Callable

import pyarrow as pa
import pyarrow.compute as pc

from ..errors import DuplicateNameError, EmptyGroupError, NotFoundError, TypeMismatchError
from ..types import make_column
from .base import ColumnRef, Expression, QueryPlanNode, RowSelection
from .expressions import RowExpression, as_expression
from .keyindex import sort_value

__all__ = (
    "AggregateNode",
    "CountAggregation",
    "SumAggregation",
    "MinAggregation",
    "MaxAggregation",
    "MeanAggregation",
    "FirstAggregation",
    "LastAggregation",
    "FunctionAggregation",
    "partition",
)

logger = logging.getLogger(__name__)

GroupPartition = dict[tuple, RowSelection]

# Every NaN is a different object and NaN != NaN,
# so they are all replaced by the same object to end up in one group.
_NAN = float("nan")


def _group_value(value: Any) -> Any:
    if isinstance(value, float) and math.isnan(value):
        return _NAN
    return value


def evaluate_keys(batch: pa.RecordBatch, by: list[Expression]) -> list[pa.Array]:
    """Compute the values of the grouping expressions for every row."""
    return [make_column(expr.apply(batch)) for expr in by]


def group_positions(keys: list[pa.Array], selection: RowSelection) -> GroupPartition:
    """Collect the positions of the rows that share the same key values.

    :param keys: The values of each grouping expression, one entry per
                 row of ``selection``.
    :param selection: The positions of the rows the keys were computed for.
    """
    if not keys:
        return {(): selection}

    positions = selection.to_pylist()
    groups: dict[tuple, list[int]] = {}
    for row_idx, key in enumerate(zip(*(k.to_pylist() for k in keys))):
        key = tuple(_group_value(v) for v in key)
        groups.setdefault(key, []).append(positions[row_idx])
    return {
        key: RowSelection(rows, ascending=selection.ascending)
        for key, rows in groups.items()
    }


def partition(
    batch: pa.RecordBatch,
    by: list[str | Expression | Callable[[dict], Any]],
    selection: RowSelection | None = None,
) -> GroupPartition:
    """Partition the rows of a batch by the values of the ``by`` expressions.

    The partitions are returned in order of first occurrence.

    >>> import pyarrow as pa
    >>> data = pa.record_batch({"sex": ["male", "female", None, "male"]})
    >>> for key, rows in partition(data, ["sex"]).items():
    ...     print(key, rows.to_pylist())
    ('male',) [0, 3]
    ('female',) [1]
    (None,) [2]

    :param batch: The data to partition.
    :param by: Column names, expressions or row functions.
    :param selection: Only partition these rows, all rows when ``None``.
    """
    if selection is None:
        selection = RowSelection.all(batch.num_rows)
        rows = batch
    else:
        rows = selection.take(batch)
    keys = evaluate_keys(rows, [as_expression(b) for b in by])
    return group_positions(keys, selection)


def _expression_name(expr: Expression) -> str:
    if isinstance(expr, (ColumnRef, RowExpression)):
        return expr.name
    return str(expr)


class AggregateNode(QueryPlanNode):
    """Emit one row per group with the grouping keys and the aggregations.

    >>> import pyarrow as pa
    >>> from keytables.compute import CountAggregation, SumAggregation, PyArrowTableDataSource
    >>> data = pa.record_batch({
    ...     "Embarked": ["S", "S", "C", "C", "S"],
    ...     "Fare": [10, 15, 8, 12, 20],
    ... })
    >>> aggregate = AggregateNode(["Embarked"], {"Fares": SumAggregation("Fare")},
    ...                           PyArrowTableDataSource(data))
    >>> next(aggregate.batches()).to_pydict()
    {'Embarked': ['S', 'C'], 'Fares': [45, 20]}
    >>> aggregate = AggregateNode(["Embarked"], {"N": CountAggregation()},
    ...                           PyArrowTableDataSource(data), ordered=True)
    >>> next(aggregate.batches()).to_pydict()
    {'Embarked': ['C', 'S'], 'N': [2, 3]}

    Instead of a dictionary of aggregations, a single aggregation
    type can be provided, in which case it's computed for every column
    in ``only_columns`` (or all non grouping columns)::

        AggregateNode(["Embarked"], MeanAggregation, child, only_columns=["Fare"])
    """

    def __init__(
        self,
        by: list[str | Expression | Callable[[dict], Any]] | dict[str, Any],
        aggregations: dict[str, "Aggregation"] | Callable[[str], "Aggregation"],
        child: QueryPlanNode,
        ordered: bool = False,
        only_columns: list[str] | None = None,
    ) -> None:
        """
        :param by: The columns or expressions to group by. A dictionary
                   can be used to give names to the grouping expressions.
        :param aggregations: The aggregations to compute in the form of
                             ``{"new_col_name": Aggregation}``, or a callable
                             building the aggregation for a column name.
        :param child: The child node that will provide the data to aggregate.
        :param ordered: Sort the groups by their key, instead of
                        emitting them in order of first appearance.
        :param only_columns: The columns the aggregations can read.
        """
        if isinstance(by, dict):
            self.keys = {name: as_expression(expr) for name, expr in by.items()}
        else:
            exprs = [as_expression(b) for b in by]
            self.keys = {_expression_name(expr): expr for expr in exprs}
            if len(self.keys) != len(exprs):
                raise DuplicateNameError(f"Grouping keys must have unique names: {by}")

        self.aggregations = aggregations
        self.child = child
        self.ordered = ordered
        self.only_columns = only_columns

        if isinstance(aggregations, dict):
            for name, aggregation in aggregations.items():
                if name in self.keys:
                    raise DuplicateNameError(
                        f"Aggregation {name!r} has the same name of a grouping key"
                    )
                if only_columns is not None:
                    for column in aggregation.columns:
                        if column not in only_columns:
                            raise NotFoundError(
                                f"Column {column!r} used by {aggregation} "
                                f"is not part of {only_columns}"
                            )

    def __str__(self) -> str:
        return (
            f"AggregateNode(keys={list(self.keys)}, aggregations={self.aggregations}, "
            f"ordered={self.ordered}, {self.child})"
        )

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Partition the rows of the child node and aggregate each partition.

        All the data of the child node is accumulated
        as the rows of a group could be in any batch.
        """
        batch = self.child.collect()
        aggregations = self._resolve_aggregations(batch)

        keys = evaluate_keys(batch, list(self.keys.values()))
        groups = group_positions(keys, RowSelection.all(batch.num_rows))
        logger.debug("Partitioned %d rows in %d groups", batch.num_rows, len(groups))

        group_keys = list(groups)
        if self.ordered:
            # Same order a key index would give, missing values last.
            group_keys.sort(key=lambda k: tuple(sort_value(v) for v in k))

        result: dict[str, pa.Array] = {}
        for idx, (name, key) in enumerate(zip(self.keys, keys)):
            result[name] = pa.array([k[idx] for k in group_keys], type=key.type)
        for name, aggregation in aggregations.items():
            values = [
                _as_py(aggregation.compute(groups[k].take(batch))) for k in group_keys
            ]
            result[name] = make_column(values)

        yield pa.record_batch(list(result.values()), names=list(result))

    def _resolve_aggregations(self, batch: pa.RecordBatch) -> dict[str, "Aggregation"]:
        """Build the aggregations when a factory was provided."""
        if isinstance(self.aggregations, dict):
            return self.aggregations

        columns = self.only_columns
        if columns is None:
            columns = [c for c in batch.schema.names if c not in self.keys]
        return {column: self.aggregations(column) for column in columns}


def _as_py(value: Any) -> Any:
    if isinstance(value, pa.Scalar):
        return value.as_py()
    return value


class Aggregation(abc.ABC):
    """Base class for aggregations.

    Every aggregation computes a single value out
    of the rows of a group.

    Groups can be empty, for example when aggregating the
    whole table after a filter that matched no rows.
    Aggregations return a missing value for empty groups,
    unless they are created with ``allow_empty=False``.
    """

    def __init__(self, column: str, allow_empty: bool = True) -> None:
        """
        :param column: The column to aggregate.
        :param allow_empty: If ``False``, aggregating an empty
                            group raises :class:`EmptyGroupError`.
        """
        self.column = column
        self.allow_empty = allow_empty

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column})"

    __repr__ = __str__

    @property
    def columns(self) -> list[str]:
        """The columns read by the aggregation."""
        return [self.column] if self.column is not None else []

    def compute(self, batch: pa.RecordBatch) -> Any:
        """Compute the aggregation on the rows of a group."""
        if batch.num_rows == 0 and not self.allow_empty:
            raise EmptyGroupError(f"{self} does not accept empty groups")
        for column in self.columns:
            if column not in batch.schema.names:
                raise NotFoundError(f"Column {column!r} not found")
        try:
            return self._compute(batch)
        except (pa.ArrowNotImplementedError, pa.ArrowTypeError) as err:
            raise TypeMismatchError(f"Unable to compute {self}: {err}") from err

    @abc.abstractmethod
    def _compute(self, batch: pa.RecordBatch) -> Any: ...


class SimpleAggregation(Aggregation):
    """Provide a base implementation for aggregations of a single column.

    Subclasses only need to know how to aggregate
    the values of the column.
    """

    @abc.abstractmethod
    def _aggregate(self, data: pa.Array) -> Any: ...

    def _compute(self, batch: pa.RecordBatch) -> Any:
        return self._aggregate(batch.column(self.column))


class SumAggregation(SimpleAggregation):
    """Compute the sum of an aggregated column."""

    def _aggregate(self, data: pa.Array) -> Any:
        return pc.sum(data)


class MinAggregation(SimpleAggregation):
    """Compute the min of an aggregated column."""

    def _aggregate(self, data: pa.Array) -> Any:
        return pc.min(data)


class MaxAggregation(SimpleAggregation):
    """Compute the max of an aggregated column."""

    def _aggregate(self, data: pa.Array) -> Any:
        return pc.max(data)


class MeanAggregation(SimpleAggregation):
    """Compute the mean of an aggregated column."""

    def _aggregate(self, data: pa.Array) -> Any:
        return pc.mean(data)


class FirstAggregation(SimpleAggregation):
    """The value of the column in the first row of the group."""

    def _aggregate(self, data: pa.Array) -> Any:
        return data[0] if len(data) else None


class LastAggregation(SimpleAggregation):
    """The value of the column in the last row of the group."""

    def _aggregate(self, data: pa.Array) -> Any:
        return data[len(data) - 1] if len(data) else None


class CountAggregation(Aggregation):
    """Count the rows of the group.

    Without a column it counts all the rows (``.N``),
    with a column it only counts the rows where
    the column is not missing.
    """

    def __init__(self, column: str | None = None, allow_empty: bool = True) -> None:
        super().__init__(column, allow_empty=allow_empty)

    def __str__(self) -> str:
        return f"CountAggregation({self.column or ''})"

    __repr__ = __str__

    def _compute(self, batch: pa.RecordBatch) -> Any:
        if self.column is None:
            return batch.num_rows
        return pc.count(batch.column(self.column))


class FunctionAggregation(SimpleAggregation):
    """Aggregate a column with any Python function.

    The function receives the values of the group as a list,
    plus the ``options`` as keyword arguments, and returns
    the aggregated value:

    >>> import statistics
    >>> import pyarrow as pa
    >>> median = FunctionAggregation("fare", statistics.median)
    >>> median.compute(pa.record_batch({"fare": [7.25, 71.28, 8.05]}))
    8.05

    The function is not invoked for empty groups,
    which aggregate to a missing value.
    """

    def __init__(
        self,
        column: str,
        func: Callable[..., Any],
        options: dict[str, Any] | None = None,
        allow_empty: bool = True,
    ) -> None:
        """
        :param column: The column to aggregate.
        :param func: The function computing the aggregated value.
        :param options: Additional keyword arguments for ``func``.
        :param allow_empty: If ``False``, aggregating an empty
                            group raises :class:`EmptyGroupError`.
        """
        super().__init__(column, allow_empty=allow_empty)
        self.func = func
        self.options = options or {}

    def __str__(self) -> str:
        func_name = getattr(self.func, "__name__", repr(self.func))
        return f"FunctionAggregation({self.column}, {func_name})"

    __repr__ = __str__

    def _aggregate(self, data: pa.Array) -> Any:
        if len(data) == 0:
            return None
        try:
            return self.func(data.to_pylist(), **self.options)
        except TypeError as err:
            raise TypeMismatchError(f"Unable to compute {self}: {err}") from err
