"""Stable sorting of rows.

Sorted data is also what makes key lookups fast,
as all the rows with the same key are in succession
and can be found with a binary search.

Sorting is always stable: rows that have the same
values in the sorted columns keep the order
they had before sorting.

Missing values
==============

Missing values can be placed before or after all other values.
The two entry points that sort tables don't agree on the default:

* :meth:`keytables.Table.order` returns a new sorted table
  and puts missing values **first**.
* :meth:`keytables.Table.sort` reorders the table in place
  and puts missing values **last**, like the key index does.

Both accept ``missing_first`` to pick the placement explicitly.
"""

import pyarrow as pa
import pyarrow.compute as pc

from ..errors import NotFoundError, TypeMismatchError
from .base import QueryPlanNode, RowSelection


def sort_indices(
    batch: pa.RecordBatch,
    keys: list[str],
    descending: list[bool] | None = None,
    missing_first: bool = False,
) -> RowSelection:
    """Compute the positions of the rows in sorted order.

    >>> import pyarrow as pa
    >>> data = pa.record_batch({"values": [3, None, 1, 2]})
    >>> sort_indices(data, ["values"]).to_pylist()
    [2, 3, 0, 1]
    >>> sort_indices(data, ["values"], [True], missing_first=True).to_pylist()
    [1, 0, 3, 2]

    :param batch: The data to sort.
    :param keys: The columns to sort by, most significant first.
    :param descending: If each column should be sorted in a descending order,
                       defaults to ascending for all columns.
    :param missing_first: Place missing values before all other values.
    """
    if descending is None:
        descending = [False] * len(keys)
    if len(keys) != len(descending):
        raise ValueError("Keys and descending must have the same length")
    for key in keys:
        if key not in batch.schema.names:
            raise NotFoundError(f"Column {key!r} not found")

    placement = "at_start" if missing_first else "at_end"
    sorting = [
        (key, "descending" if desc else "ascending", placement)
        for key, desc in zip(keys, descending)
    ]
    if not sorting:
        return RowSelection.all(batch.num_rows)

    try:
        indices = pc.sort_indices(batch, sort_keys=sorting)
    except pa.ArrowNotImplementedError as err:
        raise TypeMismatchError(f"Unable to sort by {keys}: {err}") from err
    return RowSelection(indices, ascending=False)


class SortNode(QueryPlanNode):
    """Reorder all the rows of the child by ``keys``.

    Earlier keys take precedence, ties are broken by the
    following ones. Missing values come first unless
    ``missing_first=False``, whatever the direction.

    >>> import pyarrow as pa
    >>> from keytables.compute import PyArrowTableDataSource
    >>> data = pa.record_batch({"values": [1, None, 3, 4, 5]})
    >>> sort = SortNode(["values"], [True], PyArrowTableDataSource(data))
    >>> next(sort.batches()).to_pydict()
    {'values': [None, 5, 4, 3, 1]}
    """

    def __init__(
        self,
        keys: list[str],
        descending: list[bool],
        child: QueryPlanNode,
        missing_first: bool = True,
    ) -> None:
        """
        :param keys: The columns to sort by in the order they should be sorted.
        :param descending: One flag per key, ``True`` for largest values first.
        :param child: The node emitting the data to be sorted.
        :param missing_first: Place missing values before all other values.
        """
        if len(keys) != len(descending):
            raise ValueError("Keys and descending must have the same length")

        self.keys = keys
        self.descending = descending
        self.missing_first = missing_first
        self.child = child

    def __str__(self) -> str:
        sorting = list(
            zip(self.keys, ("descending" if d else "ascending" for d in self.descending))
        )
        return f"SortNode(sorting={sorting}, missing_first={self.missing_first}, {self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Sort the data of the child node.

        Batches provided by child node are accumulated
        until they are all loaded in memory, then they
        are merged and sorted as a single batch.
        """
        batch = self.child.collect()
        yield sort_indices(
            batch, self.keys, self.descending, missing_first=self.missing_first
        ).take(batch)
