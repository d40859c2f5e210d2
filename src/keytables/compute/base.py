"""Building blocks of query plans.

Every query run on a :class:`keytables.Table` is turned into a tree
of :class:`QueryPlanNode`, whose leaves read data and whose root
emits the result. Nodes that compute values out of the data
rely on :class:`Expression` objects.

Nodes that only decide *which* rows are of interest, like filters
and key lookups, exchange a :class:`RowSelection` instead of copying
the rows around.
"""

import abc
from typing import Any, Iterator, Self

import pyarrow as pa

from ..errors import NotFoundError


class QueryPlanNode(abc.ABC):
    """A step of a query plan.

    Nodes are chained by passing the nodes that provide
    their input (the children) when they are created,
    so the last step of the plan is the root of a tree::

        FilterNode(Survived == true)
          └── TableDataSource(passengers)

    Most nodes have a single child, joins have two.

    Running a node means iterating over :meth:`batches`,
    which pulls the data from the children and emits
    :class:`pyarrow.RecordBatch` objects. Nodes that need to
    see all the rows at once (sorting, grouping, joins) use
    :meth:`collect` to gather the output of their children.

    A node that prints what goes through it would be::

        class PrintNode(QueryPlanNode):
            def __init__(self, child):
                self.child = child

            def batches(self):
                for batch in self.child.batches():
                    print(batch.to_pydict())
                    yield batch

            def __str__(self):
                return f"PrintNode({self.child})"
    """

    RecordBatchesGenerator = Iterator[pa.RecordBatch]

    @abc.abstractmethod
    def batches(self) -> RecordBatchesGenerator:
        """Run the node and emit its output.

        Implementations consume the batches of their
        children, if any, and yield the transformed data.
        """
        ...

    @abc.abstractmethod
    def __str__(self) -> str:
        """Describe the node and its children, used to show plans."""
        ...

    def collect(self) -> pa.RecordBatch:
        """Run the plan and gather all its output in a single batch."""
        batches = list(self.batches())
        if len(batches) == 1:
            return batches[0]
        return pa.Table.from_batches(batches).combine_chunks().to_batches()[0]


class Expression(abc.ABC):
    """A computation producing a column out of a batch.

    Predicates of filters, grouping keys and
    projected columns are all expressions: applied to
    a :class:`pyarrow.RecordBatch` they return a :class:`pyarrow.Array`
    with one value for each row of the batch.

    An expression adding two columns could be::

        class AddColumns(Expression):
            def __init__(self, left, right):
                self.left = left
                self.right = right

            def apply(self, batch):
                return pyarrow.compute.add(batch[self.left], batch[self.right])

            def __str__(self):
                return f"AddColumns({self.left}, {self.right})"
    """

    @abc.abstractmethod
    def apply(self, batch: pa.RecordBatch) -> pa.Array:
        """Compute the values of the expression for every row of ``batch``."""
        ...

    @abc.abstractmethod
    def __str__(self) -> str:
        """Human readable representation of the expression."""
        ...

    def __repr__(self) -> str:
        return str(self)


class ColumnRef(Expression):
    """The values of a column.

    The simplest expression, it allows other
    expressions to use columns as their arguments.
    """

    def __init__(self, name: str) -> None:
        """
        :param name: The name of the column being referenced.
        """
        self.name = name

    def apply(self, batch: pa.RecordBatch) -> pa.Array:
        """Get the data for the column."""
        if self.name not in batch.schema.names:
            raise NotFoundError(f"Column {self.name!r} not found")
        return batch.column(self.name)

    def __str__(self) -> str:
        return f"ColumnRef({self.name})"


class Literal(Expression):
    """A constant value.

    Applied to a record batch it returns
    the value repeated for each row of the batch,
    so that it can be combined with columns.
    """

    def __init__(self, value: Any) -> None:
        """
        :param value: The constant value.
        """
        self.value = value

    def apply(self, batch: pa.RecordBatch) -> pa.Array:
        """Repeat the value for all the rows of the batch."""
        if self.value is None:
            return pa.nulls(batch.num_rows)
        return pa.repeat(self.value, batch.num_rows)

    def __str__(self) -> str:
        return f"Literal({self.value!r})"


col = ColumnRef
lit = Literal


class RowSelection:
    """A sequence of row positions.

    Filters and key lookups don't copy data, they
    only decide which rows are of interest. The positions
    of those rows travel in a ``RowSelection`` until some
    node materializes them with :meth:`take`.

    Positions are stored as a :class:`pyarrow.Int64Array`,
    ``ascending`` tells if they are known to be in the same
    order the rows have in the table.

    >>> sel = RowSelection([3, 1, 2])
    >>> sel.to_pylist(), sel.ascending
    ([3, 1, 2], False)
    >>> RowSelection.all(3).to_pylist()
    [0, 1, 2]
    """

    def __init__(self, positions: pa.Array | list[int], ascending: bool | None = None) -> None:
        """
        :param positions: The row positions.
        :param ascending: If the positions are in ascending order,
                          when ``None`` it will be detected.
        """
        if not isinstance(positions, pa.Array):
            positions = pa.array(positions, type=pa.int64())
        elif positions.type != pa.int64():
            positions = positions.cast(pa.int64())
        self.positions = positions
        if ascending is None:
            values = positions.to_pylist()
            ascending = all(a <= b for a, b in zip(values, values[1:]))
        self.ascending = ascending

    @classmethod
    def all(cls, num_rows: int) -> Self:
        """Select all the rows of a table with ``num_rows`` rows."""
        return cls(pa.array(range(num_rows), type=pa.int64()), ascending=True)

    @classmethod
    def empty(cls) -> Self:
        """Select no rows."""
        return cls(pa.array([], type=pa.int64()), ascending=True)

    @classmethod
    def span(cls, start: int, stop: int) -> Self:
        """Select the contiguous rows from ``start`` to ``stop`` excluded."""
        return cls(pa.array(range(start, stop), type=pa.int64()), ascending=True)

    def __len__(self) -> int:
        return len(self.positions)

    def __iter__(self) -> Iterator[int]:
        return iter(self.positions.to_pylist())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RowSelection):
            return NotImplemented
        return self.positions.equals(other.positions)

    def __str__(self) -> str:
        return f"RowSelection({self.positions.to_pylist()})"

    __repr__ = __str__

    def to_pylist(self) -> list[int]:
        return self.positions.to_pylist()

    def take(self, batch: pa.RecordBatch) -> pa.RecordBatch:
        """Materialize the selected rows of ``batch``."""
        return batch.take(self.positions)
