"""Key index and binary search lookups.

A table can designate one or more of its columns as its **key**.
Setting the key sorts the rows of the table in place, in ascending
order of the key columns, with missing values placed last::

    >>> from keytables import Table
    >>> passengers = Table({
    ...     "Sex": ["male", "female", "male"],
    ...     "Pclass": [3, 2, 1],
    ... })
    >>> passengers.set_key("Sex", "Pclass")
    >>> passengers.to_pydict()
    {'Sex': ['female', 'male', 'male'], 'Pclass': [2, 1, 3]}

There is no separate index structure, the sorted order of the
rows *is* the index. As all the rows with the same key are
in succession, finding them only requires to find where the
run of matching rows starts and where it ends, which
can be done with two binary searches in ``O(log N)``::

    >>> passengers.lookup("male").to_pydict()
    {'Sex': ['male', 'male'], 'Pclass': [1, 3]}

Lookups can provide only the first values of the key (a prefix),
in which case all the rows matching those values are returned.

When no row matches, the lookup returns a single row with
all the values missing apart from the looked up key values
(``nomatch="nullRow"``) or no rows at all (``nomatch="omit"``)::

    >>> passengers.lookup("male", 5, nomatch="nullRow").to_pydict()
    {'Sex': ['male'], 'Pclass': [5]}

The index keeps a reference to the key columns it was built on.
If the key columns of the table are replaced without going
through the :class:`keytables.Table` methods, the index
is stale and using it raises :class:`keytables.errors.StaleIndexError`.
"""

import bisect
import enum
import logging
import math
from typing import TYPE_CHECKING, Any, Mapping

import pyarrow as pa

from .. import config
from ..errors import StaleIndexError, TypeMismatchError
from ..types import ColumnType
from .base import QueryPlanNode, RowSelection
from .filtering import key_equality, scan
from .sorting import sort_indices

if TYPE_CHECKING:
    from ..table import Table
    from .datasources import TableDataSource

logger = logging.getLogger(__name__)

MULT_OPTIONS = ("all", "first", "last")


class NoMatch(str, enum.Enum):
    """What a lookup returns when no row matches."""

    #: One row with the key values and all other columns missing.
    NULL_ROW = "nullRow"
    #: No rows at all.
    OMIT = "omit"


def sort_value(value: Any) -> tuple[int, Any]:
    """Make a value comparable in the same order Arrow sorts it.

    Missing values sort after NaN, which sorts after any other value.
    """
    if value is None:
        return (2, 0)
    if isinstance(value, float) and math.isnan(value):
        return (1, 0)
    return (0, value)


def check_key_values(
    columns: Mapping[str, pa.Array], names: tuple[str, ...], values: tuple[Any, ...]
) -> None:
    """Ensure that the values can be compared with the key columns.

    :raises TypeMismatchError: if a value is not of the type of its column.
    """
    for name, value in zip(names, values):
        column_type = ColumnType.from_arrow(columns[name].type)
        if not column_type.accepts(value):
            raise TypeMismatchError(
                f"Can't look up {value!r} in {column_type.value} column {name!r}"
            )


def apply_mult(selection: RowSelection, mult: str) -> RowSelection:
    """Keep all, the first or the last of the selected rows."""
    if mult not in MULT_OPTIONS:
        raise ValueError(f"mult must be one of {MULT_OPTIONS}, got {mult!r}")
    if mult == "all" or len(selection) <= 1:
        return selection
    positions = selection.positions
    if mult == "first":
        return RowSelection(positions.slice(0, 1), ascending=True)
    return RowSelection(positions.slice(len(positions) - 1, 1), ascending=True)


class KeyIndex:
    """The key of a table.

    Knows the key columns of a table, whose rows are expected
    to be sorted by those columns, and performs binary searches
    over them.

    The index holds the key column arrays it was built for,
    so that it can detect if the table it belongs to was changed
    behind its back.
    """

    def __init__(self, columns: tuple[str, ...], arrays: tuple[pa.Array, ...]) -> None:
        """
        :param columns: The names of the key columns.
        :param arrays: The data of the key columns, already sorted.
        """
        self.columns = tuple(columns)
        self.arrays = tuple(arrays)
        self.num_rows = len(self.arrays[0]) if self.arrays else 0

    @staticmethod
    def sort_order(batch: pa.RecordBatch, columns: tuple[str, ...]) -> RowSelection:
        """The order the rows of ``batch`` must have to be keyed by ``columns``.

        The key order is always ascending, with missing values last.
        """
        return sort_indices(batch, list(columns), missing_first=False)

    def __str__(self) -> str:
        return f"KeyIndex(columns={list(self.columns)}, rows={self.num_rows})"

    __repr__ = __str__

    def is_stale(self, columns: Mapping[str, pa.Array]) -> bool:
        """If the table columns are no longer the ones the index was built on.

        A table whose row count changed is stale too.
        """
        return any(
            columns.get(name) is not array
            for name, array in zip(self.columns, self.arrays)
        ) or any(len(column) != self.num_rows for column in columns.values())

    def check(self, columns: Mapping[str, pa.Array]) -> None:
        """Ensure the index can be used for the given table columns.

        :raises StaleIndexError: if the index is stale.
        """
        if self.is_stale(columns):
            raise StaleIndexError(
                f"Key {list(self.columns)} is stale, the key columns were modified "
                "without updating the key. Set the key again."
            )

    def covers(self, names: tuple[str, ...] | list[str]) -> bool:
        """If ``names`` are the first columns of the key, in order."""
        names = tuple(names)
        return len(names) <= len(self.columns) and self.columns[: len(names)] == names

    def search(self, values: tuple[Any, ...], mult: str = "all") -> RowSelection:
        """Binary search the rows whose key starts with ``values``.

        Returns the contiguous run of matching rows, which
        is empty when no row matches.

        >>> import pyarrow as pa
        >>> index = KeyIndex(("n",), (pa.array([1, 2, 2, 2, 5, None]),))
        >>> index.search((2,)).to_pylist()
        [1, 2, 3]
        >>> index.search((2,), mult="last").to_pylist()
        [3]
        >>> index.search((None,)).to_pylist()
        [5]
        >>> index.search((4,)).to_pylist()
        []

        :param values: The key values to look for, they can be
                       fewer than the key columns.
        :param mult: Return ``"all"`` matching rows, or only the
                     ``"first"`` or ``"last"`` of them.
        """
        values = tuple(values)
        if len(values) > len(self.columns):
            raise ValueError(
                f"Got {len(values)} values to look up, but the key only has "
                f"{len(self.columns)} columns: {list(self.columns)}"
            )
        check_key_values(dict(zip(self.columns, self.arrays)), self.columns, values)

        target = tuple(sort_value(v) for v in values)
        arrays = self.arrays[: len(values)]

        def key_at(position: int) -> tuple[tuple[int, Any], ...]:
            return tuple(sort_value(array[position].as_py()) for array in arrays)

        rows = range(self.num_rows)
        start = bisect.bisect_left(rows, target, key=key_at)
        stop = bisect.bisect_right(rows, target, lo=start, key=key_at)
        return apply_mult(RowSelection.span(start, stop), mult)


def lookup(
    table: "Table",
    values: tuple[Any, ...],
    nomatch: NoMatch | str | None = None,
    mult: str = "all",
) -> pa.RecordBatch:
    """Find the rows of a keyed table that match the key ``values``.

    :param table: The keyed table where to look up the values.
    :param values: The key values, or a prefix of them.
    :param nomatch: What to return when no row matches,
                    see :class:`NoMatch`. Defaults to ``config.NOMATCH``.
    :param mult: If ``"all"``, ``"first"`` or ``"last"`` of the matching
                 rows have to be returned.
    """
    nomatch = NoMatch(nomatch or config.NOMATCH)
    index = table.key_index()
    selection = index.search(values, mult=mult)
    batch = table.to_batch()
    if len(selection):
        return selection.take(batch)

    logger.debug("No rows matching %r in %s, nomatch=%s", values, index, nomatch.value)
    if nomatch is NoMatch.NULL_ROW:
        return null_row(batch.schema, index.columns, values)
    return batch.slice(0, 0)


def select_rows(
    table: "Table", columns: list[str] | tuple[str, ...], values: tuple[Any, ...]
) -> RowSelection:
    """Find the rows where ``columns`` are equal to ``values``.

    When ``columns`` are the first columns of the table key, the rows
    are found with a binary search on the key, otherwise all the rows
    of the table are scanned. Both ways return the same rows.

    Missing values match the rows where the column is missing.
    """
    columns = tuple(columns)
    values = tuple(values)
    if len(columns) != len(values):
        raise ValueError(f"Got {len(values)} values for {len(columns)} columns")

    if table.key is not None and table.key_index().covers(columns):
        logger.debug("Selecting %r on %s with binary search", values, columns)
        return table.key_index().search(values)

    logger.debug("Selecting %r on %s with vector scan", values, columns)
    batch = table.to_batch()
    check_key_values({name: table.column(name) for name in columns}, columns, values)
    return scan(batch, key_equality(list(columns), values))


def null_row(
    schema: pa.Schema, key_columns: tuple[str, ...], values: tuple[Any, ...]
) -> pa.RecordBatch:
    """Build the row returned by lookups that matched nothing.

    The key columns hold the looked up values, all
    other columns are missing.

    :raises TypeMismatchError: if a looked up value can't be stored
                               in its key column without changing it.
    """
    key_values = dict(zip(key_columns, values))
    arrays = []
    for field in schema:
        value = key_values.get(field.name)
        if value is not None:
            try:
                arrays.append(pa.array([value]).cast(field.type, safe=True))
            except (
                pa.ArrowInvalid,
                pa.ArrowNotImplementedError,
                pa.ArrowTypeError,
            ) as err:
                raise TypeMismatchError(
                    f"Can't store {value!r} in {field.type} column {field.name!r}"
                ) from err
        else:
            arrays.append(pa.nulls(1, type=field.type))
    return pa.record_batch(arrays, schema=schema)


class KeyLookupNode(QueryPlanNode):
    """Emit the rows of a keyed table matching some key values.

    >>> from keytables import Table
    >>> from keytables.compute import TableDataSource
    >>> table = Table({"id": [3, 1, 2], "name": ["c", "a", "b"]})
    >>> table.set_key("id")
    >>> next(KeyLookupNode((2,), TableDataSource(table)).batches()).to_pydict()
    {'id': [2], 'name': ['b']}
    """

    def __init__(
        self,
        values: tuple[Any, ...],
        child: "TableDataSource",
        nomatch: NoMatch | str | None = None,
        mult: str = "all",
    ) -> None:
        """
        :param values: The key values to look up.
        :param child: The source of the keyed table.
        :param nomatch: What to emit when no row matches.
        :param mult: Which of the matching rows to emit.
        """
        self.values = tuple(values)
        self.child = child
        self.nomatch = nomatch
        self.mult = mult

    def __str__(self) -> str:
        return f"KeyLookupNode(values={self.values}, mult={self.mult}, {self.child})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Binary search the key values in the child table."""
        yield lookup(self.child.table, self.values, nomatch=self.nomatch, mult=self.mult)
