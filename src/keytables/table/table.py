"""The Table object itself."""

import logging
from collections.abc import Mapping
from typing import Any, Callable, Iterator, Self

import pyarrow as pa
import pyarrow.compute as pc

from ..compute import (
    AggregateNode,
    CSVDataSource,
    FilterNode,
    JoinNode,
    KeyLookupNode,
    LookupJoinNode,
    ProjectNode,
    SortNode,
    TableDataSource,
)
from ..compute.base import Expression, QueryPlanNode, RowSelection
from ..compute.keyindex import KeyIndex, NoMatch, select_rows
from ..compute.sorting import sort_indices
from ..errors import DuplicateNameError, NotFoundError, TypeMismatchError
from ..types import ColumnType, as_column, is_scalar, make_column

logger = logging.getLogger(__name__)


class Table:
    """Data structure that handles data in rows and columns.

    A Table is an ordered collection of named columns,
    all with the same number of rows. Each column holds
    values of a single :class:`keytables.types.ColumnType`,
    plus missing values.

    Tables are mutable and they are modified by reference:
    methods like :meth:`add_column`, :meth:`set_key` or :meth:`sort`
    change the table they are called on and return nothing.
    No copy is ever made implicitly, use :meth:`copy`
    when an independent table is needed.

    Queries (:meth:`filter`, :meth:`group_by`, :meth:`merge`, ...)
    never modify the table, they return a new Table with the result.

    >>> t = Table({"Sex": ["male", "female", "male"], "Pclass": [1, 2, 3]})
    >>> t.add_column("Survived", [False, True, True])
    >>> t.column_names
    ['Sex', 'Pclass', 'Survived']
    >>> t.num_rows
    3

    Tables are not safe for concurrent use, a table being modified
    must not be read or modified by other threads at the same time.
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        """
        :param data: The columns of the table as ``{name: values}``,
                     values can be lists or Arrow arrays.
        """
        self._columns: dict[str, pa.Array] = {}
        self._num_rows = 0
        self._key: KeyIndex | None = None
        for name, values in (data or {}).items():
            self.add_column(name, values)

    @classmethod
    def from_arrow(cls, data: pa.Table | pa.RecordBatch) -> Self:
        """Create a Table out of Arrow data.

        :param data: A :class:`pyarrow.Table` or :class:`pyarrow.RecordBatch`.
        """
        table = cls()
        for name in data.schema.names:
            table.add_column(name, data.column(name))
        table._num_rows = data.num_rows
        return table

    @classmethod
    def read_csv(cls, filename: str, block_size: int | None = None) -> Self:
        """Create a Table from a CSV file.

        :param filename: The path to a local CSV file.
        :param block_size: How many bytes are parsed at once.
        """
        return cls.from_arrow(CSVDataSource(filename, block_size=block_size).collect())

    def __str__(self) -> str:
        key = list(self._key.columns) if self._key is not None else None
        return f"Table(columns={self.column_names}, rows={self._num_rows}, key={key})"

    __repr__ = __str__

    def __len__(self) -> int:
        return self._num_rows

    def __contains__(self, name: str) -> bool:
        return name in self._columns

    def __getitem__(self, name: str) -> pa.Array:
        return self.column(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    @property
    def num_rows(self) -> int:
        return self._num_rows

    @property
    def column_names(self) -> list[str]:
        return list(self._columns)

    @property
    def types(self) -> dict[str, ColumnType]:
        """The type of each column."""
        return {
            name: ColumnType.from_arrow(values.type)
            for name, values in self._columns.items()
        }

    @property
    def key(self) -> tuple[str, ...] | None:
        """The key columns of the table, ``None`` if the table has no key."""
        if self._key is None:
            return None
        return self._key.columns

    def column(self, name: str) -> pa.Array:
        """Get the data of a column.

        :raises NotFoundError: if the column does not exist.
        """
        try:
            return self._columns[name]
        except KeyError:
            raise NotFoundError(f"Column {name!r} not found") from None

    # Columns management

    def add_column(self, name: str, values: Any) -> None:
        """Append a new column to the table.

        A single value is repeated for all the rows.
        When the table has no columns, the new column
        decides how many rows the table has.

        :raises DuplicateNameError: if a column with the same name exists.
        :raises LengthMismatchError: if the values are not one per row.
        """
        if name in self._columns:
            raise DuplicateNameError(f"Column {name!r} already exists")

        if not self._columns:
            column = make_column([values] if is_scalar(values) else values)
            self._num_rows = len(column)
        else:
            column = as_column(values, self._num_rows)
        self._columns[name] = column

    def set_column(self, name: str, values: Any) -> None:
        """Add a column or replace the values of an existing one.

        This is the ``:=`` operator, the table is modified in place.
        If the column is one of the key columns, the rows
        are sorted again by the key.
        """
        if name not in self._columns:
            self.add_column(name, values)
            return

        self._columns[name] = as_column(values, self._num_rows)
        if self._key is not None and name in self._key.columns:
            logger.debug("Key column %r replaced, sorting by %s again", name, self._key)
            self.set_key(*self._key.columns)

    def update(self, name: str, value: Any, where: Expression | None = None) -> None:
        """Assign a value only to the rows matching a predicate.

        Rows where ``where`` is false or missing keep their value,
        when the column does not exist yet they get a missing value.

        >>> import pyarrow.compute as pc
        >>> from keytables.compute import col, FunctionCallExpression
        >>> t = Table({"age": [4, 30, 70]})
        >>> t.update("group", "child", where=FunctionCallExpression(pc.less, col("age"), 18))
        >>> t.to_pydict()
        {'age': [4, 30, 70], 'group': ['child', None, None]}

        :param name: The column to update.
        :param value: A single value, a sequence of values or an
                      expression computing the values.
        :param where: The predicate selecting the rows to update,
                      all rows when ``None``.
        """
        batch = self.to_batch()
        if isinstance(value, Expression):
            value = value.apply(batch)
        if where is None:
            self.set_column(name, value)
            return

        mask = where.apply(batch)
        if not pa.types.is_boolean(mask.type):
            raise TypeMismatchError(f"Update predicate {where} must return booleans")
        mask = pc.fill_null(mask, False)

        new_values = as_column(value, self._num_rows)
        old_values = self._columns.get(name)
        if old_values is None or pa.types.is_null(old_values.type):
            old_values = pa.nulls(self._num_rows, type=new_values.type)
        elif pa.types.is_null(new_values.type):
            new_values = pa.nulls(self._num_rows, type=old_values.type)
        elif new_values.type != old_values.type:
            old_type = ColumnType.from_arrow(old_values.type)
            new_type = ColumnType.from_arrow(new_values.type)
            if not (old_type.is_numeric and new_type.is_numeric):
                raise TypeMismatchError(
                    f"Can't assign {new_type.value} values to {old_type.value} column {name!r}"
                )
            try:
                new_values = new_values.cast(old_values.type)
            except pa.ArrowInvalid as err:
                raise TypeMismatchError(
                    f"Can't assign {new_type.value} values to {old_type.value} column {name!r}"
                ) from err

        self.set_column(name, pc.if_else(mask, new_values, old_values))

    def remove_column(self, name: str) -> None:
        """Remove a column from the table.

        Removing a key column removes the key of the table.

        :raises NotFoundError: if the column does not exist.
        """
        if name not in self._columns:
            raise NotFoundError(f"Column {name!r} not found")
        del self._columns[name]
        if self._key is not None and name in self._key.columns:
            logger.debug("Key column %r removed, dropping %s", name, self._key)
            self._key = None
        if not self._columns:
            self._num_rows = 0

    def rename_column(self, old: str, new: str) -> None:
        """Rename a column, keeping its position.

        :raises NotFoundError: if ``old`` does not exist.
        :raises DuplicateNameError: if ``new`` is already used by another column.
        """
        if old not in self._columns:
            raise NotFoundError(f"Column {old!r} not found")
        if old == new:
            return
        if new in self._columns:
            raise DuplicateNameError(f"Column {new!r} already exists")

        self._columns = {
            (new if name == old else name): values
            for name, values in self._columns.items()
        }
        if self._key is not None and old in self._key.columns:
            self._key = KeyIndex(
                tuple(new if c == old else c for c in self._key.columns),
                self._key.arrays,
            )

    def set_column_order(self, names: list[str]) -> None:
        """Move the given columns first, in the given order.

        Columns that are not listed keep their relative order after them.
        """
        for name in names:
            if name not in self._columns:
                raise NotFoundError(f"Column {name!r} not found")
        if len(set(names)) != len(names):
            raise DuplicateNameError(f"Columns listed more than once: {names}")

        order = list(names) + [n for n in self._columns if n not in names]
        self._columns = {name: self._columns[name] for name in order}

    def copy(self) -> Self:
        """Make an independent copy of the table.

        The copy has the same key. Arrow arrays are immutable,
        so the column data is shared, but changes to one
        of the two tables won't affect the other.
        """
        table = self.__class__()
        table._columns = dict(self._columns)
        table._num_rows = self._num_rows
        if self._key is not None:
            table._key = KeyIndex(self._key.columns, self._key.arrays)
        return table

    # Rows order and keys

    def _reorder(self, selection: RowSelection) -> None:
        for name, values in self._columns.items():
            self._columns[name] = values.take(selection.positions)

    def set_key(self, *columns: str) -> None:
        """Set the key of the table, sorting its rows in place.

        Rows are sorted in ascending order of the key columns,
        rows with the same key keep their relative order and
        missing values are placed last.

        :raises NotFoundError: if one of the columns does not exist.
        """
        if not columns:
            raise ValueError("At least one key column is required")
        for name in columns:
            self.column(name)

        self._reorder(KeyIndex.sort_order(self.to_batch(), columns))
        self._key = KeyIndex(columns, tuple(self._columns[name] for name in columns))
        logger.debug("Table keyed on %s", list(columns))

    def drop_key(self) -> None:
        """Remove the key from the table, the rows keep their order."""
        self._key = None

    def key_index(self) -> KeyIndex:
        """Get the key index, ensuring it can be used.

        :raises NotFoundError: if the table has no key.
        :raises StaleIndexError: if the key columns changed since the key was set.
        """
        if self._key is None:
            raise NotFoundError("Table has no key, use set_key() first")
        self._key.check(self._columns)
        return self._key

    def sort(
        self,
        keys: list[str],
        descending: list[bool] | None = None,
        missing_first: bool = False,
    ) -> None:
        """Sort the rows of the table in place.

        Missing values are placed last unless ``missing_first``
        is requested. The key of the table is removed,
        as the rows are no longer in key order.
        """
        self._reorder(
            sort_indices(self.to_batch(), keys, descending, missing_first=missing_first)
        )
        if self._key is not None:
            logger.debug("Rows reordered, dropping %s", self._key)
            self._key = None

    def order(
        self,
        keys: list[str],
        descending: list[bool] | None = None,
        missing_first: bool = True,
    ) -> Self:
        """Return a copy of the table with the rows sorted.

        Missing values are placed first unless ``missing_first=False``,
        which is the opposite of :meth:`sort`.
        """
        if descending is None:
            descending = [False] * len(keys)
        return self._run(
            SortNode(keys, descending, self._source(), missing_first=missing_first)
        )

    # Queries

    def _source(self) -> TableDataSource:
        return TableDataSource(self)

    def _run(self, plan: QueryPlanNode) -> Self:
        logger.debug("Running %s", plan)
        return self.__class__.from_arrow(plan.collect())

    def take(self, selection: RowSelection | list[int]) -> Self:
        """Return a new table with only the rows at the given positions."""
        if not isinstance(selection, RowSelection):
            selection = RowSelection(selection)
        return self.__class__.from_arrow(selection.take(self.to_batch()))

    def head(self, n: int = 6) -> Self:
        """Return a new table with the first ``n`` rows."""
        if n < 0:
            raise ValueError(f"Number of rows can't be negative, got {n}")
        return self.__class__.from_arrow(self.to_batch().slice(0, n))

    def filter(self, predicate: Expression) -> Self:
        """Return a new table with only the rows matching the predicate.

        :param predicate: The expression representing the predicate,
                          for example ``Age > 18``.
        """
        return self._run(FilterNode(predicate, self._source()))

    def select_rows(self, columns: list[str], values: tuple[Any, ...]) -> RowSelection:
        """Find the rows where ``columns`` are equal to ``values``.

        Uses a binary search when the columns are the first
        columns of the key, scans all rows otherwise.
        """
        return select_rows(self, columns, values)

    def lookup(
        self, *values: Any, nomatch: NoMatch | str | None = None, mult: str = "all"
    ) -> Self:
        """Return the rows whose key starts with ``values``.

        :param values: The values of the key columns, in order.
                       They can be fewer than the key columns.
        :param nomatch: ``"nullRow"`` to get one row of missing
                        values when no row matches, ``"omit"`` to get
                        no rows. Defaults to ``config.NOMATCH``.
        :param mult: ``"all"``, ``"first"`` or ``"last"`` of the matching rows.
        """
        return self._run(
            KeyLookupNode(values, self._source(), nomatch=nomatch, mult=mult)
        )

    def query(
        self,
        where: Expression | None = None,
        select: list[str] | None = None,
        project: dict[str, Expression] | None = None,
        by: list[str | Expression | Callable[[dict], Any]] | dict[str, Any] | None = None,
        aggregations: Mapping[str, Any] | Callable[[str], Any] | None = None,
        ordered: bool = False,
    ) -> Self:
        """Filter rows, then pick columns or group them (``dt[i, j, by]``).

        >>> from keytables.compute import CountAggregation
        >>> t = Table({"Sex": ["male", "female", "male"], "Age": [22, 38, 4]})
        >>> t.query(select=["Age"]).to_pydict()
        {'Age': [22, 38, 4]}
        >>> t.query(by=["Sex"], aggregations={"N": CountAggregation()}, ordered=True).to_pydict()
        {'Sex': ['female', 'male'], 'N': [1, 2]}

        :param where: Only keep the rows matching this predicate.
        :param select: The columns to keep, all when ``None``.
        :param project: New columns to compute as ``{name: Expression}``.
        :param by: Group the rows, see :meth:`group_by`.
        :param aggregations: The aggregations computed for each group,
                             can't be combined with ``select`` or ``project``.
        :param ordered: Sort the groups by key, see :meth:`group_by`.
        """
        if by is not None and aggregations is None:
            raise ValueError("Grouping requires the aggregations to compute")
        if aggregations is not None:
            if select is not None or project:
                raise ValueError("Aggregations can't be combined with select or project")
            return self.group_by(by, aggregations, where=where, ordered=ordered)

        plan: QueryPlanNode = self._source()
        if where is not None:
            plan = FilterNode(where, plan)
        if select is not None or project:
            plan = ProjectNode(select, project, plan)
        return self._run(plan)

    def group_by(
        self,
        by: list[str | Expression | Callable[[dict], Any]] | dict[str, Any] | None,
        aggregations: Mapping[str, Any] | Callable[[str], Any],
        where: Expression | None = None,
        ordered: bool = False,
        only_columns: list[str] | None = None,
    ) -> Self:
        """Group the rows and compute aggregations for each group.

        >>> from keytables.compute import CountAggregation
        >>> t = Table({"Sex": ["male", "female", "male", "male"]})
        >>> t.group_by(["Sex"], {"N": CountAggregation()}).to_pydict()
        {'Sex': ['male', 'female'], 'N': [3, 1]}

        :param by: The columns, expressions or row functions to group by.
                   ``None`` or ``[]`` aggregate all rows in a single group.
        :param aggregations: ``{name: Aggregation}``, or an aggregation
                             type to compute on every column of ``only_columns``.
        :param where: Only group the rows matching this predicate.
        :param ordered: Sort the groups by key (``keyby``) and key the
                        result on the grouping columns, otherwise groups
                        are in order of first appearance (``by``).
        :param only_columns: The columns the aggregations work on.
        """
        plan: QueryPlanNode = self._source()
        if where is not None:
            plan = FilterNode(where, plan)
        aggregate = AggregateNode(
            by or [],
            dict(aggregations) if isinstance(aggregations, Mapping) else aggregations,
            plan,
            ordered=ordered,
            only_columns=only_columns,
        )
        result = self._run(aggregate)
        if ordered and aggregate.keys:
            result.set_key(*aggregate.keys)
        return result

    def merge(
        self,
        other: "Table",
        on: list[str] | None = None,
        how: str = "inner",
        suffix: str | None = None,
    ) -> Self:
        """Join this table with another one.

        :param other: The right side of the join.
        :param on: The columns to join on, defaults to the key of this table.
        :param how: ``"inner"``, ``"left"``, ``"right"`` or ``"full"``.
        :param suffix: Appended to the names of ``other`` columns
                       that collide with the ones of this table.
        """
        if on is None:
            if self._key is None:
                raise NotFoundError("Table has no key, provide the join columns")
            on = list(self._key.columns)
        return self._run(
            JoinNode(on, self._source(), other._source(), how=how, suffix=suffix)
        )

    def lookup_join(
        self,
        other: "Table",
        on: list[str] | None = None,
        nomatch: NoMatch | str | None = NoMatch.NULL_ROW,
        mult: str = "first",
        suffix: str | None = None,
    ) -> Self:
        """Look up each row of ``other`` in this table (``self[other]``).

        The result has one row for each row of ``other``, in the same order.

        :param other: The table providing the key values to look up.
        :param on: The key columns, defaults to the key of this table.
        :param nomatch: What to emit for the rows of ``other`` not found.
        :param mult: Which of the matching rows to emit.
        :param suffix: Appended to the names of ``other`` columns
                       that collide with the ones of this table.
        """
        return self._run(
            LookupJoinNode(
                self._source(),
                other._source(),
                on=on,
                nomatch=nomatch,
                mult=mult,
                suffix=suffix,
            )
        )

    # Conversions

    def to_batch(self) -> pa.RecordBatch:
        """The data of the table as a :class:`pyarrow.RecordBatch`."""
        return pa.record_batch(list(self._columns.values()), names=list(self._columns))

    def to_arrow(self) -> pa.Table:
        """The data of the table as a :class:`pyarrow.Table`."""
        return pa.Table.from_batches([self.to_batch()])

    def to_pydict(self) -> dict[str, list]:
        return self.to_batch().to_pydict()

    def to_pylist(self) -> list[dict[str, Any]]:
        return self.to_batch().to_pylist()
