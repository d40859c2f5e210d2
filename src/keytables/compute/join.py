"""Query plan nodes that implement join operations.

Joins combine the rows of two tables that have the same
values in one or more columns (the join key).

Relational joins
================

Provided by :class:`JoinNode` and :func:`join`, they follow
the relational semantics:

* ``inner`` only emits rows that have a match in both tables.
* ``left`` emits every row of the left table at least once,
  rows without a match get missing values for the right columns.
* ``right`` is the same, but for every row of the right table.
* ``full`` emits every row of both tables at least once.

When multiple rows share the same key on both sides,
every left row is combined with every right row (cross product).
Missing key values never match anything.

>>> import pyarrow as pa
>>> left = pa.record_batch({"id": [1, 2, 3], "name": ["Alice", "Bob", "Charlie"]})
>>> right = pa.record_batch({"id": [3, 2, 2], "age": [25, 30, 31]})
>>> join(left, right, ["id"], how="inner").to_pydict()
{'id': [2, 2, 3], 'name': ['Bob', 'Bob', 'Charlie'], 'age': [30, 31, 25]}
>>> join(left, right, ["id"], how="left").to_pydict()
{'id': [1, 2, 2, 3], 'name': ['Alice', 'Bob', 'Bob', 'Charlie'], 'age': [None, 30, 31, 25]}

Lookup joins
============

Provided by :class:`LookupJoinNode` and :func:`lookup_join`, they
are the ``L[R]`` form of joins: every row of ``R`` is used as key values
to look up rows in ``L``, as if ``L.lookup(...)`` was called for each row.

The result has exactly one row for each row of ``R``, in the same order,
even when the key values were not found in ``L``.
When ``L`` is keyed on the join columns, each lookup is a binary search.
"""

import logging
import math
from typing import TYPE_CHECKING

import pyarrow as pa
import pyarrow.compute as pc

from .. import config
from ..errors import DuplicateNameError, NotFoundError, TypeMismatchError
from .aggregate import partition
from .base import QueryPlanNode
from .keyindex import NoMatch, apply_mult, select_rows

if TYPE_CHECKING:
    from ..table import Table
    from .datasources import TableDataSource

logger = logging.getLogger(__name__)

JOIN_TYPES = ("inner", "left", "right", "full")


def _matchable(key: tuple) -> bool:
    """Keys with missing or NaN values can't be equal to any other key."""
    return not any(
        v is None or (isinstance(v, float) and math.isnan(v)) for v in key
    )


def _key_rows(batch: pa.RecordBatch, on: list[str]) -> list[tuple]:
    return list(zip(*(batch.column(name).to_pylist() for name in on)))


def _probe_index(batch: pa.RecordBatch, on: list[str]) -> dict[tuple, list[int]]:
    """Map each key of ``batch`` to the positions of the rows having it."""
    return {
        key: rows.to_pylist()
        for key, rows in partition(batch, on).items()
        if _matchable(key)
    }


def _check_join_columns(
    left: pa.RecordBatch, right: pa.RecordBatch, on: list[str]
) -> None:
    if not on:
        raise ValueError("At least one join column is required")
    for name in on:
        for side, batch in (("left", left), ("right", right)):
            if name not in batch.schema.names:
                raise NotFoundError(f"Join column {name!r} not found in {side} table")
        ltype = left.column(name).type
        rtype = right.column(name).type
        if ltype != rtype:
            raise TypeMismatchError(
                f"Join column {name!r} is {ltype} on the left and {rtype} on the right"
            )


def match_rows(
    left: pa.RecordBatch, right: pa.RecordBatch, on: list[str], how: str = "inner"
) -> tuple[list[int | None], list[int | None]]:
    """Compute the pairs of rows that are joined together.

    Returns the positions of the left rows and of the right rows,
    ``None`` marks that the row has no counterpart.
    """
    if how not in JOIN_TYPES:
        raise ValueError(f"Join type must be one of {JOIN_TYPES}, got {how!r}")

    left_rows: list[int | None] = []
    right_rows: list[int | None] = []

    if how == "right":
        left_index = _probe_index(left, on)
        for ridx, key in enumerate(_key_rows(right, on)):
            matches = left_index.get(key, []) if _matchable(key) else []
            for lidx in matches:
                left_rows.append(lidx)
                right_rows.append(ridx)
            if not matches:
                left_rows.append(None)
                right_rows.append(ridx)
        return left_rows, right_rows

    right_index = _probe_index(right, on)
    matched_right = set()
    for lidx, key in enumerate(_key_rows(left, on)):
        matches = right_index.get(key, []) if _matchable(key) else []
        for ridx in matches:
            left_rows.append(lidx)
            right_rows.append(ridx)
            matched_right.add(ridx)
        if not matches and how in ("left", "full"):
            left_rows.append(lidx)
            right_rows.append(None)

    if how == "full":
        for ridx in range(right.num_rows):
            if ridx not in matched_right:
                left_rows.append(None)
                right_rows.append(ridx)
    return left_rows, right_rows


def _combine(
    columns: dict[str, pa.Array],
    batch: pa.RecordBatch,
    indices: pa.Array,
    skip: list[str],
    suffix: str,
) -> None:
    """Add the columns of ``batch`` taken at ``indices`` to ``columns``."""
    for name in batch.schema.names:
        if name in skip:
            continue
        new_name = name
        if new_name in columns:
            new_name = name + suffix
            if new_name in columns:
                raise DuplicateNameError(f"Join produces column {new_name!r} twice")
        columns[new_name] = batch.column(name).take(indices)


def join(
    left: pa.RecordBatch,
    right: pa.RecordBatch,
    on: list[str],
    how: str = "inner",
    suffix: str | None = None,
) -> pa.RecordBatch:
    """Join two batches on the ``on`` columns.

    The result contains the join columns first, then the other columns
    of the left batch and then the other columns of the right batch.
    Right columns with the same name of a left column get ``suffix``
    appended to their name.

    :param left: The left side of the join.
    :param right: The right side of the join.
    :param on: The columns both sides must have equal.
    :param how: One of ``inner``, ``left``, ``right``, ``full``.
    :param suffix: Defaults to ``config.JOIN_SUFFIX``.
    """
    on = list(on)
    suffix = suffix if suffix is not None else config.JOIN_SUFFIX
    _check_join_columns(left, right, on)

    left_rows, right_rows = match_rows(left, right, on, how)
    logger.debug(
        "%s join of %d and %d rows produced %d rows",
        how, left.num_rows, right.num_rows, len(left_rows),
    )
    left_indices = pa.array(left_rows, type=pa.int64())
    right_indices = pa.array(right_rows, type=pa.int64())

    columns: dict[str, pa.Array] = {}
    for name in on:
        # take() emits missing values for missing indices,
        # so the key is taken from whichever side has the row.
        columns[name] = pc.coalesce(
            left.column(name).take(left_indices), right.column(name).take(right_indices)
        )
    _combine(columns, left, left_indices, on, suffix)
    _combine(columns, right, right_indices, on, suffix)
    return pa.record_batch(list(columns.values()), names=list(columns))


class JoinNode(QueryPlanNode):
    """Join two data sources.

    Supports inner, left, right and full joins,
    see :func:`join` for the details.

    The join is performed by building an index of the rows
    of one side, mapping each key to the positions of the rows
    having it, and then going through the rows of the other side
    looking up their key in the index::

        left:                 right:
        +----+--------+       +----+-----+
        | id | name   |       | id | age |
        +----+--------+       +----+-----+
        | 1  | Alice  |       | 3  | 25  |
        | 2  | Bob    |       | 2  | 30  |
        | 3  | Charlie|       +----+-----+
        +----+--------+

        index of right: {3: [0], 2: [1]}

        left row 0, id=1 -> no match
        left row 1, id=2 -> right row 1
        left row 2, id=3 -> right row 0

    The pairs of row positions are then used to take
    the values of the columns from both sides::

        +----+--------+-----+
        | id | name   | age |
        +----+--------+-----+
        | 2  | Bob    | 30  |
        | 3  | Charlie| 25  |
        +----+--------+-----+

    """

    def __init__(
        self,
        on: list[str],
        left_child: QueryPlanNode,
        right_child: QueryPlanNode,
        how: str = "inner",
        suffix: str | None = None,
    ) -> None:
        """
        :param on: The columns to join on, both sides must have them.
        :param left_child: The left source of data to join.
        :param right_child: The right source of data to join.
        :param how: One of ``inner``, ``left``, ``right``, ``full``.
        :param suffix: Appended to right columns colliding with left ones.
        """
        if how not in JOIN_TYPES:
            raise ValueError(f"Join type must be one of {JOIN_TYPES}, got {how!r}")
        self.on = list(on)
        self.how = how
        self.suffix = suffix
        self.left_child = left_child
        self.right_child = right_child

    def __str__(self) -> str:
        return (
            f"JoinNode(on={self.on}, how={self.how}, "
            f"left={self.left_child}, right={self.right_child})"
        )

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Perform the join.

        Accumulates all rows of both children to
        perform the join operation.
        """
        yield join(
            self.left_child.collect(),
            self.right_child.collect(),
            self.on,
            how=self.how,
            suffix=self.suffix,
        )


def lookup_join(
    left: "Table",
    right: pa.RecordBatch,
    on: list[str] | None = None,
    nomatch: NoMatch | str | None = NoMatch.NULL_ROW,
    mult: str = "first",
    suffix: str | None = None,
) -> pa.RecordBatch:
    """Use each row of ``right`` to look up rows in ``left``.

    >>> from keytables import Table
    >>> import pyarrow as pa
    >>> fares = Table({"Pclass": [3, 1, 2], "fare": [7.5, 80.0, 20.0]})
    >>> fares.set_key("Pclass")
    >>> tickets = pa.record_batch({"Pclass": [1, 1, 4], "passenger": ["a", "b", "c"]})
    >>> lookup_join(fares, tickets).to_pydict()
    {'Pclass': [1, 1, 4], 'fare': [80.0, 80.0, None], 'passenger': ['a', 'b', 'c']}

    :param left: The table where rows are looked up.
    :param right: The rows providing the key values.
    :param on: The key columns, defaults to the key of ``left``.
    :param nomatch: What to emit for rows of ``right`` that don't match,
                    one missing-filled row (``nullRow``) or nothing (``omit``).
    :param mult: Which of the matching rows of ``left`` to emit,
                 with ``"all"`` a row of ``right`` can produce
                 more than one row.
    :param suffix: Appended to right columns colliding with left ones.
    """
    if on is None:
        if left.key is None:
            raise NotFoundError("The left table has no key, provide the join columns")
        on = list(left.key)
    on = list(on)
    nomatch = NoMatch(nomatch or config.NOMATCH)
    suffix = suffix if suffix is not None else config.JOIN_SUFFIX

    left_batch = left.to_batch()
    _check_join_columns(left_batch, right, on)

    left_rows: list[int | None] = []
    right_rows: list[int | None] = []
    for ridx, values in enumerate(_key_rows(right, on)):
        selection = apply_mult(select_rows(left, on, values), mult)
        for lidx in selection:
            left_rows.append(lidx)
            right_rows.append(ridx)
        if not len(selection) and nomatch is NoMatch.NULL_ROW:
            left_rows.append(None)
            right_rows.append(ridx)
    logger.debug(
        "Looked up %d rows into %d rows, produced %d rows",
        right.num_rows, left_batch.num_rows, len(left_rows),
    )

    left_indices = pa.array(left_rows, type=pa.int64())
    right_indices = pa.array(right_rows, type=pa.int64())
    columns: dict[str, pa.Array] = {}
    for name in left_batch.schema.names:
        if name in on:
            # The key values come from the rows that were looked up.
            columns[name] = right.column(name).take(right_indices)
        else:
            columns[name] = left_batch.column(name).take(left_indices)
    _combine(columns, right, right_indices, on, suffix)
    return pa.record_batch(list(columns.values()), names=list(columns))


class LookupJoinNode(QueryPlanNode):
    """Look up the rows of a child node into a table.

    The ``L[R]`` join, see :func:`lookup_join`.
    """

    def __init__(
        self,
        left: "TableDataSource",
        right_child: QueryPlanNode,
        on: list[str] | None = None,
        nomatch: NoMatch | str | None = NoMatch.NULL_ROW,
        mult: str = "first",
        suffix: str | None = None,
    ) -> None:
        """
        :param left: The source of the table where rows are looked up.
        :param right_child: The node emitting the rows to look up.
        :param on: The key columns, defaults to the key of the left table.
        :param nomatch: What to emit for rows that don't match.
        :param mult: Which of the matching rows to emit.
        :param suffix: Appended to right columns colliding with left ones.
        """
        self.left = left
        self.right_child = right_child
        self.on = on
        self.nomatch = nomatch
        self.mult = mult
        self.suffix = suffix

    def __str__(self) -> str:
        return (
            f"LookupJoinNode(on={self.on}, mult={self.mult}, "
            f"left={self.left}, right={self.right_child})"
        )

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Look up every row emitted by the right child."""
        yield lookup_join(
            self.left.table,
            self.right_child.collect(),
            on=self.on,
            nomatch=self.nomatch,
            mult=self.mult,
            suffix=self.suffix,
        )
