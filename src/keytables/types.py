"""Types of the data stored in KeyTables.

Every column of a :class:`keytables.Table` holds values of
a single type, with the exception of missing values (nulls)
that can appear in any column.

The supported types are described by :class:`ColumnType`,
the type of a column is decided once when the column
enters a table by :func:`make_column`, which converts
the data to the Arrow type of the column::

    int8, int16, int32, int64, uint8 ... -> int64
    float16, float32, float64 -> float64
    string, large_string, dictionary<string> -> string

>>> make_column([1, 2, None]).type
DataType(int64)
>>> ColumnType.of(1.5)
<ColumnType.FLOAT: 'float'>
"""

import enum
from typing import Any

import pyarrow as pa

from .errors import LengthMismatchError, TypeMismatchError


class ColumnType(enum.Enum):
    """The type of the values of a column."""

    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BOOLEAN = "boolean"
    MISSING = "missing"

    @property
    def arrow_type(self) -> pa.DataType:
        """The Arrow type used to store columns of this type."""
        return _ARROW_TYPES[self]

    @classmethod
    def from_arrow(cls, dtype: pa.DataType) -> "ColumnType":
        """Get the column type that can hold data of an Arrow type.

        :raises TypeMismatchError: if the Arrow type is not supported.
        """
        if pa.types.is_boolean(dtype):
            return cls.BOOLEAN
        elif pa.types.is_integer(dtype):
            return cls.INTEGER
        elif pa.types.is_floating(dtype):
            return cls.FLOAT
        elif pa.types.is_string(dtype) or pa.types.is_large_string(dtype):
            return cls.STRING
        elif pa.types.is_null(dtype):
            return cls.MISSING
        raise TypeMismatchError(f"Unsupported column type: {dtype}")

    @classmethod
    def of(cls, value: Any) -> "ColumnType":
        """Get the column type of a Python value.

        :raises TypeMismatchError: if the value is of an unsupported type.
        """
        if isinstance(value, pa.Scalar):
            value = value.as_py()
        if value is None:
            return cls.MISSING
        # bool is a subclass of int, so it has to be checked first.
        elif isinstance(value, bool):
            return cls.BOOLEAN
        elif isinstance(value, int):
            return cls.INTEGER
        elif isinstance(value, float):
            return cls.FLOAT
        elif isinstance(value, str):
            return cls.STRING
        raise TypeMismatchError(f"Unsupported value type: {type(value).__name__}")

    def accepts(self, value: Any) -> bool:
        """If a value can be compared with the values of a column of this type.

        Missing values are accepted by all types, numbers
        are accepted by both integer and float columns.
        """
        value_type = ColumnType.of(value)
        if value_type is ColumnType.MISSING or self is ColumnType.MISSING:
            return True
        if self.is_numeric:
            return value_type.is_numeric
        return value_type is self

    @property
    def is_numeric(self) -> bool:
        return self in (ColumnType.INTEGER, ColumnType.FLOAT)


_ARROW_TYPES = {
    ColumnType.INTEGER: pa.int64(),
    ColumnType.FLOAT: pa.float64(),
    ColumnType.STRING: pa.string(),
    ColumnType.BOOLEAN: pa.bool_(),
    ColumnType.MISSING: pa.null(),
}


def is_scalar(value: Any) -> bool:
    """If the value is a single value instead of a sequence of values."""
    return value is None or isinstance(value, (str, bytes, bool, int, float, pa.Scalar))


def make_column(values: Any) -> pa.Array:
    """Convert a sequence of values to the Arrow array of a column.

    Accepts any sequence that :func:`pyarrow.array` is able
    to convert, or Arrow arrays and chunked arrays.

    :raises TypeMismatchError: when the values are not all of the
                               same type or their type is not supported.
    """
    if isinstance(values, pa.ChunkedArray):
        values = values.combine_chunks()
    elif not isinstance(values, pa.Array):
        try:
            values = pa.array(values)
        except (pa.ArrowInvalid, pa.ArrowTypeError) as err:
            raise TypeMismatchError(
                f"Column values must all be of the same type: {err}"
            ) from err

    if pa.types.is_dictionary(values.type):
        values = values.dictionary_decode()

    target_type = ColumnType.from_arrow(values.type).arrow_type
    if values.type != target_type:
        try:
            values = values.cast(target_type)
        except pa.ArrowInvalid as err:
            raise TypeMismatchError(
                f"Unable to store {values.type} values as {target_type}: {err}"
            ) from err
    return values


def broadcast(value: Any, num_rows: int) -> pa.Array:
    """Build a column that repeats ``value`` for ``num_rows`` rows."""
    if isinstance(value, pa.Scalar):
        value = value.as_py()
    if value is None:
        return pa.nulls(num_rows)
    ColumnType.of(value)
    return make_column(pa.repeat(value, num_rows))


def as_column(value: Any, num_rows: int) -> pa.Array:
    """Make a column of ``num_rows`` rows out of a sequence or a single value.

    Single values are repeated for all rows.

    :raises LengthMismatchError: if a sequence has a different number of rows.
    """
    if is_scalar(value):
        return broadcast(value, num_rows)
    column = make_column(value)
    if len(column) != num_rows:
        raise LengthMismatchError(
            f"Column has {len(column)} rows, but the table has {num_rows} rows"
        )
    return column
