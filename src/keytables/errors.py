"""Errors raised by the KeyTables engine.

All the errors are subclasses of :class:`KeyTablesError`, so callers
can catch any failure of the engine with a single ``except`` clause.

Most errors also inherit from the builtin exception that
better describes them, so that code which is not aware of
KeyTables can still handle them::

    KeyTablesError
     ├── NotFoundError (KeyError)
     ├── LengthMismatchError (ValueError)
     ├── DuplicateNameError (ValueError)
     ├── EmptyGroupError (ValueError)
     ├── TypeMismatchError (TypeError)
     └── StaleIndexError

Errors are always reported to the caller of the operation
that failed, no operation is retried as they are all deterministic.
"""


class KeyTablesError(Exception):
    """Base class for all errors raised by KeyTables."""

    pass


class NotFoundError(KeyTablesError, KeyError):
    """A column or a key that was referenced does not exist."""

    def __str__(self) -> str:
        # KeyError would otherwise quote the message.
        return str(self.args[0]) if self.args else ""


class LengthMismatchError(KeyTablesError, ValueError):
    """A column does not have the same number of rows of the table."""

    pass


class DuplicateNameError(KeyTablesError, ValueError):
    """A column was added or renamed to a name that is already in use."""

    pass


class TypeMismatchError(KeyTablesError, TypeError):
    """Values of incompatible types were compared, aggregated or stored."""

    pass


class StaleIndexError(KeyTablesError):
    """The key index no longer reflects the data of the table.

    This happens when the key columns of a table were replaced
    or its rows changed without going through the :class:`keytables.Table`
    methods, which keep the index up to date.
    """

    pass


class EmptyGroupError(KeyTablesError, ValueError):
    """An aggregation that does not accept empty input got an empty group."""

    pass
