"""Key-indexed tables built on top of the KeyTables compute engine.

A :class:`Table` holds data in named columns, all with the same
number of rows, and it's modified in place (by reference) rather
than producing a new copy for each change.

A table can be **keyed** on some of its columns, which sorts
its rows by those columns and allows to find rows by key
with a binary search instead of checking every row.

Queries on tables (filtering, grouping, joining) are executed
by building a plan of :mod:`keytables.compute` nodes and running it.

>>> from keytables import Table
>>> from keytables.compute import CountAggregation
>>> passengers = Table({
...     "Sex": ["male", "female", "male", "male"],
...     "Pclass": [3, 1, 3, 1],
... })
>>> passengers.group_by(["Sex"], {"N": CountAggregation()}).to_pydict()
{'Sex': ['male', 'female'], 'N': [3, 1]}
>>> passengers.set_key("Sex", "Pclass")
>>> passengers.lookup("male", 3).to_pydict()
{'Sex': ['male', 'male'], 'Pclass': [3, 3]}
"""

from .table import Table

__all__ = ("Table",)
