"""The KeyTables compute engine.

The methods of :class:`keytables.Table` don't process
the data themselves, they build a query plan out of the
nodes of this package and run it.

Data flows between nodes as :class:`pyarrow.RecordBatch`,
each node receives the batches of its children and emits
new batches::

    TableDataSource --(batch)--> FilterNode --(batch)--> AggregateNode --> result

Plans can also be built by hand, starting from one or more
data source nodes, which is useful to work on Arrow data
or CSV files without loading them into a table first:

>>> import pyarrow as pa
>>> import pyarrow.compute as pc
>>> from keytables.compute import col, PyArrowTableDataSource
>>> from keytables.compute import AggregateNode, CountAggregation
>>> from keytables.compute import FilterNode, FunctionCallExpression
>>> passengers = pa.table({
...    "Sex": ["male", "female", "female", "male"],
...    "Age": [22, 38, 26, 4],
... })
>>> query = AggregateNode(
...     ["Sex"],
...     {"N": CountAggregation()},
...     FilterNode(
...         FunctionCallExpression(pc.greater_equal, col("Age"), 18),
...         PyArrowTableDataSource(passengers),
...     ),
... )
>>> query.collect().to_pydict()
{'Sex': ['male', 'female'], 'N': [1, 2]}

Nodes are described by their ``str``, which makes it easy
to see how a query was planned:

>>> print(FilterNode(FunctionCallExpression(pc.greater, col("Age"), 18),
...                  PyArrowTableDataSource(passengers)))
FilterNode(filter=pyarrow.compute.greater(ColumnRef(Age),18), child=PyArrowTableDataSource(columns=['Sex', 'Age'], rows=4))
"""

from .aggregate import (
    AggregateNode,
    CountAggregation,
    FirstAggregation,
    FunctionAggregation,
    LastAggregation,
    MaxAggregation,
    MeanAggregation,
    MinAggregation,
    SumAggregation,
    partition,
)
from .base import ColumnRef, Literal, RowSelection, col, lit
from .datasources import CSVDataSource, PyArrowTableDataSource, TableDataSource
from .expressions import FunctionCallExpression, RowExpression
from .filtering import FilterNode, scan
from .join import JoinNode, LookupJoinNode, join, lookup_join
from .keyindex import KeyIndex, KeyLookupNode, NoMatch, lookup, select_rows
from .selection import ProjectNode
from .sorting import SortNode, sort_indices

__all__ = (
    "CSVDataSource",
    "PyArrowTableDataSource",
    "TableDataSource",
    "FilterNode",
    "FunctionCallExpression",
    "RowExpression",
    "col",
    "lit",
    "ColumnRef",
    "Literal",
    "RowSelection",
    "SortNode",
    "ProjectNode",
    "KeyIndex",
    "KeyLookupNode",
    "NoMatch",
    "JoinNode",
    "LookupJoinNode",
    "AggregateNode",
    "CountAggregation",
    "FirstAggregation",
    "FunctionAggregation",
    "LastAggregation",
    "MaxAggregation",
    "MeanAggregation",
    "MinAggregation",
    "SumAggregation",
    "join",
    "lookup",
    "lookup_join",
    "partition",
    "scan",
    "select_rows",
    "sort_indices",
)
