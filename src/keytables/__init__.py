"""KeyTables

An in-memory, key-indexed table engine built from scratch
for learning and teaching purposes.

KeyTables shows how the tables of data manipulation libraries
work under the hood: tables that are modified by reference,
keys that keep the rows sorted to find them with binary search,
grouping and aggregation, relational and lookup joins.

The engine is constituted by multiple components, each isolated within its own
package or module and each self documented in literate programming style:

* The Compute Engine (:mod:`keytables.compute`), in charge of executing
  queries on the data through plans of nodes.
* The Table API (:mod:`keytables.table`), the mutable key-indexed table
  that users work with.
* The column types (:mod:`keytables.types`) and the errors
  (:mod:`keytables.errors`) shared by all components.

For the user guide and code documentation of each component, refer to the
component itself.
"""

from . import compute, errors
from .compute import NoMatch, col, lit
from .table import Table
from .types import ColumnType

__all__ = ("compute", "errors", "Table", "ColumnType", "NoMatch", "col", "lit")
