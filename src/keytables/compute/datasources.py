"""The leaves of query plans, nodes that read data.

Data sources emit what they read as Arrow record batches.
Most plans start from a :class:`TableDataSource`, reading
a :class:`keytables.Table`, but plain Arrow data and CSV
files can be read too.

Reading CSV files is not done by KeyTables itself,
it is delegated to the :mod:`pyarrow.csv` reader.
"""

from abc import abstractmethod
from typing import TYPE_CHECKING

import pyarrow as pa
import pyarrow.csv

from .base import QueryPlanNode

if TYPE_CHECKING:
    from ..table import Table


class DataSourceNode(QueryPlanNode):
    """Base class for nodes that load data from a source."""

    @abstractmethod
    def poll_schema(self) -> pa.Schema:
        """Poll the schema of the data source without loading its content."""
        ...


class TableDataSource(DataSourceNode):
    """Read the data of a :class:`keytables.Table`.

    The node takes a snapshot of the table columns
    each time its batches are consumed, so a plan
    always sees the table as it was when it started running.
    """

    def __init__(self, table: "Table") -> None:
        """
        :param table: The table to read.
        """
        self.table = table

    def __str__(self) -> str:
        return f"TableDataSource(columns={self.table.column_names}, rows={self.table.num_rows})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Emit the whole table as a single batch."""
        yield self.table.to_batch()

    def poll_schema(self) -> pa.Schema:
        """The schema of the table."""
        return self.table.to_batch().schema


class CSVDataSource(DataSourceNode):
    """Read a local CSV file.

    Column types are inferred by the Arrow reader,
    the file is parsed one block at a time.
    """

    def __init__(self, filename: str, block_size: int | None = None) -> None:
        """
        :param filename: The path of the CSV file.
        :param block_size: How many bytes are parsed in each block,
                           every block becomes a batch.
        """
        self.filename = filename
        self.block_size = block_size

    def __str__(self) -> str:
        return f"CSVDataSource({self.filename}, block_size={self.block_size})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Parse the file and emit a batch for each block."""
        with pa.csv.open_csv(
            self.filename, read_options=pa.csv.ReadOptions(block_size=self.block_size)
        ) as reader:
            empty = True
            for batch in reader:
                empty = False
                yield batch
            if empty:
                # Files with only the header still have a schema.
                yield pa.RecordBatch.from_pylist([], schema=reader.schema)

    def poll_schema(self) -> pa.Schema:
        """Read the header of the file to know its schema."""
        with pa.csv.open_csv(self.filename) as reader:
            return reader.schema


class PyArrowTableDataSource(DataSourceNode):
    """Read Arrow data already in memory.

    Accepts both a :class:`pyarrow.Table` and a :class:`pyarrow.RecordBatch`.
    """

    def __init__(self, table: pa.Table | pa.RecordBatch) -> None:
        """
        :param table: The Arrow data to read.
        """
        self.table = table
        self.is_recordbatch = isinstance(table, pa.RecordBatch)

    def __str__(self) -> str:
        return f"PyArrowTableDataSource(columns={self.table.column_names}, rows={self.table.num_rows})"

    def batches(self) -> QueryPlanNode.RecordBatchesGenerator:
        """Emit the batches of the Arrow data."""
        if self.is_recordbatch:
            yield self.table
            return

        batches = self.table.to_batches()
        if not batches:
            yield pa.RecordBatch.from_pylist([], schema=self.table.schema)
        yield from batches

    def poll_schema(self) -> pa.Schema:
        """The schema of the Arrow data."""
        return self.table.schema
