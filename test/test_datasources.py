import os
import tempfile

import pyarrow as pa
import pyarrow.csv as csv
import pytest

from keytables import Table
from keytables.compute.datasources import (
    CSVDataSource,
    PyArrowTableDataSource,
    TableDataSource,
)

PORTS = pa.table(
    {"Code": ["C", "Q", "S"], "Passengers": [168, 77, 644], "Survived": [93, 30, 217]}
)

PORTS_CSV = tempfile.NamedTemporaryFile(delete=False, mode="w+")


def setup_module():
    csv.write_csv(PORTS, PORTS_CSV.name)
    PORTS_CSV.close()


def teardown_module():
    os.unlink(PORTS_CSV.name)


@pytest.mark.parametrize(
    "data_source_class, init_args, expected_str",
    [
        (
            CSVDataSource,
            (PORTS_CSV.name, None),
            f"CSVDataSource({PORTS_CSV.name}, block_size=None)",
        ),
        (
            PyArrowTableDataSource,
            (PORTS,),
            "PyArrowTableDataSource(columns=['Code', 'Passengers', 'Survived'], rows=3)",
        ),
        (
            PyArrowTableDataSource,
            (PORTS.to_batches()[0],),
            "PyArrowTableDataSource(columns=['Code', 'Passengers', 'Survived'], rows=3)",
        ),
        (
            TableDataSource,
            (Table.from_arrow(PORTS),),
            "TableDataSource(columns=['Code', 'Passengers', 'Survived'], rows=3)",
        ),
    ],
)
def test_str(data_source_class, init_args, expected_str):
    assert str(data_source_class(*init_args)) == expected_str


@pytest.mark.parametrize(
    "data_source_class, init_args, expected_batches",
    [
        (CSVDataSource, (PORTS_CSV.name, None), PORTS.to_batches()),
        (
            PyArrowTableDataSource,
            (PORTS,),
            PORTS.to_batches(),
        ),
        (
            PyArrowTableDataSource,
            (PORTS.to_batches()[0],),
            PORTS.to_batches(),
        ),
        (
            TableDataSource,
            (Table.from_arrow(PORTS),),
            PORTS.to_batches(),
        ),
    ],
)
def test_batches(data_source_class, init_args, expected_batches):
    batches = list(data_source_class(*init_args).batches())
    assert [b.to_pydict() for b in batches] == [b.to_pydict() for b in expected_batches]
    assert all(b.schema == PORTS.schema for b in batches)


def test_poll_schema():
    assert CSVDataSource(PORTS_CSV.name).poll_schema() == PORTS.schema
    table = Table.from_arrow(PORTS)
    assert TableDataSource(table).poll_schema() == PORTS.schema


def test_table_source_reads_current_data():
    table = Table({"a": [1, 2]})
    source = TableDataSource(table)
    table.set_column("a", [3, 4])
    assert source.collect().to_pydict() == {"a": [3, 4]}


def test_empty_pyarrow_table():
    empty = pa.table({"a": pa.array([], type=pa.int64())})
    batch = PyArrowTableDataSource(empty).collect()
    assert batch.num_rows == 0
    assert batch.schema.names == ["a"]


def test_read_csv_into_table():
    table = Table.read_csv(PORTS_CSV.name)
    assert table.to_pydict() == PORTS.to_pydict()
    assert table.key is None
