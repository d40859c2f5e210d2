import pyarrow as pa
import pytest

from keytables import Table, config
from keytables.compute import PyArrowTableDataSource
from keytables.compute.join import JoinNode, LookupJoinNode, join, lookup_join
from keytables.compute.datasources import TableDataSource
from keytables.errors import DuplicateNameError, NotFoundError, TypeMismatchError

PASSENGERS = pa.record_batch(
    {
        "id": pa.array([1, 2, 3, 4]),
        "name": pa.array(["Braund", "Cumings", "Heikkinen", "Futrelle"]),
    }
)

FARES = pa.record_batch(
    {
        "id": pa.array([3, 4, 5, 6]),
        "fare": pa.array([25, 30, 35, 40]),
    }
)


@pytest.fixture
def left_data_source():
    return PyArrowTableDataSource(PASSENGERS)


@pytest.fixture
def right_data_source():
    return PyArrowTableDataSource(FARES)


@pytest.mark.parametrize(
    "how, expected_output",
    [
        (
            "inner",
            {"id": [3, 4], "name": ["Heikkinen", "Futrelle"], "fare": [25, 30]},
        ),
        (
            "left",
            {
                "id": [1, 2, 3, 4],
                "name": ["Braund", "Cumings", "Heikkinen", "Futrelle"],
                "fare": [None, None, 25, 30],
            },
        ),
        (
            "right",
            {
                "id": [3, 4, 5, 6],
                "name": ["Heikkinen", "Futrelle", None, None],
                "fare": [25, 30, 35, 40],
            },
        ),
        (
            "full",
            {
                "id": [1, 2, 3, 4, 5, 6],
                "name": ["Braund", "Cumings", "Heikkinen", "Futrelle", None, None],
                "fare": [None, None, 25, 30, 35, 40],
            },
        ),
    ],
)
def test_join_node(left_data_source, right_data_source, how, expected_output):
    join_node = JoinNode(["id"], left_data_source, right_data_source, how=how)
    result_batches = list(join_node.batches())

    assert len(result_batches) == 1
    assert result_batches[0].to_pydict() == expected_output


def test_join_node_str(left_data_source, right_data_source):
    join_node = JoinNode(["id"], left_data_source, right_data_source, how="left")
    assert str(join_node) == (
        "JoinNode(on=['id'], how=left, "
        "left=PyArrowTableDataSource(columns=['id', 'name'], rows=4), "
        "right=PyArrowTableDataSource(columns=['id', 'fare'], rows=4))"
    )


def test_join_invalid_type(left_data_source, right_data_source):
    with pytest.raises(ValueError):
        JoinNode(["id"], left_data_source, right_data_source, how="cross")


DUPLICATES_LEFT = pa.record_batch({"k": [1, 1, 2, None], "l": ["a", "b", "c", "d"]})
DUPLICATES_RIGHT = pa.record_batch({"k": [1, 1, 1, 3, None], "r": [10, 20, 30, 40, 50]})


def test_join_cardinality():
    inner = join(DUPLICATES_LEFT, DUPLICATES_RIGHT, ["k"], how="inner")
    left = join(DUPLICATES_LEFT, DUPLICATES_RIGHT, ["k"], how="left")
    right = join(DUPLICATES_LEFT, DUPLICATES_RIGHT, ["k"], how="right")
    full = join(DUPLICATES_LEFT, DUPLICATES_RIGHT, ["k"], how="full")

    # Two left rows and three right rows share k=1
    assert inner.num_rows == 2 * 3
    assert left.num_rows >= DUPLICATES_LEFT.num_rows
    assert full.num_rows == left.num_rows + right.num_rows - inner.num_rows


def test_join_cross_product_order():
    inner = join(DUPLICATES_LEFT, DUPLICATES_RIGHT, ["k"])
    assert inner.to_pydict() == {
        "k": [1, 1, 1, 1, 1, 1],
        "l": ["a", "a", "a", "b", "b", "b"],
        "r": [10, 20, 30, 10, 20, 30],
    }


def test_join_missing_keys_never_match():
    left = join(DUPLICATES_LEFT, DUPLICATES_RIGHT, ["k"], how="left")
    assert left.to_pylist()[-1] == {"k": None, "l": "d", "r": None}
    full = join(DUPLICATES_LEFT, DUPLICATES_RIGHT, ["k"], how="full")
    assert full.to_pylist()[-2:] == [
        {"k": 3, "l": None, "r": 40},
        {"k": None, "l": None, "r": 50},
    ]


def test_join_multiple_columns():
    left = pa.record_batch({"a": ["x", "x", "y"], "b": [1, 2, 1], "v": [1, 2, 3]})
    right = pa.record_batch({"b": [1, 1], "a": ["y", "x"], "w": [10, 20]})
    assert join(left, right, ["a", "b"]).to_pydict() == {
        "a": ["x", "y"],
        "b": [1, 1],
        "v": [1, 3],
        "w": [20, 10],
    }


def test_join_column_collisions():
    left = pa.record_batch({"id": [1], "value": ["l"]})
    right = pa.record_batch({"id": [1], "value": ["r"]})
    assert join(left, right, ["id"]).column_names == ["id", "value", "value_right"]
    assert join(left, right, ["id"], suffix="_r").column_names == ["id", "value", "value_r"]

    right = pa.record_batch({"id": [1], "value": ["r"], "value_right": ["x"]})
    with pytest.raises(DuplicateNameError):
        join(pa.record_batch({"id": [1], "value": ["l"], "value_right": ["y"]}), right, ["id"])


def test_join_suffix_is_configurable(monkeypatch):
    monkeypatch.setattr(config, "JOIN_SUFFIX", ".y")
    left = pa.record_batch({"id": [1], "value": ["l"]})
    right = pa.record_batch({"id": [1], "value": ["r"]})
    assert join(left, right, ["id"]).column_names == ["id", "value", "value.y"]


def test_join_errors():
    with pytest.raises(NotFoundError):
        join(PASSENGERS, FARES, ["name"])
    with pytest.raises(TypeMismatchError):
        join(PASSENGERS, pa.record_batch({"id": ["3"]}), ["id"])
    with pytest.raises(ValueError):
        join(PASSENGERS, FARES, [])


def test_table_merge_on_key():
    people = Table.from_arrow(PASSENGERS)
    ages = Table.from_arrow(FARES)
    with pytest.raises(NotFoundError):
        people.merge(ages)

    people.set_key("id")
    result = people.merge(ages, how="left")
    assert result.to_pydict()["fare"] == [None, None, 25, 30]
    assert people.column_names == ["id", "name"]


LOOKUP_FARES = {"Pclass": [3, 1, 2, 1], "Deck": ["F", "B", "D", "C"], "fare": [7.5, 80.0, 20.0, 90.0]}
LOOKUP_TICKETS = {"Pclass": [1, 4, 3, 1], "passenger": ["a", "b", "c", "d"]}


@pytest.mark.parametrize("keyed", [True, False])
def test_lookup_join_one_row_per_right_row(keyed):
    fares = Table(LOOKUP_FARES)
    if keyed:
        fares.set_key("Pclass")
    result = fares.lookup_join(Table(LOOKUP_TICKETS), on=["Pclass"])

    assert result.to_pydict() == {
        "Pclass": [1, 4, 3, 1],
        "Deck": ["B", None, "F", "B"],
        "fare": [80.0, None, 7.5, 80.0],
        "passenger": ["a", "b", "c", "d"],
    }


def test_lookup_join_differs_from_inner_join():
    fares = Table(LOOKUP_FARES)
    fares.set_key("Pclass")
    tickets = Table(LOOKUP_TICKETS)

    assert fares.lookup_join(tickets).num_rows == tickets.num_rows
    # k=1 matches two fares for two tickets, k=3 one for one
    assert fares.merge(tickets, on=["Pclass"]).num_rows == 2 * 2 + 1


def test_lookup_join_omit_and_mult():
    fares = Table(LOOKUP_FARES)
    fares.set_key("Pclass")
    tickets = Table(LOOKUP_TICKETS)

    omitted = fares.lookup_join(tickets, nomatch="omit")
    assert omitted["passenger"].to_pylist() == ["a", "c", "d"]

    everything = fares.lookup_join(tickets, mult="all")
    assert everything["passenger"].to_pylist() == ["a", "a", "b", "c", "d", "d"]
    assert everything["Deck"].to_pylist() == ["B", "C", None, "F", "B", "C"]

    last = fares.lookup_join(tickets, mult="last")
    assert last["Deck"].to_pylist() == ["C", None, "F", "C"]


def test_lookup_join_missing_key_matches_missing():
    left = Table({"k": ["a", None], "v": [1, 2]})
    right = pa.record_batch({"k": pa.array([None, "b"], type=pa.string())})
    assert lookup_join(left, right, on=["k"]).to_pydict() == {
        "k": [None, "b"],
        "v": [2, None],
    }


def test_lookup_join_requires_key_or_columns():
    with pytest.raises(NotFoundError):
        Table(LOOKUP_FARES).lookup_join(Table(LOOKUP_TICKETS))


def test_lookup_join_node():
    fares = Table(LOOKUP_FARES)
    fares.set_key("Pclass")
    node = LookupJoinNode(TableDataSource(fares), PyArrowTableDataSource(pa.record_batch({"Pclass": [2]})))
    assert node.collect().to_pydict() == {"Pclass": [2], "Deck": ["D"], "fare": [20.0]}
