import itertools

import pyarrow as pa
import pytest

from keytables import NoMatch, Table, config
from keytables.compute.base import RowSelection
from keytables.compute.filtering import key_equality, scan
from keytables.compute.keyindex import KeyIndex, lookup, null_row, sort_value
from keytables.errors import NotFoundError, StaleIndexError, TypeMismatchError

PASSENGERS = {
    "Sex": ["male", "female", "male", None, "female", "male"],
    "Pclass": [3, 1, 1, 2, None, 3],
    "Fare": [7.25, 71.28, 53.1, 13.0, 30.0, 8.05],
}


@pytest.fixture
def passengers():
    return Table(PASSENGERS)


@pytest.fixture
def keyed(passengers):
    passengers.set_key("Sex", "Pclass")
    return passengers


def test_set_key_sorts_rows(keyed):
    rows = list(zip(keyed["Sex"].to_pylist(), keyed["Pclass"].to_pylist()))
    keys = [tuple(sort_value(v) for v in row) for row in rows]
    for current, following in zip(keys, keys[1:]):
        assert current <= following
    # missing values are last
    assert rows[-1] == (None, 2)
    assert keyed.key == ("Sex", "Pclass")


def test_set_key_is_stable(keyed):
    assert keyed.lookup("male", 3)["Fare"].to_pylist() == [7.25, 8.05]


def test_set_key_unknown_column(passengers):
    with pytest.raises(NotFoundError):
        passengers.set_key("Age")
    assert passengers.key is None


@pytest.mark.parametrize(
    "values",
    [
        ("male",),
        ("female",),
        (None,),
        ("nobody",),
        ("male", 1),
        ("male", 3),
        ("female", None),
        ("female", 2),
        ("male", float("nan")),
    ],
)
def test_lookup_same_rows_as_vector_scan(keyed, values):
    batch = keyed.to_batch()
    columns = list(keyed.key[: len(values)])
    assert keyed.key_index().search(values) == scan(batch, key_equality(columns, values))
    found = keyed.lookup(*values, nomatch=NoMatch.OMIT)
    assert found.to_pydict() == keyed.take(scan(batch, key_equality(columns, values))).to_pydict()


def test_lookup_scenario():
    table = Table({"Sex": ["male", "female", "male"], "Pclass": [1, 2, 3]})
    table.set_key("Sex", "Pclass")

    assert table.lookup("male", 1).to_pylist() == [{"Sex": "male", "Pclass": 1}]
    assert table.lookup("male", 5, nomatch="omit").num_rows == 0
    assert table.lookup("male", 5, nomatch="nullRow").to_pylist() == [
        {"Sex": "male", "Pclass": 5}
    ]


def test_null_row_fills_other_columns(keyed):
    result = keyed.lookup("male", 5, nomatch="nullRow")
    assert result.to_pydict() == {"Sex": ["male"], "Pclass": [5], "Fare": [None]}
    assert result["Fare"].type == pa.float64()


def test_null_row_for_key_prefix(keyed):
    result = keyed.lookup("nobody", nomatch=NoMatch.NULL_ROW)
    assert result.to_pydict() == {"Sex": ["nobody"], "Pclass": [None], "Fare": [None]}


def test_null_row_schema():
    schema = pa.schema([("k", pa.string()), ("v", pa.int64())])
    assert null_row(schema, ("k",), ("a",)).to_pydict() == {"k": ["a"], "v": [None]}


def test_default_nomatch_is_configurable(keyed, monkeypatch):
    assert keyed.lookup("nobody").num_rows == 1
    monkeypatch.setattr(config, "NOMATCH", "omit")
    assert keyed.lookup("nobody").num_rows == 0


@pytest.mark.parametrize(
    "mult, expected", [("all", [7.25, 8.05]), ("first", [7.25]), ("last", [8.05])]
)
def test_lookup_mult(keyed, mult, expected):
    assert keyed.lookup("male", 3, mult=mult)["Fare"].to_pylist() == expected


def test_lookup_invalid_mult(keyed):
    with pytest.raises(ValueError):
        keyed.lookup("male", mult="some")


def test_lookup_too_many_values(keyed):
    with pytest.raises(ValueError):
        keyed.lookup("male", 3, 7.25)


def test_lookup_type_mismatch(keyed):
    with pytest.raises(TypeMismatchError):
        keyed.lookup(3)
    with pytest.raises(TypeMismatchError):
        keyed.lookup("male", "first")


def test_lookup_numbers_in_float_key():
    table = Table({"fare": [7.5, 3.0, 7.5]})
    table.set_key("fare")
    assert table.lookup(3).num_rows == 1
    assert table.lookup(7.5).num_rows == 2


def test_nan_key_same_rows_keyed_or_not():
    nan = float("nan")
    table = Table({"x": [1.0, nan, 2.0, nan], "v": ["a", "b", "c", "d"]})
    unkeyed = table.take(table.select_rows(["x"], (nan,)))["v"].to_pylist()
    table.set_key("x")
    keyed = table.take(table.select_rows(["x"], (nan,)))["v"].to_pylist()
    assert unkeyed == keyed == ["b", "d"]
    assert table.lookup(nan)["v"].to_pylist() == ["b", "d"]


def test_null_row_rejects_values_the_key_cant_hold():
    table = Table({"id": [1, 2, 3], "v": ["a", "b", "c"]})
    table.set_key("id")
    with pytest.raises(TypeMismatchError):
        table.lookup(2.5, nomatch="nullRow")
    assert table.lookup(2.5, nomatch="omit").num_rows == 0
    assert table.lookup(4.0, nomatch="nullRow").to_pydict() == {"id": [4], "v": [None]}


def test_null_row_for_all_missing_key():
    table = Table({"id": [None, None]})
    table.set_key("id")
    with pytest.raises(TypeMismatchError):
        table.lookup("x")


def test_lookup_without_key(passengers):
    with pytest.raises(NotFoundError):
        passengers.lookup("male")


def test_untracked_change_makes_index_stale(keyed):
    # Replace the key column bypassing the Table methods.
    keyed._columns["Pclass"] = pa.array([1, 1, 1, 1, 1, 1])
    with pytest.raises(StaleIndexError):
        keyed.lookup("male")
    with pytest.raises(StaleIndexError):
        keyed.select_rows(["Sex"], ("male",))

    keyed.set_key("Sex", "Pclass")
    assert keyed.lookup("male").num_rows == 3


def test_row_count_change_makes_index_stale(keyed):
    keyed._columns["Fare"] = pa.array([7.25])
    with pytest.raises(StaleIndexError):
        keyed.lookup("male")


def test_key_index_is_stale():
    numbers = pa.array([1, 2])
    index = KeyIndex(("n",), (numbers,))
    assert not index.is_stale({"n": numbers, "m": pa.array(["a", "b"])})
    assert index.is_stale({"n": pa.array([1, 2])})
    assert index.is_stale({"n": numbers, "m": pa.array(["a"])})


def test_replacing_key_column_sorts_again(keyed):
    keyed.set_column("Pclass", [3, 2, 1, 3, 2, 1])
    assert keyed.key == ("Sex", "Pclass")
    rows = list(zip(keyed["Sex"].to_pylist(), keyed["Pclass"].to_pylist()))
    assert rows == sorted(rows, key=lambda r: tuple(sort_value(v) for v in r))
    assert keyed.lookup("female", 2).num_rows == 1


def test_renaming_key_column_renames_key(keyed):
    keyed.rename_column("Sex", "Gender")
    assert keyed.key == ("Gender", "Pclass")
    assert keyed.lookup("female", 1)["Fare"].to_pylist() == [71.28]


def test_removing_key_column_drops_key(keyed):
    keyed.remove_column("Pclass")
    assert keyed.key is None


def test_updating_non_key_column_keeps_key(keyed):
    keyed.set_column("Fare", 0.0)
    assert keyed.lookup("male", 1)["Fare"].to_pylist() == [0.0]


def test_key_index_search_prefix():
    index = KeyIndex(
        ("a", "b"), (pa.array(["x", "x", "y", "y"]), pa.array([1, 2, 1, 2]))
    )
    assert index.search(("y",)) == RowSelection([2, 3])
    assert index.search(("x", 2)) == RowSelection([1])
    assert index.search(()) == RowSelection.all(4)
    assert index.covers(["a"])
    assert not index.covers(["b"])
    assert str(index) == "KeyIndex(columns=['a', 'b'], rows=4)"


def test_lookup_function_on_table(keyed):
    batch = lookup(keyed, ("female",))
    assert batch.to_pydict()["Fare"] == [71.28, 30.0]


def test_all_keys_are_found():
    values = ["a", "b", None]
    table = Table(
        {
            "x": [v for v, _ in itertools.product(values, values)],
            "y": [v for _, v in itertools.product(values, values)],
        }
    )
    table.set_key("x", "y")
    for x, y in itertools.product(values, values):
        assert table.lookup(x, y).to_pylist() == [{"x": x, "y": y}]
