import io
import math

import pandas as pd
import pytest

from plugins.ml_pipeline.core import profiler as profiler_module
from plugins.ml_pipeline.core import table as table_module
from plugins.ml_pipeline.core.errors import ConfigurationError, DataError
from plugins.ml_pipeline.core.profiler import profile_column, profile_table
from plugins.ml_pipeline.core.table import (
    Table,
    extract_features,
    is_missing,
    load_csv_bytes,
    load_excel_bytes,
    load_table_bytes,
    to_number,
)


def test_to_number_parses_strings_and_rejects_booleans():
    assert to_number("3.5") == 3.5
    assert to_number(" 7 ") == 7.0
    assert to_number(4) == 4.0
    assert to_number(True) is None
    assert to_number("abc") is None
    assert to_number("inf") is None
    assert to_number(float("nan")) is None


def test_is_missing_covers_none_blank_and_nan():
    assert is_missing(None)
    assert is_missing("   ")
    assert is_missing(math.nan)
    assert not is_missing(0)
    assert not is_missing("0")


def test_load_csv_bytes_marks_missing_cells():
    table = load_csv_bytes(b"a,b\n1,x\n,y\n3,\n")
    assert table.columns == ("a", "b")
    assert len(table) == 3
    assert table.rows[1]["a"] is None
    assert table.rows[2]["b"] is None
    assert table.rows[0]["a"] == 1.0
    assert isinstance(table.rows[0]["a"], float)


@pytest.mark.parametrize("payload", [b"", b"a,b\n"])
def test_load_csv_bytes_rejects_empty_input(payload):
    with pytest.raises(DataError) as excinfo:
        load_csv_bytes(payload)
    assert excinfo.value.code == "EMPTY_TABLE"


def _workbook(frame: pd.DataFrame) -> bytes:
    buffer = io.BytesIO()
    frame.to_excel(buffer, index=False)
    return buffer.getvalue()


def test_load_excel_bytes_reads_the_first_sheet():
    payload = _workbook(pd.DataFrame({"a": [1, None, 3], "b": ["x", "y", None]}))
    table = load_excel_bytes(payload)
    assert table.columns == ("a", "b")
    assert len(table) == 3
    assert table.rows[1]["a"] is None
    assert table.rows[2]["b"] is None
    assert table.rows[0]["a"] == 1.0


def test_load_table_bytes_dispatches_on_extension():
    payload = _workbook(pd.DataFrame({"a": [1, 2], "b": ["x", "y"]}))
    assert load_table_bytes(payload, "DATA.XLSX").columns == ("a", "b")
    assert len(load_table_bytes(b"a,b\n1,2\n", "data.csv")) == 1
    assert len(load_table_bytes(b"a,b\n1,2\n")) == 1

    with pytest.raises(DataError) as excinfo:
        load_table_bytes(b"a,b\n1,2\n", "data.json")
    assert excinfo.value.code == "UNSUPPORTED_FILE_TYPE"


def test_corrupt_workbook_is_a_data_error():
    with pytest.raises(DataError) as excinfo:
        load_table_bytes(b"PK\x03\x04not really a zip archive", "data.xlsx")
    assert excinfo.value.code == "INVALID_SPREADSHEET"



def test_profile_numeric_threshold_is_eighty_percent():
    table = Table.from_records([{"v": value} for value in ["1", "2", "x", "4", "5"]])
    profile = profile_column(table, "v")
    assert profile.kind == "numeric"

    table = Table.from_records([{"v": value} for value in ["1", "x", "y", "4", "5"]])
    assert profile_column(table, "v").kind == "categorical"


def test_profile_counts_missing_and_unique_values():
    table = Table.from_records(
        [{"city": "Oslo"}, {"city": None}, {"city": "Rome"}, {"city": "Oslo"}, {"city": ""}]
    )
    profile = profile_column(table, "city")
    assert profile.kind == "categorical"
    assert profile.missing_count == 2
    assert profile.missing_percentage == 40.0
    assert profile.unique_count == 2
    assert profile.sample_values == ("Oslo", "Rome")
    payload = profile.to_dict()
    assert payload["type"] == "categorical"
    assert payload["uniqueValues"] == 2


def test_all_missing_column_is_categorical():
    table = Table.from_records([{"a": None}, {"a": None}])
    profile = profile_column(table, "a")
    assert profile.kind == "categorical"
    assert profile.missing_percentage == 100.0


def test_boolean_column_is_categorical():
    table = Table.from_records([{"flag": True}, {"flag": False}, {"flag": True}])
    assert profile_column(table, "flag").kind == "categorical"


def test_profile_table_of_empty_table_is_empty():
    assert profile_table(Table(columns=("a", "b"))) == []


def test_unknown_column_is_a_configuration_error():
    table = Table.from_records([{"a": 1}])
    with pytest.raises(ConfigurationError) as excinfo:
        table.column("missing")
    assert excinfo.value.code == "MISSING_COLUMNS"


def test_extract_features_coerces_and_counts_bad_cells():
    table = Table.from_records(
        [
            {"f": 1, "g": "2.5", "y": 1},
            {"f": "oops", "g": None, "y": 0},
            {"f": 3, "g": True, "y": "1"},
        ]
    )
    features = extract_features(table, ["f", "g"], "y")
    assert features.X == [[1.0, 2.5], [0.0, 0.0], [3.0, 1.0]]
    assert features.y == [1.0, 0.0, 1.0]
    assert features.coerced_cells == {"f": 1, "g": 1}
    assert features.n_samples == 3


def test_extract_features_rejects_empty_partition_and_missing_target():
    with pytest.raises(DataError) as excinfo:
        extract_features(Table(columns=("f", "y")), ["f"], "y", partition="test")
    assert excinfo.value.code == "EMPTY_PARTITION"

    table = Table.from_records([{"f": 1}])
    with pytest.raises(DataError) as excinfo:
        extract_features(table, ["f"], "y", partition="train")
    assert excinfo.value.code == "MISSING_COLUMNS"
    assert excinfo.value.details["columns"] == ["y"]


@pytest.mark.parametrize("module", [table_module, profiler_module])
def test_public_names_resolve(module):
    for name in module.__all__:
        assert hasattr(module, name), name
