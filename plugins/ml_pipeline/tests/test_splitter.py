import pytest

from plugins.ml_pipeline.core.errors import ConfigurationError, DataError
from plugins.ml_pipeline.core.splitter import LinearCongruentialGenerator, shuffled_indices, split_table
from plugins.ml_pipeline.core.table import Table


def _table(rows: int) -> Table:
    return Table.from_records([{"id": i, "value": i * 2} for i in range(rows)])


def test_generator_follows_the_documented_recurrence():
    generator = LinearCongruentialGenerator(42)
    assert generator.next_float() == 206659 / 233280
    assert generator.state == 206659
    assert generator.next_float() == ((206659 * 9301 + 49297) % 233280) / 233280


def test_shuffled_indices_is_a_seeded_permutation():
    order = shuffled_indices(50, seed=7)
    assert sorted(order) == list(range(50))
    assert order == shuffled_indices(50, seed=7)
    assert order != list(range(50))


def test_split_sizes_and_disjointness():
    table = _table(100)
    split = split_table(table, test_fraction=0.2, seed=42)
    assert len(split.train) == 80
    assert len(split.test) == 20
    train_ids = {row["id"] for row in split.train.rows}
    test_ids = {row["id"] for row in split.test.rows}
    assert not train_ids & test_ids
    assert train_ids | test_ids == set(range(100))
    assert [row["id"] for row in split.test.rows] == list(split.test_indices)


def test_split_is_deterministic_for_a_seed():
    table = _table(37)
    first = split_table(table, 0.3, seed=11)
    second = split_table(table, 0.3, seed=11)
    assert first.train_indices == second.train_indices
    assert first.test_indices == second.test_indices
    assert split_table(table, 0.3, seed=12).train_indices != first.train_indices


def test_boundary_uses_floor():
    split = split_table(_table(7), test_fraction=0.25, seed=1)
    # floor(7 * 0.75) = 5
    assert len(split.train) == 5
    assert len(split.test) == 2


@pytest.mark.parametrize("fraction", [0, 1, 1.5, -0.2, "abc"])
def test_invalid_test_fraction(fraction):
    with pytest.raises(ConfigurationError) as excinfo:
        split_table(_table(10), test_fraction=fraction)
    assert excinfo.value.code == "INVALID_TEST_FRACTION"


def test_degenerate_split_is_reported():
    with pytest.raises(DataError) as excinfo:
        split_table(_table(1), test_fraction=0.5)
    assert excinfo.value.code == "DEGENERATE_SPLIT"
    assert excinfo.value.details["trainCount"] == 0

    with pytest.raises(DataError) as excinfo:
        split_table(_table(10), test_fraction=1e-18)
    assert excinfo.value.code == "DEGENERATE_SPLIT"
    assert excinfo.value.details["testCount"] == 0


def test_summary_reports_counts_and_seed():
    summary = split_table(_table(10), test_fraction=0.2, seed=5).summary()
    assert summary == {"trainCount": 8, "testCount": 2, "testSize": 0.2, "trainSize": 0.8, "randomSeed": 5}
