"""Test stratified train/test splitting."""
import numpy as np
import pytest

from retention.app.errors import ConfigError
from retention.app.features import PlayerFeatures
from retention.app.splitter import split_dataset, training_quota, validate_percentages


def make_rows(retained, not_retained):
    rows = [PlayerFeatures(name=f"r{i}", day1_retention=True) for i in range(retained)]
    rows += [PlayerFeatures(name=f"n{i}", day1_retention=False) for i in range(not_retained)]
    # Interleave so input order is not grouped by class
    return sorted(rows, key=lambda r: int(r.name[1:]))


def names(rows):
    return sorted(r.name for r in rows)


@pytest.mark.parametrize("training,testing", [(80, 20), (70, 30), (29, 71), (100, 0), (0, 100)])
@pytest.mark.parametrize("retained,not_retained", [(7, 13), (0, 9), (10, 0), (1, 1)])
def test_split_counts_follow_floor_quotas(training, testing, retained, not_retained):
    rows = make_rows(retained, not_retained)

    train, test = split_dataset(rows, training, testing, rng=0)

    assert len(train) + len(test) == len(rows)
    assert sum(r.day1_retention for r in train) == training * retained // 100
    assert sum(not r.day1_retention for r in train) == training * not_retained // 100
    assert sum(r.day1_retention for r in test) == retained - training * retained // 100


def test_split_is_disjoint_and_complete():
    rows = make_rows(6, 9)
    train, test = split_dataset(rows, 80, 20, rng=1)

    assert not set(names(train)) & set(names(test))
    assert names(train + test) == names(rows)


def test_training_quota_filled_in_input_order():
    rows = make_rows(5, 5)
    train, test = split_dataset(rows, 60, 40, rng=2)

    # First three of each class (in input order) go to training
    assert names(train) == ["n0", "n1", "n2", "r0", "r1", "r2"]
    assert names(test) == ["n3", "n4", "r3", "r4"]


def test_same_seed_gives_same_order():
    rows = make_rows(20, 20)
    first = split_dataset(rows, 80, 20, rng=42)
    second = split_dataset(rows, 80, 20, rng=42)

    assert [r.name for r in first[0]] == [r.name for r in second[0]]
    assert [r.name for r in first[1]] == [r.name for r in second[1]]


def test_accepts_numpy_generator():
    rows = make_rows(20, 20)
    train, _ = split_dataset(rows, 50, 50, rng=np.random.default_rng(7))
    expected, _ = split_dataset(rows, 50, 50, rng=7)
    assert [r.name for r in train] == [r.name for r in expected]


def test_training_set_is_shuffled():
    rows = make_rows(50, 50)
    train, _ = split_dataset(rows, 100, 0, rng=3)
    assert [r.name for r in train] != [r.name for r in rows]


def test_empty_input():
    assert split_dataset([], 80, 20, rng=0) == ([], [])


@pytest.mark.parametrize("training,testing", [(80, 30), (50, 49), (110, -10)])
def test_bad_percentages_raise_config_error(training, testing):
    with pytest.raises(ConfigError):
        split_dataset(make_rows(2, 2), training, testing)


def test_validate_percentages_accepts_exact_hundred():
    validate_percentages(80, 20)


def test_training_quota_uses_exact_arithmetic():
    # 0.29 * 100 in floating point is 28.999999999999996
    assert training_quota(29, 100) == 29
    assert training_quota(80, 7) == 5
