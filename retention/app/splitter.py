"""Stratified train/test split of player feature rows."""
import logging
from typing import List, Sequence, Tuple, TypeVar, Union

import numpy as np

from .errors import ConfigError
from .features import PlayerFeatures

logger = logging.getLogger(__name__)

T = TypeVar("T")

RandomSource = Union[None, int, np.random.Generator]


def validate_percentages(training_percent: int, testing_percent: int) -> None:
    """Raise ConfigError unless both shares are non-negative and sum to 100."""
    if training_percent < 0 or testing_percent < 0:
        raise ConfigError("Training and testing percentages must not be negative")
    if training_percent + testing_percent != 100:
        raise ConfigError(
            f"Sum of training and testing percentages must equal 100 "
            f"(got {training_percent} + {testing_percent})"
        )


def training_quota(training_percent: int, class_count: int) -> int:
    """floor(training_percent / 100 * class_count), in exact integer arithmetic."""
    return (training_percent * class_count) // 100


def _shuffled(rows: Sequence[T], rng: np.random.Generator) -> List[T]:
    order = rng.permutation(len(rows))
    return [rows[i] for i in order]


def split_dataset(
    rows: Sequence[PlayerFeatures],
    training_percent: int,
    testing_percent: int,
    rng: RandomSource = None,
) -> Tuple[List[PlayerFeatures], List[PlayerFeatures]]:
    """
    Split rows into (train, test) preserving the retained/not-retained ratio.

    Each class fills its training quota first in input order; the rest goes
    to test. Both sets are then shuffled independently. `rng` may be a seed
    or a numpy Generator; None draws a fresh non-deterministic seed.
    """
    validate_percentages(training_percent, testing_percent)
    rng = np.random.default_rng(rng)

    retained = sum(1 for row in rows if row.day1_retention)
    not_retained = len(rows) - retained

    remaining = {
        True: training_quota(training_percent, retained),
        False: training_quota(training_percent, not_retained),
    }
    logger.info(
        "Splitting %d rows (%d retained): training %d retained / %d not retained",
        len(rows), retained, remaining[True], remaining[False],
    )

    train: List[PlayerFeatures] = []
    test: List[PlayerFeatures] = []
    for row in rows:
        label = bool(row.day1_retention)
        if remaining[label] > 0:
            train.append(row)
            remaining[label] -= 1
        else:
            test.append(row)

    return _shuffled(train, rng), _shuffled(test, rng)
