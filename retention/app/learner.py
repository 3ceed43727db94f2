"""Training and evaluation run for the day-1 retention model."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from .evaluation import evaluate_accuracy
from .features import PlayerFeatures, extract_player_features
from .model_statistics import enrich_model
from .regression import DataPoint, FitOutcome, LogisticRegressionTrainer, Model
from .report import ModelReport, build_report
from .splitter import RandomSource, split_dataset, validate_percentages
from .store import query_events, query_timed_events, to_naive_utc

logger = logging.getLogger(__name__)

OBSERVED_NAME = "Day 1 Retention"
VARIABLE_NAMES = [
    "Tutorial Momentum",
    "Level Momentum",
    "Gameplay Consumed",
    "Social Activity",
    "Progression",
    "Level",
]


@dataclass
class PredictionResult:
    """Everything one training + evaluation run produced."""
    model: Model
    report: ModelReport
    accuracy: float
    outcome: FitOutcome
    iterations: int
    total_players: int
    retained_players: int
    training_rows: int
    testing_rows: int


def player_variables(features: PlayerFeatures) -> List[float]:
    """Variables in VARIABLE_NAMES order."""
    return [
        features.tutorial_momentum_minutes,
        features.level_momentum_minutes,
        float(features.gameplay_consumed),
        float(features.social_activities),
        features.progression,
        float(features.level),
    ]


def features_to_data_points(rows: Sequence[PlayerFeatures]) -> List[DataPoint]:
    return [
        DataPoint(
            label=1.0 if row.day1_retention else 0.0,
            variables=tuple(player_variables(row)),
        )
        for row in rows
    ]


def build_trainer(trace: Optional[logging.Logger] = None) -> LogisticRegressionTrainer:
    trainer = LogisticRegressionTrainer(len(VARIABLE_NAMES), trace=trace)
    trainer.set_observed_name(OBSERVED_NAME)
    for index, name in enumerate(VARIABLE_NAMES):
        trainer.set_variable_name(index, name)
    return trainer


def train_and_evaluate(
    rows: Sequence[PlayerFeatures],
    training_percent: int,
    testing_percent: int,
    max_iterations: int,
    rng: RandomSource = None,
    trace: Optional[logging.Logger] = None,
) -> PredictionResult:
    """
    Split feature rows, fit on the training share and score the testing share.

    Raises ConfigError for bad percentages and InsufficientDataError when
    the training share has no more rows than variables.
    """
    train_rows, test_rows = split_dataset(rows, training_percent, testing_percent, rng=rng)
    logger.info(
        "Total dataset %d: training %d vs testing %d",
        len(rows), len(train_rows), len(test_rows),
    )

    trainer = build_trainer(trace)
    training_points = features_to_data_points(train_rows)
    for point in training_points:
        trainer.add_data_point(point)

    fit = trainer.fit(max_iterations)
    model = enrich_model(fit.model, training_points)
    accuracy = evaluate_accuracy(model, features_to_data_points(test_rows))

    report = build_report(
        model,
        trainer.coefficient_names,
        observed_name=OBSERVED_NAME,
        accuracy=accuracy,
    )
    logger.info("Prediction accuracy on testing data: %.2f%%", accuracy)

    return PredictionResult(
        model=model,
        report=report,
        accuracy=accuracy,
        outcome=fit.outcome,
        iterations=fit.iterations,
        total_players=len(rows),
        retained_players=sum(1 for row in rows if row.day1_retention),
        training_rows=len(train_rows),
        testing_rows=len(test_rows),
    )


def run_retention_prediction(
    db: Session,
    begin: datetime,
    end: datetime,
    training_percent: int,
    testing_percent: int,
    max_iterations: int,
    rng: RandomSource = None,
    trace: Optional[logging.Logger] = None,
) -> PredictionResult:
    """
    Build the day-1 retention model from events in [begin, end).

    Percentages are checked before the store is queried.
    """
    validate_percentages(training_percent, testing_percent)
    begin = to_naive_utc(begin)
    end = to_naive_utc(end)

    events = query_events(db, begin, end)
    timed_events = query_timed_events(db, begin, end)
    rows = extract_player_features(events, timed_events, begin, end)
    logger.info(
        "Window %s to %s: %d events, %d timed events, %d eligible players",
        begin, end, len(events), len(timed_events), len(rows),
    )

    return train_and_evaluate(
        rows,
        training_percent,
        testing_percent,
        max_iterations,
        rng=rng,
        trace=trace,
    )
