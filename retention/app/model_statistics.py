"""Inferential statistics derived from a fitted logistic regression model."""
import logging
import math
from typing import Optional, Sequence

import numpy as np

from .errors import ModelNotFittedError
from .regression import DataPoint, Model, design_matrix, label_vector, probabilities

logger = logging.getLogger(__name__)

# Two-sided 95% normal quantile
Z_95 = 1.96
# Probability the naive baseline model assigns to every row
BASELINE_PROBABILITY = 0.5


def _require_fitted(model: Optional[Model]) -> Model:
    if model is None or model.coefficients is None or len(model.coefficients) == 0:
        raise ModelNotFittedError("Coefficients have not been generated yet")
    return model


def odds_ratio(model: Model) -> np.ndarray:
    return np.exp(_require_fitted(model).coefficients)


def wald_statistic(model: Model) -> np.ndarray:
    """coefficient / standard error; zero errors give inf or nan."""
    model = _require_fitted(model)
    with np.errstate(divide="ignore", invalid="ignore"):
        return model.coefficients / model.standard_errors


def confidence_interval(model: Model):
    model = _require_fitted(model)
    offset = Z_95 * model.standard_errors
    return model.coefficients - offset, model.coefficients + offset


def log_likelihood(model: Model, points: Sequence[DataPoint]) -> float:
    """
    ln L = sum(y * ln p + (1 - y) * ln(1 - p)) over the training rows.

    Rows fitted with probability exactly 0 or 1 against their label give -inf.
    """
    model = _require_fitted(model)
    x = design_matrix(points, model.variable_count)
    y = label_vector(points)
    p = probabilities(x, model.coefficients)
    with np.errstate(divide="ignore"):
        terms = np.where(y == 1.0, np.log(p), np.where(y == 0.0, np.log(1.0 - p), 0.0))
    return float(np.sum(terms))


def baseline_log_likelihood(row_count: int) -> float:
    return row_count * math.log(BASELINE_PROBABILITY)


def enrich_model(model: Model, points: Sequence[DataPoint]) -> Model:
    """Fill every derived statistic of a fitted model in place and return it."""
    model = _require_fitted(model)

    model.odds_ratio = odds_ratio(model)
    model.wald_statistic = wald_statistic(model)
    model.lower_ci, model.upper_ci = confidence_interval(model)
    model.log_likelihood = log_likelihood(model, points)
    model.deviance = -2.0 * model.log_likelihood
    model.chi_square = (-2.0 * baseline_log_likelihood(len(points))) - model.deviance

    logger.debug(
        "Log likelihood %s, deviance %s, chi-square %s",
        model.log_likelihood, model.deviance, model.chi_square,
    )
    return model
