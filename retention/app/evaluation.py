"""Held-out classification accuracy of a fitted model."""
import logging
from typing import Optional, Sequence

from sklearn.metrics import accuracy_score

from .errors import ModelNotFittedError
from .regression import DataPoint, Model, design_matrix, label_vector, probabilities

logger = logging.getLogger(__name__)

DECISION_THRESHOLD = 0.5


def evaluate_accuracy(model: Optional[Model], points: Sequence[DataPoint]) -> float:
    """
    Percentage of rows classified correctly.

    A row counts as correct when p >= 0.5 and its label is 1.0, or p < 0.5
    and its label is 0.0. Returns 0.0 for an empty set.
    """
    if model is None or model.coefficients is None or len(model.coefficients) == 0:
        raise ModelNotFittedError("Model has not been fitted yet")
    if not points:
        return 0.0

    x = design_matrix(points, model.variable_count)
    y = label_vector(points)
    predicted = (probabilities(x, model.coefficients) >= DECISION_THRESHOLD).astype(float)

    accuracy = 100.0 * accuracy_score(y, predicted)
    logger.debug("Accuracy %.2f%% over %d rows", accuracy, len(points))
    return float(accuracy)
