"""
Binary logistic regression fitted with Newton-Raphson (IRLS).

    b[t] = b[t-1] + inv(X'W[t-1]X) X'(y - p[t-1])

X is the design matrix whose first column is the constant 1.0 for the
intercept, y holds the 0.0/1.0 labels, p the fitted probabilities and W the
diagonal matrix of p(1 - p). W is never materialised: each row of X is
scaled by its own p(1 - p) instead.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.special import expit

from .errors import (
    DimensionError,
    InsufficientDataError,
    ModelNotFittedError,
    SessionClosedError,
)

logger = logging.getLogger(__name__)

# Stop when every coefficient moves less than this between iterations
EPSILON = 0.01
# Stop when a coefficient moves more than this many times its own magnitude
JUMP_FACTOR = 1000.0
# Stop after this many consecutive steps that worsened the MSE
MAX_TIMES_WORSE = 4

INTERCEPT_NAME = "Intercept"


@dataclass(frozen=True)
class DataPoint:
    """One labelled observation: label is 0.0 or 1.0."""
    label: float
    variables: Tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, "variables", tuple(float(v) for v in self.variables))


@dataclass
class Model:
    """Fitted coefficients plus the statistics derived from them.

    Index 0 of every per-coefficient array is the intercept.
    """
    coefficients: np.ndarray
    standard_errors: np.ndarray
    odds_ratio: Optional[np.ndarray] = None
    wald_statistic: Optional[np.ndarray] = None
    lower_ci: Optional[np.ndarray] = None
    upper_ci: Optional[np.ndarray] = None
    log_likelihood: Optional[float] = None
    deviance: Optional[float] = None
    chi_square: Optional[float] = None

    @property
    def variable_count(self) -> int:
        return len(self.coefficients) - 1


class FitOutcome(Enum):
    """How the Newton-Raphson loop stopped."""
    CONVERGED = "converged"
    DIVERGED = "diverged"
    STALLED = "stalled"
    MAX_ITERATIONS = "max_iterations"
    SINGULAR_MATRIX = "singular_matrix"


@dataclass
class FitResult:
    model: Model
    outcome: FitOutcome
    iterations: int


def design_matrix(points: Sequence[DataPoint], variable_count: int) -> np.ndarray:
    """Stack rows as [1.0, x1, ..., xp]."""
    matrix = np.ones((len(points), variable_count + 1))
    for i, point in enumerate(points):
        if len(point.variables) != variable_count:
            raise DimensionError(
                f"Row {i} has {len(point.variables)} variables, expected {variable_count}"
            )
        matrix[i, 1:] = point.variables
    return matrix


def label_vector(points: Sequence[DataPoint]) -> np.ndarray:
    return np.array([point.label for point in points], dtype=float)


def probabilities(x: np.ndarray, coefficients: np.ndarray) -> np.ndarray:
    """p = 1 / (1 + exp(-Xb)), one entry per row of x."""
    if x.shape[1] != coefficients.shape[0]:
        raise DimensionError(
            f"Design matrix has {x.shape[1]} columns but model has "
            f"{coefficients.shape[0]} coefficients"
        )
    return expit(x @ coefficients)


def mean_squared_error(p: np.ndarray, y: np.ndarray) -> float:
    if p.shape != y.shape:
        raise DimensionError("Probability and label vectors differ in length")
    if len(p) == 0:
        return 0.0
    return float(np.mean((p - y) ** 2))


def invert(matrix: np.ndarray) -> Optional[np.ndarray]:
    """Inverse of a square matrix, or None when it cannot be inverted."""
    if not np.all(np.isfinite(matrix)):
        return None
    with np.errstate(divide="ignore", invalid="ignore"):
        condition = np.linalg.cond(matrix)
    if not condition < 1.0 / np.finfo(float).eps:
        return None
    try:
        inverse = np.linalg.inv(matrix)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(inverse)):
        return None
    return inverse


def newton_step(
    coefficients: np.ndarray,
    x: np.ndarray,
    y: np.ndarray,
    p: np.ndarray,
) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    One Newton-Raphson update.

    Returns (new coefficients, inv(X'WX)), or None when X'WX is singular.
    """
    x_tilde = x * (p * (1.0 - p))[:, np.newaxis]  # WX
    covariance = invert(x.T @ x_tilde)
    if covariance is None:
        return None
    return coefficients + covariance @ (x.T @ (y - p)), covariance


def no_change(old: np.ndarray, new: np.ndarray, epsilon: float = EPSILON) -> bool:
    return bool(np.all(np.abs(old - new) <= epsilon))


def out_of_control(old: np.ndarray, new: np.ndarray, jump_factor: float = JUMP_FACTOR) -> bool:
    """True when some nonzero coefficient jumped by more than jump_factor times itself."""
    nonzero = old != 0.0
    if not np.any(nonzero):
        return False
    ratio = np.abs(old[nonzero] - new[nonzero]) / np.abs(old[nonzero])
    return bool(np.any(ratio > jump_factor))


class LogisticRegressionTrainer:
    """
    A single regression session: declared variables, accumulated data
    points and, once fitted, the resulting Model.

    Pass a logger as `trace` to receive the per-iteration details at DEBUG.
    """

    def __init__(self, variable_count: int, trace: Optional[logging.Logger] = None):
        if variable_count < 0:
            raise DimensionError("Variable count must not be negative")
        self.variable_count = variable_count
        self.variable_names: List[str] = [""] * variable_count
        self.observed_name = ""
        self.data_points: List[DataPoint] = []
        self.model: Optional[Model] = None
        self.trace = trace

    def _trace(self, msg, *args):
        if self.trace is not None:
            self.trace.debug(msg, *args)

    def set_observed_name(self, name: str) -> None:
        self.observed_name = name

    def set_variable_name(self, index: int, name: str) -> None:
        """Name a variable slot; out-of-range indices are ignored."""
        if 0 <= index < self.variable_count:
            self.variable_names[index] = name

    @property
    def coefficient_names(self) -> List[str]:
        return [INTERCEPT_NAME] + list(self.variable_names)

    def add_data_point(self, point: DataPoint) -> None:
        if self.model is not None:
            raise SessionClosedError("Cannot add data points after the model is fitted")
        if len(point.variables) != self.variable_count:
            raise DimensionError(
                f"Number of variables in the data point ({len(point.variables)}) "
                f"!= number in the model ({self.variable_count})"
            )
        self.data_points.append(point)

    def design(self) -> Tuple[np.ndarray, np.ndarray]:
        """Design matrix and label vector of the accumulated data points."""
        return design_matrix(self.data_points, self.variable_count), label_vector(self.data_points)

    def fit(self, max_iterations: int) -> FitResult:
        """
        Fit coefficients with Newton-Raphson.

        Raises InsufficientDataError unless there are more rows than
        variables. Every other way the loop can stop still yields a usable
        coefficient vector; the FitResult says which one happened.
        """
        n = len(self.data_points)
        if n <= self.variable_count:
            raise InsufficientDataError(
                f"Data points ({n}) must exceed variables ({self.variable_count})"
            )

        x, y = self.design()
        self._trace("Design matrix:\n%s", x)
        self._trace("Observed (%s):\n%s", self.observed_name, y)

        coefficients, standard_errors, outcome, iterations = self._newton_raphson(
            x, y, max_iterations
        )
        self.model = Model(coefficients=coefficients, standard_errors=standard_errors)
        logger.info(
            "Fitted %d coefficients on %d rows: %s after %d iterations",
            len(coefficients), n, outcome.value, iterations,
        )
        return FitResult(model=self.model, outcome=outcome, iterations=iterations)

    def _newton_raphson(
        self, x: np.ndarray, y: np.ndarray, max_iterations: int
    ) -> Tuple[np.ndarray, np.ndarray, FitOutcome, int]:
        coefficients = np.zeros(x.shape[1])
        best = coefficients.copy()
        standard_errors = np.zeros(x.shape[1])

        p = probabilities(x, coefficients)
        mse = mean_squared_error(p, y)
        self._trace("Initial coefficients %s, MSE %f", coefficients, mse)

        times_worse = 0
        iterations = 0
        outcome = FitOutcome.MAX_ITERATIONS
        while iterations < max_iterations:
            iterations += 1
            step = newton_step(coefficients, x, y, p)
            if step is None:
                self._trace("X'WX cannot be inverted -- stopping")
                outcome = FitOutcome.SINGULAR_MATRIX
                break
            candidate, covariance = step
            # Standard errors follow every X'WX that could be inverted
            standard_errors = np.sqrt(np.diag(covariance))
            self._trace("Iteration %d candidate coefficients %s", iterations, candidate)

            if no_change(coefficients, candidate):
                self._trace("No significant change in coefficients -- converged")
                best = candidate
                outcome = FitOutcome.CONVERGED
                break

            if out_of_control(coefficients, candidate):
                self._trace(
                    "A coefficient changed by more than a factor of %s -- stopping",
                    JUMP_FACTOR,
                )
                outcome = FitOutcome.DIVERGED
                break

            candidate_p = probabilities(x, candidate)
            candidate_mse = mean_squared_error(candidate_p, y)
            self._trace("Candidate MSE %f (current %f)", candidate_mse, mse)

            if candidate_mse > mse:
                times_worse += 1
                if times_worse > MAX_TIMES_WORSE:
                    self._trace("Worse predictions %d times in a row -- stopping", times_worse)
                    outcome = FitOutcome.STALLED
                    break
                self._trace("Worse predictions -- moving halfway towards the candidate")
                coefficients = (coefficients + candidate) / 2.0
                # The next step still starts from the candidate's fit
                p = candidate_p
                mse = candidate_mse
            else:
                coefficients = candidate
                best = candidate.copy()
                p = candidate_p
                mse = candidate_mse
                times_worse = 0
        else:
            self._trace("Exceeded %d iterations -- stopping", max_iterations)

        self._trace("Best coefficients %s (%s)", best, outcome.value)
        return best, standard_errors, outcome, iterations

    def predict(self, variables: Sequence[float]) -> float:
        """Fitted probability of the positive outcome for one row."""
        if self.model is None:
            raise ModelNotFittedError("Model has not been fitted yet")
        if len(variables) != self.variable_count:
            raise DimensionError(
                f"Expected {self.variable_count} variables, got {len(variables)}"
            )
        row = np.concatenate(([1.0], np.asarray(variables, dtype=float)))
        return float(probabilities(row[np.newaxis, :], self.model.coefficients)[0])
