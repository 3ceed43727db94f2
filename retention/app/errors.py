"""Error taxonomy for the retention prediction pipeline.

Every error here is a caller-correctable precondition violation. Numerical
early stops inside the Newton-Raphson loop are not errors and never raise.
"""


class RetentionError(Exception):
    """Base class for prediction pipeline errors."""


class ConfigError(RetentionError, ValueError):
    """Training/testing percentages do not add up to 100."""


class DimensionError(RetentionError, ValueError):
    """A data row does not match the declared number of variables."""


class InsufficientDataError(RetentionError):
    """Fit requested with no more rows than variables."""


class ModelNotFittedError(RetentionError):
    """Statistics, evaluation or prediction requested before a fit."""


class SessionClosedError(RetentionError):
    """Data point added to a regression session that was already fitted."""
