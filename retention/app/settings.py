"""Application settings."""
import os
from pathlib import Path

# Database file lives at repo root unless DATABASE_URL says otherwise
REPO_ROOT = Path(__file__).resolve().parent.parent.parent
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{REPO_ROOT / 'telemetry.db'}")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# "1" routes the per-iteration Newton-Raphson trace to the regression logger
REGRESSION_TRACE = os.getenv("REGRESSION_TRACE", "") == "1"

# Dashboard form defaults only; the prediction API requires explicit values
DEFAULT_TRAINING_PERCENT = int(os.getenv("DEFAULT_TRAINING_PERCENT", "80"))
DEFAULT_TESTING_PERCENT = int(os.getenv("DEFAULT_TESTING_PERCENT", "20"))
DEFAULT_MAX_ITERATIONS = int(os.getenv("DEFAULT_MAX_ITERATIONS", "20"))

# Bind address for the `retention-api` server command
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))
