"""FastAPI application for game telemetry ingestion and retention prediction."""
import logging
import math
import os
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from .db import ensure_schema, get_db
from .errors import (
    ConfigError,
    DimensionError,
    ModelNotFittedError,
    RetentionError,
)
from .learner import PredictionResult, run_retention_prediction
from .report import render_html, render_text
from .schemas import (
    ActivityResponse,
    ActivitySubmitted,
    PredictionRequest,
    PredictionResponse,
    ReportRowResponse,
    StoredResponse,
)
from .settings import API_HOST, API_PORT, LOG_LEVEL, REGRESSION_TRACE
from .store import list_activities, record_activity

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create or validate tables on startup
ensure_schema()

app = FastAPI(title="Retention Prediction API", version="0.1.0")

# CORS configuration
_allowed_origins_env = os.getenv("ALLOWED_ORIGINS")
if _allowed_origins_env:
    allowed_origins = [origin.strip() for origin in _allowed_origins_env.split(",")]
else:
    allowed_origins = ["http://localhost:8501"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _finite(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


def _error_status(exc: RetentionError) -> int:
    if isinstance(exc, (ConfigError, DimensionError)):
        return 400
    if isinstance(exc, ModelNotFittedError):
        return 409
    return 422


def _run(body: PredictionRequest, db: Session) -> PredictionResult:
    trace = None
    if REGRESSION_TRACE:
        trace = logging.getLogger("retention.trace")
        trace.setLevel(logging.DEBUG)
    try:
        return run_retention_prediction(
            db,
            body.begin,
            body.end,
            body.training_percent,
            body.testing_percent,
            body.max_iterations,
            rng=body.seed,
            trace=trace,
        )
    except RetentionError as exc:
        logger.info("Prediction rejected: %s", exc)
        raise HTTPException(status_code=_error_status(exc), detail=str(exc))


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.post("/activities", response_model=StoredResponse)
def ingest_activity(activity: ActivitySubmitted, db: Session = Depends(get_db)):
    """Store a game activity and the event it describes."""
    timed = record_activity(db, activity)
    return {"stored": True, "timed": timed}


@app.get("/activities", response_model=List[ActivityResponse])
def get_activities(limit: int = Query(100, ge=1, le=1000), db: Session = Depends(get_db)):
    """Most recently received raw activities."""
    return list_activities(db, limit)


@app.post("/predictions", response_model=PredictionResponse)
def create_prediction(body: PredictionRequest, db: Session = Depends(get_db)):
    """Fit the day-1 retention model over a time window and score it."""
    result = _run(body, db)
    report = result.report

    rows = [
        ReportRowResponse(
            name=row.name,
            coefficient=_finite(row.coefficient),
            odds_ratio=_finite(row.odds_ratio),
            standard_error=_finite(row.standard_error),
            wald_statistic=_finite(row.wald_statistic),
            lower_ci=_finite(row.lower_ci),
            upper_ci=_finite(row.upper_ci),
        )
        for row in report.rows
    ]

    return PredictionResponse(
        begin=body.begin,
        end=body.end,
        observed_name=report.observed_name,
        outcome=result.outcome.value,
        iterations=result.iterations,
        total_players=result.total_players,
        retained_players=result.retained_players,
        training_rows=result.training_rows,
        testing_rows=result.testing_rows,
        accuracy=result.accuracy,
        rows=rows,
        log_likelihood=_finite(report.log_likelihood),
        deviance=_finite(report.deviance),
        chi_square=_finite(report.chi_square),
        degrees_of_freedom=report.degrees_of_freedom,
        critical_chi_square=_finite(report.critical_chi_square),
        summary=report.summary,
        text=render_text(report),
    )


@app.post("/predictions/html", response_class=HTMLResponse)
def create_prediction_html(body: PredictionRequest, db: Session = Depends(get_db)):
    """Same run as /predictions, rendered as an HTML fragment."""
    result = _run(body, db)
    header = (
        "<header><h2>Logistic Regression Model for Day-1 Retention</h2>"
        f"<span>Model created from {body.begin.isoformat()} to {body.end.isoformat()}</span>"
        "</header>"
        f"<div>Total Dataset: {result.total_players}</div>"
        f"<div>Training vs Testing: {result.training_rows} vs {result.testing_rows}</div>"
    )
    return header + render_html(result.report)


def run():
    """Serve the API (the `retention-api` console script)."""
    uvicorn.run(app, host=API_HOST, port=API_PORT, log_level=LOG_LEVEL.lower())
