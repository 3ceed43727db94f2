"""Pydantic schemas for request/response validation."""
import json
import re
from datetime import datetime, timedelta
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Client clock layout, e.g. "02/17/2014 09:15:00"
CLIENT_TIME_FORMATS = ("%m/%d/%Y %I:%M:%S", "%m/%d/%Y %H:%M:%S")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """
    Parse a duration string such as "1h2m3.5s", "90s" or "1.5m".

    A bare "0" is a zero duration. Raises ValueError on anything else.
    """
    text = text.strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError("empty duration")

    seconds = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return timedelta(seconds=sign * seconds)


def parse_client_time(text: str) -> datetime:
    for fmt in CLIENT_TIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


class ActivityData(BaseModel):
    """Decoded game payload: {"Name", "Time", "Parameters", "Duration"}."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., alias="Name", min_length=1)
    time: datetime = Field(..., alias="Time")
    parameters: List[Tuple[str, str]] = Field(default_factory=list, alias="Parameters")
    duration: Optional[timedelta] = Field(None, alias="Duration")

    @field_validator("time", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_client_time(value)
        return value

    @field_validator("parameters", mode="before")
    @classmethod
    def _flatten_parameters(cls, value: Any) -> Any:
        """Each item is a one-key object, or that object JSON-encoded."""
        if value is None:
            return []
        pairs = []
        for item in value:
            if isinstance(item, str):
                item = json.loads(item)
            if not isinstance(item, dict):
                raise ValueError("each parameter must be a key/value object")
            for key, val in item.items():
                pairs.append((str(key), str(val)))
        return pairs

    @field_validator("duration", mode="before")
    @classmethod
    def _parse_duration(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_duration(value)
        return value


class ActivitySubmitted(BaseModel):
    """Schema for an incoming game activity."""
    player_id: str = Field(..., min_length=1)
    app_version: str
    data: ActivityData

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value)
        return value


class StoredResponse(BaseModel):
    """Response for activity storage."""
    stored: bool
    timed: bool


class ActivityResponse(BaseModel):
    """Response schema for a stored raw activity."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    player_id: str
    app_version: str
    server_ts_utc: str
    data: str


class PredictionRequest(BaseModel):
    """Parameters of one training + evaluation run."""
    begin: datetime
    end: datetime
    training_percent: int = Field(..., ge=0, le=100)
    testing_percent: int = Field(..., ge=0, le=100)
    max_iterations: int = Field(..., ge=1)
    seed: Optional[int] = None


class ReportRowResponse(BaseModel):
    """One coefficient row; non-finite statistics are null."""
    name: str
    coefficient: Optional[float] = None
    odds_ratio: Optional[float] = None
    standard_error: Optional[float] = None
    wald_statistic: Optional[float] = None
    lower_ci: Optional[float] = None
    upper_ci: Optional[float] = None


class PredictionResponse(BaseModel):
    """Response schema for a prediction run."""
    begin: datetime
    end: datetime
    observed_name: str
    outcome: str
    iterations: int
    total_players: int
    retained_players: int
    training_rows: int
    testing_rows: int
    accuracy: float
    rows: List[ReportRowResponse]
    log_likelihood: Optional[float] = None
    deviance: Optional[float] = None
    chi_square: Optional[float] = None
    degrees_of_freedom: int
    critical_chi_square: Optional[float] = None
    summary: List[str]
    text: str
