"""Test decoding of submitted game activities."""
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from retention.app.schemas import (
    ActivityData,
    ActivitySubmitted,
    PredictionRequest,
    parse_client_time,
    parse_duration,
)


@pytest.mark.parametrize("text,expected", [
    ("0", timedelta(0)),
    ("0s", timedelta(0)),
    ("90s", timedelta(seconds=90)),
    ("1.5m", timedelta(seconds=90)),
    ("1h2m3.5s", timedelta(hours=1, minutes=2, seconds=3.5)),
    ("250ms", timedelta(milliseconds=250)),
    ("-3m", timedelta(minutes=-3)),
])
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "10", "ten minutes", "5d", "1h 2m"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValueError):
        parse_duration(text)


def test_parse_client_time_layouts():
    assert parse_client_time("02/17/2014 09:15:00") == datetime(2014, 2, 17, 9, 15)
    assert parse_client_time("02/17/2014 21:15:00") == datetime(2014, 2, 17, 21, 15)
    assert parse_client_time("2014-02-17T09:15:00") == datetime(2014, 2, 17, 9, 15)


def test_activity_data_from_client_payload():
    data = ActivityData.model_validate({
        "Name": "Game Progression",
        "Time": "02/17/2014 09:15:00",
        "Parameters": ['{"Increase": 4}', {"Stage": "forest"}],
    })

    assert data.name == "Game Progression"
    assert data.time == datetime(2014, 2, 17, 9, 15)
    assert data.parameters == [("Increase", "4"), ("Stage", "forest")]
    assert data.duration is None


def test_activity_data_with_duration():
    data = ActivityData.model_validate({
        "Name": "Level Duration",
        "Time": "02/17/2014 09:15:00",
        "Duration": "2m30s",
    })
    assert data.duration == timedelta(minutes=2, seconds=30)
    assert data.parameters == []


def test_submitted_data_may_be_json_string():
    activity = ActivitySubmitted.model_validate({
        "player_id": "p1",
        "app_version": "1.0",
        "data": '{"Name": "Social Feature Consumed", "Time": "02/17/2014 09:15:00"}',
    })
    assert activity.data.name == "Social Feature Consumed"


@pytest.mark.parametrize("data", [
    {"Name": "", "Time": "02/17/2014 09:15:00"},
    {"Name": "x", "Time": "yesterday"},
    {"Name": "x", "Time": "02/17/2014 09:15:00", "Duration": "soon"},
    {"Name": "x", "Time": "02/17/2014 09:15:00", "Parameters": ["[1, 2]"]},
    "{not json",
])
def test_invalid_activity_rejected(data):
    with pytest.raises(ValidationError):
        ActivitySubmitted.model_validate({"player_id": "p1", "app_version": "1.0", "data": data})


def test_prediction_request_bounds():
    with pytest.raises(ValidationError):
        PredictionRequest(
            begin=datetime(2014, 2, 17), end=datetime(2014, 2, 28),
            training_percent=120, testing_percent=-20, max_iterations=20,
        )
    with pytest.raises(ValidationError):
        PredictionRequest(
            begin=datetime(2014, 2, 17), end=datetime(2014, 2, 28),
            training_percent=80, testing_percent=20, max_iterations=0,
        )
