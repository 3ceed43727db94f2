"""Test activity ingestion and the event store."""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from retention.app.main import app
from retention.app.db import Base, get_db
from retention.app.store import query_events, query_timed_events


@pytest.fixture(scope="function")
def session_factory():
    """Create a fresh in-memory test database for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestingSessionLocal
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def client(session_factory):
    """Test client with test database."""
    return TestClient(app)


def create_activity(player_id, name, time, parameters=None, duration=None):
    """Helper to create an activity payload the way the game client sends it."""
    data = {"Name": name, "Time": time}
    if parameters is not None:
        data["Parameters"] = parameters
    if duration is not None:
        data["Duration"] = duration
    return {"player_id": player_id, "app_version": "1.0", "data": data}


def test_untimed_activity_is_stored(client, session_factory):
    response = client.post("/activities", json=create_activity(
        "player-1", "Game Progression", "02/17/2014 09:15:00",
        parameters=['{"Increase": 5}'],
    ))
    assert response.status_code == 200
    assert response.json() == {"stored": True, "timed": False}

    db = session_factory()
    try:
        [event] = query_events(db, datetime(2014, 2, 17), datetime(2014, 2, 18))
        assert query_timed_events(db, datetime(2014, 2, 17), datetime(2014, 2, 18)) == []
    finally:
        db.close()

    assert event.player == "player-1"
    assert event.action == "Game Progression"
    assert event.timestamp == datetime(2014, 2, 17, 9, 15)
    assert event.parameter_values("Increase") == ["5"]


def test_timed_activity_is_stored(client, session_factory):
    response = client.post("/activities", json=create_activity(
        "player-2", "Tutorial Duration", "02/17/2014 09:15:00", duration="3m",
    ))
    assert response.json() == {"stored": True, "timed": True}

    db = session_factory()
    try:
        [timed] = query_timed_events(db, datetime(2014, 2, 17), datetime(2014, 2, 18))
        assert query_events(db, datetime(2014, 2, 17), datetime(2014, 2, 18)) == []
    finally:
        db.close()

    assert timed.player == "player-2"
    assert timed.duration == timedelta(minutes=3)


def test_zero_duration_is_untimed(client):
    response = client.post("/activities", json=create_activity(
        "player-3", "Level Duration", "02/17/2014 09:15:00", duration="0s",
    ))
    assert response.json()["timed"] is False


def test_query_window_is_half_open(client, session_factory):
    for time in ["02/17/2014 00:00:00", "02/17/2014 12:00:00", "02/18/2014 00:00:00"]:
        client.post("/activities", json=create_activity("p", "Game Feature Consumed", time))

    db = session_factory()
    try:
        events = query_events(db, datetime(2014, 2, 17), datetime(2014, 2, 18))
    finally:
        db.close()

    assert [e.timestamp for e in events] == [
        datetime(2014, 2, 17, 0, 0),
        datetime(2014, 2, 17, 12, 0),
    ]


def test_list_activities_newest_first(client):
    for player in ["a", "b", "c"]:
        client.post("/activities", json=create_activity(
            player, "Social Feature Consumed", "02/17/2014 09:15:00",
        ))

    response = client.get("/activities", params={"limit": 2})
    assert response.status_code == 200
    body = response.json()
    assert [row["player_id"] for row in body] == ["c", "b"]
    assert '"Name":"Social Feature Consumed"' in body[0]["data"]


def test_invalid_activity_returns_422(client):
    response = client.post("/activities", json=create_activity(
        "player-4", "Level Duration", "02/17/2014 09:15:00", duration="forever",
    ))
    assert response.status_code == 422

    response = client.post("/activities", json={"app_version": "1.0", "data": {}})
    assert response.status_code == 422
