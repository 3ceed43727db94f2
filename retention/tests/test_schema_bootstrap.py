"""Test the event store's startup schema check."""
import sqlite3
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import make_url

from retention.app.db import (
    ensure_schema,
    missing_columns,
    missing_indexes,
    sqlite_file,
)


def _engine(path: Path):
    return create_engine(f"sqlite:///{path}", connect_args={"check_same_thread": False})


def _create_pre_activity_db(path: Path):
    """An early event store: events were stored without their raw activity
    and there was no timed event parameter table yet."""
    conn = sqlite3.connect(str(path))
    conn.execute("""
        CREATE TABLE events (
            id INTEGER PRIMARY KEY,
            player_id TEXT NOT NULL,
            app_version TEXT NOT NULL,
            action TEXT NOT NULL,
            event_ts DATETIME NOT NULL
        )
    """)
    conn.execute(
        "INSERT INTO events (player_id, app_version, action, event_ts) VALUES (?, ?, ?, ?)",
        ("player-old", "1.0", "Game Feature Consumed", "2014-02-17 10:00:00"),
    )
    conn.commit()
    conn.close()


@pytest.mark.parametrize("url,expected", [
    ("sqlite:///:memory:", None),
    ("sqlite://", None),
    ("postgresql://user@host/db", None),
    ("sqlite:////var/data/telemetry.db", Path("/var/data/telemetry.db")),
])
def test_sqlite_file(url, expected):
    assert sqlite_file(make_url(url)) == expected


def test_fresh_file_gets_every_table_and_index(tmp_path):
    db_path = tmp_path / "telemetry.db"
    engine = _engine(db_path)

    ensure_schema(engine)

    assert db_path.exists()
    assert missing_columns(engine) == {}
    assert missing_indexes(engine) == {}
    engine.dispose()


def test_missing_column_without_reset_is_fatal(tmp_path, monkeypatch):
    monkeypatch.delenv("ALLOW_DEV_DB_RESET", raising=False)
    db_path = tmp_path / "telemetry.db"
    _create_pre_activity_db(db_path)
    engine = _engine(db_path)

    assert missing_columns(engine) == {"events": ["activity_id"]}
    with pytest.raises(RuntimeError) as exc_info:
        ensure_schema(engine)

    msg = str(exc_info.value)
    assert "events: activity_id" in msg
    assert "ALLOW_DEV_DB_RESET=1" in msg
    # Nothing was created or moved
    assert list(tmp_path.glob("telemetry.db.bak-*")) == []
    engine.dispose()


def test_dev_reset_backs_up_and_recreates(tmp_path, monkeypatch):
    monkeypatch.setenv("ALLOW_DEV_DB_RESET", "1")
    db_path = tmp_path / "telemetry.db"
    _create_pre_activity_db(db_path)
    engine = _engine(db_path)

    ensure_schema(engine)

    [backup] = list(tmp_path.glob("telemetry.db.bak-*"))
    conn = sqlite3.connect(str(backup))
    rows = conn.execute("SELECT player_id FROM events").fetchall()
    conn.close()
    assert rows == [("player-old",)]

    assert missing_columns(engine) == {}
    with engine.connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM events")).scalar() == 0
    engine.dispose()


def test_missing_tables_are_added_in_place(tmp_path, monkeypatch):
    monkeypatch.delenv("ALLOW_DEV_DB_RESET", raising=False)
    db_path = tmp_path / "telemetry.db"
    engine = _engine(db_path)
    ensure_schema(engine)
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE timed_event_parameters"))
        conn.execute(text(
            "INSERT INTO events (player_id, app_version, action, event_ts) "
            "VALUES ('p', '1.0', 'Game Feature Consumed', '2014-02-17 10:00:00')"
        ))

    ensure_schema(engine)

    assert "timed_event_parameters" in inspect(engine).get_table_names()
    with engine.connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM events")).scalar() == 1
    assert list(tmp_path.glob("telemetry.db.bak-*")) == []
    engine.dispose()


def test_dropped_window_index_is_recreated(tmp_path):
    db_path = tmp_path / "telemetry.db"
    engine = _engine(db_path)
    ensure_schema(engine)
    with engine.begin() as conn:
        conn.execute(text("DROP INDEX ix_events_event_ts"))
        conn.execute(text("DROP INDEX ix_event_parameters_event_id"))

    assert missing_indexes(engine) == {
        "events": ["event_ts"],
        "event_parameters": ["event_id"],
    }

    ensure_schema(engine)

    assert missing_indexes(engine) == {}
    engine.dispose()


def test_in_memory_always_works():
    engine = create_engine("sqlite:///:memory:")

    ensure_schema(engine)

    assert missing_columns(engine) == {}
    engine.dispose()
