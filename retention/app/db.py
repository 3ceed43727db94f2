"""Database connection, sessions and the event store's startup schema check."""
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine, URL
from sqlalchemy.orm import sessionmaker, declarative_base

from .settings import DATABASE_URL

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Columns the store reads back.  Extra columns in an existing file are fine;
# a missing one cannot be added without losing the table's rows.
REQUIRED_COLUMNS = {
    "activities": ["player_id", "app_version", "server_ts_utc", "data"],
    "events": ["player_id", "app_version", "action", "event_ts", "activity_id"],
    "event_parameters": ["event_id", "position", "key", "value"],
    "timed_events": [
        "player_id", "app_version", "action", "event_ts", "duration_seconds", "activity_id",
    ],
    "timed_event_parameters": ["timed_event_id", "position", "key", "value"],
}

# Leading column of an index each table needs: window queries range over
# event_ts, parameters are loaded per owning event.
REQUIRED_INDEXES = {
    "events": ["event_ts"],
    "timed_events": ["event_ts"],
    "event_parameters": ["event_id"],
    "timed_event_parameters": ["timed_event_id"],
}


def sqlite_file(url: URL) -> Optional[Path]:
    """Path of a file-backed SQLite database, None for anything else."""
    if url.get_backend_name() != "sqlite":
        return None
    if url.database in (None, "", ":memory:"):
        return None
    return Path(url.database)


def missing_columns(bind: Engine) -> Dict[str, List[str]]:
    """{table: [columns]} for existing tables that lack required columns.

    Tables that do not exist at all are not reported; create_all adds them.
    """
    inspector = inspect(bind)
    existing = set(inspector.get_table_names())
    missing = {}
    for table, required in REQUIRED_COLUMNS.items():
        if table not in existing:
            continue
        actual = {column["name"] for column in inspector.get_columns(table)}
        gaps = [column for column in required if column not in actual]
        if gaps:
            missing[table] = gaps
    return missing


def missing_indexes(bind: Engine) -> Dict[str, List[str]]:
    """{table: [columns]} for existing tables with no index led by the column."""
    inspector = inspect(bind)
    existing = set(inspector.get_table_names())
    missing = {}
    for table, columns in REQUIRED_INDEXES.items():
        if table not in existing:
            continue
        leading = {ix["column_names"][0] for ix in inspector.get_indexes(table) if ix["column_names"]}
        gaps = [column for column in columns if column not in leading]
        if gaps:
            missing[table] = gaps
    return missing


def _create_indexes(bind: Engine, missing: Dict[str, List[str]]) -> None:
    for table, columns in missing.items():
        for index in Base.metadata.tables[table].indexes:
            if list(index.columns)[0].name in columns:
                index.create(bind=bind, checkfirst=True)
                logger.info("Created index %s", index.name)


def _stale_message(missing: Dict[str, List[str]]) -> str:
    lines = ["Event store schema is out of date.  Missing columns:"]
    for table, columns in sorted(missing.items()):
        lines.append(f"  {table}: {', '.join(columns)}")
    lines.append("")
    lines.append("Set ALLOW_DEV_DB_RESET=1 to back up and recreate the database,")
    lines.append("or point DATABASE_URL at a fresh file.")
    return "\n".join(lines)


def ensure_schema(bind: Optional[Engine] = None) -> None:
    """Run at application startup.

    Missing tables and missing event/parameter indexes are created in
    place.  Missing columns on an existing table are fatal unless
    ALLOW_DEV_DB_RESET=1, in which case a SQLite file is moved aside to
    ``<name>.bak-<timestamp>`` and recreated empty.
    """
    from . import models  # noqa: F401  (registers tables on Base)

    bind = bind if bind is not None else engine
    path = sqlite_file(bind.url)

    if path is not None and not path.exists():
        Base.metadata.create_all(bind=bind)
        logger.info("Created new event store at %s", path)
        return

    stale = missing_columns(bind)
    if stale:
        if path is None or os.getenv("ALLOW_DEV_DB_RESET", "") != "1":
            raise RuntimeError(_stale_message(stale))
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        backup_path = path.with_name(f"{path.name}.bak-{ts}")
        bind.dispose()
        shutil.move(str(path), str(backup_path))
        logger.warning("Stale event store backed up to %s; recreating %s", backup_path, path)

    Base.metadata.create_all(bind=bind)

    unindexed = missing_indexes(bind)
    if unindexed:
        _create_indexes(bind, unindexed)


def get_db():
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
