"""Event store: persists submitted activities and answers time-ranged queries."""
import logging
from datetime import datetime, timedelta, timezone
from typing import List

from sqlalchemy.orm import Session, selectinload

from .features import Event, TimedEvent
from .models import (
    Activity,
    EventParameter,
    EventRecord,
    TimedEventParameter,
    TimedEventRecord,
)
from .schemas import ActivitySubmitted

logger = logging.getLogger(__name__)


def to_naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC; aware values are converted."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def record_activity(db: Session, activity: ActivitySubmitted) -> bool:
    """
    Store the raw activity, then the event it describes.

    Returns True when the event was stored as a timed event (non-zero
    duration), False for an untimed one.
    """
    payload = activity.data
    raw = Activity(
        player_id=activity.player_id,
        app_version=activity.app_version,
        server_ts_utc=datetime.now(timezone.utc).isoformat(),
        data=payload.model_dump_json(by_alias=True),
    )
    db.add(raw)
    db.flush()

    event_ts = to_naive_utc(payload.time)
    timed = payload.duration is not None and payload.duration != timedelta(0)
    if timed:
        record = TimedEventRecord(
            player_id=activity.player_id,
            app_version=activity.app_version,
            action=payload.name,
            event_ts=event_ts,
            duration_seconds=payload.duration.total_seconds(),
            activity_id=raw.id,
            parameters=[
                TimedEventParameter(position=i, key=key, value=value)
                for i, (key, value) in enumerate(payload.parameters)
            ],
        )
    else:
        record = EventRecord(
            player_id=activity.player_id,
            app_version=activity.app_version,
            action=payload.name,
            event_ts=event_ts,
            activity_id=raw.id,
            parameters=[
                EventParameter(position=i, key=key, value=value)
                for i, (key, value) in enumerate(payload.parameters)
            ],
        )
    db.add(record)
    db.commit()

    logger.debug(
        "Stored %s event %r for player %s",
        "timed" if timed else "untimed", payload.name, activity.player_id,
    )
    return timed


def _to_event(record) -> Event:
    return Event(
        player=record.player_id,
        version=record.app_version,
        action=record.action,
        timestamp=record.event_ts,
        parameters=tuple((p.key, p.value) for p in record.parameters),
    )


def query_events(db: Session, begin: datetime, end: datetime) -> List[Event]:
    """Untimed events with timestamp in [begin, end), oldest first."""
    records = (
        db.query(EventRecord)
        .options(selectinload(EventRecord.parameters))
        .filter(
            EventRecord.event_ts >= to_naive_utc(begin),
            EventRecord.event_ts < to_naive_utc(end),
        )
        .order_by(EventRecord.event_ts, EventRecord.id)
        .all()
    )
    return [_to_event(record) for record in records]


def query_timed_events(db: Session, begin: datetime, end: datetime) -> List[TimedEvent]:
    """Timed events with timestamp in [begin, end), oldest first."""
    records = (
        db.query(TimedEventRecord)
        .options(selectinload(TimedEventRecord.parameters))
        .filter(
            TimedEventRecord.event_ts >= to_naive_utc(begin),
            TimedEventRecord.event_ts < to_naive_utc(end),
        )
        .order_by(TimedEventRecord.event_ts, TimedEventRecord.id)
        .all()
    )
    return [
        TimedEvent(event=_to_event(record), duration=timedelta(seconds=record.duration_seconds))
        for record in records
    ]


def list_activities(db: Session, limit: int) -> List[Activity]:
    """Most recently received raw activities first."""
    return (
        db.query(Activity)
        .order_by(Activity.server_ts_utc.desc(), Activity.id.desc())
        .limit(limit)
        .all()
    )
