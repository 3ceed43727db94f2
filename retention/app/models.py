"""SQLAlchemy ORM models."""
from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .db import Base


class Activity(Base):
    """Raw activity exactly as submitted by the game client."""
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(String, index=True, nullable=False)
    app_version = Column(String, nullable=False)
    server_ts_utc = Column(String, nullable=False)
    data = Column(Text, nullable=False)


class EventRecord(Base):
    """Stores an untimed game action."""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(String, index=True, nullable=False)
    app_version = Column(String, nullable=False)
    action = Column(String, nullable=False)
    event_ts = Column(DateTime, index=True, nullable=False)
    activity_id = Column(Integer, ForeignKey("activities.id"), nullable=True)

    parameters = relationship(
        "EventParameter",
        order_by="EventParameter.position",
        cascade="all, delete-orphan",
    )


class EventParameter(Base):
    """One key/value parameter of an untimed event."""
    __tablename__ = "event_parameters"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), index=True, nullable=False)
    position = Column(Integer, nullable=False)
    key = Column(String, nullable=False)
    value = Column(String, nullable=False)


class TimedEventRecord(Base):
    """Stores a game action that carries a duration."""
    __tablename__ = "timed_events"

    id = Column(Integer, primary_key=True, index=True)
    player_id = Column(String, index=True, nullable=False)
    app_version = Column(String, nullable=False)
    action = Column(String, nullable=False)
    event_ts = Column(DateTime, index=True, nullable=False)
    duration_seconds = Column(Float, nullable=False)
    activity_id = Column(Integer, ForeignKey("activities.id"), nullable=True)

    parameters = relationship(
        "TimedEventParameter",
        order_by="TimedEventParameter.position",
        cascade="all, delete-orphan",
    )


class TimedEventParameter(Base):
    """One key/value parameter of a timed event."""
    __tablename__ = "timed_event_parameters"

    id = Column(Integer, primary_key=True, index=True)
    timed_event_id = Column(Integer, ForeignKey("timed_events.id"), index=True, nullable=False)
    position = Column(Integer, nullable=False)
    key = Column(String, nullable=False)
    value = Column(String, nullable=False)
