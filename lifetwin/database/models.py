"""
models.py

SQLAlchemy ORM models for the LifeTwin database.
Defines the schema for learning events, personality profiles, and
autonomy settings. Timestamps are stored as naive UTC.
Part of LifeTwin — Adaptive Personalization Core.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from lifetwin import config

Base = declarative_base()


def _utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class LearningEventRow(Base):
    """
    One append-only learning event.
    Derived patterns / predictions / insights are stored here too, typed by event_type.
    """

    __tablename__ = "learning_events"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False, index=True)  # see learning.types.EventType
    module = Column(String, nullable=False)
    payload = Column(JSON, default=dict)
    confidence = Column(Float, nullable=False, default=0.5)
    impact = Column(String, nullable=False, default="medium")
    frequency = Column(Integer, nullable=False, default=1)
    applied = Column(Boolean, nullable=False, default=False)
    validated = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow_naive, index=True)


class PersonalityProfileRow(Base):
    """
    Per-user adaptive trait vector.
    Rows are created outside the core and never deleted.
    """

    __tablename__ = "personality_profiles"

    user_id = Column(String, primary_key=True)
    traits = Column(JSON, default=dict)
    last_updated = Column(DateTime, default=_utcnow_naive)


class AutonomySettingsRow(Base):
    __tablename__ = "autonomy_settings"

    user_id = Column(String, primary_key=True)
    scheduling = Column(Integer, default=50)
    communication = Column(Integer, default=30)
    file_management = Column(Integer, default=60)
    task_creation = Column(Integer, default=50)
    data_analysis = Column(Integer, default=80)
    cross_module_actions = Column(Integer, default=40)


def get_engine(url: str | None = None) -> Engine:
    """
    Create a SQLAlchemy engine for *url* (defaults to config.DATABASE_URL).

    In-memory SQLite shares one connection across threads so that the
    tables created here stay visible to every session.

    Example:
        engine = get_engine("sqlite:///:memory:")
        init_db(engine)
    """
    url = url or config.DATABASE_URL
    if url.startswith("sqlite") and ":memory:" in url:
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)


def get_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)
