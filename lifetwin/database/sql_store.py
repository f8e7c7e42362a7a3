"""
sql_store.py

SQLAlchemy-backed implementations of the LifeTwin store interfaces.
Sessions are synchronous; every store call runs in a worker thread via
asyncio.to_thread so the event loop is never blocked on I/O.
Part of LifeTwin — Adaptive Personalization Core.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import sessionmaker

from lifetwin.autonomy.types import AutonomySettings
from lifetwin.database.models import (
    AutonomySettingsRow,
    LearningEventRow,
    PersonalityProfileRow,
    get_engine,
    get_session_factory,
    init_db,
)
from lifetwin.database.stores import (
    AutonomySettingsStore,
    EventFilter,
    EventStore,
    PersonalityStore,
    window_start,
)
from lifetwin.exceptions import ProviderError
from lifetwin.learning.types import LearningEvent

_log = logging.getLogger("lifetwin.storage")


def _to_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _row_to_event(row: LearningEventRow) -> LearningEvent:
    return LearningEvent(
        id=row.id,
        user_id=row.user_id,
        event_type=row.event_type,
        module=row.module,
        payload=row.payload or {},
        confidence=row.confidence,
        impact=row.impact,
        timestamp=row.created_at.replace(tzinfo=timezone.utc),
        applied=bool(row.applied),
        validated=bool(row.validated),
        frequency=row.frequency or 1,
    )


class SqlStores:
    """
    Bundles the three SQL stores over one engine.

    Example:
        stores = SqlStores.from_url("sqlite:///:memory:")
        await stores.events.append(event)
    """

    def __init__(self, session_factory: sessionmaker):
        self.events = SqlEventStore(session_factory)
        self.personality = SqlPersonalityStore(session_factory)
        self.autonomy = SqlAutonomySettingsStore(session_factory)

    @classmethod
    def from_url(cls, url: str | None = None) -> "SqlStores":
        engine = get_engine(url)
        init_db(engine)
        _log.info("SQL_STORES | url=%s", engine.url.render_as_string(hide_password=True))
        return cls(get_session_factory(engine))


class SqlEventStore(EventStore):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def append(self, event: LearningEvent) -> str:
        return await asyncio.to_thread(self._append_sync, event)

    def _append_sync(self, event: LearningEvent) -> str:
        db = self._session_factory()
        try:
            db.add(
                LearningEventRow(
                    id=event.id,
                    user_id=event.user_id,
                    event_type=event.event_type.value,
                    module=event.module,
                    payload=event.payload,
                    confidence=event.confidence,
                    impact=event.impact.value,
                    frequency=event.frequency,
                    applied=event.applied,
                    validated=event.validated,
                    created_at=_to_naive_utc(event.timestamp),
                )
            )
            db.commit()
            return event.id
        except Exception as exc:
            db.rollback()
            _log.exception("APPEND failed | user=%s | id=%s", event.user_id, event.id)
            raise ProviderError("Event append failed", {"event_id": event.id}) from exc
        finally:
            db.close()

    async def query(
        self,
        user_id: str,
        event_filter: Optional[EventFilter] = None,
        window: Optional[timedelta] = None,
        limit: Optional[int] = None,
    ) -> list[LearningEvent]:
        return await asyncio.to_thread(self._query_sync, user_id, event_filter, window, limit)

    def _query_sync(
        self,
        user_id: str,
        event_filter: Optional[EventFilter],
        window: Optional[timedelta],
        limit: Optional[int],
    ) -> list[LearningEvent]:
        stmt = select(LearningEventRow).where(LearningEventRow.user_id == user_id)
        since = window_start(window)
        if since is not None:
            stmt = stmt.where(LearningEventRow.created_at >= _to_naive_utc(since))
        if event_filter is not None:
            if event_filter.event_types is not None:
                stmt = stmt.where(
                    LearningEventRow.event_type.in_([t.value for t in event_filter.event_types])
                )
            if event_filter.applied is not None:
                stmt = stmt.where(LearningEventRow.applied == event_filter.applied)
        stmt = stmt.order_by(LearningEventRow.created_at.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        db = self._session_factory()
        try:
            return [_row_to_event(row) for row in db.scalars(stmt).all()]
        finally:
            db.close()

    async def mark_applied(self, event_id: str) -> None:
        await asyncio.to_thread(self._mark_applied_sync, event_id)

    def _mark_applied_sync(self, event_id: str) -> None:
        db = self._session_factory()
        try:
            db.execute(
                update(LearningEventRow).where(LearningEventRow.id == event_id).values(applied=True)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class SqlPersonalityStore(PersonalityStore):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def get(self, user_id: str) -> Optional[dict[str, float]]:
        return await asyncio.to_thread(self._get_sync, user_id)

    def _get_sync(self, user_id: str) -> Optional[dict[str, float]]:
        db = self._session_factory()
        try:
            row = db.get(PersonalityProfileRow, user_id)
            return dict(row.traits or {}) if row is not None else None
        finally:
            db.close()

    async def put(self, user_id: str, traits: dict[str, float], timestamp: datetime) -> None:
        await asyncio.to_thread(self._put_sync, user_id, traits, timestamp)

    def _put_sync(self, user_id: str, traits: dict[str, float], timestamp: datetime) -> None:
        db = self._session_factory()
        try:
            row = db.get(PersonalityProfileRow, user_id)
            if row is None:
                row = PersonalityProfileRow(user_id=user_id)
                db.add(row)
            row.traits = dict(traits)
            row.last_updated = _to_naive_utc(timestamp)
            db.commit()
            _log.info("PERSONALITY_PUT | user=%s | traits=%d", user_id, len(traits))
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class SqlAutonomySettingsStore(AutonomySettingsStore):
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    async def get(self, user_id: str) -> AutonomySettings:
        return await asyncio.to_thread(self._get_sync, user_id)

    def _get_sync(self, user_id: str) -> AutonomySettings:
        db = self._session_factory()
        try:
            row = db.get(AutonomySettingsRow, user_id)
            if row is None:
                return AutonomySettings()
            return AutonomySettings.from_dict(
                {
                    "scheduling": row.scheduling,
                    "communication": row.communication,
                    "file_management": row.file_management,
                    "task_creation": row.task_creation,
                    "data_analysis": row.data_analysis,
                    "cross_module_actions": row.cross_module_actions,
                }
            )
        finally:
            db.close()

    async def put(self, user_id: str, settings: AutonomySettings) -> None:
        await asyncio.to_thread(self._put_sync, user_id, settings)

    def _put_sync(self, user_id: str, settings: AutonomySettings) -> None:
        db = self._session_factory()
        try:
            row = db.get(AutonomySettingsRow, user_id)
            if row is None:
                row = AutonomySettingsRow(user_id=user_id)
                db.add(row)
            for key, value in settings.to_dict().items():
                setattr(row, key, value)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
