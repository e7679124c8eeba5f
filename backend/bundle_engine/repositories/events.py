"""Append-only sinks for engine events and explanation audit rows.

Rows are plain dicts so the logger does not depend on the storage backend.
The SQLAlchemy sinks open a short-lived session per call; the in-memory sinks
are used when no database is configured and in tests.
"""

from __future__ import annotations

import uuid
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bundle_engine.models.events import BundleEngineEvent, ExplanationLog

EVENT_COLUMNS = (
    "event_type",
    "event_timestamp",
    "patient_id",
    "patient_ref",
    "care_plan_id",
    "scenario_id",
    "user_id",
    "user_ref",
    "payload",
)

EXPLANATION_LOG_COLUMNS = (
    "patient_id",
    "scenario_id",
    "scenario_axis",
    "explanation_source",
    "status",
    "response_time_ms",
    "requested_by",
)


class EventSink(Protocol):
    """Insert, bulk-read-unexported and mark-exported over event rows."""

    async def insert(self, row: dict[str, Any]) -> None: ...

    async def fetch_unexported(self, limit: int) -> list[dict[str, Any]]: ...

    async def mark_exported(self, ids: Iterable[str | uuid.UUID], batch_id: str) -> int: ...

    async def stats(self, start: datetime, end: datetime) -> dict[str, Any]: ...


class ExplanationLogSink(Protocol):
    async def insert(self, row: dict[str, Any]) -> None: ...


def _as_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _event_to_dict(event: BundleEngineEvent) -> dict[str, Any]:
    return {
        "id": str(event.id),
        **{column: getattr(event, column) for column in EVENT_COLUMNS},
        "exported": event.exported,
        "exported_at": event.exported_at,
        "export_batch_id": event.export_batch_id,
    }


def _empty_stats() -> dict[str, Any]:
    return {"total_events": 0, "by_type": {}, "pending_export": 0, "exported": 0}


# ── SQLAlchemy ──


class SqlEventSink:
    """Event rows in ``bundle_engine_events``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def insert(self, row: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            session.add(BundleEngineEvent(**{k: row.get(k) for k in EVENT_COLUMNS}))
            await session.commit()

    async def fetch_unexported(self, limit: int) -> list[dict[str, Any]]:
        query = (
            select(BundleEngineEvent)
            .where(BundleEngineEvent.exported.is_(False))
            .order_by(BundleEngineEvent.event_timestamp.asc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_event_to_dict(event) for event in result.scalars().all()]

    async def mark_exported(self, ids: Iterable[str | uuid.UUID], batch_id: str) -> int:
        event_ids = [_as_uuid(i) for i in ids]
        if not event_ids:
            return 0
        stmt = (
            update(BundleEngineEvent)
            .where(BundleEngineEvent.id.in_(event_ids))
            .values(exported=True, exported_at=datetime.now(timezone.utc), export_batch_id=batch_id)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    async def stats(self, start: datetime, end: datetime) -> dict[str, Any]:
        in_window = (
            BundleEngineEvent.event_timestamp >= start,
            BundleEngineEvent.event_timestamp <= end,
        )
        by_type_query = (
            select(BundleEngineEvent.event_type, func.count())
            .where(*in_window)
            .group_by(BundleEngineEvent.event_type)
        )
        exported_query = (
            select(BundleEngineEvent.exported, func.count())
            .where(*in_window)
            .group_by(BundleEngineEvent.exported)
        )
        async with self._session_factory() as session:
            by_type = {row[0]: row[1] for row in (await session.execute(by_type_query)).all()}
            by_flag = {row[0]: row[1] for row in (await session.execute(exported_query)).all()}

        stats = _empty_stats()
        stats["total_events"] = sum(by_type.values())
        stats["by_type"] = by_type
        stats["pending_export"] = by_flag.get(False, 0)
        stats["exported"] = by_flag.get(True, 0)
        return stats


class SqlExplanationLogSink:
    """Audit rows in ``bundle_explanation_logs``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def insert(self, row: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            session.add(ExplanationLog(**{k: row.get(k) for k in EXPLANATION_LOG_COLUMNS}))
            await session.commit()


# ── In-memory ──


class InMemoryEventSink:
    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []

    async def insert(self, row: dict[str, Any]) -> None:
        stored = {k: row.get(k) for k in EVENT_COLUMNS}
        stored.update(id=str(uuid.uuid4()), exported=False, exported_at=None, export_batch_id=None)
        self.rows.append(stored)

    async def fetch_unexported(self, limit: int) -> list[dict[str, Any]]:
        pending = [r for r in self.rows if not r["exported"]]
        pending.sort(key=lambda r: r["event_timestamp"])
        return [dict(r) for r in pending[:limit]]

    async def mark_exported(self, ids: Iterable[str | uuid.UUID], batch_id: str) -> int:
        wanted = {str(i) for i in ids}
        now = datetime.now(timezone.utc)
        count = 0
        for row in self.rows:
            if row["id"] in wanted:
                row.update(exported=True, exported_at=now, export_batch_id=batch_id)
                count += 1
        return count

    async def stats(self, start: datetime, end: datetime) -> dict[str, Any]:
        window = [r for r in self.rows if start <= r["event_timestamp"] <= end]
        stats = _empty_stats()
        stats["total_events"] = len(window)
        stats["by_type"] = dict(Counter(r["event_type"] for r in window))
        stats["exported"] = sum(1 for r in window if r["exported"])
        stats["pending_export"] = len(window) - stats["exported"]
        return stats


class InMemoryExplanationLogSink:
    def __init__(self) -> None:
        self.rows: list[dict[str, Any]] = []

    async def insert(self, row: dict[str, Any]) -> None:
        self.rows.append({k: row.get(k) for k in EXPLANATION_LOG_COLUMNS})
