"""Alert store: persistence and one-way resolution of alerts.

Usage:
    from marketpulse.alerts.repository import SqlAlertStore

    store = SqlAlertStore(async_session)
    alert = await store.create(alert)
    alert = await store.resolve(alert.id, resolved_by="ops@example.com")
"""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from marketpulse.alerts.models import Alert, AlertFilters, Severity
from marketpulse.clock import ensure_utc, utcnow
from marketpulse.errors import AlertAlreadyResolvedError, AlertNotFoundError
from marketpulse.models.alert import AlertRecord


class AlertStore(Protocol):
    """Protocol for alert persistence."""

    async def create(self, alert: Alert) -> Alert: ...

    async def resolve(self, alert_id: int, resolved_by: str) -> Alert: ...

    async def query(self, filters: AlertFilters) -> list[Alert]: ...

    async def get(self, alert_id: int) -> Alert | None: ...


class SqlAlertStore:
    """SQLAlchemy-backed alert store over ``alerts``. Alerts are never deleted."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def create(self, alert: Alert) -> Alert:
        """Persist an alert.

        Returns:
            The alert with its database id
        """
        record = AlertRecord(
            type=alert.type,
            severity=alert.severity.value,
            message=alert.message,
            details=alert.details,
            created_at=alert.created_at or utcnow(),
            resolved=False,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)
        return _to_alert(record)

    async def resolve(self, alert_id: int, resolved_by: str, at: datetime | None = None) -> Alert:
        """Mark an alert resolved.

        The update only matches unresolved rows, so two concurrent resolutions
        cannot both succeed and ``resolved_at`` is written exactly once.

        Raises:
            AlertNotFoundError: If the alert does not exist
            AlertAlreadyResolvedError: If the alert was already resolved
        """
        resolved_at = ensure_utc(at) if at is not None else utcnow()
        stmt = (
            update(AlertRecord)
            .where(AlertRecord.id == alert_id)
            .where(AlertRecord.resolved.is_(False))
            .values(resolved=True, resolved_by=resolved_by, resolved_at=resolved_at)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            record = await session.get(AlertRecord, alert_id, populate_existing=True)

        if record is None:
            raise AlertNotFoundError(alert_id)
        if result.rowcount == 0:
            raise AlertAlreadyResolvedError(alert_id, record.resolved_by)
        return _to_alert(record)

    async def query(self, filters: AlertFilters) -> list[Alert]:
        stmt = select(AlertRecord)
        if filters.severity is not None:
            stmt = stmt.where(AlertRecord.severity == Severity(filters.severity).value)
        if filters.type is not None:
            stmt = stmt.where(AlertRecord.type == filters.type)
        if filters.resolved is not None:
            stmt = stmt.where(AlertRecord.resolved.is_(filters.resolved))
        if filters.start is not None:
            stmt = stmt.where(AlertRecord.created_at >= filters.start)
        if filters.end is not None:
            stmt = stmt.where(AlertRecord.created_at <= filters.end)

        stmt = (
            stmt.order_by(AlertRecord.created_at.desc(), AlertRecord.id.desc())
            .limit(filters.limit)
            .offset(filters.offset)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_alert(record) for record in result.scalars().all()]

    async def get(self, alert_id: int) -> Alert | None:
        async with self._session_factory() as session:
            record = await session.get(AlertRecord, alert_id)
        return _to_alert(record) if record is not None else None


def _to_alert(record: AlertRecord) -> Alert:
    return Alert(
        id=record.id,
        type=record.type,
        severity=Severity(record.severity),
        message=record.message,
        details=record.details or {},
        created_at=ensure_utc(record.created_at),
        resolved=record.resolved,
        resolved_by=record.resolved_by,
        resolved_at=ensure_utc(record.resolved_at) if record.resolved_at else None,
    )
