"""Alert rule store with write-time validation.

Malformed rules are rejected here with ConfigurationError so they never
reach the evaluation loop.
"""

import logging
from collections.abc import Callable
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketpulse.alerts.models import AlertRule, ConditionKind, Severity
from marketpulse.clock import ensure_utc
from marketpulse.errors import ConfigurationError
from marketpulse.models.alert import AlertRuleRecord

logger = logging.getLogger(__name__)


class RuleStore(Protocol):
    """Protocol for alert rule persistence."""

    async def list_active(self) -> list[AlertRule]: ...

    async def list_all(self) -> list[AlertRule]: ...

    async def get(self, rule_id: int) -> AlertRule | None: ...

    async def create(self, rule: AlertRule) -> AlertRule: ...

    async def update(self, rule_id: int, **changes: Any) -> AlertRule: ...

    async def delete(self, rule_id: int) -> bool: ...


class SqlRuleStore:
    """SQLAlchemy-backed rule store over ``alert_rules``."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def list_active(self) -> list[AlertRule]:
        stmt = select(AlertRuleRecord).where(AlertRuleRecord.is_active.is_(True)).order_by(AlertRuleRecord.id)
        return await self._load(stmt)

    async def list_all(self) -> list[AlertRule]:
        return await self._load(select(AlertRuleRecord).order_by(AlertRuleRecord.id))

    async def get(self, rule_id: int) -> AlertRule | None:
        async with self._session_factory() as session:
            record = await session.get(AlertRuleRecord, rule_id)
        return _to_rule(record) if record is not None else None

    async def create(self, rule: AlertRule) -> AlertRule:
        """Persist a new rule.

        Raises:
            ConfigurationError: If the rule is malformed
        """
        rule.validate()
        record = AlertRuleRecord(
            name=rule.name,
            condition=rule.condition.value,
            threshold=float(rule.threshold),
            time_window=rule.time_window,
            severity=rule.severity.value,
            channels=list(rule.channels),
            is_active=rule.is_active,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
            await session.refresh(record)

        logger.info("Created alert rule %d (%s, %s)", record.id, record.name, record.condition)
        return _to_rule(record)

    async def update(self, rule_id: int, **changes: Any) -> AlertRule:
        """Apply changes to a rule, validating the result before writing.

        Raises:
            ConfigurationError: If the rule does not exist or the result is malformed
        """
        async with self._session_factory() as session:
            record = await session.get(AlertRuleRecord, rule_id)
            if record is None:
                raise ConfigurationError(f"Alert rule {rule_id} not found")

            rule = _to_rule(record).with_changes(**changes)

            record.name = rule.name
            record.condition = rule.condition.value
            record.threshold = float(rule.threshold)
            record.time_window = rule.time_window
            record.severity = rule.severity.value
            record.channels = list(rule.channels)
            record.is_active = rule.is_active
            await session.commit()
            await session.refresh(record)

        logger.info("Updated alert rule %d (%s)", rule_id, ", ".join(sorted(changes)))
        return _to_rule(record)

    async def delete(self, rule_id: int) -> bool:
        async with self._session_factory() as session:
            record = await session.get(AlertRuleRecord, rule_id)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()

        logger.info("Deleted alert rule %d", rule_id)
        return True

    async def _load(self, stmt) -> list[AlertRule]:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_rule(record) for record in result.scalars().all()]


def _to_rule(record: AlertRuleRecord) -> AlertRule:
    return AlertRule(
        id=record.id,
        name=record.name,
        condition=ConditionKind(record.condition),
        threshold=record.threshold,
        time_window=record.time_window,
        severity=Severity(record.severity),
        channels=tuple(record.channels or ()),
        is_active=record.is_active,
        created_at=ensure_utc(record.created_at) if record.created_at else None,
        updated_at=ensure_utc(record.updated_at) if record.updated_at else None,
    )
