"""Alert rule engine.

Evaluates active rules on each cycle, materializes Alert records for the ones
that trigger and hands them to the notification dispatcher. ``raise_alert``
is the same persist-and-dispatch path used by forecasting and performance
analysis.

Usage:
    engine = AlertRuleEngine(
        rules=SqlRuleStore(async_session),
        alerts=SqlAlertStore(async_session),
        evaluators=build_condition_registry(logs, transactions, store, feed),
        dispatcher=dispatcher,
    )
    raised = await engine.run_cycle()
"""

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError

from marketpulse.alerts.conditions import ConditionEvaluator, check_registry
from marketpulse.alerts.factory import alert_for_rule, create_alert
from marketpulse.alerts.models import Alert, AlertFilters, AlertRule, ConditionKind, Severity
from marketpulse.alerts.repository import AlertStore
from marketpulse.alerts.rules import RuleStore
from marketpulse.clock import Clock, TimeWindow, utcnow
from marketpulse.errors import ConfigurationError, MetricQueryError, RuleEvaluationError

logger = logging.getLogger(__name__)


class AlertDispatch(Protocol):
    """The notification side of the alert path."""

    async def dispatch_alert(self, alert: Alert, channels: Sequence[str] = ()) -> Any: ...


class AlertRuleEngine:
    """Evaluates alert rules and raises alerts."""

    def __init__(
        self,
        rules: RuleStore,
        alerts: AlertStore,
        evaluators: dict[ConditionKind, ConditionEvaluator],
        dispatcher: AlertDispatch | None = None,
        clock: Clock = utcnow,
    ):
        check_registry(evaluators)
        self.rules = rules
        self.alerts = alerts
        self.evaluators = evaluators
        self.dispatcher = dispatcher
        self._clock = clock

    async def evaluate_rule(self, rule: AlertRule, now: datetime | None = None) -> Alert | None:
        """Evaluate one rule over ``[now - time_window, now]``.

        Returns:
            The raised alert, or None if the rule did not trigger

        Raises:
            RuleEvaluationError: If the rule's data source could not be read
        """
        window = TimeWindow.trailing(timedelta(minutes=rule.time_window), now or self._clock())
        evaluator = self.evaluators[rule.condition]

        try:
            evaluation = await evaluator.evaluate(rule, window)
        except Exception as e:
            raise RuleEvaluationError(
                f"Failed to evaluate rule '{rule.name}': {e}", rule_id=rule.id
            ) from e

        if not evaluation.triggered:
            return None

        logger.info(
            "Rule %s (%s) triggered: observed=%s threshold=%s",
            rule.id,
            rule.name,
            evaluation.observed,
            rule.threshold,
        )
        alert = alert_for_rule(
            rule,
            timestamp=window.end,
            value=evaluation.observed,
            window_start=window.start,
            window_end=window.end,
        )
        return await self._persist_and_dispatch(alert, rule.channels)

    async def run_cycle(self) -> list[Alert]:
        """Evaluate every active rule once; a failing rule is logged and skipped."""
        now = self._clock()
        raised = []
        for rule in await self.rules.list_active():
            try:
                alert = await self.evaluate_rule(rule, now)
            except RuleEvaluationError as e:
                logger.warning("Skipping rule %s this cycle: %s", e.rule_id, e)
                continue
            except Exception as e:
                logger.exception("Unexpected error on rule %s: %s", rule.id, e)
                continue
            if alert is not None:
                raised.append(alert)
        return raised

    async def raise_alert(
        self,
        type: str,
        severity: Severity,
        message: str,
        details: dict[str, Any] | None = None,
        channels: Sequence[str] = (),
    ) -> Alert:
        """Persist an alert and dispatch it.

        Raises:
            SQLAlchemyError: If the alert could not be persisted
        """
        alert = create_alert(type, severity, message, details=details)
        return await self._persist_and_dispatch(alert, channels)

    async def get_alerts(self, filters: AlertFilters | None = None) -> list[Alert]:
        try:
            return await self.alerts.query(filters or AlertFilters())
        except SQLAlchemyError as e:
            raise MetricQueryError(f"Failed to query alerts: {e}") from e

    async def resolve_alert(self, alert_id: int, resolved_by: str) -> Alert:
        """Resolve an alert.

        Raises:
            AlertNotFoundError: If the alert does not exist
            AlertAlreadyResolvedError: If it was already resolved
        """
        alert = await self.alerts.resolve(alert_id, resolved_by)
        logger.info("Alert %d resolved by %s", alert_id, resolved_by)
        return alert

    # Rule configuration

    async def create_rule(self, **fields: Any) -> AlertRule:
        return await self.rules.create(AlertRule.create(**fields))

    async def update_rule(self, rule_id: int, **changes: Any) -> AlertRule:
        return await self.rules.update(rule_id, **changes)

    async def delete_rule(self, rule_id: int) -> None:
        if not await self.rules.delete(rule_id):
            raise ConfigurationError(f"Alert rule {rule_id} not found")

    async def get_rule(self, rule_id: int) -> AlertRule | None:
        return await self.rules.get(rule_id)

    async def list_rules(self) -> list[AlertRule]:
        return await self.rules.list_all()

    async def _persist_and_dispatch(self, alert: Alert, channels: Sequence[str]) -> Alert:
        stored = await self.alerts.create(alert)

        if self.dispatcher is not None:
            try:
                await self.dispatcher.dispatch_alert(stored, channels)
            except Exception as e:
                # Alert is persisted; delivery failure must not undo it
                logger.exception("Dispatch failed for alert %s: %s", stored.id, e)
        return stored
