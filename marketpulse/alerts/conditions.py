"""Condition evaluators, one per ConditionKind.

Each evaluator reads its collaborator over the rule's trailing window and
compares the observation with the rule threshold (inclusive).
"""

from dataclasses import dataclass
from typing import Protocol

from marketpulse.alerts.models import AlertRule, ConditionKind
from marketpulse.clock import TimeWindow
from marketpulse.errors import ConfigurationError
from marketpulse.forecast.feed import AnomalyFeed
from marketpulse.metrics.store import MetricStore
from marketpulse.models.activity import LogLevel, TransactionStatus
from marketpulse.sources.logs import LogStore
from marketpulse.sources.transactions import TransactionStore

SYSTEM_LOAD_METRIC = "cpu_usage"


@dataclass(frozen=True)
class Evaluation:
    """Outcome of one rule evaluation.

    Attributes:
        triggered: Whether the rule fires this cycle
        observed: The measured value, None when there was no data
    """

    triggered: bool
    observed: float | None = None


class ConditionEvaluator(Protocol):
    async def evaluate(self, rule: AlertRule, window: TimeWindow) -> Evaluation: ...


class ErrorRateCondition:
    """Error-level log entries in the window: count >= threshold."""

    def __init__(self, logs: LogStore):
        self.logs = logs

    async def evaluate(self, rule: AlertRule, window: TimeWindow) -> Evaluation:
        count = await self.logs.count_by_level(LogLevel.ERROR.value, window)
        return Evaluation(triggered=count >= rule.threshold, observed=count)


class PaymentFailureCondition:
    """Failed transactions in the window: count >= threshold."""

    def __init__(self, transactions: TransactionStore):
        self.transactions = transactions

    async def evaluate(self, rule: AlertRule, window: TimeWindow) -> Evaluation:
        count = await self.transactions.count_by_status(TransactionStatus.FAILED.value, window)
        return Evaluation(triggered=count >= rule.threshold, observed=count)


class HighRefundCondition:
    """Refunded share of transactions, in percent: pct >= threshold."""

    def __init__(self, transactions: TransactionStore):
        self.transactions = transactions

    async def evaluate(self, rule: AlertRule, window: TimeWindow) -> Evaluation:
        pct = await self.transactions.refund_rate(window)
        return Evaluation(triggered=pct >= rule.threshold, observed=pct)


class SystemLoadCondition:
    """Mean collected CPU fraction in the window: avg >= threshold.

    A window without samples never triggers.
    """

    def __init__(self, store: MetricStore, metric: str = SYSTEM_LOAD_METRIC):
        self.store = store
        self.metric = metric

    async def evaluate(self, rule: AlertRule, window: TimeWindow) -> Evaluation:
        samples = await self.store.read_window(self.metric, window.start, window.end)
        if samples.is_empty:
            return Evaluation(triggered=False)
        average = sum(samples.values) / len(samples)
        return Evaluation(triggered=average >= rule.threshold, observed=average)


class ForecastAnomalyCondition:
    """Any anomaly detected by the forecast engine within the window."""

    def __init__(self, feed: AnomalyFeed):
        self.feed = feed

    async def evaluate(self, rule: AlertRule, window: TimeWindow) -> Evaluation:
        count = len(self.feed.in_window(window))
        return Evaluation(triggered=count > 0, observed=count)


def build_condition_registry(
    logs: LogStore,
    transactions: TransactionStore,
    store: MetricStore,
    feed: AnomalyFeed,
) -> dict[ConditionKind, ConditionEvaluator]:
    """Evaluators for every ConditionKind."""
    return {
        ConditionKind.ERROR_RATE: ErrorRateCondition(logs),
        ConditionKind.PAYMENT_FAILURE: PaymentFailureCondition(transactions),
        ConditionKind.HIGH_REFUND: HighRefundCondition(transactions),
        ConditionKind.SYSTEM_LOAD: SystemLoadCondition(store),
        ConditionKind.FORECAST_ANOMALY: ForecastAnomalyCondition(feed),
    }


def check_registry(evaluators: dict[ConditionKind, ConditionEvaluator]) -> None:
    """Raise ConfigurationError unless every ConditionKind has an evaluator."""
    missing = [kind.value for kind in ConditionKind if kind not in evaluators]
    if missing:
        raise ConfigurationError(f"No evaluator for conditions: {', '.join(missing)}")
