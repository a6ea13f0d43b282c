"""Monitoring core wiring.

Builds every monitoring service from Settings and a session factory, owns
their lifecycle, and exposes the read and configuration operations the HTTP
layer calls. There is no module-level instance: the app keeps the core on
``app.state``.

Usage:
    from marketpulse.core import MonitoringCore

    core = MonitoringCore(async_session, settings)
    await core.start()
    history = await core.get_historical_metrics("1h")
    await core.stop()
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from marketpulse.alerts.conditions import build_condition_registry
from marketpulse.alerts.engine import AlertRuleEngine
from marketpulse.alerts.models import Alert, AlertFilters, AlertRule
from marketpulse.alerts.repository import SqlAlertStore
from marketpulse.alerts.rules import SqlRuleStore
from marketpulse.clock import Clock, utcnow
from marketpulse.config import Settings
from marketpulse.errors import ConfigurationError
from marketpulse.forecast.engine import ForecastEngine
from marketpulse.forecast.feed import AnomalyFeed
from marketpulse.forecast.models import AnomalyPoint, ForecastConfig, ForecastResult, TrendResult
from marketpulse.metrics.collector import MetricCollector
from marketpulse.metrics.store import SqlMetricStore
from marketpulse.notifications.broadcast import LiveBroadcaster
from marketpulse.notifications.channels import NotificationChannel
from marketpulse.notifications.dispatcher import (
    DispatcherConfig,
    NotificationDispatcher,
    build_senders,
)
from marketpulse.notifications.encryption import SecretCipher
from marketpulse.notifications.models import ChannelConfig, ChannelType, DeliveryResult
from marketpulse.notifications.repository import ChannelConfigRepository
from marketpulse.performance.analyzer import PerformanceAnalyzer
from marketpulse.performance.models import PerformanceAnalysis, PerformanceTrends
from marketpulse.performance.repository import SqlPerformanceStore
from marketpulse.sources.logs import SqlLogStore
from marketpulse.sources.resources import PsutilResourceProbe, ResourceProbe
from marketpulse.sources.sessions import SqlSessionStore
from marketpulse.sources.transactions import SqlTransactionStore
from marketpulse.workers.supervisor import LoopSpec, MonitoringSupervisor

logger = logging.getLogger(__name__)


def forecast_config_from(settings: Settings) -> ForecastConfig:
    return ForecastConfig(
        z_threshold=settings.anomaly_z_threshold,
        training_window=timedelta(hours=settings.forecast_training_hours),
        horizon=timedelta(minutes=settings.forecast_horizon_minutes),
        step=timedelta(minutes=settings.forecast_step_minutes),
        trend_window=timedelta(days=settings.trend_window_days),
        dead_zone_pct=settings.trend_dead_zone_pct,
        metrics=tuple(settings.forecast_metrics),
    )


def dispatcher_config_from(settings: Settings) -> DispatcherConfig:
    return DispatcherConfig(
        channel_timeout=settings.channel_timeout_seconds,
        admin_emails=tuple(settings.admin_emails),
    )


def cipher_from(settings: Settings) -> SecretCipher:
    """Channel secret cipher from the configured Fernet key.

    Without a key an ephemeral one is generated: secrets stored with it cannot
    be read after a restart.
    """
    if settings.encryption_key:
        return SecretCipher(settings.encryption_key)

    logger.warning(
        "No encryption key configured; using an ephemeral key. "
        "Stored channel secrets will be unreadable after restart."
    )
    return SecretCipher(SecretCipher.generate_key())


class MonitoringCore:
    """All monitoring services, wired together."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        settings: Settings,
        probe: ResourceProbe | None = None,
        senders: dict[ChannelType, NotificationChannel] | None = None,
        clock: Clock = utcnow,
    ):
        self.settings = settings
        trailing = timedelta(minutes=settings.trailing_window_minutes)
        probe = probe or PsutilResourceProbe()

        # Collaborators
        self.metric_store = SqlMetricStore(session_factory)
        self.logs = SqlLogStore(session_factory)
        self.transactions = SqlTransactionStore(session_factory)
        self.sessions = SqlSessionStore(session_factory)
        self.broadcaster = LiveBroadcaster(send_timeout=settings.broadcast_timeout_seconds)
        self.anomaly_feed = AnomalyFeed()

        # Notifications
        self.cipher = cipher_from(settings)
        self.channels = ChannelConfigRepository(session_factory, self.cipher)
        self.dispatcher = NotificationDispatcher(
            channel_store=self.channels,
            cipher=self.cipher,
            senders=senders
            if senders is not None
            else build_senders(
                smtp_host=settings.smtp_host,
                smtp_port=settings.smtp_port,
                sender=settings.smtp_sender,
                username=settings.smtp_username,
                password=settings.smtp_password,
                use_tls=settings.smtp_use_tls,
                sms_provider_url=settings.sms_provider_url,
                timeout_seconds=settings.channel_timeout_seconds,
            ),
            broadcaster=self.broadcaster,
            config=dispatcher_config_from(settings),
        )

        # Services
        self.collector = MetricCollector(
            store=self.metric_store,
            logs=self.logs,
            transactions=self.transactions,
            sessions=self.sessions,
            probe=probe,
            broadcaster=self.broadcaster,
            trailing_window=trailing,
            clock=clock,
        )
        self.rule_engine = AlertRuleEngine(
            rules=SqlRuleStore(session_factory),
            alerts=SqlAlertStore(session_factory),
            evaluators=build_condition_registry(
                self.logs, self.transactions, self.metric_store, self.anomaly_feed
            ),
            dispatcher=self.dispatcher,
            clock=clock,
        )
        self.forecast_engine = ForecastEngine(
            store=self.metric_store,
            alerts=self.rule_engine,
            feed=self.anomaly_feed,
            config=forecast_config_from(settings),
            clock=clock,
        )
        self.performance_analyzer = PerformanceAnalyzer(
            logs=self.logs,
            sessions=self.sessions,
            probe=probe,
            store=SqlPerformanceStore(session_factory),
            alerts=self.rule_engine,
            critical_score=settings.performance_critical_score,
            warning_score=settings.performance_warning_score,
            trailing_window=trailing,
            dead_zone_pct=settings.trend_dead_zone_pct,
            clock=clock,
        )

        self.supervisor = MonitoringSupervisor(
            loops=[
                LoopSpec("collector", self.collector.run_cycle, settings.collector_interval_seconds),
                LoopSpec("rules", self.rule_engine.run_cycle, settings.rule_interval_seconds),
                LoopSpec("forecast", self.forecast_engine.run_cycle, settings.forecast_interval_seconds),
                LoopSpec(
                    "performance",
                    self.performance_analyzer.run_cycle,
                    settings.performance_interval_seconds,
                ),
            ],
            dispatcher=self.dispatcher,
        )

    async def start(self) -> None:
        await self.dispatcher.reload_channels()
        self.supervisor.start()
        logger.info("Monitoring core started")

    async def stop(self) -> None:
        await self.supervisor.stop()
        logger.info("Monitoring core stopped")

    # Metrics

    async def get_historical_metrics(self, period: str = "24h") -> dict[str, Any]:
        return await self.collector.get_historical_metrics(period)

    # Alerts

    async def get_alerts(self, filters: AlertFilters | None = None) -> list[Alert]:
        return await self.rule_engine.get_alerts(filters)

    async def resolve_alert(self, alert_id: int, resolved_by: str) -> Alert:
        return await self.rule_engine.resolve_alert(alert_id, resolved_by)

    # Forecasting

    async def predict_metric(self, metric: str) -> ForecastResult:
        return await self.forecast_engine.predict_metric(metric)

    async def detect_anomalies(self, metric: str) -> list[AnomalyPoint]:
        return await self.forecast_engine.detect_anomalies(metric)

    async def analyze_trends(self, metric: str) -> TrendResult:
        return await self.forecast_engine.analyze_trends(metric)

    # Performance

    async def analyze_performance(self) -> PerformanceAnalysis:
        return await self.performance_analyzer.analyze_performance()

    async def get_historical_performance(
        self, start: datetime, end: datetime
    ) -> list[PerformanceAnalysis]:
        return await self.performance_analyzer.get_historical_performance(start, end)

    async def get_trends(self) -> PerformanceTrends:
        return await self.performance_analyzer.get_trends()

    # Rule configuration

    async def create_rule(self, **fields: Any) -> AlertRule:
        return await self.rule_engine.create_rule(**fields)

    async def update_rule(self, rule_id: int, **changes: Any) -> AlertRule:
        return await self.rule_engine.update_rule(rule_id, **changes)

    async def delete_rule(self, rule_id: int) -> None:
        await self.rule_engine.delete_rule(rule_id)

    async def get_rule(self, rule_id: int) -> AlertRule | None:
        return await self.rule_engine.get_rule(rule_id)

    async def list_rules(self) -> list[AlertRule]:
        return await self.rule_engine.list_rules()

    # Channel configuration; every write refreshes the dispatcher cache

    async def create_channel(self, channel: ChannelConfig) -> ChannelConfig:
        created = await self.channels.create(channel)
        await self.dispatcher.reload_channels()
        return created

    async def update_channel(self, channel_id: int, **changes: Any) -> ChannelConfig:
        updated = await self.channels.update(channel_id, **changes)
        await self.dispatcher.reload_channels()
        return updated

    async def delete_channel(self, channel_id: int) -> None:
        if not await self.channels.delete(channel_id):
            raise ConfigurationError(f"Channel {channel_id} not found")
        await self.dispatcher.reload_channels()

    async def get_channel(self, channel_id: int) -> ChannelConfig | None:
        return await self.channels.get(channel_id)

    async def list_channels(self) -> list[ChannelConfig]:
        return await self.channels.list_all()

    async def test_channel(self, channel_id: int) -> DeliveryResult:
        return await self.dispatcher.test_channel(channel_id)
