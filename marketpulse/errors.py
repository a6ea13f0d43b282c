# marketpulse/errors.py
"""Monitoring error types."""


class MonitoringError(Exception):
    """Base exception for monitoring errors."""
    pass


class TransientCollectionError(MonitoringError):
    """A collection or analysis cycle could not read its data source."""

    def __init__(self, message: str, source: str = None):
        super().__init__(message)
        self.source = source


class MetricQueryError(MonitoringError):
    """Error reading metrics for an externally invoked query."""
    pass


class InvalidMetricValueError(MonitoringError, ValueError):
    """Metric value is NaN or infinite."""

    def __init__(self, metric: str, value: float):
        super().__init__(f"Metric '{metric}' has non-finite value {value!r}")
        self.metric = metric
        self.value = value


class RuleEvaluationError(MonitoringError):
    """Error evaluating a single alert rule."""

    def __init__(self, message: str, rule_id: int = None):
        super().__init__(message)
        self.rule_id = rule_id


class ChannelDeliveryError(MonitoringError):
    """Error delivering a notification through one channel."""

    def __init__(self, message: str, channel_id: int = None, alert_id: int = None):
        super().__init__(message)
        self.channel_id = channel_id
        self.alert_id = alert_id


class ConfigurationError(MonitoringError, ValueError):
    """Malformed alert rule or notification channel definition."""
    pass


class AlertNotFoundError(MonitoringError):
    """Alert does not exist."""

    def __init__(self, alert_id: int):
        super().__init__(f"Alert {alert_id} not found")
        self.alert_id = alert_id


class AlertAlreadyResolvedError(MonitoringError):
    """Alert was already resolved; resolution is one-way."""

    def __init__(self, alert_id: int, resolved_by: str | None = None):
        super().__init__(f"Alert {alert_id} is already resolved")
        self.alert_id = alert_id
        self.resolved_by = resolved_by


class SecretDecryptionError(MonitoringError):
    """Stored channel secret could not be decrypted."""

    def __init__(self, field: str):
        super().__init__(f"Unable to decrypt channel secret '{field}'")
        self.field = field
