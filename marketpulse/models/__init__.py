from marketpulse.models.activity import (
    LogLevel,
    MarketplaceTransaction,
    SystemLog,
    TransactionStatus,
    UserSession,
)
from marketpulse.models.alert import AlertRecord, AlertRuleRecord
from marketpulse.models.channel import NotificationChannelRecord
from marketpulse.models.metric_sample import MetricSampleRecord
from marketpulse.models.performance import PerformanceAnalysisRecord

__all__ = [
    "AlertRecord",
    "AlertRuleRecord",
    "LogLevel",
    "MarketplaceTransaction",
    "MetricSampleRecord",
    "NotificationChannelRecord",
    "PerformanceAnalysisRecord",
    "SystemLog",
    "TransactionStatus",
    "UserSession",
]
