"""Notification data models.

This module provides:
- ChannelType: Supported delivery sink types
- ChannelConfig: A configured delivery sink (secrets encrypted at rest)
- Notification: One payload to deliver
- DeliveryResult: Result of one delivery attempt
- ChannelAttempt / DispatchResult: Per-channel results of one dispatch
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from marketpulse.clock import utcnow
from marketpulse.errors import ChannelDeliveryError, ConfigurationError

NOTIFICATION_SEVERITIES: tuple[str, ...] = ("info", "low", "medium", "high", "critical")


class ChannelType(str, Enum):
    EMAIL = "email"
    WEBHOOK = "webhook"
    CHAT = "chat"
    SMS = "sms"
    BROADCAST = "broadcast"


# Destination fields each channel type needs in its config
REQUIRED_CONFIG_FIELDS: dict[ChannelType, tuple[str, ...]] = {
    ChannelType.EMAIL: ("recipients",),
    ChannelType.WEBHOOK: ("url",),
    ChannelType.CHAT: ("webhook_url",),
    ChannelType.SMS: ("account_sid", "auth_token", "from_number", "to_numbers"),
    ChannelType.BROADCAST: (),
}

CHAT_STYLES: tuple[str, ...] = ("slack", "teams")


@dataclass(frozen=True)
class ChannelConfig:
    """A configured delivery sink.

    Attributes:
        name: Unique channel name, referenced by alert rules
        type: Sink type
        config: Type-specific settings; secret fields hold Fernet tokens at rest
        enabled: Disabled channels are skipped, not errored
        id: Database id, None until persisted
    """

    name: str
    type: ChannelType
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    id: int | None = None

    def validate(self) -> None:
        """Raise ConfigurationError for unknown types or missing destination fields."""
        if not self.name or not self.name.strip():
            raise ConfigurationError("Channel name must not be empty")
        try:
            channel_type = ChannelType(self.type)
        except ValueError as e:
            raise ConfigurationError(f"Unknown channel type: {self.type!r}") from e

        missing = [f for f in REQUIRED_CONFIG_FIELDS[channel_type] if not self.config.get(f)]
        if missing:
            raise ConfigurationError(
                f"Channel '{self.name}' ({channel_type.value}) is missing: {', '.join(missing)}"
            )

        if channel_type == ChannelType.CHAT:
            style = self.config.get("style", "slack")
            if style not in CHAT_STYLES:
                raise ConfigurationError(f"Unknown chat style: {style!r}")


@dataclass(frozen=True)
class Notification:
    """One payload to deliver.

    Attributes:
        severity: One of info, low, medium, high, critical
        title: Short headline
        message: Body text
        data: Optional structured data
        alert_id: The alert this notification is about, if any
        timestamp: When the notification was created
    """

    severity: str
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    alert_id: int | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        severity = getattr(self.severity, "value", self.severity)
        if severity not in NOTIFICATION_SEVERITIES:
            raise ValueError(f"Unknown notification severity: {severity!r}")
        object.__setattr__(self, "severity", severity)

    @classmethod
    def from_alert(cls, alert: Any) -> "Notification":
        return cls(
            severity=alert.severity,
            title=f"Alert: {alert.type}",
            message=alert.message,
            data=alert.details,
            alert_id=alert.id,
            timestamp=alert.created_at or utcnow(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
            "alert_id": self.alert_id,
        }


@dataclass
class DeliveryResult:
    """Result of a notification delivery attempt.

    Attributes:
        success: Whether the delivery succeeded
        response_code: HTTP status code or SMTP response code (if applicable)
        error_message: Error message if delivery failed
    """

    success: bool
    response_code: int | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class ChannelAttempt:
    """One channel's part of a dispatch."""

    channel: str
    channel_type: ChannelType
    result: DeliveryResult
    channel_id: int | None = None
    admin_escalation: bool = False
    error: ChannelDeliveryError | None = None


@dataclass
class DispatchResult:
    """Per-channel outcome of one dispatch.

    Attributes:
        alert_id: Alert being delivered (None for ad-hoc notifications)
        attempts: One entry per attempted channel
        broadcast_observers: Live observers that received the event
    """

    alert_id: int | None
    attempts: list[ChannelAttempt] = field(default_factory=list)
    broadcast_observers: int = 0

    @property
    def succeeded(self) -> list[ChannelAttempt]:
        return [a for a in self.attempts if a.result.success]

    @property
    def failed(self) -> list[ChannelAttempt]:
        return [a for a in self.attempts if not a.result.success]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def result_for(self, channel: str) -> DeliveryResult | None:
        for attempt in self.attempts:
            if attempt.channel == channel:
                return attempt.result
        return None
