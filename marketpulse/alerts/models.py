"""Alert domain models.

This module provides:
- Severity: low / medium / high / critical
- ConditionKind: The closed set of rule conditions
- AlertRule: A validated, admin-owned trigger definition
- Alert: One firing instance of a rule or anomaly
- AlertFilters: Query filters for alert listings
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from marketpulse.errors import ConfigurationError

# Alert types raised outside rule evaluation
ANOMALY_DETECTED = "ANOMALY_DETECTED"
PERFORMANCE_DEGRADATION = "PERFORMANCE_DEGRADATION"

MAX_MESSAGE_LENGTH = 255


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ConditionKind(str, Enum):
    ERROR_RATE = "error_rate"
    PAYMENT_FAILURE = "payment_failure"
    HIGH_REFUND = "high_refund"
    SYSTEM_LOAD = "system_load"
    FORECAST_ANOMALY = "forecast_anomaly"


@dataclass(frozen=True)
class AlertRule:
    """A persisted trigger definition.

    Attributes:
        name: Human-readable rule name, used in the alert message
        condition: What the rule measures
        threshold: Trigger level (inclusive)
        time_window: Trailing evaluation window in minutes (> 0)
        severity: Severity of alerts this rule raises
        channels: Names of the notification channels to deliver to
        is_active: Inactive rules are never evaluated
        id: Database id, None until persisted
    """

    name: str
    condition: ConditionKind
    threshold: float
    time_window: int
    severity: Severity
    channels: tuple[str, ...] = ()
    is_active: bool = True
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def create(cls, **fields: Any) -> "AlertRule":
        """Build and validate a rule from loosely typed input.

        Raises:
            ConfigurationError: If any field is malformed
        """
        try:
            condition = ConditionKind(fields.pop("condition"))
            severity = Severity(fields.pop("severity"))
        except KeyError as e:
            raise ConfigurationError(f"Missing rule field: {e.args[0]}") from e
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        channels = tuple(fields.pop("channels", None) or ())
        try:
            rule = cls(condition=condition, severity=severity, channels=channels, **fields)
        except TypeError as e:
            raise ConfigurationError(str(e)) from e
        rule.validate()
        return rule

    def validate(self) -> None:
        """Raise ConfigurationError if the rule is malformed."""
        if not self.name or not self.name.strip():
            raise ConfigurationError("Rule name must not be empty")
        if not isinstance(self.condition, ConditionKind):
            raise ConfigurationError(f"Unknown rule condition: {self.condition!r}")
        if not isinstance(self.severity, Severity):
            raise ConfigurationError(f"Unknown severity: {self.severity!r}")
        if isinstance(self.time_window, bool) or not isinstance(self.time_window, int):
            raise ConfigurationError("time_window must be an integer number of minutes")
        if self.time_window <= 0:
            raise ConfigurationError(f"time_window must be positive, got {self.time_window}")
        try:
            threshold = float(self.threshold)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"threshold must be a number, got {self.threshold!r}") from e
        if not math.isfinite(threshold):
            raise ConfigurationError(f"threshold must be finite, got {self.threshold!r}")
        if not isinstance(self.is_active, bool):
            raise ConfigurationError(f"is_active must be a boolean, got {self.is_active!r}")
        if self.is_active and not self.channels:
            raise ConfigurationError("Active rules need at least one channel")

    def with_changes(self, **changes: Any) -> "AlertRule":
        """Copy with changes applied, validated."""
        if "condition" in changes:
            changes["condition"] = _coerce(ConditionKind, changes["condition"])
        if "severity" in changes:
            changes["severity"] = _coerce(Severity, changes["severity"])
        if "channels" in changes:
            changes["channels"] = tuple(changes["channels"] or ())
        try:
            rule = replace(self, **changes)
        except TypeError as e:
            raise ConfigurationError(str(e)) from e
        rule.validate()
        return rule

    def snapshot(self) -> dict[str, Any]:
        """JSON-safe copy stored in the details of the alerts this rule raises."""
        return {
            "id": self.id,
            "name": self.name,
            "condition": self.condition.value,
            "threshold": self.threshold,
            "time_window": self.time_window,
            "severity": self.severity.value,
            "channels": list(self.channels),
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class Alert:
    """One firing instance of a rule or anomaly.

    Severity is fixed at creation; resolution is one-way.
    """

    type: str
    severity: Severity
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    id: int | None = None
    resolved: bool = False
    resolved_by: str | None = None
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity.value,
            "message": self.message,
            "details": self.details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "resolved": self.resolved,
            "resolved_by": self.resolved_by,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass(frozen=True)
class AlertFilters:
    """Filters for alert queries. Results are newest first."""

    severity: Severity | None = None
    type: str | None = None
    resolved: bool | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int = 100
    offset: int = 0


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


class AlertRaiser(Protocol):
    """The persist-and-dispatch alert path, shared with rule evaluation."""

    async def raise_alert(
        self,
        type: str,
        severity: Severity,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> Alert: ...
