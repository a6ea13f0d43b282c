"""Alert factory: builds Alert instances with normalized fields.

Usage:
    from marketpulse.alerts.factory import create_alert

    alert = create_alert(
        type="High error rate",
        severity=Severity.HIGH,
        message="High error rate triggered",
        details={"rule": rule.snapshot()},
    )
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from marketpulse.alerts.models import MAX_MESSAGE_LENGTH, Alert, AlertRule, Severity
from marketpulse.clock import ensure_utc, utcnow


def create_alert(
    type: str,
    severity: Severity,
    message: str,
    *,
    details: dict[str, Any] | None = None,
    timestamp: datetime | None = None,
) -> Alert:
    """Create an Alert with a UTC timestamp, JSON-safe details and a bounded message."""
    return Alert(
        type=type,
        severity=Severity(severity),
        message=_truncate_message(message),
        details=sanitize_details(details) if details else {},
        created_at=ensure_utc(timestamp) if timestamp is not None else utcnow(),
    )


def alert_for_rule(rule: AlertRule, timestamp: datetime | None = None, **context: Any) -> Alert:
    """The alert a triggered rule raises: "{name} triggered" with the rule snapshot."""
    details: dict[str, Any] = {"rule": rule.snapshot()}
    if context:
        details["observed"] = context
    return create_alert(
        type=rule.name,
        severity=rule.severity,
        message=f"{rule.name} triggered",
        details=details,
        timestamp=timestamp,
    )


def sanitize_details(value: Any) -> Any:
    """Convert a details structure to JSON-safe primitives."""
    if isinstance(value, dict):
        return {str(k): sanitize_details(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [sanitize_details(v) for v in value]
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return float(value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _truncate_message(message: str) -> str:
    """Truncate message to 255 chars, adding '...' if truncated."""
    if len(message) <= MAX_MESSAGE_LENGTH:
        return message
    return message[: MAX_MESSAGE_LENGTH - 3] + "..."
