"""Channel-specific payload formatting.

Every format takes its color, urgency and label from SEVERITY_STYLES so a
severity looks the same on every channel.
"""

import html
from dataclasses import dataclass
from typing import Any

from marketpulse.notifications.models import Notification

SMS_MAX_LENGTH = 1600


@dataclass(frozen=True)
class SeverityStyle:
    label: str
    color: str
    urgency: str
    emoji: str


SEVERITY_STYLES: dict[str, SeverityStyle] = {
    "info": SeverityStyle(label="INFO", color="#36a64f", urgency="normal", emoji=":information_source:"),
    "low": SeverityStyle(label="LOW", color="#36a64f", urgency="normal", emoji=":information_source:"),
    "medium": SeverityStyle(label="MEDIUM", color="#ffcc00", urgency="elevated", emoji=":warning:"),
    "high": SeverityStyle(label="HIGH", color="#ff9900", urgency="high", emoji=":rotating_light:"),
    "critical": SeverityStyle(label="CRITICAL", color="#ff0000", urgency="immediate", emoji=":fire:"),
}


def style_for(severity: str) -> SeverityStyle:
    return SEVERITY_STYLES[severity]


def format_sms(notification: Notification) -> str:
    """Plain text: "[LABEL] title" then the message, capped at 1600 chars."""
    style = style_for(notification.severity)
    text = f"[{style.label}] {notification.title}\n{notification.message}"
    if len(text) > SMS_MAX_LENGTH:
        text = text[: SMS_MAX_LENGTH - 3] + "..."
    return text


def format_email(notification: Notification) -> tuple[str, str, str]:
    """Email subject, plain-text body and HTML body."""
    style = style_for(notification.severity)
    subject = f"[{style.label}] {notification.title}"

    lines = [
        notification.message,
        "",
        f"Severity: {style.label}",
        f"Time: {notification.timestamp.isoformat()}",
    ]
    if notification.alert_id is not None:
        lines.append(f"Alert ID: {notification.alert_id}")
    if notification.data:
        lines.append("\nDetails:")
        for key, value in notification.data.items():
            lines.append(f"  {key}: {value}")
    text = "\n".join(lines)

    rows = "".join(
        f"<tr><td><strong>{html.escape(str(key))}</strong></td>"
        f"<td>{html.escape(str(value))}</td></tr>"
        for key, value in notification.data.items()
    )
    body = (
        f'<div style="font-family: sans-serif;">'
        f'<h2 style="color: {style.color};">{html.escape(notification.title)}</h2>'
        f"<p>{html.escape(notification.message)}</p>"
        f"<p><strong>Severity:</strong> {style.label} ({style.urgency})<br>"
        f"<strong>Time:</strong> {notification.timestamp.isoformat()}</p>"
        + (f"<table>{rows}</table>" if rows else "")
        + "</div>"
    )
    return subject, text, body


def format_slack(notification: Notification) -> dict[str, Any]:
    """Slack attachment payload."""
    style = style_for(notification.severity)
    fields = [
        {"title": "Severity", "value": style.label, "short": True},
        {"title": "Timestamp", "value": notification.timestamp.isoformat(), "short": True},
    ]
    for key, value in notification.data.items():
        if isinstance(value, (str, int, float)):
            fields.append({"title": key, "value": str(value), "short": True})

    return {
        "text": f"{style.emoji} [{style.label}] {notification.title}",
        "attachments": [
            {
                "color": style.color,
                "title": notification.title,
                "text": notification.message,
                "fields": fields,
            }
        ],
    }


def format_teams(notification: Notification) -> dict[str, Any]:
    """Microsoft Teams MessageCard payload."""
    style = style_for(notification.severity)
    facts = [
        {"name": "Severity", "value": style.label},
        {"name": "Timestamp", "value": notification.timestamp.isoformat()},
    ]
    for key, value in notification.data.items():
        if isinstance(value, (str, int, float)):
            facts.append({"name": key, "value": str(value)})

    return {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "summary": notification.title,
        "themeColor": style.color.lstrip("#"),
        "title": notification.title,
        "sections": [{"facts": facts, "text": notification.message}],
    }


def format_webhook(notification: Notification) -> dict[str, Any]:
    """Raw JSON payload."""
    payload = notification.to_dict()
    payload["urgency"] = style_for(notification.severity).urgency
    return payload
