"""Notification channel implementations.

This module provides:
- NotificationChannel: Abstract base class for delivery channels
- EmailChannel: SMTP email (HTML + plain text) via aiosmtplib
- ChatWebhookChannel: Slack attachments or Teams MessageCard via httpx
- WebhookChannel: Raw JSON POST via httpx
- SmsChannel: Twilio-compatible SMS API via httpx

Channels receive the decrypted channel config on each send and return a
DeliveryResult; transport errors are reported, not raised.
"""

from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Any

import aiosmtplib
import httpx

from marketpulse.notifications.formatting import (
    format_email,
    format_slack,
    format_sms,
    format_teams,
    format_webhook,
)
from marketpulse.notifications.models import DeliveryResult, Notification


class NotificationChannel(ABC):
    """Abstract base class for notification channels."""

    @abstractmethod
    async def send(self, notification: Notification, config: dict[str, Any]) -> DeliveryResult:
        """Deliver a notification.

        Args:
            notification: The payload to deliver
            config: Decrypted channel config (destinations and credentials)

        Returns:
            DeliveryResult indicating success or failure
        """
        pass


class EmailChannel(NotificationChannel):
    """SMTP-based email channel.

    Sends one multipart (plain text + HTML) message to every recipient in
    ``config["recipients"]``.
    """

    def __init__(
        self,
        smtp_host: str | None,
        smtp_port: int,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls

    async def send(self, notification: Notification, config: dict[str, Any]) -> DeliveryResult:
        recipients = config.get("recipients") or []
        if isinstance(recipients, str):
            recipients = [recipients]

        if not self.smtp_host:
            return DeliveryResult(success=False, error_message="SMTP host is not configured")
        if not recipients:
            return DeliveryResult(success=False, error_message="No email recipients")

        subject, text, body = format_email(notification)

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = ", ".join(recipients)
        message.set_content(text)
        message.add_alternative(body, subtype="html")

        try:
            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls,
            )
            return DeliveryResult(success=True, response_code=250)
        except aiosmtplib.SMTPException as e:
            return DeliveryResult(success=False, error_message=str(e))


class _HttpChannel(NotificationChannel):
    """Shared httpx plumbing for HTTP-based channels."""

    def __init__(
        self,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the channel.

        Args:
            timeout_seconds: HTTP request timeout (default: 10.0 seconds)
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def _post(self, url: str, **kwargs: Any) -> DeliveryResult:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(url, **kwargs)
                response.raise_for_status()
                return DeliveryResult(success=True, response_code=response.status_code)
        except httpx.TimeoutException:
            return DeliveryResult(success=False, error_message="Request timed out")
        except httpx.HTTPStatusError as e:
            return DeliveryResult(
                success=False,
                response_code=e.response.status_code,
                error_message=f"HTTP {e.response.status_code}",
            )
        except httpx.RequestError as e:
            return DeliveryResult(success=False, error_message=str(e))


class ChatWebhookChannel(_HttpChannel):
    """Chat webhook channel; ``config["style"]`` selects "slack" (default) or "teams"."""

    async def send(self, notification: Notification, config: dict[str, Any]) -> DeliveryResult:
        if config.get("style", "slack") == "teams":
            payload = format_teams(notification)
        else:
            payload = format_slack(notification)
        return await self._post(config["webhook_url"], json=payload)


class WebhookChannel(_HttpChannel):
    """Generic webhook channel posting the raw JSON payload to ``config["url"]``.

    Optional ``headers`` are sent as given. A ``token`` becomes a bearer
    Authorization header unless the headers already carry one.
    """

    async def send(self, notification: Notification, config: dict[str, Any]) -> DeliveryResult:
        headers = dict(config.get("headers") or {})
        token = config.get("token")
        if token and not any(name.lower() == "authorization" for name in headers):
            headers["Authorization"] = f"Bearer {token}"

        return await self._post(
            config["url"],
            json=format_webhook(notification),
            headers=headers,
        )


class SmsChannel(_HttpChannel):
    """SMS channel for a Twilio-compatible messages API.

    Sends one message per number in ``config["to_numbers"]``; the attempt
    succeeds only if every number was accepted.
    """

    def __init__(
        self,
        provider_url: str = "https://api.twilio.com/2010-04-01",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(timeout_seconds=timeout_seconds, transport=transport)
        self.provider_url = provider_url.rstrip("/")

    async def send(self, notification: Notification, config: dict[str, Any]) -> DeliveryResult:
        body = format_sms(notification)
        url = f"{self.provider_url}/Accounts/{config['account_sid']}/Messages.json"

        numbers = config["to_numbers"]
        if isinstance(numbers, str):
            numbers = [numbers]

        last = DeliveryResult(success=False, error_message="No SMS recipients")
        for number in numbers:
            last = await self._post(
                url,
                auth=(config["account_sid"], config["auth_token"]),
                data={"From": config["from_number"], "To": number, "Body": body},
            )
            if not last.success:
                return last
        return last
