"""Tests for notification channels."""

from unittest.mock import AsyncMock, patch

import aiosmtplib
import httpx
import pytest
from helpers import T0

from marketpulse.notifications.channels import (
    ChatWebhookChannel,
    EmailChannel,
    NotificationChannel,
    SmsChannel,
    WebhookChannel,
)
from marketpulse.notifications.models import Notification


def _notification(severity="high") -> Notification:
    return Notification(
        severity=severity,
        title="Alert: Payment failures",
        message="Payment failures triggered",
        data={"count": 4},
        alert_id=11,
        timestamp=T0,
    )


class Recorder:
    """httpx MockTransport handler that records requests."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": True})


class TestNotificationChannel:
    def test_is_abstract(self):
        with pytest.raises(TypeError):
            NotificationChannel()


class TestWebhookChannel:
    @pytest.mark.asyncio
    async def test_posts_raw_json_with_headers(self):
        recorder = Recorder()
        channel = WebhookChannel(transport=httpx.MockTransport(recorder))

        result = await channel.send(
            _notification(),
            {"url": "https://hooks.example.com/alerts", "headers": {"X-Token": "abc"}},
        )

        assert result.success is True
        assert result.response_code == 200
        request = recorder.requests[0]
        assert str(request.url) == "https://hooks.example.com/alerts"
        assert request.headers["X-Token"] == "abc"
        assert b'"alert_id":11' in request.content.replace(b" ", b"")

    @pytest.mark.asyncio
    async def test_token_sent_as_bearer_header(self):
        recorder = Recorder()
        channel = WebhookChannel(transport=httpx.MockTransport(recorder))

        await channel.send(_notification(), {"url": "https://hooks.example.com/a", "token": "s3cret"})

        assert recorder.requests[0].headers["Authorization"] == "Bearer s3cret"

    @pytest.mark.asyncio
    async def test_explicit_authorization_header_wins(self):
        recorder = Recorder()
        channel = WebhookChannel(transport=httpx.MockTransport(recorder))
        config = {
            "url": "https://hooks.example.com/a",
            "token": "s3cret",
            "headers": {"authorization": "Basic dXNlcjpwdw=="},
        }

        await channel.send(_notification(), config)

        assert recorder.requests[0].headers["Authorization"] == "Basic dXNlcjpwdw=="
        assert config["headers"] == {"authorization": "Basic dXNlcjpwdw=="}

    @pytest.mark.asyncio
    async def test_http_error_reported(self):
        channel = WebhookChannel(transport=httpx.MockTransport(Recorder(status_code=503)))

        result = await channel.send(_notification(), {"url": "https://hooks.example.com/alerts"})

        assert result.success is False
        assert result.response_code == 503
        assert result.error_message == "HTTP 503"

    @pytest.mark.asyncio
    async def test_connection_error_reported(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        channel = WebhookChannel(transport=httpx.MockTransport(refuse))

        result = await channel.send(_notification(), {"url": "https://hooks.example.com/alerts"})

        assert result.success is False
        assert "connection refused" in result.error_message

    @pytest.mark.asyncio
    async def test_timeout_reported(self):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        channel = WebhookChannel(transport=httpx.MockTransport(slow))

        result = await channel.send(_notification(), {"url": "https://hooks.example.com/alerts"})

        assert result.success is False
        assert result.error_message == "Request timed out"


class TestChatWebhookChannel:
    @pytest.mark.asyncio
    async def test_slack_by_default(self):
        recorder = Recorder()
        channel = ChatWebhookChannel(transport=httpx.MockTransport(recorder))

        result = await channel.send(_notification(), {"webhook_url": "https://hooks.slack.test/T1"})

        assert result.success is True
        assert b"attachments" in recorder.requests[0].content

    @pytest.mark.asyncio
    async def test_teams_style(self):
        recorder = Recorder()
        channel = ChatWebhookChannel(transport=httpx.MockTransport(recorder))

        await channel.send(
            _notification(), {"webhook_url": "https://teams.test/hook", "style": "teams"}
        )

        assert b"MessageCard" in recorder.requests[0].content


class TestSmsChannel:
    @pytest.mark.asyncio
    async def test_one_message_per_number(self):
        recorder = Recorder(status_code=201)
        channel = SmsChannel(provider_url="https://sms.test/2010-04-01/", transport=httpx.MockTransport(recorder))
        config = {
            "account_sid": "AC123",
            "auth_token": "secret-token",
            "from_number": "+15550000000",
            "to_numbers": ["+15551111111", "+15552222222"],
        }

        result = await channel.send(_notification(), config)

        assert result.success is True
        assert len(recorder.requests) == 2
        request = recorder.requests[0]
        assert str(request.url) == "https://sms.test/2010-04-01/Accounts/AC123/Messages.json"
        assert request.headers["Authorization"].startswith("Basic ")
        assert b"To=%2B15551111111" in request.content

    @pytest.mark.asyncio
    async def test_stops_at_first_rejected_number(self):
        recorder = Recorder(status_code=400)
        channel = SmsChannel(transport=httpx.MockTransport(recorder))
        config = {
            "account_sid": "AC123",
            "auth_token": "secret-token",
            "from_number": "+15550000000",
            "to_numbers": ["+15551111111", "+15552222222"],
        }

        result = await channel.send(_notification(), config)

        assert result.success is False
        assert len(recorder.requests) == 1


class TestEmailChannel:
    @pytest.mark.asyncio
    async def test_missing_host_fails(self):
        channel = EmailChannel(smtp_host=None, smtp_port=587, sender="alerts@example.com")

        result = await channel.send(_notification(), {"recipients": ["ops@example.com"]})

        assert result.success is False
        assert "SMTP host" in result.error_message

    @pytest.mark.asyncio
    async def test_no_recipients_fails(self):
        channel = EmailChannel(smtp_host="smtp.example.com", smtp_port=587, sender="alerts@example.com")

        result = await channel.send(_notification(), {})

        assert result.success is False

    @pytest.mark.asyncio
    async def test_sends_multipart_message(self):
        channel = EmailChannel(
            smtp_host="smtp.example.com", smtp_port=587, sender="alerts@example.com"
        )

        with patch("aiosmtplib.send", new_callable=AsyncMock) as mock_send:
            result = await channel.send(_notification(), {"recipients": "ops@example.com"})

        assert result.success is True
        message = mock_send.call_args.args[0]
        assert message["Subject"] == "[HIGH] Alert: Payment failures"
        assert message["To"] == "ops@example.com"
        assert message.is_multipart()
        assert mock_send.call_args.kwargs["hostname"] == "smtp.example.com"

    @pytest.mark.asyncio
    async def test_smtp_error_reported(self):
        channel = EmailChannel(
            smtp_host="smtp.example.com", smtp_port=587, sender="alerts@example.com"
        )

        with patch("aiosmtplib.send", new_callable=AsyncMock) as mock_send:
            mock_send.side_effect = aiosmtplib.SMTPException("relay denied")
            result = await channel.send(_notification(), {"recipients": ["ops@example.com"]})

        assert result.success is False
        assert "relay denied" in result.error_message
