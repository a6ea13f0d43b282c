"""Notification dispatcher.

Delivers one notification to every selected enabled channel concurrently,
each attempt bounded by its own timeout and isolated from the others. Every
notification is also published to live observers, and critical ones always
reach the administrator email list.

Usage:
    dispatcher = NotificationDispatcher(
        channel_store=ChannelConfigRepository(async_session, cipher),
        cipher=cipher,
        senders=build_senders(settings),
        broadcaster=broadcaster,
        config=DispatcherConfig(admin_emails=("ops@example.com",)),
    )
    await dispatcher.reload_channels()
    result = await dispatcher.dispatch_alert(alert, channels=["ops-slack"])

    # Shutdown: wait for in-flight deliveries
    await dispatcher.drain()
"""

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass
from typing import Any

from marketpulse.errors import ChannelDeliveryError, ConfigurationError, SecretDecryptionError
from marketpulse.notifications.broadcast import LiveBroadcast
from marketpulse.notifications.channels import (
    ChatWebhookChannel,
    EmailChannel,
    NotificationChannel,
    SmsChannel,
    WebhookChannel,
)
from marketpulse.notifications.encryption import SecretCipher, redact_config
from marketpulse.notifications.models import (
    ChannelAttempt,
    ChannelConfig,
    ChannelType,
    DeliveryResult,
    DispatchResult,
    Notification,
)
from marketpulse.notifications.repository import ChannelConfigStore

logger = logging.getLogger(__name__)

ADMIN_CHANNEL_NAME = "admin-email"


@dataclass(frozen=True)
class DispatcherConfig:
    """Dispatcher tunables.

    Attributes:
        channel_timeout: Upper bound for one channel attempt, in seconds
        admin_emails: Distribution list every critical notification reaches
    """

    channel_timeout: float = 10.0
    admin_emails: tuple[str, ...] = ()


class NotificationDispatcher:
    """Fans notifications out to channels with per-channel failure isolation.

    No retries: a failed attempt carries a ChannelDeliveryError naming the
    channel and alert, which is logged and reported in the DispatchResult.
    """

    def __init__(
        self,
        channel_store: ChannelConfigStore,
        cipher: SecretCipher,
        senders: dict[ChannelType, NotificationChannel],
        broadcaster: LiveBroadcast,
        config: DispatcherConfig | None = None,
    ):
        self.channel_store = channel_store
        self.cipher = cipher
        self.senders = senders
        self.broadcaster = broadcaster
        self.config = config or DispatcherConfig()

        self._channels: list[ChannelConfig] | None = None
        self._inflight: set[asyncio.Task] = set()

    async def reload_channels(self) -> int:
        """Refresh the cached set of enabled channels.

        Returns:
            Number of enabled channels
        """
        channels = await self.channel_store.list_enabled()
        self._channels = channels
        logger.info("Loaded %d enabled notification channels", len(channels))
        return len(channels)

    async def dispatch(
        self,
        notification: Notification,
        channels: Sequence[str] | None = None,
    ) -> DispatchResult:
        """Deliver a notification.

        Args:
            notification: The payload
            channels: Channel names to deliver to; None or empty means every
                enabled channel. Unknown or disabled names are skipped.

        Returns:
            DispatchResult with one attempt per channel; never raises for a
            channel failure
        """
        if self._channels is None:
            await self.reload_channels()

        task = asyncio.create_task(self._fan_out(notification, channels))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        # Shielded so a cancelled caller does not abort deliveries mid-flight
        return await asyncio.shield(task)

    async def dispatch_alert(self, alert: Any, channels: Sequence[str] = ()) -> DispatchResult:
        return await self.dispatch(Notification.from_alert(alert), channels)

    async def test_channel(self, channel_id: int) -> DeliveryResult:
        """Send an info-level test notification to one channel.

        Raises:
            ConfigurationError: If the channel does not exist
        """
        channel = await self.channel_store.get(channel_id)
        if channel is None:
            raise ConfigurationError(f"Channel {channel_id} not found")

        notification = Notification(
            severity="info",
            title="Test notification",
            message=f"Test message for channel '{channel.name}'",
            data={"channel": channel.name, "type": channel.type.value},
        )
        attempt = await self._attempt(channel, notification)
        return attempt.result

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight dispatches to finish (each is bounded by channel timeouts)."""
        pending = list(self._inflight)
        if not pending:
            return
        logger.info("Draining %d in-flight dispatches", len(pending))
        await asyncio.wait(pending, timeout=timeout)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def _fan_out(
        self, notification: Notification, names: Sequence[str] | None
    ) -> DispatchResult:
        result = DispatchResult(alert_id=notification.alert_id)

        targets = self._select(names)
        attempts = [self._attempt(channel, notification) for channel in targets]

        if notification.severity == "critical" and self.config.admin_emails:
            attempts.append(self._admin_attempt(notification))

        # Live broadcast runs alongside the channels and is never skipped
        observers, *outcomes = await asyncio.gather(self._broadcast(notification), *attempts)
        result.broadcast_observers = observers
        result.attempts = outcomes

        if result.failed:
            logger.warning(
                "Alert %s: %d/%d channel deliveries failed",
                notification.alert_id,
                len(result.failed),
                len(result.attempts),
            )
        return result

    async def _broadcast(self, notification: Notification) -> int:
        """Publish to live observers, bounded like a channel attempt; never raises."""
        event = {"type": "alert", "data": notification.to_dict()}
        try:
            return await asyncio.wait_for(
                self.broadcaster.publish(event), timeout=self.config.channel_timeout
            )
        except TimeoutError:
            logger.warning(
                "Live broadcast for alert %s timed out after %ss",
                notification.alert_id,
                self.config.channel_timeout,
            )
        except Exception as e:
            logger.warning("Live broadcast failed for alert %s: %s", notification.alert_id, e)
        return 0

    def _select(self, names: Sequence[str] | None) -> list[ChannelConfig]:
        channels = [c for c in (self._channels or []) if c.enabled]
        if not names:
            return channels

        wanted = set(names)
        selected = [c for c in channels if c.name in wanted]
        skipped = wanted - {c.name for c in selected}
        if skipped:
            logger.debug("Skipping unknown or disabled channels: %s", ", ".join(sorted(skipped)))
        return selected

    async def _attempt(self, channel: ChannelConfig, notification: Notification) -> ChannelAttempt:
        """One isolated, timeout-bounded delivery; never raises."""
        sender = self.senders.get(channel.type)
        if channel.type == ChannelType.BROADCAST:
            # Already published to live observers by the fan-out
            result = DeliveryResult(success=True)
        elif sender is None:
            result = DeliveryResult(success=False, error_message=f"No sender for {channel.type.value}")
        else:
            try:
                config = self.cipher.decrypt_config(channel.config)
            except SecretDecryptionError as e:
                result = DeliveryResult(success=False, error_message=str(e))
            else:
                result = await self._bounded(sender.send(notification, config))

        error = None
        if not result.success:
            error = ChannelDeliveryError(
                f"Delivery via {channel.name} failed: {result.error_message}",
                channel_id=channel.id,
                alert_id=notification.alert_id,
            )
            logger.warning(
                "%s (id=%s, type=%s, alert=%s, config=%s)",
                error,
                error.channel_id,
                channel.type.value,
                error.alert_id,
                redact_config(channel.config),
            )

        return ChannelAttempt(
            channel=channel.name,
            channel_type=channel.type,
            channel_id=channel.id,
            result=result,
            error=error,
        )

    async def _admin_attempt(self, notification: Notification) -> ChannelAttempt:
        sender = self.senders.get(ChannelType.EMAIL)
        if sender is None:
            result = DeliveryResult(success=False, error_message="No email sender configured")
        else:
            recipients = list(self.config.admin_emails)
            result = await self._bounded(sender.send(notification, {"recipients": recipients}))

        error = None
        if not result.success:
            error = ChannelDeliveryError(
                f"Admin escalation failed: {result.error_message}",
                alert_id=notification.alert_id,
            )
            logger.warning("%s (alert=%s)", error, notification.alert_id)

        return ChannelAttempt(
            channel=ADMIN_CHANNEL_NAME,
            channel_type=ChannelType.EMAIL,
            result=result,
            admin_escalation=True,
            error=error,
        )

    async def _bounded(self, send: Awaitable[DeliveryResult]) -> DeliveryResult:
        try:
            return await asyncio.wait_for(send, timeout=self.config.channel_timeout)
        except TimeoutError:
            return DeliveryResult(
                success=False,
                error_message=f"Timed out after {self.config.channel_timeout}s",
            )
        except Exception as e:
            return DeliveryResult(success=False, error_message=f"{type(e).__name__}: {e}")


def build_senders(
    smtp_host: str | None,
    smtp_port: int,
    sender: str,
    username: str | None = None,
    password: str | None = None,
    use_tls: bool = True,
    sms_provider_url: str = "https://api.twilio.com/2010-04-01",
    timeout_seconds: float = 10.0,
) -> dict[ChannelType, NotificationChannel]:
    """Default sender for each deliverable channel type."""
    return {
        ChannelType.EMAIL: EmailChannel(
            smtp_host=smtp_host,
            smtp_port=smtp_port,
            sender=sender,
            username=username,
            password=password,
            use_tls=use_tls,
        ),
        ChannelType.CHAT: ChatWebhookChannel(timeout_seconds=timeout_seconds),
        ChannelType.WEBHOOK: WebhookChannel(timeout_seconds=timeout_seconds),
        ChannelType.SMS: SmsChannel(provider_url=sms_provider_url, timeout_seconds=timeout_seconds),
    }
