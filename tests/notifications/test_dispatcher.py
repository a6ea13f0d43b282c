"""Tests for NotificationDispatcher."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from helpers import RecordingObserver, StalledObserver

from marketpulse.errors import ChannelDeliveryError, ConfigurationError
from marketpulse.notifications.broadcast import LiveBroadcaster
from marketpulse.notifications.dispatcher import (
    ADMIN_CHANNEL_NAME,
    DispatcherConfig,
    NotificationDispatcher,
)
from marketpulse.notifications.encryption import SecretCipher
from marketpulse.notifications.models import (
    ChannelConfig,
    ChannelType,
    DeliveryResult,
    Notification,
)


class InMemoryChannelStore:
    def __init__(self, channels):
        self.channels = list(channels)

    async def list_enabled(self):
        return [c for c in self.channels if c.enabled]

    async def get(self, channel_id):
        for channel in self.channels:
            if channel.id == channel_id:
                return channel
        return None


def _notification(severity="high") -> Notification:
    return Notification(severity=severity, title="Alert: high_error_rate", message="Error rate 12%", alert_id=7)


def _webhook(channel_id, name, enabled=True) -> ChannelConfig:
    return ChannelConfig(
        id=channel_id,
        name=name,
        type=ChannelType.WEBHOOK,
        config={"url": f"https://hooks.test/{name}"},
        enabled=enabled,
    )


@pytest.fixture
def cipher():
    return SecretCipher(SecretCipher.generate_key())


@pytest.fixture
def webhook_sender():
    async def send(notification, config):
        if config["url"].endswith("/b"):
            raise RuntimeError("endpoint exploded")
        return DeliveryResult(success=True, response_code=200)

    sender = AsyncMock()
    sender.send.side_effect = send
    return sender


@pytest.fixture
def email_sender():
    sender = AsyncMock()
    sender.send.return_value = DeliveryResult(success=True, response_code=250)
    return sender


def _dispatcher(channels, senders, cipher, broadcaster=None, **config) -> NotificationDispatcher:
    return NotificationDispatcher(
        channel_store=InMemoryChannelStore(channels),
        cipher=cipher,
        senders=senders,
        broadcaster=broadcaster or LiveBroadcaster(),
        config=DispatcherConfig(**config),
    )


class TestFanOut:
    @pytest.mark.asyncio
    async def test_one_failing_channel_does_not_block_others(self, cipher, webhook_sender):
        dispatcher = _dispatcher(
            [_webhook(1, "a"), _webhook(2, "b"), _webhook(3, "c")],
            {ChannelType.WEBHOOK: webhook_sender},
            cipher,
        )

        result = await dispatcher.dispatch(_notification(), ["a", "b", "c"])

        assert result.result_for("a").success
        assert result.result_for("c").success
        failed = result.result_for("b")
        assert not failed.success
        assert "endpoint exploded" in failed.error_message
        assert [a.channel for a in result.failed] == ["b"]
        assert webhook_sender.send.await_count == 3

        error = result.failed[0].error
        assert isinstance(error, ChannelDeliveryError)
        assert error.channel_id == 2
        assert error.alert_id == 7
        assert result.succeeded[0].error is None

    @pytest.mark.asyncio
    async def test_slow_channel_times_out(self, cipher):
        async def hang(notification, config):
            await asyncio.sleep(5)
            return DeliveryResult(success=True)

        slow = AsyncMock()
        slow.send.side_effect = hang
        dispatcher = _dispatcher(
            [_webhook(1, "slow")], {ChannelType.WEBHOOK: slow}, cipher, channel_timeout=0.05
        )

        result = await dispatcher.dispatch(_notification())

        assert not result.all_succeeded
        assert "Timed out" in result.result_for("slow").error_message

    @pytest.mark.asyncio
    async def test_empty_selection_means_all_enabled(self, cipher, webhook_sender):
        dispatcher = _dispatcher(
            [_webhook(1, "a"), _webhook(3, "c"), _webhook(4, "off", enabled=False)],
            {ChannelType.WEBHOOK: webhook_sender},
            cipher,
        )

        result = await dispatcher.dispatch(_notification(), [])

        assert sorted(a.channel for a in result.attempts) == ["a", "c"]

    @pytest.mark.asyncio
    async def test_unknown_and_disabled_names_skipped(self, cipher, webhook_sender):
        dispatcher = _dispatcher(
            [_webhook(1, "a"), _webhook(4, "off", enabled=False)],
            {ChannelType.WEBHOOK: webhook_sender},
            cipher,
        )

        result = await dispatcher.dispatch(_notification(), ["a", "off", "missing"])

        assert [a.channel for a in result.attempts] == ["a"]
        assert result.all_succeeded

    @pytest.mark.asyncio
    async def test_undecryptable_secret_fails_only_that_channel(self, cipher, webhook_sender):
        other_key = SecretCipher(SecretCipher.generate_key())
        broken = ChannelConfig(
            id=9,
            name="broken",
            type=ChannelType.WEBHOOK,
            config=other_key.encrypt_config({"url": "https://hooks.test/x", "token": "t"}),
        )
        dispatcher = _dispatcher(
            [_webhook(1, "a"), broken], {ChannelType.WEBHOOK: webhook_sender}, cipher
        )

        result = await dispatcher.dispatch(_notification())

        assert result.result_for("a").success
        assert "decrypt" in result.result_for("broken").error_message

    @pytest.mark.asyncio
    async def test_sender_receives_decrypted_config(self, cipher):
        sender = AsyncMock()
        sender.send.return_value = DeliveryResult(success=True)
        channel = ChannelConfig(
            id=1,
            name="hook",
            type=ChannelType.WEBHOOK,
            config=cipher.encrypt_config({"url": "https://hooks.test/a", "token": "s3cret"}),
        )
        dispatcher = _dispatcher([channel], {ChannelType.WEBHOOK: sender}, cipher)

        await dispatcher.dispatch(_notification())

        config = sender.send.await_args.args[1]
        assert config["token"] == "s3cret"


class TestBroadcastAndEscalation:
    @pytest.mark.asyncio
    async def test_broadcast_happens_even_without_channels(self, cipher):
        broadcaster = LiveBroadcaster()
        observer = RecordingObserver()
        await broadcaster.subscribe(observer)
        dispatcher = _dispatcher([], {}, cipher, broadcaster=broadcaster)

        result = await dispatcher.dispatch(_notification())

        assert result.broadcast_observers == 1
        assert observer.of_type("alert")[0]["data"]["alert_id"] == 7

    @pytest.mark.asyncio
    async def test_stalled_observer_does_not_block_channels(self, cipher, webhook_sender):
        broadcaster = LiveBroadcaster(send_timeout=3600)
        healthy = RecordingObserver()
        await broadcaster.subscribe(StalledObserver())
        await broadcaster.subscribe(healthy)
        dispatcher = _dispatcher(
            [_webhook(1, "a")],
            {ChannelType.WEBHOOK: webhook_sender},
            cipher,
            broadcaster=broadcaster,
            channel_timeout=0.1,
        )

        result = await asyncio.wait_for(dispatcher.dispatch(_notification()), 2)

        assert result.result_for("a").success
        assert webhook_sender.send.await_count == 1
        assert healthy.of_type("alert")[0]["data"]["alert_id"] == 7
        assert result.broadcast_observers == 0

    @pytest.mark.asyncio
    async def test_broadcast_failure_is_isolated(self, cipher, webhook_sender):
        broadcaster = AsyncMock()
        broadcaster.publish.side_effect = RuntimeError("hub down")
        dispatcher = _dispatcher(
            [_webhook(1, "a")], {ChannelType.WEBHOOK: webhook_sender}, cipher, broadcaster=broadcaster
        )

        result = await dispatcher.dispatch(_notification())

        assert result.all_succeeded
        assert result.broadcast_observers == 0

    @pytest.mark.asyncio
    async def test_broadcast_channel_counts_as_delivered(self, cipher):
        live = ChannelConfig(id=1, name="live", type=ChannelType.BROADCAST)
        dispatcher = _dispatcher([live], {}, cipher)

        result = await dispatcher.dispatch(_notification(), ["live"])

        assert result.result_for("live").success

    @pytest.mark.asyncio
    async def test_critical_escalates_to_admins(self, cipher, email_sender):
        dispatcher = _dispatcher(
            [],
            {ChannelType.EMAIL: email_sender},
            cipher,
            admin_emails=("ops@example.com", "cto@example.com"),
        )

        result = await dispatcher.dispatch(_notification("critical"))

        admin = result.attempts[0]
        assert admin.channel == ADMIN_CHANNEL_NAME
        assert admin.admin_escalation
        config = email_sender.send.await_args.args[1]
        assert config["recipients"] == ["ops@example.com", "cto@example.com"]

    @pytest.mark.asyncio
    async def test_non_critical_not_escalated(self, cipher, email_sender):
        dispatcher = _dispatcher(
            [], {ChannelType.EMAIL: email_sender}, cipher, admin_emails=("ops@example.com",)
        )

        result = await dispatcher.dispatch(_notification("high"))

        assert result.attempts == []
        email_sender.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_escalation_without_email_sender_reported(self, cipher):
        dispatcher = _dispatcher([], {}, cipher, admin_emails=("ops@example.com",))

        result = await dispatcher.dispatch(_notification("critical"))

        assert result.result_for(ADMIN_CHANNEL_NAME).success is False


class TestChannelTestAndDrain:
    @pytest.mark.asyncio
    async def test_test_channel_sends_info_notification(self, cipher, webhook_sender):
        dispatcher = _dispatcher([_webhook(1, "a")], {ChannelType.WEBHOOK: webhook_sender}, cipher)

        result = await dispatcher.test_channel(1)

        assert result.success
        notification = webhook_sender.send.await_args.args[0]
        assert notification.severity == "info"
        assert "'a'" in notification.message

    @pytest.mark.asyncio
    async def test_test_missing_channel_raises(self, cipher):
        dispatcher = _dispatcher([], {}, cipher)

        with pytest.raises(ConfigurationError):
            await dispatcher.test_channel(42)

    @pytest.mark.asyncio
    async def test_reload_picks_up_new_channels(self, cipher, webhook_sender):
        store_channels = [_webhook(1, "a")]
        dispatcher = _dispatcher(store_channels, {ChannelType.WEBHOOK: webhook_sender}, cipher)
        assert await dispatcher.reload_channels() == 1

        dispatcher.channel_store.channels.append(_webhook(3, "c"))
        assert await dispatcher.reload_channels() == 2

    @pytest.mark.asyncio
    async def test_drain_waits_for_inflight(self, cipher):
        release = asyncio.Event()

        async def wait_for_release(notification, config):
            await release.wait()
            return DeliveryResult(success=True)

        sender = AsyncMock()
        sender.send.side_effect = wait_for_release
        dispatcher = _dispatcher([_webhook(1, "a")], {ChannelType.WEBHOOK: sender}, cipher)
        await dispatcher.reload_channels()

        pending = asyncio.create_task(dispatcher.dispatch(_notification()))
        await asyncio.sleep(0.01)
        assert dispatcher.inflight_count == 1

        release.set()
        await dispatcher.drain(timeout=1)
        assert dispatcher.inflight_count == 0
        assert (await pending).all_succeeded
