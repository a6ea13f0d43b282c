"""Tests for LiveBroadcaster."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from helpers import RecordingObserver, StalledObserver

from marketpulse.notifications.broadcast import LiveBroadcaster


class TestLiveBroadcaster:
    @pytest.mark.asyncio
    async def test_publishes_to_every_observer(self):
        broadcaster = LiveBroadcaster()
        first, second = RecordingObserver(), RecordingObserver()
        await broadcaster.subscribe(first)
        await broadcaster.subscribe(second)

        delivered = await broadcaster.publish({"type": "metrics_update", "data": {}})

        assert delivered == 2
        assert first.events == second.events == [{"type": "metrics_update", "data": {}}]

    @pytest.mark.asyncio
    async def test_subscribe_is_idempotent(self):
        broadcaster = LiveBroadcaster()
        observer = RecordingObserver()
        await broadcaster.subscribe(observer)
        await broadcaster.subscribe(observer)

        assert broadcaster.observer_count == 1

    @pytest.mark.asyncio
    async def test_failing_observer_dropped_others_served(self):
        broadcaster = LiveBroadcaster()
        broken = AsyncMock()
        broken.send_json.side_effect = ConnectionError("socket closed")
        healthy = RecordingObserver()
        await broadcaster.subscribe(broken)
        await broadcaster.subscribe(healthy)

        delivered = await broadcaster.publish({"type": "alert", "data": {}})

        assert delivered == 1
        assert len(healthy.events) == 1
        assert broadcaster.observer_count == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_unknown_observer_is_noop(self):
        broadcaster = LiveBroadcaster()
        await broadcaster.unsubscribe(RecordingObserver())
        assert broadcaster.observer_count == 0

    @pytest.mark.asyncio
    async def test_publish_without_observers(self):
        assert await LiveBroadcaster().publish({"type": "alert"}) == 0

    @pytest.mark.asyncio
    async def test_stalled_observer_times_out_and_is_dropped(self):
        broadcaster = LiveBroadcaster(send_timeout=0.05)
        stalled = StalledObserver()
        healthy = RecordingObserver()
        await broadcaster.subscribe(stalled)
        await broadcaster.subscribe(healthy)

        delivered = await asyncio.wait_for(broadcaster.publish({"type": "alert", "data": {}}), 2)

        assert delivered == 1
        assert stalled.attempts == 1
        assert healthy.events == [{"type": "alert", "data": {}}]
        assert broadcaster.observer_count == 1

    @pytest.mark.asyncio
    async def test_observers_are_sent_concurrently(self):
        broadcaster = LiveBroadcaster(send_timeout=0.2)
        for _ in range(5):
            await broadcaster.subscribe(StalledObserver())

        loop = asyncio.get_running_loop()
        started = loop.time()
        delivered = await broadcaster.publish({"type": "alert", "data": {}})

        assert delivered == 0
        assert broadcaster.observer_count == 0
        # Five sequential timeouts would take a full second
        assert loop.time() - started < 0.8

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            LiveBroadcaster(send_timeout=0)
