"""Live broadcaster for real-time monitoring events.

Pushes metric snapshots and alerts to every subscribed observer (typically a
FastAPI WebSocket). Observers join and leave independently of the core.
"""

import asyncio
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class Observer(Protocol):
    """Anything that can receive a JSON event (e.g. ``fastapi.WebSocket``)."""

    async def send_json(self, data: Any) -> None: ...


class LiveBroadcast(Protocol):
    """Protocol for the live push transport."""

    async def publish(self, event: dict[str, Any]) -> int: ...


class LiveBroadcaster:
    """Manages live observers and publishes events to all of them.

    Usage:
        broadcaster = LiveBroadcaster()

        # In WebSocket endpoint
        await broadcaster.subscribe(websocket)
        try:
            while True:
                await websocket.receive_text()  # Keep alive
        except WebSocketDisconnect:
            await broadcaster.unsubscribe(websocket)

        # In collector / dispatcher
        await broadcaster.publish({"type": "metrics_update", "data": {...}})
    """

    def __init__(self, send_timeout: float = 5.0):
        """Initialize the broadcaster.

        Args:
            send_timeout: Upper bound for one observer send, in seconds
        """
        if send_timeout <= 0:
            raise ValueError("send_timeout must be positive")
        self.send_timeout = send_timeout
        self._observers: list[Observer] = []
        self._lock = asyncio.Lock()

    async def subscribe(self, observer: Observer) -> None:
        async with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)
        logger.info("Live observer subscribed (total=%d)", len(self._observers))

    async def unsubscribe(self, observer: Observer) -> None:
        async with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                return  # Already removed
        logger.info("Live observer unsubscribed (total=%d)", len(self._observers))

    async def publish(self, event: dict[str, Any]) -> int:
        """Send an event to every current observer concurrently.

        Each send is bounded by ``send_timeout``; observers whose send fails
        or times out are dropped.

        Returns:
            Number of observers that received the event
        """
        # Snapshot so subscribe/unsubscribe during the sends is safe
        async with self._lock:
            observers = list(self._observers)
        if not observers:
            return 0

        delivered = await asyncio.gather(*(self._send(o, event) for o in observers))

        for observer, ok in zip(observers, delivered):
            if not ok:
                await self.unsubscribe(observer)

        return sum(delivered)

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def _send(self, observer: Observer, event: dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(observer.send_json(event), timeout=self.send_timeout)
            return True
        except TimeoutError:
            logger.warning("Dropping live observer: send timed out after %.1fs", self.send_timeout)
        except Exception as e:
            logger.warning("Dropping live observer after send error: %s", e)
        return False
