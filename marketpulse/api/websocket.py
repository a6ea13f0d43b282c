"""Live monitoring stream.

Clients receive every ``metrics_update`` and ``alert`` event published by
the monitoring core as JSON.
"""

import logging

from fastapi import APIRouter, WebSocket
from starlette.websockets import WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["monitoring"])


@router.websocket("/ws/monitoring")
async def monitoring_websocket(websocket: WebSocket):
    """WebSocket for real-time metric and alert updates.

    Messages are JSON with types: metrics_update, alert
    """
    core = getattr(websocket.app.state, "core", None)
    await websocket.accept()
    if core is None:
        await websocket.close(code=1011, reason="Monitoring core not initialized")
        return

    broadcaster = core.broadcaster
    await broadcaster.subscribe(websocket)
    try:
        while True:
            # Keep connection alive, echo for ping/pong
            data = await websocket.receive_text()
            await websocket.send_json({"type": "pong", "received": data})
    except WebSocketDisconnect:
        logger.debug("Monitoring websocket disconnected")
    finally:
        await broadcaster.unsubscribe(websocket)
