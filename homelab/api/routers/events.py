"""
Live event stream.

WS /ws subscribes the connection to the service's EventBus. The client
receives a `connected` envelope first, then every published event.
A client `{"type": "ping"}` is answered with a `pong` to that client only.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from homelab.infra.event_bus import WebSocketObserver

from ..dependencies.auth import is_websocket_key_valid
from ..dependencies.services import get_ws_service


logger = logging.getLogger(__name__)

router = APIRouter()

PING_EVENT = "ping"
PONG_EVENT = "pong"


@router.websocket("/ws")
async def event_stream(websocket: WebSocket, api_key: Optional[str] = None):
    if not is_websocket_key_valid(api_key):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    event_bus = get_ws_service(websocket).event_bus
    await websocket.accept()

    observer = WebSocketObserver(websocket, asyncio.get_running_loop())
    pump = asyncio.create_task(observer.pump())
    event_bus.subscribe(observer)

    try:
        while observer.alive:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.debug(f"[EventStream] Ignoring non-JSON message: {raw[:80]!r}")
                continue
            if isinstance(message, dict) and message.get("type") == PING_EVENT:
                event_bus.send_to(observer, PONG_EVENT, {})
    except WebSocketDisconnect:
        logger.debug("[EventStream] Client disconnected")
    finally:
        event_bus.unsubscribe(observer)
        observer.close()
        pump.cancel()
