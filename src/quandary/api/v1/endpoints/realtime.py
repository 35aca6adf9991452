"""WebSocket endpoint carrying the realtime event channel."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from quandary.core.security import InvalidTokenError, decode_access_token
from quandary.services import RealtimeGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


class WebSocketChannel:
    """Serializes outbound frames for one socket."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self._lock = asyncio.Lock()

    async def send_event(self, event: str, data: Any) -> None:
        frame = jsonable_encoder({"event": event, "data": data})
        async with self._lock:
            await self.websocket.send_json(frame)


def _bearer_token(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


@router.websocket("/ws")
async def event_channel(websocket: WebSocket) -> None:
    """Authenticate, register the connection and pump inbound frames."""
    gateway: RealtimeGateway = websocket.app.state.realtime

    token = _bearer_token(websocket)
    user = None
    if token is not None:
        try:
            user = await gateway.load_user(decode_access_token(token))
        except InvalidTokenError:
            user = None
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Authentication error")
        return

    await websocket.accept()
    connection_id = uuid.uuid4().hex
    await gateway.connect(connection_id, user, WebSocketChannel(websocket))
    try:
        while True:
            raw = await websocket.receive_text()
            await gateway.dispatch(connection_id, raw)
    except WebSocketDisconnect as exc:
        logger.debug("Connection %s closed with code %s", connection_id, exc.code)
    finally:
        await gateway.disconnect(connection_id)
