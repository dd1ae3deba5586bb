from __future__ import annotations

from typing import Any, Dict

import socketio
from fastapi import WebSocket

from .workflow.base import WorkflowEvent


class LiveUpdateHub:
    """Fans workflow events out to dashboard websockets and Socket.IO clients."""

    def __init__(self, sio_server: socketio.AsyncServer) -> None:
        self.sio = sio_server
        self.websockets: set[WebSocket] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self.websockets.add(websocket)

    def disconnect(self, websocket: WebSocket) -> None:
        self.websockets.discard(websocket)

    async def notify(self, event: str, payload: Dict[str, Any]) -> None:
        message = {"event": event, "payload": payload}
        stale = []
        for connection in self.websockets:
            try:
                await connection.send_json(message)
            except Exception:
                stale.append(connection)
        for connection in stale:
            self.disconnect(connection)
        await self.sio.emit(event, payload)

    async def workflow_event(self, event: WorkflowEvent) -> None:
        await self.notify(event.type, event.payload)


sio = socketio.AsyncServer(async_mode="asgi", cors_allowed_origins="*")
hub = LiveUpdateHub(sio)
