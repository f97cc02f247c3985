"""WebSocket hub streaming bot notifications to dashboard clients as JSON."""

from __future__ import annotations

import asyncio
import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dexbot.dashboard.serialize import notification_to_dict
from dexbot.notifications import Notification

log = structlog.get_logger(__name__)

router = APIRouter()


class DashboardHub:
    """Manages WebSocket connections and broadcasts notifications to all clients."""

    def __init__(self) -> None:
        self.connections: list[WebSocket] = []
        self._pending: set[asyncio.Task] = set()  # type: ignore[type-arg]

    async def connect(self, ws: WebSocket) -> None:
        """Accept a WebSocket connection and add it to the active connections list."""
        await ws.accept()
        self.connections.append(ws)
        log.info("dashboard_ws_connected", total=len(self.connections))

    def disconnect(self, ws: WebSocket) -> None:
        """Remove a WebSocket connection from the active connections list."""
        if ws in self.connections:
            self.connections.remove(ws)
        log.info("dashboard_ws_disconnected", total=len(self.connections))

    async def broadcast(self, text: str) -> None:
        """Send a message to all connected clients, removing broken connections."""
        for ws in self.connections.copy():
            try:
                await ws.send_text(text)
            except Exception:
                self.connections.remove(ws)
                log.warning("dashboard_ws_broadcast_error", remaining=len(self.connections))

    def on_notification(self, notification: Notification) -> None:
        """Notification bus subscriber: schedule a broadcast on the running loop."""
        if not self.connections:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        text = json.dumps(notification_to_dict(notification))
        task = loop.create_task(self.broadcast(text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time notifications."""
    ws_hub: DashboardHub = websocket.app.state.hub
    await ws_hub.connect(websocket)
    try:
        while True:
            # Consume messages to keep connection alive
            await websocket.receive_text()
    except WebSocketDisconnect:
        ws_hub.disconnect(websocket)
