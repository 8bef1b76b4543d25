"""WebSocket endpoint for real-time task progress."""

import asyncio
import logging
from typing import List, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from sticker_engine.core.jobs import ProgressEvent

logger = logging.getLogger(__name__)
router = APIRouter()


class ConnectionManager:
    """Manage WebSocket connections."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self._pending: Set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("Client connected. Total: %d", len(self.active_connections))

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info("Client disconnected. Total: %d", len(self.active_connections))

    async def broadcast(self, message: dict):
        """Send message to all connected clients."""
        if not self.active_connections:
            return

        disconnected = []
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except Exception:
                disconnected.append(connection)

        for conn in disconnected:
            self.disconnect(conn)

    def publish(self, event: ProgressEvent) -> None:
        """Scheduler listener; runs on the event loop that drives the worker."""
        if not self.active_connections:
            return
        message = {
            "type": "TASK_UPDATE",
            "payload": {
                "taskId": event.job_id,
                "status": event.status.value,
                "progress": event.progress,
                "total": event.total,
                "currentItem": event.current_item,
            },
        }
        task = asyncio.get_running_loop().create_task(self.broadcast(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    manager: ConnectionManager = websocket.app.state.ws_manager
    await manager.connect(websocket)
    try:
        while True:
            # Incoming messages are only keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        manager.disconnect(websocket)
