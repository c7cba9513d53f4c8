from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from typing import List
import logging

from jobboard.models.notification import Notification

# We'll use this router in main.py
router = APIRouter()

logger = logging.getLogger("JobBoardWebSocket")


class ConnectionManager:
    """
    Manages the dashboards listening for notifications.
    """
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"Client connected. Total active: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
            logger.info("Client disconnected.")

    async def broadcast(self, message: dict):
        """
        Push data to all connected clients.
        """
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.error(f"Failed to send message: {e}")
                # If sending fails, the connection is likely dead
                self.disconnect(connection)

    async def on_notification(self, event: str, notification: Notification):
        """NotificationCenter listener: relay shown/dismissed events."""
        if not self.active_connections:
            return
        kind = "NOTIFICATION" if event == "shown" else "NOTIFICATION_DISMISSED"
        await self.broadcast({"type": kind, "data": notification.to_json_dict()})


# Global instance so other modules can import it and push data
manager = ConnectionManager()

@router.websocket("/ws/notifications")
async def websocket_endpoint(websocket: WebSocket):
    await manager.connect(websocket)
    store = getattr(websocket.app.state, "store", None)
    try:
        # Bring a fresh client up to date with whatever is on screen now
        if store is not None and store.notification is not None:
            await websocket.send_json({"type": "NOTIFICATION", "data": store.notification.to_json_dict()})
        while True:
            # We listen for a ping from the frontend
            # This keeps the connection alive
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text("pong")

    except WebSocketDisconnect:
        manager.disconnect(websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(websocket)
