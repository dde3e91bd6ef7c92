"""
WebSocket Connection Manager
=============================
Tracks dashboard WebSocket clients and fans out agent / scan events.

Clients receive every event until they subscribe to one or more channels
(``agent``, ``scan``, ...); after that only events whose type starts with
``<channel>:`` are delivered to them.
"""

import logging
from datetime import datetime
from typing import Dict, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Manages WebSocket connections and message broadcasting."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self.subscriptions: Dict[WebSocket, Set[str]] = {}

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"WebSocket connected. Total active: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        self.subscriptions.pop(websocket, None)
        logger.info(f"WebSocket disconnected. Total active: {len(self.active_connections)}")

    def subscribe(self, websocket: WebSocket, channel: str):
        if not channel:
            return
        self.subscriptions.setdefault(websocket, set()).add(channel)
        logger.info(f"Subscribed to {channel}")

    def unsubscribe(self, websocket: WebSocket, channel: str):
        channels = self.subscriptions.get(websocket)
        if channels is None:
            return
        channels.discard(channel)
        if not channels:
            del self.subscriptions[websocket]

    def wants(self, websocket: WebSocket, event_type: str) -> bool:
        channels = self.subscriptions.get(websocket)
        if not channels:
            return True
        return event_type.split(":", 1)[0] in channels

    async def broadcast(self, message: dict):
        """Send ``message`` to every interested client; send failures are logged, never raised."""
        if "timestamp" not in message:
            message["timestamp"] = datetime.now().isoformat()

        event_type = message.get("type", "")
        for connection in list(self.active_connections):
            if not self.wants(connection, event_type):
                continue
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.error(f"Error broadcasting message: {e}")
