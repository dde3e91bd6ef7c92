"""
WebSocket Routes
================
Live agent and scan events for the dashboard.
"""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

import devconsole.api.state as api_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Clients may send {"type": "subscribe" | "unsubscribe", "channel": "agent"}."""
    manager = api_state.manager
    await manager.connect(websocket)
    try:
        while True:
            data = await websocket.receive_json()
            if data.get("type") == "subscribe":
                manager.subscribe(websocket, data.get("channel"))
            elif data.get("type") == "unsubscribe":
                manager.unsubscribe(websocket, data.get("channel"))
            elif data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        manager.disconnect(websocket)
