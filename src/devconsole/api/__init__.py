"""
Developer Console API
=====================
HTTP and WebSocket surface of the console.
"""

from .websocket import ConnectionManager

__all__ = ["ConnectionManager"]
