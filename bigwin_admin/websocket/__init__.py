"""
WebSocket module for real-time admin dashboard updates.
"""

from .connection_manager import Connection, ConnectionManager
from .broadcaster import Broadcaster, build_view_message, SNAPSHOT_VIEWS
from .websocket_handler import AdminWebSocketHandler
from .schemas import (
    WebSocketMessage,
    ErrorMessage,
    MessageType
)

__all__ = [
    "Connection",
    "ConnectionManager",
    "Broadcaster",
    "build_view_message",
    "SNAPSHOT_VIEWS",
    "AdminWebSocketHandler",
    "WebSocketMessage",
    "ErrorMessage",
    "MessageType"
]
