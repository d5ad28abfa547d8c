"""
WebSocket message schemas for the admin dashboard channel.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class MessageType(str, Enum):
    """WebSocket message types."""
    # Client -> server
    AUTHENTICATE = "authenticate"
    GET_PENDING_WITHDRAWALS = "get:pendingWithdrawals"
    GET_GAME_PROFILES = "get:gameProfiles"
    GET_GAME_STATISTICS = "get:gameStatistics"
    PING = "ping"

    # Server -> client
    AUTHENTICATED = "authenticated"
    PENDING_WITHDRAWALS = "pendingWithdrawals"
    GAME_PROFILES = "gameProfiles"
    GAME_STATISTICS = "gameStatistics"
    PONG = "pong"
    ERROR = "error"
    CONNECTION_STATUS = "connection_status"


class WebSocketMessage(BaseModel):
    """Base WebSocket message schema."""
    type: MessageType
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    data: Dict[str, Any] = Field(default_factory=dict)


class AuthenticatedMessage(WebSocketMessage):
    """Authentication result."""
    type: MessageType = MessageType.AUTHENTICATED
    data: Dict[str, Any] = Field(
        description="success flag, admin identity or failure message"
    )


class PendingWithdrawalsMessage(WebSocketMessage):
    """Snapshot of pending withdrawals in the admin's scope."""
    type: MessageType = MessageType.PENDING_WITHDRAWALS
    data: Dict[str, Any] = Field(
        description="success flag and the pendingWithdrawals list"
    )


class GameProfilesMessage(WebSocketMessage):
    """Snapshot of game profiles in the admin's scope."""
    type: MessageType = MessageType.GAME_PROFILES
    data: Dict[str, Any] = Field(
        description="success flag, count and the profiles list"
    )


class GameStatisticsMessage(WebSocketMessage):
    """Snapshot of game statistics in the admin's scope."""
    type: MessageType = MessageType.GAME_STATISTICS
    data: Dict[str, Any] = Field(
        description="success flag and the statistics object"
    )


class ErrorMessage(WebSocketMessage):
    """Error message schema."""
    type: MessageType = MessageType.ERROR
    data: Dict[str, Any] = Field(
        description="Error information including code and description"
    )


class ConnectionStatusMessage(WebSocketMessage):
    """Connection status message schema."""
    type: MessageType = MessageType.CONNECTION_STATUS
    data: Dict[str, Any] = Field(
        description="Connection status including connection id and server time"
    )


class ClientMessage(BaseModel):
    """Inbound frame from a dashboard client."""
    type: str
    data: Optional[Dict[str, Any]] = None
    token: Optional[str] = None
