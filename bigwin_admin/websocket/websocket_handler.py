"""
WebSocket endpoint handler for the admin dashboard.

Clients authenticate with their admin API key, receive all dashboard
snapshots, and can request any snapshot again at any time. Live pushes
after data changes are sent by the Broadcaster.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bigwin_admin.admin.admin_auth import authenticate_token
from bigwin_admin.core.database import get_async_session
from bigwin_admin.core.exceptions import AuthenticationError, AuthorizationError
from .broadcaster import Broadcaster, SNAPSHOT_VIEWS
from .connection_manager import Connection, ConnectionManager
from .schemas import (
    MessageType,
    WebSocketMessage,
    AuthenticatedMessage,
    ClientMessage,
)

import structlog

logger = structlog.get_logger(__name__)

VIEW_REQUESTS = {
    MessageType.GET_PENDING_WITHDRAWALS.value: MessageType.PENDING_WITHDRAWALS,
    MessageType.GET_GAME_PROFILES.value: MessageType.GAME_PROFILES,
    MessageType.GET_GAME_STATISTICS.value: MessageType.GAME_STATISTICS,
}


class AdminWebSocketHandler:
    """Serves one /ws/admin connection from accept to disconnect."""

    def __init__(
        self,
        manager: ConnectionManager,
        broadcaster: Broadcaster,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None
    ):
        self.manager = manager
        self.broadcaster = broadcaster
        self.session_maker = session_maker

    async def handle(self, websocket: WebSocket, client_id: Optional[str] = None) -> None:
        client_id = client_id or f"admin_{uuid4().hex[:12]}"
        connection = None

        try:
            connection = await self.manager.connect(websocket, client_id)

            while True:
                try:
                    message = await websocket.receive_text()
                except WebSocketDisconnect:
                    logger.info("WebSocket client disconnected", client_id=client_id)
                    break

                await self._handle_client_message(connection, message)

        except WebSocketDisconnect:
            logger.info("WebSocket client disconnected during setup", client_id=client_id)
        except Exception as e:
            logger.error(
                "WebSocket connection error",
                client_id=client_id,
                error=str(e)
            )
        finally:
            if connection:
                await self.manager.disconnect(client_id)

    async def _handle_client_message(self, connection: Connection, message_text: str) -> None:
        try:
            message_data = json.loads(message_text)
        except json.JSONDecodeError:
            logger.error("Invalid JSON received from client", client_id=connection.client_id)
            await connection.send_error("INVALID_JSON", "Invalid JSON format in message")
            return

        try:
            message = ClientMessage.model_validate(message_data)
        except PydanticValidationError:
            await connection.send_error("INVALID_MESSAGE", "Message must be an object with a string type")
            return

        message_type = message.type
        payload = message.data or {}

        if message_type == MessageType.AUTHENTICATE.value:
            await self._handle_authenticate(connection, payload.get("token") or message.token)
        elif message_type in VIEW_REQUESTS:
            await self._handle_view_request(connection, VIEW_REQUESTS[message_type])
        elif message_type == MessageType.PING.value:
            await self._handle_ping(connection)
        else:
            logger.warning(
                "Unknown message type received",
                client_id=connection.client_id,
                message_type=message_type
            )
            await connection.send_error("UNKNOWN_MESSAGE_TYPE", f"Unknown message type: {message_type}")

    async def _handle_authenticate(self, connection: Connection, token: Optional[str]) -> None:
        try:
            async with get_async_session(self.session_maker) as db:
                admin = await authenticate_token(db, token)
        except (AuthenticationError, AuthorizationError) as e:
            await connection.send_message(AuthenticatedMessage(
                data={"success": False, "code": e.code, "message": e.message}
            ))
            return

        self.manager.authenticate(connection.client_id, admin)

        await connection.send_message(AuthenticatedMessage(
            data={"success": True, "admin": admin.to_dict()}
        ))

        await self._push(connection, SNAPSHOT_VIEWS)

    async def _handle_view_request(self, connection: Connection, view: MessageType) -> None:
        if not connection.is_authenticated:
            await connection.send_error("NOT_AUTHENTICATED", "Authenticate before requesting data")
            return

        await self._push(connection, [view])

    async def _push(self, connection: Connection, views) -> None:
        try:
            await self.broadcaster.push_views(connection, views)
        except Exception as e:
            logger.error(
                "Failed to build dashboard views",
                client_id=connection.client_id,
                views=[v.value for v in views],
                error=str(e)
            )
            await connection.send_error("VIEW_ERROR", "Failed to load dashboard data")

    async def _handle_ping(self, connection: Connection) -> None:
        connection.update_ping()
        await connection.send_message(WebSocketMessage(
            type=MessageType.PONG,
            data={"timestamp": datetime.utcnow().isoformat()}
        ))


def connection_stats(manager: ConnectionManager) -> Dict[str, Any]:
    return {
        "success": True,
        "data": manager.get_connection_stats(),
        "timestamp": datetime.utcnow().isoformat()
    }
