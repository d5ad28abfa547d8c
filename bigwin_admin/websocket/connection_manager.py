"""
WebSocket connection registry for admin dashboard clients.

One ConnectionManager instance is created by the application factory and
injected wherever connections are needed.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Set, Optional, Any
from fastapi import WebSocket

from .schemas import (
    WebSocketMessage,
    MessageType,
    ConnectionStatusMessage,
    ErrorMessage,
)
from bigwin_admin.core.config import settings
from bigwin_admin.services.scope import CallerIdentity

import structlog

logger = structlog.get_logger(__name__)


class Connection:
    """Represents a single WebSocket connection."""

    def __init__(self, websocket: WebSocket, client_id: str):
        self.websocket = websocket
        self.client_id = client_id
        self.connected_at = datetime.utcnow()
        self.last_ping = datetime.utcnow()
        self.admin: Optional[CallerIdentity] = None

    @property
    def is_authenticated(self) -> bool:
        return self.admin is not None

    async def send_message(self, message: WebSocketMessage, timeout: Optional[float] = None) -> bool:
        """Send a message to this connection, bounded by timeout when given."""
        try:
            send = self.websocket.send_json(message.model_dump(mode="json"))
            if timeout:
                await asyncio.wait_for(send, timeout=timeout)
            else:
                await send
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out sending message to connection",
                client_id=self.client_id,
                admin=self.admin.username if self.admin else None,
                message_type=message.type.value,
                timeout=timeout
            )
            return False
        except Exception as e:
            logger.error(
                "Failed to send message to connection",
                client_id=self.client_id,
                admin=self.admin.username if self.admin else None,
                error=str(e)
            )
            return False

    async def send_error(self, error_code: str, error_message: str):
        """Send an error message to this connection."""
        error_msg = ErrorMessage(
            data={
                "code": error_code,
                "message": error_message
            }
        )
        await self.send_message(error_msg)

    def update_ping(self):
        """Update the last ping timestamp."""
        self.last_ping = datetime.utcnow()


class ConnectionManager:
    """Registry of live dashboard connections."""

    def __init__(self, health_interval: Optional[float] = None):
        # Active connections by client_id
        self.connections: Dict[str, Connection] = {}
        self._background_tasks: Set[asyncio.Task] = set()
        self._health_interval = health_interval or settings.websocket_health_interval

    async def connect(self, websocket: WebSocket, client_id: str) -> Connection:
        """Accept a new WebSocket connection and register it."""
        try:
            await websocket.accept()

            connection = Connection(websocket, client_id)
            self.connections[client_id] = connection

            status_msg = ConnectionStatusMessage(
                data={
                    "status": "connected",
                    "client_id": client_id,
                    "authenticated": False,
                    "server_time": datetime.utcnow().isoformat()
                }
            )
            await connection.send_message(status_msg)

            logger.info(
                "WebSocket connection established",
                client_id=client_id,
                total_connections=len(self.connections)
            )

            if len(self.connections) == 1:
                self._start_health_task()

            return connection

        except Exception as e:
            logger.error(
                "Failed to establish WebSocket connection",
                client_id=client_id,
                error=str(e)
            )
            raise

    def authenticate(self, client_id: str, admin: CallerIdentity) -> bool:
        """Attach an admin identity to a registered connection."""
        connection = self.connections.get(client_id)
        if not connection:
            return False

        connection.admin = admin

        logger.info(
            "WebSocket client authenticated",
            client_id=client_id,
            admin=admin.username,
            role=admin.role
        )
        return True

    async def disconnect(self, client_id: str, code: int = 1000):
        """Unregister a connection and close its socket if still open."""
        connection = self.connections.pop(client_id, None)
        if connection is None:
            return

        try:
            if connection.websocket.client_state.name != "DISCONNECTED":
                await connection.websocket.close(code=code)

        except Exception as e:
            logger.debug(
                "Error closing WebSocket",
                client_id=client_id,
                error=str(e)
            )

        logger.info(
            "WebSocket connection closed",
            client_id=client_id,
            admin=connection.admin.username if connection.admin else None,
            code=code,
            remaining_connections=len(self.connections)
        )

        if not self.connections:
            self._stop_health_task()

    def authenticated_connections(self) -> List[Connection]:
        return [c for c in self.connections.values() if c.is_authenticated]

    def get_connection_stats(self) -> Dict[str, Any]:
        """Get current connection statistics."""
        authenticated = self.authenticated_connections()
        admins: Dict[str, int] = {}
        for connection in authenticated:
            admins[connection.admin.username] = admins.get(connection.admin.username, 0) + 1

        return {
            "total_connections": len(self.connections),
            "authenticated_connections": len(authenticated),
            "connections_by_admin": admins,
        }

    async def ping_all_connections(self) -> int:
        """Ping every connection and drop the ones that fail."""
        current_time = datetime.utcnow()
        failed_connections = []

        for client_id, connection in list(self.connections.items()):
            ping_msg = WebSocketMessage(
                type=MessageType.CONNECTION_STATUS,
                data={"ping": current_time.isoformat()}
            )
            if await connection.send_message(ping_msg, timeout=settings.websocket_send_timeout):
                connection.update_ping()
            else:
                failed_connections.append(client_id)

        for client_id in failed_connections:
            await self.disconnect(client_id, code=1011)

        return len(self.connections)

    async def close_all(self) -> None:
        for client_id in list(self.connections):
            await self.disconnect(client_id, code=1001)
        self._stop_health_task()

    def _start_health_task(self):
        """Start the background health task."""
        if not self._background_tasks:
            task = asyncio.create_task(self._health_loop())
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)

    def _stop_health_task(self):
        """Stop all background tasks."""
        for task in self._background_tasks:
            if not task.done():
                task.cancel()
        self._background_tasks.clear()

    async def _health_loop(self):
        """Periodically log client counts and drop dead sockets."""
        try:
            while self.connections:
                await asyncio.sleep(self._health_interval)

                active_count = await self.ping_all_connections()

                logger.info(
                    "WebSocket connection stats",
                    connected_clients=active_count,
                    authenticated_clients=len(self.authenticated_connections())
                )

        except asyncio.CancelledError:
            logger.debug("Health task cancelled")
        except Exception as e:
            logger.error("Error in health loop", error=str(e))
