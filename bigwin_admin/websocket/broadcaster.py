"""
Fan-out of scoped dashboard snapshots to authenticated admin clients.

Each client's view is computed from its own admin scope. Pushes run
concurrently with a per-send timeout; a client whose send fails is
dropped without affecting the others.
"""

import asyncio
from typing import Dict, Iterable, List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bigwin_admin.core.config import settings
from bigwin_admin.core.database import get_async_session
from bigwin_admin.services.admin_views import AdminViewService
from bigwin_admin.services.scope import CallerIdentity
from bigwin_admin.watcher.events import ChangeEvent, views_for_event
from .connection_manager import Connection, ConnectionManager
from .schemas import (
    MessageType,
    WebSocketMessage,
    PendingWithdrawalsMessage,
    GameProfilesMessage,
    GameStatisticsMessage,
)

logger = structlog.get_logger(__name__)

SNAPSHOT_VIEWS = (
    MessageType.PENDING_WITHDRAWALS,
    MessageType.GAME_PROFILES,
    MessageType.GAME_STATISTICS,
)


async def build_view_message(
    db: AsyncSession,
    caller: CallerIdentity,
    view: MessageType
) -> WebSocketMessage:
    """Compute one dashboard snapshot for a caller."""
    service = AdminViewService(db)

    if view == MessageType.PENDING_WITHDRAWALS:
        withdrawals = await service.fetch_pending_withdrawals(caller)
        return PendingWithdrawalsMessage(
            data={"success": True, "pendingWithdrawals": withdrawals}
        )

    if view == MessageType.GAME_PROFILES:
        profiles = await service.fetch_game_profiles(caller)
        return GameProfilesMessage(
            data={"success": True, "count": len(profiles), "profiles": profiles}
        )

    if view == MessageType.GAME_STATISTICS:
        statistics = await service.fetch_game_statistics(caller)
        return GameStatisticsMessage(
            data={"success": True, "statistics": statistics}
        )

    raise ValueError(f"Not a snapshot view: {view}")


class Broadcaster:
    """Pushes recomputed views to every authenticated connection."""

    def __init__(
        self,
        manager: ConnectionManager,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        send_timeout: Optional[float] = None
    ):
        self.manager = manager
        self.session_maker = session_maker
        self.send_timeout = send_timeout or settings.websocket_send_timeout

    async def handle_change(self, change: ChangeEvent) -> None:
        """Route a change event to the views it affects."""
        views = [MessageType(view) for view in views_for_event(change)]
        if not views:
            return

        logger.debug(
            "Broadcasting after change",
            collection=change.collection,
            operation=change.operation,
            views=[v.value for v in views]
        )
        await self.broadcast(views)

    async def broadcast_pending_withdrawals(self) -> Dict[str, int]:
        return await self.broadcast([MessageType.PENDING_WITHDRAWALS])

    async def broadcast_game_profiles(self) -> Dict[str, int]:
        return await self.broadcast([MessageType.GAME_PROFILES])

    async def broadcast_game_statistics(self) -> Dict[str, int]:
        return await self.broadcast([MessageType.GAME_STATISTICS])

    async def broadcast(self, views: Iterable[MessageType]) -> Dict[str, int]:
        """Push the given views to all authenticated clients concurrently."""
        views = list(views)
        connections = self.manager.authenticated_connections()
        if not connections:
            return {"clients": 0, "delivered": 0, "failed": 0}

        results = await asyncio.gather(
            *(self.push_views(connection, views) for connection in connections),
            return_exceptions=True
        )

        delivered = 0
        failed: List[Connection] = []
        for connection, result in zip(connections, results):
            if result is True:
                delivered += 1
            elif result is False:
                failed.append(connection)
            else:
                # View could not be computed; the socket itself is fine
                logger.error(
                    "Failed to build views for client",
                    client_id=connection.client_id,
                    admin=connection.admin.username,
                    error=str(result)
                )

        for connection in failed:
            await self.manager.disconnect(connection.client_id, code=1011)

        summary = {
            "clients": len(connections),
            "delivered": delivered,
            "failed": len(connections) - delivered,
        }
        logger.info(
            "Broadcast completed",
            views=[v.value for v in views],
            **summary
        )
        return summary

    async def push_views(self, connection: Connection, views: Iterable[MessageType]) -> bool:
        """Compute and send views for one connection. False if a send failed."""
        admin = connection.admin
        if admin is None:
            return True

        async with get_async_session(self.session_maker) as db:
            messages = [await build_view_message(db, admin, view) for view in views]

        for message in messages:
            if not await connection.send_message(message, timeout=self.send_timeout):
                return False
        return True
