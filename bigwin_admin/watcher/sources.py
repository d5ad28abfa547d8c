"""
Change sources feeding the change notifier.

PostgresChangeSource listens for trigger notifications on a dedicated
asyncpg connection. SessionChangeSource hooks SQLAlchemy sessions in this
process and announces only committed changes; it is used when the
database is not PostgreSQL.
"""

import asyncio
from typing import AsyncIterator, List, Optional, Set

import asyncpg
import structlog
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from bigwin_admin.core.config import settings, DatabaseConfig
from bigwin_admin.core.database import WATCHED_TABLES
from bigwin_admin.core.exceptions import DependencyError
from .events import ChangeEvent

logger = structlog.get_logger(__name__)

_CONNECTION_LOST = object()


class ChangeSource:
    """Async stream of change events. Raises when the underlying feed is lost."""

    name = "base"

    def watch(self, ready: Optional[asyncio.Event] = None) -> AsyncIterator[ChangeEvent]:
        """Yield events until the feed fails. Sets ready once listening."""
        raise NotImplementedError


class PostgresChangeSource(ChangeSource):
    """LISTEN on the change channel fed by the notify_admin_change triggers."""

    name = "postgres"

    def __init__(
        self,
        dsn: Optional[str] = None,
        channel: Optional[str] = None,
        keepalive_interval: float = 30.0
    ):
        self.dsn = dsn or DatabaseConfig.get_listen_dsn()
        self.channel = channel or settings.change_channel
        self.keepalive_interval = keepalive_interval

    async def watch(self, ready: Optional[asyncio.Event] = None) -> AsyncIterator[ChangeEvent]:
        queue: asyncio.Queue = asyncio.Queue()

        def on_notification(connection, pid, channel, payload):
            queue.put_nowait(payload)

        def on_termination(connection):
            queue.put_nowait(_CONNECTION_LOST)

        connection = await asyncpg.connect(self.dsn)
        connection.add_termination_listener(on_termination)
        await connection.add_listener(self.channel, on_notification)

        logger.info("Listening for database changes", channel=self.channel)
        if ready:
            ready.set()

        # One get() stays pending across idle timeouts so no notification is lost
        get_task: Optional[asyncio.Future] = None

        try:
            while True:
                if get_task is None:
                    get_task = asyncio.ensure_future(queue.get())

                done, _ = await asyncio.wait({get_task}, timeout=self.keepalive_interval)
                if not done:
                    # Idle: ping the connection so a dead socket surfaces
                    await connection.execute("SELECT 1")
                    continue

                payload = get_task.result()
                get_task = None

                if payload is _CONNECTION_LOST:
                    raise DependencyError(
                        "Change feed connection lost",
                        {"channel": self.channel}
                    )

                try:
                    change = ChangeEvent.from_notification(payload)
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning("Malformed change notification", payload=payload, error=str(e))
                    continue

                yield change

        finally:
            if get_task is not None:
                get_task.cancel()
            if not connection.is_closed():
                try:
                    await connection.remove_listener(self.channel, on_notification)
                finally:
                    await connection.close()


def collect_changes(session: Session) -> List[ChangeEvent]:
    """Describe the watched rows touched by the flush in progress."""
    changes: List[ChangeEvent] = []

    for operation, objects in (
        ("insert", session.new),
        ("update", session.dirty),
        ("delete", session.deleted),
    ):
        for obj in objects:
            table = getattr(obj, "__tablename__", None)
            if table not in WATCHED_TABLES:
                continue

            state = inspect(obj)
            updated_fields = None
            if operation == "update":
                if not session.is_modified(obj, include_collections=False):
                    continue
                updated_fields = [
                    attr.key for attr in state.mapper.column_attrs
                    if state.attrs[attr.key].history.has_changes()
                ]

            identity = state.identity or ()
            key = getattr(obj, "id", None)
            if key is None and identity:
                key = identity[0]

            changes.append(ChangeEvent(
                collection=table,
                operation=operation,
                document_key=str(key) if key is not None else None,
                updated_fields=updated_fields,
            ))

    return changes


class SessionChangeSource(ChangeSource):
    """
    In-process change feed built on SQLAlchemy session events.

    Changes are collected on flush, published on commit and discarded on
    rollback. Only sessions of this process are observed.
    """

    name = "session"

    def __init__(self, session_class=Session):
        self.session_class = session_class
        self._queues: Set[asyncio.Queue] = set()
        self._info_key = f"admin_changes_{id(self)}"
        self._installed = False

    @property
    def subscribers(self) -> int:
        return len(self._queues)

    @property
    def backlog(self) -> int:
        """Committed changes not yet consumed by a watcher."""
        return sum(queue.qsize() for queue in self._queues)

    async def watch(self, ready: Optional[asyncio.Event] = None) -> AsyncIterator[ChangeEvent]:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.add(queue)
        self._install()

        logger.info("Watching in-process session commits")
        if ready:
            ready.set()

        try:
            while True:
                yield await queue.get()
        finally:
            self._queues.discard(queue)
            if not self._queues:
                self._uninstall()

    def _install(self) -> None:
        if self._installed:
            return
        event.listen(self.session_class, "after_flush", self._after_flush)
        event.listen(self.session_class, "after_commit", self._after_commit)
        event.listen(self.session_class, "after_rollback", self._after_rollback)
        self._installed = True

    def _uninstall(self) -> None:
        if not self._installed:
            return
        event.remove(self.session_class, "after_flush", self._after_flush)
        event.remove(self.session_class, "after_commit", self._after_commit)
        event.remove(self.session_class, "after_rollback", self._after_rollback)
        self._installed = False

    def _after_flush(self, session, flush_context) -> None:
        session.info.setdefault(self._info_key, []).extend(collect_changes(session))

    def _after_commit(self, session) -> None:
        for change in session.info.pop(self._info_key, []):
            for queue in list(self._queues):
                queue.put_nowait(change)

    def _after_rollback(self, session) -> None:
        session.info.pop(self._info_key, None)


def create_change_source(kind: Optional[str] = None) -> ChangeSource:
    """Pick the change source for the configured database."""
    kind = kind or settings.change_source
    if kind == "auto":
        kind = "postgres" if settings.uses_postgres else "session"

    if kind == "postgres":
        return PostgresChangeSource()
    return SessionChangeSource()
