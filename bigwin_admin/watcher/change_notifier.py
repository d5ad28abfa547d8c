"""
Supervised change watcher.

Consumes a change source, filters relevant events and hands them to a
handler (the broadcaster). Any failure of the source is logged and the
watch is re-established after a fixed delay, forever, until stopped.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional

import structlog

from bigwin_admin.core.config import settings
from .events import ChangeEvent, is_relevant_change
from .sources import ChangeSource

logger = structlog.get_logger(__name__)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


class NotifierStatus(str, Enum):
    STOPPED = "stopped"
    CONNECTING = "connecting"
    WATCHING = "watching"
    RETRYING = "retrying"


@dataclass
class NotifierStats:
    """Counters for the change notifier."""
    start_time: Optional[datetime] = None
    events_received: int = 0
    events_dispatched: int = 0
    events_ignored: int = 0
    handler_errors: int = 0
    reconnects: int = 0
    last_error: Optional[str] = None


class ChangeNotifier:
    """Runs the watch loop as a background task."""

    def __init__(
        self,
        source: ChangeSource,
        handler: ChangeHandler,
        retry_delay: Optional[float] = None
    ):
        self.source = source
        self.handler = handler
        self.retry_delay = settings.change_retry_delay if retry_delay is None else retry_delay
        self.status = NotifierStatus.STOPPED
        self.stats = NotifierStats()
        self.logger = logger.bind(source=source.name)

        self._task: Optional[asyncio.Task] = None
        self._should_stop = False
        self._ready = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start watching in the background."""
        if self.is_running:
            return

        self._should_stop = False
        self.stats.start_time = datetime.utcnow()
        self._task = asyncio.create_task(self._watch_loop())

        self.logger.info("Change notifier started", retry_delay=self.retry_delay)

    async def stop(self) -> None:
        """Stop watching and wait for the loop to exit."""
        self._should_stop = True

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._task = None
        self.status = NotifierStatus.STOPPED
        self.logger.info("Change notifier stopped")

    async def wait_until_watching(self, timeout: Optional[float] = None) -> None:
        """Block until the source is listening."""
        await asyncio.wait_for(self._ready.wait(), timeout=timeout)

    async def _watch_loop(self) -> None:
        while not self._should_stop:
            self.status = NotifierStatus.CONNECTING
            self._ready.clear()

            try:
                async for change in self.source.watch(ready=self._ready):
                    self.status = NotifierStatus.WATCHING
                    await self._dispatch(change)

                raise ConnectionError("Change feed ended unexpectedly")

            except asyncio.CancelledError:
                self.logger.info("Watch loop cancelled")
                raise

            except Exception as e:
                self.status = NotifierStatus.RETRYING
                self.stats.reconnects += 1
                self.stats.last_error = str(e)

                self.logger.error(
                    "Change watch failed, retrying",
                    error=str(e),
                    error_type=e.__class__.__name__,
                    retry_in=self.retry_delay,
                    attempt=self.stats.reconnects
                )

                await asyncio.sleep(self.retry_delay)
                self.logger.info("Re-establishing change watch", attempt=self.stats.reconnects)

    async def _dispatch(self, change: ChangeEvent) -> None:
        self.stats.events_received += 1

        if not is_relevant_change(change):
            self.stats.events_ignored += 1
            self.logger.debug(
                "Ignoring irrelevant change",
                collection=change.collection,
                operation=change.operation,
                updated_fields=change.updated_fields
            )
            return

        try:
            await self.handler(change)
            self.stats.events_dispatched += 1
        except Exception as e:
            self.stats.handler_errors += 1
            self.logger.error(
                "Change handler failed",
                collection=change.collection,
                operation=change.operation,
                document_key=change.document_key,
                error=str(e),
                exc_info=True
            )
