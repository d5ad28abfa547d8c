"""
Test change event routing, the in-process change source and the
supervised watch loop.
"""

import asyncio
import json
from decimal import Decimal

import pytest
from sqlalchemy import select

from bigwin_admin.core.exceptions import DependencyError
from bigwin_admin.models import Wallet
from bigwin_admin.watcher import sources
from bigwin_admin.watcher.change_notifier import ChangeNotifier, NotifierStatus
from bigwin_admin.watcher.events import ChangeEvent, is_relevant_change, views_for_event
from bigwin_admin.watcher.sources import (
    ChangeSource, PostgresChangeSource, SessionChangeSource, create_change_source
)


async def wait_for(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true."""
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout=timeout)


class ScriptedSource(ChangeSource):
    """Plays one script per watch() call; an exception in a script is raised."""

    name = "scripted"

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.calls = 0

    async def watch(self, ready=None):
        self.calls += 1
        script = self.scripts.pop(0) if self.scripts else []
        if ready:
            ready.set()

        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item

        if not self.scripts:
            # Stay connected once the scripts are exhausted
            await asyncio.Event().wait()


def wallet_update(*fields) -> ChangeEvent:
    return ChangeEvent("wallets", "update", "w1", list(fields))


@pytest.mark.parametrize("change,relevant", [
    (ChangeEvent("wallets", "insert", "w1"), True),
    (ChangeEvent("wallets", "delete", "w1"), True),
    (wallet_update("total_balance_usd"), True),
    (wallet_update("last_updated", "updated_at"), True),
    (wallet_update("updated_at"), False),
    (ChangeEvent("wallets", "update", "w1", None), True),
    (ChangeEvent("wallet_transactions", "update", "1", ["status"]), True),
    (ChangeEvent("game_profiles", "update", "1", ["game_password"]), True),
    (ChangeEvent("users", "update", "u1", ["email"]), False),
    (ChangeEvent("wallets", "replace", "w1"), False),
])
def test_is_relevant_change(change, relevant):
    assert is_relevant_change(change) is relevant


def test_views_for_event():
    assert views_for_event(wallet_update("total_balance_usd")) == ("pendingWithdrawals",)
    assert views_for_event(ChangeEvent("wallet_transactions", "insert", "1")) == ("pendingWithdrawals",)
    assert views_for_event(ChangeEvent("game_profiles", "insert", "1")) == (
        "gameProfiles", "gameStatistics"
    )
    assert views_for_event(wallet_update("updated_at")) == ()


def test_event_from_notification():
    payload = json.dumps({
        "collection": "wallets",
        "operation": "UPDATE",
        "document_key": 12,
        "updated_fields": ["total_balance_usd"],
    })

    change = ChangeEvent.from_notification(payload)

    assert change.collection == "wallets"
    assert change.operation == "update"
    assert change.document_key == "12"
    assert change.updated_fields == ["total_balance_usd"]


def test_create_change_source():
    assert isinstance(create_change_source("session"), SessionChangeSource)
    assert create_change_source("postgres").name == "postgres"


@pytest.mark.asyncio
async def test_session_source_publishes_committed_changes(session_maker, seed):
    source = SessionChangeSource()
    received = []
    ready = asyncio.Event()

    async def consume():
        async for change in source.watch(ready=ready):
            received.append(change)

    task = asyncio.create_task(consume())
    try:
        await asyncio.wait_for(ready.wait(), timeout=1)
        assert source.subscribers == 1

        user_id = await seed.user("u1")
        await wait_for(lambda: any(c.collection == "wallets" for c in received))

        inserted = [c for c in received if c.collection == "wallets"]
        assert inserted[0].operation == "insert"

        received.clear()
        async with session_maker() as db:
            wallet = (await db.execute(select(Wallet).where(Wallet.user_id == user_id))).scalar_one()
            wallet.total_balance_usd = Decimal("42.00")
            await db.commit()

        await wait_for(lambda: received)
        assert received[0].operation == "update"
        assert "total_balance_usd" in received[0].updated_fields
        assert is_relevant_change(received[0])
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    assert source.subscribers == 0


@pytest.mark.asyncio
async def test_session_source_drops_rolled_back_changes(session_maker, seed):
    user_id = await seed.user("u1")
    source = SessionChangeSource()
    received = []
    ready = asyncio.Event()

    async def consume():
        async for change in source.watch(ready=ready):
            received.append(change)

    task = asyncio.create_task(consume())
    try:
        await asyncio.wait_for(ready.wait(), timeout=1)

        async with session_maker() as db:
            wallet = (await db.execute(select(Wallet).where(Wallet.user_id == user_id))).scalar_one()
            wallet.total_balance_usd = Decimal("1.00")
            await db.flush()
            await db.rollback()

        await seed.game(user_id, "firekirin")
        await wait_for(lambda: received)

        assert [c.collection for c in received] == ["game_profiles"]
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


@pytest.mark.asyncio
async def test_notifier_retries_after_source_failure():
    first = ChangeEvent("game_profiles", "insert", "1")
    second = ChangeEvent("game_profiles", "insert", "2")
    source = ScriptedSource([first, ConnectionError("feed lost")], [second])
    handled = []

    async def handler(change):
        handled.append(change)

    notifier = ChangeNotifier(source, handler, retry_delay=0.01)
    await notifier.start()
    try:
        await wait_for(lambda: len(handled) == 2)
    finally:
        await notifier.stop()

    assert [c.document_key for c in handled] == ["1", "2"]
    assert source.calls == 2
    assert notifier.stats.reconnects == 1
    assert notifier.stats.last_error == "feed lost"
    assert notifier.status == NotifierStatus.STOPPED
    assert not notifier.is_running


@pytest.mark.asyncio
async def test_notifier_retries_when_feed_ends():
    source = ScriptedSource([], [ChangeEvent("wallet_transactions", "insert", "7")])
    handled = []

    async def handler(change):
        handled.append(change)

    notifier = ChangeNotifier(source, handler, retry_delay=0.01)
    await notifier.start()
    try:
        await wait_for(lambda: handled)
    finally:
        await notifier.stop()

    assert notifier.stats.reconnects >= 1
    assert handled[0].document_key == "7"


@pytest.mark.asyncio
async def test_notifier_filters_and_survives_handler_errors():
    source = ScriptedSource([
        wallet_update("updated_at"),
        ChangeEvent("game_profiles", "update", "1", ["credit_status"]),
        ChangeEvent("game_profiles", "update", "2", ["credit_status"]),
    ])
    handled = []

    async def handler(change):
        handled.append(change)
        if change.document_key == "1":
            raise RuntimeError("broadcast failed")

    notifier = ChangeNotifier(source, handler, retry_delay=0.01)
    await notifier.start()
    try:
        await notifier.wait_until_watching(timeout=1)
        await wait_for(lambda: len(handled) == 2)
    finally:
        await notifier.stop()

    assert [c.document_key for c in handled] == ["1", "2"]
    assert notifier.stats.events_received == 3
    assert notifier.stats.events_ignored == 1
    assert notifier.stats.handler_errors == 1
    assert notifier.stats.events_dispatched == 1
    assert notifier.stats.reconnects == 0


class FakeListenConnection:
    """Stands in for an asyncpg connection used for LISTEN."""

    def __init__(self):
        self.listeners = {}
        self.termination_listeners = []
        self.queries = []
        self.closed = False

    async def add_listener(self, channel, callback):
        self.listeners[channel] = callback

    async def remove_listener(self, channel, callback):
        self.listeners.pop(channel, None)

    def add_termination_listener(self, callback):
        self.termination_listeners.append(callback)

    async def execute(self, query):
        self.queries.append(query)

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True

    def notify(self, channel, payload):
        self.listeners[channel](self, 1234, channel, payload)

    def terminate(self):
        for callback in self.termination_listeners:
            callback(self)


@pytest.fixture
def listen_connection(monkeypatch) -> FakeListenConnection:
    connection = FakeListenConnection()

    async def connect(dsn):
        return connection

    monkeypatch.setattr(sources.asyncpg, "connect", connect)
    return connection


async def consume(source, received, ready):
    async for change in source.watch(ready):
        received.append(change)


@pytest.mark.asyncio
async def test_postgres_source_yields_events_then_raises_on_connection_loss(listen_connection):
    source = PostgresChangeSource(dsn="postgresql://bigwin@db/bigwin", channel="admin_changes")
    received, ready = [], asyncio.Event()
    task = asyncio.create_task(consume(source, received, ready))
    await asyncio.wait_for(ready.wait(), timeout=2)

    listen_connection.notify("admin_changes", json.dumps({
        "collection": "wallet_transactions",
        "operation": "INSERT",
        "document_key": 7,
        "updated_fields": [],
    }))
    listen_connection.notify("admin_changes", "{not json")
    listen_connection.notify("admin_changes", json.dumps({"operation": "update"}))
    listen_connection.notify("admin_changes", "[1, 2]")
    listen_connection.terminate()

    with pytest.raises(DependencyError):
        await asyncio.wait_for(task, timeout=2)

    assert len(received) == 1
    assert received[0].collection == "wallet_transactions"
    assert received[0].operation == "insert"
    assert received[0].document_key == "7"
    assert listen_connection.closed
    assert listen_connection.listeners == {}


@pytest.mark.asyncio
async def test_postgres_source_pings_idle_connection(listen_connection):
    source = PostgresChangeSource(
        dsn="postgresql://bigwin@db/bigwin", channel="admin_changes", keepalive_interval=0.01
    )
    received, ready = [], asyncio.Event()
    task = asyncio.create_task(consume(source, received, ready))
    await asyncio.wait_for(ready.wait(), timeout=2)

    await wait_for(lambda: len(listen_connection.queries) >= 2)
    assert set(listen_connection.queries) == {"SELECT 1"}

    # A notification arriving between keepalive pings is still delivered
    listen_connection.notify("admin_changes", json.dumps({
        "collection": "game_profiles", "operation": "update", "document_key": "3",
    }))
    await wait_for(lambda: len(received) == 1)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert listen_connection.closed
