"""
Shared fixtures: in-memory SQLite database, data seeding helpers,
known admin identities and fakes for external collaborators.
"""

import asyncio
import os

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from decimal import Decimal
from functools import partial
from typing import List, Optional

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from starlette.testclient import TestClient

from bigwin_admin.admin.admin_auth import hash_api_key
from bigwin_admin.api.main import create_app
from bigwin_admin.core.database import get_async_session, get_db_session
from bigwin_admin.models import (
    Base, User, Admin, Wallet, WalletTransaction, GameProfile,
)
from bigwin_admin.services.scope import CallerIdentity
from bigwin_admin.services.credentials_notifier import CredentialsNotifier
from bigwin_admin.watcher.sources import SessionChangeSource


SUPERADMIN_KEY = "superadmin-api-key-0001"
ALICE_KEY = "alice-api-key-0001"
BOB_KEY = "bob-api-key-0001"
CAROL_KEY = "carol-api-key-0001"

SUPERADMIN = CallerIdentity(username="root", role="superadmin")
ALICE = CallerIdentity(username="alice", role="admin")
BOB = CallerIdentity(username="bob", role="admin")
CAROL = CallerIdentity(username="carol", role="admin")


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Seeder:
    """Creates and reloads rows for tests."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def admin(self, username: str, role: str, api_key: str, is_active: bool = True) -> str:
        async with self.session_maker() as db:
            admin = Admin(
                username=username,
                email=f"{username}@bigwin.test",
                role=role,
                api_key_hash=hash_api_key(api_key),
                is_active=is_active,
            )
            db.add(admin)
            await db.commit()
            return admin.id

    async def default_admins(self) -> None:
        await self.admin("root", "superadmin", SUPERADMIN_KEY)
        await self.admin("alice", "admin", ALICE_KEY)
        await self.admin("bob", "admin", BOB_KEY)
        await self.admin("carol", "admin", CAROL_KEY)

    async def user(
        self,
        username: str,
        assigned_admin: Optional[str] = None,
        email: Optional[str] = "default",
        balance: Optional[str] = "100.00",
    ) -> str:
        """Create a user and, unless balance is None, their wallet."""
        async with self.session_maker() as db:
            user = User(
                username=username,
                email=f"{username}@example.com" if email == "default" else email,
                assigned_admin=assigned_admin,
                is_active=True,
            )
            db.add(user)
            await db.flush()

            if balance is not None:
                db.add(Wallet(user_id=user.id, total_balance_usd=Decimal(balance)))

            await db.commit()
            return user.id

    async def game(
        self,
        user_id: str,
        game_name: str,
        profile_status: str = "active",
        game_id: Optional[str] = None,
        credit_amount: str = "0",
        credit_status: str = "none",
        requested_amount: str = "0",
    ) -> int:
        async with self.session_maker() as db:
            profile = GameProfile(
                user_id=user_id,
                game_name=game_name,
                game_id=game_id if game_id is not None else (
                    f"{game_name.upper()}-{user_id[:6]}" if profile_status == "active" else None
                ),
                profile_status=profile_status,
                credit_amount=Decimal(credit_amount),
                credit_status=credit_status,
                requested_amount=Decimal(requested_amount),
            )
            db.add(profile)
            await db.commit()
            return profile.id

    async def transaction(
        self,
        user_id: str,
        type: str,
        amount: str,
        game_name: Optional[str] = None,
        status: str = "pending",
        tips: str = "0",
        requested_amount: Optional[str] = None,
        asset: Optional[str] = None,
        network: Optional[str] = None,
        withdrawal_address: Optional[str] = None,
        timestamp=None,
    ) -> int:
        async with self.session_maker() as db:
            wallet = (await db.execute(
                select(Wallet).where(Wallet.user_id == user_id)
            )).scalar_one()

            tx = WalletTransaction(
                wallet_id=wallet.id,
                type=type,
                game_name=game_name,
                amount=Decimal(amount),
                requested_amount=Decimal(requested_amount) if requested_amount is not None else None,
                tips=Decimal(tips),
                status=status,
                asset=asset,
                network=network,
                withdrawal_address=withdrawal_address,
            )
            if timestamp is not None:
                tx.timestamp = timestamp
            db.add(tx)
            await db.commit()
            return tx.id

    async def credit_request(self, user_id: str, game_name: str, amount: str) -> int:
        """An open credit request: profile pending, wallet debited, ledger hold."""
        await self.game(
            user_id, game_name, credit_status="pending", requested_amount=amount
        )
        return await self.transaction(
            user_id, "game_credit", f"-{amount}", game_name=game_name, requested_amount=amount
        )

    async def redeem_request(
        self,
        user_id: str,
        game_name: str,
        amount: str,
        tips: str = "0",
        credit_amount: str = "0",
    ) -> int:
        """An open redeem request: profile pending_redeem, positive ledger entry."""
        await self.game(
            user_id,
            game_name,
            credit_amount=credit_amount,
            credit_status="pending_redeem",
            requested_amount=amount,
        )
        return await self.transaction(
            user_id, "game_withdrawal", amount, game_name=game_name, tips=tips, requested_amount=amount
        )

    async def wallet(self, user_id: str) -> Wallet:
        async with self.session_maker() as db:
            return (await db.execute(
                select(Wallet).where(Wallet.user_id == user_id)
            )).scalar_one()

    async def profile(self, user_id: str, game_name: str) -> GameProfile:
        async with self.session_maker() as db:
            return (await db.execute(
                select(GameProfile).where(
                    GameProfile.user_id == user_id,
                    GameProfile.game_name == game_name
                )
            )).scalar_one()

    async def tx(self, tx_id: int) -> WalletTransaction:
        async with self.session_maker() as db:
            return await db.get(WalletTransaction, tx_id)


@pytest.fixture
def seed(session_maker) -> Seeder:
    return Seeder(session_maker)


class FakeEmailService:
    """Records outgoing mail instead of calling the mail API."""

    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.sent: List[dict] = []

    async def send_email(self, to: str, subject: str, html: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "html": html})
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def fake_email() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def credentials_notifier(fake_email) -> CredentialsNotifier:
    return CredentialsNotifier(fake_email)


async def create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class ApiHarness:
    """A running application with its own database, driven through TestClient."""

    def __init__(self, client, seed: Seeder, email: FakeEmailService):
        self.client = client
        self.seed = seed
        self.email = email
        self.app = client.app

    def run(self, func, *args, **kwargs):
        """
        Run a coroutine function on the application's event loop, then wait
        until the change notifier has consumed the changes it committed.
        """
        result = self.client.portal.call(partial(func, *args, **kwargs))
        self.client.portal.call(self._settle)
        return result

    async def _settle(self) -> None:
        source = self.app.state.change_notifier.source
        while source.backlog:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0)

    def headers(self, api_key: str) -> dict:
        return {"Authorization": f"Bearer {api_key}"}

    def get(self, path: str, api_key: Optional[str] = None):
        return self.client.get(path, headers=self.headers(api_key) if api_key else {})

    def post(self, path: str, body: dict, api_key: Optional[str] = None):
        return self.client.post(path, json=body, headers=self.headers(api_key) if api_key else {})

    def put(self, path: str, body: dict, api_key: Optional[str] = None):
        return self.client.put(path, json=body, headers=self.headers(api_key) if api_key else {})


@pytest.fixture
def api():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    email = FakeEmailService()

    app = create_app(
        session_maker=maker,
        change_source=SessionChangeSource(),
        email_service=email,
        configure_logging=False
    )

    async def override_db_session():
        async with get_async_session(maker) as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session

    with TestClient(app) as client:
        harness = ApiHarness(client, Seeder(maker), email)
        harness.run(create_schema, engine)
        harness.run(harness.seed.default_admins)

        yield harness

        harness.run(engine.dispose)
