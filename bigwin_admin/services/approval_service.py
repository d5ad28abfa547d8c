"""
Approval engine for game ID assignment and credit/redeem requests.

Every operation runs inside one database transaction: the scope check,
the row locks, the ledger status flip and the balance/profile writes
either all commit or none do. Credentials email is dispatched only after
the commit.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bigwin_admin.core.database import transactional_session
from bigwin_admin.core.exceptions import (
    ValidationError,
    WalletNotFoundError,
    GameProfileNotFoundError,
    PendingRequestNotFoundError,
    ProfileAlreadyActiveError,
)
from bigwin_admin.models import (
    User, Wallet, WalletTransaction, GameProfile,
    TransactionType, TransactionStatus, ProfileStatus, CreditStatus,
)
from bigwin_admin.models.base import money, iso
from bigwin_admin.services.scope import CallerIdentity, ScopeResolver
from bigwin_admin.services.credentials_notifier import CredentialsNotifier

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def require_fields(**fields: Any) -> None:
    """Raise ValidationError if any required field is missing or blank."""
    missing = [
        name for name, value in fields.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            {"missing": missing}
        )


async def lock_wallet(db: AsyncSession, user_id: str) -> Wallet:
    """Load the user's wallet with a row lock."""
    result = await db.execute(
        select(Wallet)
        .where(Wallet.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    wallet = result.scalar_one_or_none()
    if not wallet:
        raise WalletNotFoundError(user_id)
    return wallet


async def lock_game_profile(db: AsyncSession, user_id: str, game_name: str) -> GameProfile:
    """Load one game entry of the user's profile with a row lock."""
    result = await db.execute(
        select(GameProfile)
        .where(
            GameProfile.user_id == user_id,
            GameProfile.game_name == game_name
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    if not profile:
        raise GameProfileNotFoundError(user_id, game_name)
    return profile


def wallet_summary(wallet: Wallet) -> Dict[str, Any]:
    return {
        "currentBalance": money(wallet.total_balance_usd),
        "lastUpdated": iso(wallet.last_updated),
    }


class ApprovalService:
    """Game ID assignment and the credit/redeem request state machine."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
        credentials_notifier: Optional[CredentialsNotifier] = None
    ):
        self.session_maker = session_maker
        self.credentials_notifier = credentials_notifier

    async def assign_game_id(
        self,
        caller: CallerIdentity,
        user_id: str,
        game_name: str,
        game_id: str,
        game_password: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Activate a pending game profile with its login.

        Raises ProfileAlreadyActiveError (409) carrying the existing game ID
        if the profile is already active; nothing is written in that case.
        """
        require_fields(user_id=user_id, game_name=game_name, game_id=game_id)

        async with transactional_session(self.session_maker) as db:
            await ScopeResolver(db).ensure_can_act(caller, user_id)

            profile = await lock_game_profile(db, user_id, game_name)
            if profile.is_active:
                raise ProfileAlreadyActiveError(user_id, game_name, profile.game_id)

            profile.game_id = game_id
            profile.profile_status = ProfileStatus.ACTIVE.value
            if game_password:
                profile.game_password = game_password

            user = await db.get(User, user_id)

            result = await db.execute(
                select(GameProfile)
                .where(GameProfile.user_id == user_id)
                .order_by(GameProfile.id)
            )
            games = list(result.scalars().all())

        logger.info(
            "Game ID assigned",
            admin=caller.username,
            user_id=user_id,
            game_name=game_name,
            game_id=game_id
        )

        if self.credentials_notifier and user:
            self.credentials_notifier.dispatch(
                user.email,
                user.username,
                game_name,
                game_id,
                game_password
            )

        return {
            "userId": user_id,
            "games": [game.to_dict() for game in games],
        }

    async def approve_credit(
        self,
        caller: CallerIdentity,
        user_id: str,
        game_name: str
    ) -> Dict[str, Any]:
        """Complete a pending credit request. The wallet balance is not touched."""
        require_fields(user_id=user_id, game_name=game_name)

        async with transactional_session(self.session_maker) as db:
            await ScopeResolver(db).ensure_can_act(caller, user_id)

            profile = await lock_game_profile(db, user_id, game_name)
            if profile.credit_status != CreditStatus.PENDING.value:
                raise PendingRequestNotFoundError(
                    "credit",
                    {"user_id": user_id, "game_name": game_name, "credit_status": profile.credit_status}
                )

            wallet = await lock_wallet(db, user_id)
            tx = self._pending_request(wallet, TransactionType.GAME_CREDIT, "credit", user_id, game_name)

            tx.status = TransactionStatus.COMPLETED.value
            wallet.last_updated = datetime.utcnow()

            profile.credit_amount = profile.requested_amount
            profile.credit_status = CreditStatus.SUCCESS.value
            profile.requested_amount = ZERO

        logger.info(
            "Credit request approved",
            admin=caller.username,
            user_id=user_id,
            game_name=game_name,
            amount=money(profile.credit_amount),
            transaction_id=tx.id
        )

        return {
            "gameProfile": profile.to_dict(),
            "transaction": tx.to_dict(),
        }

    async def disapprove_credit(
        self,
        caller: CallerIdentity,
        user_id: str,
        game_name: str
    ) -> Dict[str, Any]:
        """Reject a pending credit request and refund the held amount."""
        require_fields(user_id=user_id, game_name=game_name)

        async with transactional_session(self.session_maker) as db:
            await ScopeResolver(db).ensure_can_act(caller, user_id)

            profile = await lock_game_profile(db, user_id, game_name)
            if profile.credit_status != CreditStatus.PENDING.value:
                raise PendingRequestNotFoundError(
                    "credit",
                    {"user_id": user_id, "game_name": game_name, "credit_status": profile.credit_status}
                )

            wallet = await lock_wallet(db, user_id)
            tx = self._pending_request(wallet, TransactionType.GAME_CREDIT, "credit", user_id, game_name)

            refund = abs(tx.amount)
            tx.status = TransactionStatus.REJECTED.value
            wallet.total_balance_usd = (wallet.total_balance_usd or ZERO) + refund
            wallet.last_updated = datetime.utcnow()

            profile.requested_amount = ZERO
            profile.credit_status = CreditStatus.NONE.value

        logger.info(
            "Credit request disapproved",
            admin=caller.username,
            user_id=user_id,
            game_name=game_name,
            refund_amount=money(refund),
            balance=money(wallet.total_balance_usd)
        )

        return {
            "gameProfile": profile.to_dict(),
            "transaction": tx.to_dict(),
            "wallet": wallet_summary(wallet),
        }

    async def approve_redeem(
        self,
        caller: CallerIdentity,
        user_id: str,
        game_name: str
    ) -> Dict[str, Any]:
        """
        Pay out a pending redeem request.

        The wallet is credited with the transaction amount minus tips and the
        game credit is reset to zero.
        """
        require_fields(user_id=user_id, game_name=game_name)

        async with transactional_session(self.session_maker) as db:
            await ScopeResolver(db).ensure_can_act(caller, user_id)

            profile = await lock_game_profile(db, user_id, game_name)
            if profile.credit_status != CreditStatus.PENDING_REDEEM.value:
                raise PendingRequestNotFoundError(
                    "redeem",
                    {"user_id": user_id, "game_name": game_name, "credit_status": profile.credit_status}
                )

            wallet = await lock_wallet(db, user_id)
            tx = self._pending_request(wallet, TransactionType.GAME_WITHDRAWAL, "redeem", user_id, game_name)

            final_amount = tx.amount - (tx.tips or ZERO)
            tx.status = TransactionStatus.COMPLETED.value
            wallet.total_balance_usd = (wallet.total_balance_usd or ZERO) + final_amount
            wallet.last_updated = datetime.utcnow()

            profile.credit_amount = ZERO
            profile.credit_status = CreditStatus.NONE.value
            profile.requested_amount = ZERO

        logger.info(
            "Redeem request approved",
            admin=caller.username,
            user_id=user_id,
            game_name=game_name,
            final_amount=money(final_amount),
            tips=money(tx.tips),
            balance=money(wallet.total_balance_usd)
        )

        return {
            "gameProfile": profile.to_dict(),
            "transaction": tx.to_dict(),
            "wallet": wallet_summary(wallet),
        }

    async def disapprove_redeem(
        self,
        caller: CallerIdentity,
        user_id: str,
        game_name: str
    ) -> Dict[str, Any]:
        """Reject a pending redeem request. Redeems never debit the wallet, so no refund."""
        require_fields(user_id=user_id, game_name=game_name)

        async with transactional_session(self.session_maker) as db:
            await ScopeResolver(db).ensure_can_act(caller, user_id)

            profile = await lock_game_profile(db, user_id, game_name)
            if profile.credit_status != CreditStatus.PENDING_REDEEM.value:
                raise PendingRequestNotFoundError(
                    "redeem",
                    {"user_id": user_id, "game_name": game_name, "credit_status": profile.credit_status}
                )

            wallet = await lock_wallet(db, user_id)
            tx = self._pending_request(wallet, TransactionType.GAME_WITHDRAWAL, "redeem", user_id, game_name)

            tx.status = TransactionStatus.REJECTED.value
            wallet.last_updated = datetime.utcnow()

            profile.requested_amount = ZERO
            profile.credit_status = CreditStatus.NONE.value

        logger.info(
            "Redeem request disapproved",
            admin=caller.username,
            user_id=user_id,
            game_name=game_name,
            transaction_id=tx.id
        )

        return {
            "gameProfile": profile.to_dict(),
            "transaction": tx.to_dict(),
        }

    @staticmethod
    def _pending_request(
        wallet: Wallet,
        tx_type: TransactionType,
        kind: str,
        user_id: str,
        game_name: str
    ) -> WalletTransaction:
        tx = wallet.find_pending(tx_type, game_name=game_name)
        if tx is None:
            raise PendingRequestNotFoundError(
                kind,
                {"user_id": user_id, "game_name": game_name, "type": tx_type.value}
            )
        return tx
