"""
Withdrawal approval - settles or refunds pending wallet withdrawals.
"""

from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bigwin_admin.core.database import transactional_session
from bigwin_admin.core.exceptions import PendingRequestNotFoundError
from bigwin_admin.models import Wallet, WalletTransaction, TransactionType, TransactionStatus
from bigwin_admin.models.base import money
from bigwin_admin.services.scope import CallerIdentity, ScopeResolver
from bigwin_admin.services.approval_service import (
    ZERO, require_fields, lock_wallet, wallet_summary
)

logger = structlog.get_logger(__name__)


def parse_withdrawal_id(withdrawal_id: Any) -> Optional[int]:
    """Ledger ids are integers; anything else cannot match a transaction."""
    value = str(withdrawal_id).strip()
    if not (value.isascii() and value.isdigit()):
        return None
    return int(value)


class WithdrawalService:
    """Approves or rejects pending withdrawal transactions."""

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_maker = session_maker

    async def approve_withdrawal(
        self,
        caller: CallerIdentity,
        user_id: str,
        withdrawal_id: Any,
        tx_hash: Optional[str] = None
    ) -> Dict[str, Any]:
        """Mark a pending withdrawal completed and record its on-chain hash."""
        require_fields(user_id=user_id, withdrawal_id=withdrawal_id)

        async with transactional_session(self.session_maker) as db:
            await ScopeResolver(db).ensure_can_act(caller, user_id)

            wallet = await lock_wallet(db, user_id)
            tx = self._pending_withdrawal(wallet, user_id, withdrawal_id)

            tx.status = TransactionStatus.COMPLETED.value
            tx.tx_hash = tx_hash or None
            wallet.last_updated = datetime.utcnow()

        logger.info(
            "Withdrawal approved",
            admin=caller.username,
            user_id=user_id,
            withdrawal_id=tx.id,
            amount=money(abs(tx.amount)),
            tx_hash=tx.tx_hash
        )

        return {"transaction": tx.to_dict()}

    async def disapprove_withdrawal(
        self,
        caller: CallerIdentity,
        user_id: str,
        withdrawal_id: Any
    ) -> Dict[str, Any]:
        """Reject a pending withdrawal and refund the debited amount."""
        require_fields(user_id=user_id, withdrawal_id=withdrawal_id)

        async with transactional_session(self.session_maker) as db:
            await ScopeResolver(db).ensure_can_act(caller, user_id)

            wallet = await lock_wallet(db, user_id)
            tx = self._pending_withdrawal(wallet, user_id, withdrawal_id)

            refund = abs(tx.amount)
            tx.status = TransactionStatus.REJECTED.value
            wallet.total_balance_usd = (wallet.total_balance_usd or ZERO) + refund
            wallet.last_updated = datetime.utcnow()

        logger.info(
            "Withdrawal disapproved",
            admin=caller.username,
            user_id=user_id,
            withdrawal_id=tx.id,
            refund_amount=money(refund),
            balance=money(wallet.total_balance_usd)
        )

        return {
            "transaction": tx.to_dict(),
            "refundAmount": money(refund),
            "wallet": wallet_summary(wallet),
        }

    @staticmethod
    def _pending_withdrawal(wallet: Wallet, user_id: str, withdrawal_id: Any) -> WalletTransaction:
        tx_id = parse_withdrawal_id(withdrawal_id)
        tx = None
        if tx_id is not None:
            tx = wallet.find_pending(TransactionType.WITHDRAWAL, transaction_id=tx_id)
        if tx is None:
            raise PendingRequestNotFoundError(
                "withdrawal",
                {"user_id": user_id, "withdrawal_id": str(withdrawal_id)}
            )
        return tx
