"""
Wallet ledger: one wallet per user holding a USD balance and an
append-only list of transactions.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Dict, Any
from enum import Enum

from sqlalchemy import (
    String, Integer, Numeric, DateTime, ForeignKey, Index, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, TimestampMixin, new_id, money, iso


class TransactionType(str, Enum):
    """Ledger transaction types."""
    GAME_CREDIT = "game_credit"
    GAME_WITHDRAWAL = "game_withdrawal"
    WITHDRAWAL = "withdrawal"


class TransactionStatus(str, Enum):
    """Ledger transaction lifecycle. pending moves exactly once to a terminal state."""
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class Wallet(BaseModel, TimestampMixin):
    """User wallet with USD balance."""

    __tablename__ = "wallets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        unique=True,
        comment="Owning user"
    )

    total_balance_usd: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0"),
        comment="Spendable balance in USD"
    )

    last_updated: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        comment="Last balance or transaction change"
    )

    transactions: Mapped[List["WalletTransaction"]] = relationship(
        "WalletTransaction",
        back_populates="wallet",
        order_by="WalletTransaction.id",
        lazy="selectin",
        cascade="all, delete-orphan"
    )

    def find_pending(
        self,
        tx_type: TransactionType,
        game_name: Optional[str] = None,
        transaction_id: Optional[int] = None
    ) -> Optional["WalletTransaction"]:
        """First pending transaction of the given type in stored order."""
        for tx in self.transactions:
            if tx.type != tx_type.value or tx.status != TransactionStatus.PENDING.value:
                continue
            if game_name is not None and tx.game_name != game_name:
                continue
            if transaction_id is not None and tx.id != transaction_id:
                continue
            return tx
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "totalBalanceUSD": money(self.total_balance_usd),
            "lastUpdated": iso(self.last_updated),
            "transactions": [tx.to_dict() for tx in self.transactions],
        }


class WalletTransaction(BaseModel):
    """Single ledger entry. Only status and tx_hash change after creation."""

    __tablename__ = "wallet_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("wallets.id"),
        index=True
    )

    type: Mapped[str] = mapped_column(String(32))

    game_name: Mapped[Optional[str]] = mapped_column(String(64))

    asset: Mapped[Optional[str]] = mapped_column(String(16))

    network: Mapped[Optional[str]] = mapped_column(String(32))

    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        comment="Signed amount, negative holds or debits"
    )

    requested_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2))

    tips: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0"),
        comment="Tip withheld from a redeem payout"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=TransactionStatus.PENDING.value
    )

    withdrawal_address: Mapped[Optional[str]] = mapped_column(String(128))

    tx_hash: Mapped[Optional[str]] = mapped_column(String(128))

    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    wallet: Mapped["Wallet"] = relationship("Wallet", back_populates="transactions")

    __table_args__ = (
        Index("idx_wallet_tx_type_status", "type", "status"),
        # At most one open credit or redeem request per (wallet, game, type)
        Index(
            "uq_wallet_tx_pending_game_request",
            "wallet_id", "type", "game_name",
            unique=True,
            postgresql_where=text(
                "status = 'pending' AND type IN ('game_credit', 'game_withdrawal')"
            ),
            sqlite_where=text(
                "status = 'pending' AND type IN ('game_credit', 'game_withdrawal')"
            ),
        ),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "type": self.type,
            "gameName": self.game_name,
            "asset": self.asset,
            "network": self.network,
            "amount": money(self.amount),
            "requestedAmount": money(self.requested_amount) if self.requested_amount is not None else None,
            "tips": money(self.tips),
            "status": self.status,
            "withdrawalAddress": self.withdrawal_address,
            "txHash": self.tx_hash,
            "timestamp": iso(self.timestamp),
        }
