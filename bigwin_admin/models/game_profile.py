"""
Per-user game sub-profiles with their credit/redeem request state.
"""

from decimal import Decimal
from typing import Optional, Dict, Any
from enum import Enum

from sqlalchemy import (
    String, Integer, Numeric, ForeignKey, UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, money, iso


class ProfileStatus(str, Enum):
    """Game account provisioning state. pending -> active, never back."""
    PENDING = "pending"
    ACTIVE = "active"


class CreditStatus(str, Enum):
    """
    Credit request state machine.

    none -> pending -> success | none
    none -> pending_redeem -> none
    """
    NONE = "none"
    PENDING = "pending"
    PENDING_REDEEM = "pending_redeem"
    SUCCESS = "success"


class GameProfile(BaseModel, TimestampMixin):
    """One game entry of a user's profile, keyed by (user_id, game_name)."""

    __tablename__ = "game_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        index=True
    )

    game_name: Mapped[str] = mapped_column(String(64))

    game_id: Mapped[Optional[str]] = mapped_column(
        String(128),
        comment="Login assigned by an admin on activation"
    )

    game_password: Mapped[Optional[str]] = mapped_column(String(128))

    profile_status: Mapped[str] = mapped_column(
        String(20),
        default=ProfileStatus.PENDING.value
    )

    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0"),
        comment="Credit currently loaded in the game"
    )

    credit_status: Mapped[str] = mapped_column(
        String(20),
        default=CreditStatus.NONE.value
    )

    requested_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0"),
        comment="Amount of the open credit or redeem request"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "game_name", name="uq_game_profile_user_game"),
        Index("idx_game_profile_credit_status", "credit_status"),
    )

    @property
    def is_active(self) -> bool:
        return self.profile_status == ProfileStatus.ACTIVE.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gameName": self.game_name,
            "gameId": self.game_id,
            "gamePassword": self.game_password,
            "profileStatus": self.profile_status,
            "creditAmount": {
                "amount": money(self.credit_amount),
                "status": self.credit_status,
                "requestedAmount": money(self.requested_amount),
            },
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
