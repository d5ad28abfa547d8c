"""
Database models for the BigWin admin backend.

Contains SQLAlchemy models for player accounts, admin operators,
the wallet ledger and per-user game profiles.
"""

from .base import Base, BaseModel, TimestampMixin
from .user import User, Admin, AdminRole
from .wallet import Wallet, WalletTransaction, TransactionType, TransactionStatus
from .game_profile import GameProfile, ProfileStatus, CreditStatus

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "User",
    "Admin",
    "AdminRole",
    "Wallet",
    "WalletTransaction",
    "TransactionType",
    "TransactionStatus",
    "GameProfile",
    "ProfileStatus",
    "CreditStatus",
]
