"""API routes package."""

from . import games, withdrawals, users, wallets

__all__ = ["games", "withdrawals", "users", "wallets"]
