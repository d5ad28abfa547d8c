"""
Scoped read models for the admin dashboard.

Each view first resolves the caller's visible users. An admin without
assigned users gets empty results, never an error.
"""

from collections import OrderedDict
from typing import Any, Dict, List

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bigwin_admin.models import (
    User, Wallet, WalletTransaction, GameProfile,
    TransactionType, TransactionStatus, CreditStatus,
)
from bigwin_admin.models.base import money, iso
from bigwin_admin.services.scope import CallerIdentity, ScopeResolver

logger = structlog.get_logger(__name__)

UNKNOWN = "Unknown"


def empty_statistics() -> Dict[str, Any]:
    return {
        "totalProfiles": 0,
        "totalActiveProfiles": 0,
        "totalPendingProfiles": 0,
        "pendingCreditRequests": 0,
        "pendingRedeemRequests": 0,
        "gameBreakdown": {},
    }


class AdminViewService:
    """Builds pending withdrawals, profile listings, statistics and pending requests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.scope = ScopeResolver(db)

    async def fetch_pending_withdrawals(self, caller: CallerIdentity) -> List[Dict[str, Any]]:
        """Pending withdrawals across the caller's users, newest first."""
        visible = await self.scope.visible_user_ids(caller)
        if visible is not None and not visible:
            return []

        query = (
            select(WalletTransaction, Wallet)
            .join(Wallet, WalletTransaction.wallet_id == Wallet.id)
            .where(
                WalletTransaction.type == TransactionType.WITHDRAWAL.value,
                WalletTransaction.status == TransactionStatus.PENDING.value
            )
        )
        if visible is not None:
            query = query.where(Wallet.user_id.in_(visible))

        rows = (await self.db.execute(query)).all()
        users = await self._load_users({wallet.user_id for _, wallet in rows})

        withdrawals = []
        for tx, wallet in rows:
            user = users.get(wallet.user_id)
            withdrawals.append({
                "withdrawalId": str(tx.id),
                "userId": wallet.user_id,
                "username": user.username if user else UNKNOWN,
                "email": user.email if user else UNKNOWN,
                "asset": tx.asset,
                "network": tx.network,
                "amount": money(abs(tx.amount)),
                "timestamp": iso(tx.timestamp),
                "status": tx.status,
                "address": tx.withdrawal_address,
                "walletId": wallet.id,
            })

        withdrawals.sort(key=lambda w: w["timestamp"] or "", reverse=True)
        return withdrawals

    async def fetch_game_profiles(self, caller: CallerIdentity) -> List[Dict[str, Any]]:
        """One entry per user with all their games and basic user data."""
        profiles = await self._scoped_profiles(caller)
        if not profiles:
            return []

        users = await self._load_users({p.user_id for p in profiles})

        grouped: "OrderedDict[str, List[GameProfile]]" = OrderedDict()
        for profile in profiles:
            grouped.setdefault(profile.user_id, []).append(profile)

        listing = []
        for user_id, games in grouped.items():
            user = users.get(user_id)
            created = [g.created_at for g in games if g.created_at]
            updated = [g.updated_at for g in games if g.updated_at]
            listing.append({
                "userId": user_id,
                "games": [g.to_dict() for g in games],
                "createdAt": iso(min(created)) if created else None,
                "updatedAt": iso(max(updated)) if updated else None,
                "userData": {
                    "username": user.username if user else UNKNOWN,
                    "email": user.email if user else UNKNOWN,
                    "isActive": user.is_active if user else False,
                },
            })

        return listing

    async def fetch_game_statistics(self, caller: CallerIdentity) -> Dict[str, Any]:
        """Counts per status and per game across the caller's profiles."""
        profiles = await self._scoped_profiles(caller)
        stats = empty_statistics()

        for profile in profiles:
            stats["totalProfiles"] += 1

            game = stats["gameBreakdown"].setdefault(profile.game_name, {
                "total": 0,
                "active": 0,
                "pending": 0,
                "totalCredit": 0.0,
                "pendingCreditRequests": 0,
                "pendingRedeemRequests": 0,
            })
            game["total"] += 1

            if profile.is_active:
                stats["totalActiveProfiles"] += 1
                game["active"] += 1
            else:
                stats["totalPendingProfiles"] += 1
                game["pending"] += 1

            game["totalCredit"] += money(profile.credit_amount)

            if profile.credit_status == CreditStatus.PENDING.value:
                stats["pendingCreditRequests"] += 1
                game["pendingCreditRequests"] += 1
            elif profile.credit_status == CreditStatus.PENDING_REDEEM.value:
                stats["pendingRedeemRequests"] += 1
                game["pendingRedeemRequests"] += 1

        return stats

    async def fetch_pending_requests(self, caller: CallerIdentity) -> Dict[str, List[Dict[str, Any]]]:
        """Pending profile activations, credit requests and redeem requests, newest first."""
        result: Dict[str, List[Dict[str, Any]]] = {
            "profiles": [],
            "creditRequests": [],
            "redeemRequests": [],
        }

        profiles = await self._scoped_profiles(caller)
        if not profiles:
            return result

        users = await self._load_users({p.user_id for p in profiles})

        for profile in profiles:
            user = users.get(profile.user_id)
            identity = {
                "userId": profile.user_id,
                "username": user.username if user else UNKNOWN,
                "email": user.email if user else UNKNOWN,
                "gameName": profile.game_name,
            }

            if not profile.is_active:
                result["profiles"].append({**identity, "createdAt": iso(profile.created_at)})

            request = {
                **identity,
                "gameId": profile.game_id,
                "amount": money(profile.requested_amount),
                "updatedAt": iso(profile.updated_at),
            }
            if profile.credit_status == CreditStatus.PENDING.value:
                result["creditRequests"].append(request)
            elif profile.credit_status == CreditStatus.PENDING_REDEEM.value:
                result["redeemRequests"].append(request)

        result["profiles"].sort(key=lambda p: p["createdAt"] or "", reverse=True)
        result["creditRequests"].sort(key=lambda r: r["updatedAt"] or "", reverse=True)
        result["redeemRequests"].sort(key=lambda r: r["updatedAt"] or "", reverse=True)

        return result

    async def _scoped_profiles(self, caller: CallerIdentity) -> List[GameProfile]:
        visible = await self.scope.visible_user_ids(caller)
        if visible is not None and not visible:
            return []

        query = select(GameProfile).order_by(GameProfile.user_id, GameProfile.id)
        if visible is not None:
            query = query.where(GameProfile.user_id.in_(visible))

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _load_users(self, user_ids) -> Dict[str, User]:
        if not user_ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(list(user_ids))))
        return {user.id: user for user in result.scalars().all()}
