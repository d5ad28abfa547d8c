"""
Scoped user and wallet reads, plus profile edits for users.

Wallet balances are never written here; the approval services own them.
"""

from typing import List, Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from bigwin_admin.core.exceptions import (
    AuthorizationError, UserNotFoundError, WalletNotFoundError, ValidationError
)
from bigwin_admin.models import User, Wallet
from bigwin_admin.services.scope import CallerIdentity, ScopeResolver

logger = structlog.get_logger(__name__)

USER_ROLES = ("user", "admin", "superadmin")


class AccountService:
    """Service for admin-side user and wallet lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.scope = ScopeResolver(db)

    async def list_users(
        self,
        caller: CallerIdentity,
        limit: int = 100,
        offset: int = 0
    ) -> List[User]:
        visible = await self.scope.visible_user_ids(caller)
        if visible is not None and not visible:
            return []

        query = select(User).order_by(User.created_at.desc(), User.id)
        if visible is not None:
            query = query.where(User.id.in_(visible))

        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all())

    async def get_user(self, caller: CallerIdentity, user_id: str) -> User:
        await self.scope.ensure_can_act(caller, user_id)
        user = await self.db.get(User, user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return user

    async def update_user(
        self,
        caller: CallerIdentity,
        user_id: str,
        changes: Dict[str, Any]
    ) -> User:
        """
        Apply profile edits (username, email, is_active, role).

        Role changes are reserved for superadmins.
        """
        user = await self.get_user(caller, user_id)

        if "role" in changes and changes["role"] is not None:
            if not caller.is_superadmin:
                raise AuthorizationError(
                    "Only a superadmin can change user roles",
                    {"admin": caller.username, "user_id": user_id}
                )
            if changes["role"] not in USER_ROLES:
                raise ValidationError(
                    f"Invalid role: {changes['role']}",
                    {"allowed": list(USER_ROLES)}
                )

        updated = []
        for field in ("username", "email", "is_active", "role"):
            value = changes.get(field)
            if value is not None:
                setattr(user, field, value)
                updated.append(field)

        await self.db.flush()

        logger.info(
            "User updated",
            admin=caller.username,
            user_id=user_id,
            fields=updated
        )

        return user

    async def list_wallets(
        self,
        caller: CallerIdentity,
        limit: int = 100,
        offset: int = 0
    ) -> List[Wallet]:
        visible = await self.scope.visible_user_ids(caller)
        if visible is not None and not visible:
            return []

        query = select(Wallet).order_by(Wallet.last_updated.desc(), Wallet.id)
        if visible is not None:
            query = query.where(Wallet.user_id.in_(visible))

        result = await self.db.execute(query.offset(offset).limit(limit))
        return list(result.scalars().all())

    async def get_wallet(self, caller: CallerIdentity, user_id: str) -> Wallet:
        await self.scope.ensure_can_act(caller, user_id)

        result = await self.db.execute(select(Wallet).where(Wallet.user_id == user_id))
        wallet: Optional[Wallet] = result.scalar_one_or_none()
        if not wallet:
            raise WalletNotFoundError(user_id)
        return wallet
