"""
Authorization scope resolution.

A superadmin may act on every user. An admin may act only on users whose
assigned_admin equals the admin's username.
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from bigwin_admin.core.exceptions import UserNotFoundError, ScopeViolationError
from bigwin_admin.models.user import User, AdminRole

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated admin performing an operation."""
    username: str
    role: str
    id: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == AdminRole.SUPERADMIN.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
        }


def can_act_on(caller: CallerIdentity, user: User) -> bool:
    """Pure scope rule for an already loaded user."""
    if caller.is_superadmin:
        return True
    return user.assigned_admin == caller.username


class ScopeResolver:
    """Resolves which users a caller may observe or mutate."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def ensure_can_act(self, caller: CallerIdentity, user_id: str) -> Optional[User]:
        """
        Check that the caller may act on the target user.

        Superadmins are never restricted and no lookup is made for them.
        For admins the user must exist and be assigned to the caller.

        Returns the loaded user for admin callers, None for superadmins.
        """
        if caller.is_superadmin:
            return None

        user = await self.db.get(User, user_id)
        if not user:
            raise UserNotFoundError(user_id)

        if not can_act_on(caller, user):
            logger.warning(
                "Admin attempted to act outside assigned scope",
                admin=caller.username,
                user_id=user_id,
                assigned_admin=user.assigned_admin
            )
            raise ScopeViolationError(caller.username, user_id)

        return user

    async def visible_user_ids(self, caller: CallerIdentity) -> Optional[List[str]]:
        """
        User ids visible to the caller.

        None means unrestricted (superadmin). An empty list means the admin
        has no assigned users and every scoped read must come back empty.
        """
        if caller.is_superadmin:
            return None

        result = await self.db.execute(
            select(User.id).where(User.assigned_admin == caller.username)
        )
        return list(result.scalars().all())
