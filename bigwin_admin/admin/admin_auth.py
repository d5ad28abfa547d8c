"""
Admin authentication and authorization utilities.

Admins authenticate with a Bearer API key. Keys are stored only as
SHA-256 digests in the admins table.
"""

import hashlib
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bigwin_admin.core.database import get_db_session
from bigwin_admin.core.exceptions import AuthenticationError, AuthorizationError
from bigwin_admin.models.user import Admin, AdminRole
from bigwin_admin.services.scope import CallerIdentity

import structlog

logger = structlog.get_logger(__name__)

security = HTTPBearer(auto_error=False)


def hash_api_key(api_key: str) -> str:
    """Digest stored in admins.api_key_hash."""
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


def token_preview(token: str) -> str:
    return token[:8] + "..." if len(token) > 8 else token


async def authenticate_token(db: AsyncSession, token: Optional[str]) -> CallerIdentity:
    """
    Resolve an API key to the admin it belongs to.

    Raises AuthenticationError for missing, unknown or disabled keys.
    """
    token = token.strip() if isinstance(token, str) else ""
    if not token:
        raise AuthenticationError("Admin authentication required")

    result = await db.execute(
        select(Admin).where(
            Admin.api_key_hash == hash_api_key(token),
            Admin.is_active.is_(True)
        )
    )
    admin = result.scalar_one_or_none()

    if not admin:
        logger.warning("Admin authentication failed", token_preview=token_preview(token))
        raise AuthenticationError("Invalid or inactive admin credentials")

    if admin.role not in (AdminRole.ADMIN.value, AdminRole.SUPERADMIN.value):
        logger.warning("Admin has unsupported role", admin=admin.username, role=admin.role)
        raise AuthorizationError("Admin role is not permitted", {"role": admin.role})

    logger.debug("Admin authenticated successfully", admin=admin.username, role=admin.role)

    return CallerIdentity(
        id=admin.id,
        username=admin.username,
        email=admin.email,
        role=admin.role
    )


async def require_admin_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db_session)
) -> CallerIdentity:
    """
    Dependency that requires admin authentication.

    Returns the authenticated admin identity.
    """
    caller = await authenticate_token(db, credentials.credentials if credentials else None)
    structlog.contextvars.bind_contextvars(admin=caller.username)
    return caller
