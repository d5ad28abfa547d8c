"""
User routes for admins. Reads are scoped to the caller's users.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from bigwin_admin.core.database import get_db_session
from bigwin_admin.admin.admin_auth import require_admin_auth
from bigwin_admin.api.dependencies import get_pagination_params
from bigwin_admin.api.schemas.common import (
    PaginationParams, SuccessResponse, create_success_response, page_payload
)
from bigwin_admin.api.schemas.users import UserUpdateRequest
from bigwin_admin.services.account_service import AccountService
from bigwin_admin.services.scope import CallerIdentity

router = APIRouter(tags=["Users"])
logger = structlog.get_logger(__name__)


@router.get("", response_model=SuccessResponse)
async def list_users(
    pagination: PaginationParams = Depends(get_pagination_params),
    caller: CallerIdentity = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_db_session)
):
    users = await AccountService(db).list_users(caller, pagination.limit, pagination.offset)
    return create_success_response(data=page_payload("users", users, pagination))


@router.get("/{user_id}", response_model=SuccessResponse)
async def get_user(
    user_id: str,
    caller: CallerIdentity = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_db_session)
):
    user = await AccountService(db).get_user(caller, user_id)
    return create_success_response(data=user.to_dict())


@router.put("/{user_id}", response_model=SuccessResponse)
async def update_user(
    user_id: str,
    request: UserUpdateRequest,
    caller: CallerIdentity = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_db_session)
):
    """Edit username, email, active flag, or (superadmin only) role."""
    user = await AccountService(db).update_user(
        caller,
        user_id,
        request.model_dump(exclude_unset=True)
    )
    return create_success_response(data=user.to_dict(), message="User updated successfully")
