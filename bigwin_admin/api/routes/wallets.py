"""
Read-only wallet routes for admins.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from bigwin_admin.core.database import get_db_session
from bigwin_admin.admin.admin_auth import require_admin_auth
from bigwin_admin.api.dependencies import get_pagination_params
from bigwin_admin.api.schemas.common import (
    PaginationParams, SuccessResponse, create_success_response, page_payload
)
from bigwin_admin.services.account_service import AccountService
from bigwin_admin.services.scope import CallerIdentity

router = APIRouter(tags=["Wallets"])


@router.get("", response_model=SuccessResponse)
async def list_wallets(
    pagination: PaginationParams = Depends(get_pagination_params),
    caller: CallerIdentity = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_db_session)
):
    wallets = await AccountService(db).list_wallets(caller, pagination.limit, pagination.offset)
    return create_success_response(data=page_payload("wallets", wallets, pagination))


@router.get("/{user_id}", response_model=SuccessResponse)
async def get_wallet(
    user_id: str,
    caller: CallerIdentity = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_db_session)
):
    wallet = await AccountService(db).get_wallet(caller, user_id)
    return create_success_response(data=wallet.to_dict())
