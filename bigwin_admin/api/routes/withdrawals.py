"""
Admin withdrawal routes.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from bigwin_admin.core.database import get_db_session
from bigwin_admin.admin.admin_auth import require_admin_auth
from bigwin_admin.api.dependencies import get_withdrawal_service
from bigwin_admin.api.schemas.common import SuccessResponse, create_success_response
from bigwin_admin.api.schemas.admin import WithdrawalRequest, ApproveWithdrawalRequest
from bigwin_admin.services.admin_views import AdminViewService
from bigwin_admin.services.withdrawal_service import WithdrawalService
from bigwin_admin.services.scope import CallerIdentity

router = APIRouter(tags=["Admin Withdrawals"])
logger = structlog.get_logger(__name__)


@router.get("/pending", response_model=SuccessResponse)
async def get_pending_withdrawals(
    caller: CallerIdentity = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_db_session)
):
    """Pending withdrawals of the caller's users, newest first."""
    withdrawals = await AdminViewService(db).fetch_pending_withdrawals(caller)
    return create_success_response(
        data={"count": len(withdrawals), "pendingWithdrawals": withdrawals},
        message="Pending withdrawals retrieved"
    )


@router.post("/approve", response_model=SuccessResponse)
async def approve_withdrawal(
    request: ApproveWithdrawalRequest,
    caller: CallerIdentity = Depends(require_admin_auth),
    service: WithdrawalService = Depends(get_withdrawal_service)
):
    result = await service.approve_withdrawal(
        caller,
        request.user_id,
        request.withdrawal_id,
        request.tx_hash
    )
    return create_success_response(data=result, message="Withdrawal approved successfully")


@router.post("/disapprove", response_model=SuccessResponse)
async def disapprove_withdrawal(
    request: WithdrawalRequest,
    caller: CallerIdentity = Depends(require_admin_auth),
    service: WithdrawalService = Depends(get_withdrawal_service)
):
    result = await service.disapprove_withdrawal(caller, request.user_id, request.withdrawal_id)
    return create_success_response(data=result, message="Withdrawal disapproved and amount refunded")
