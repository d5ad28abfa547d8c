"""
Admin game management routes.
Game profile listings, statistics, pending requests and the
assign/approve/disapprove actions on game credit and redeem requests.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from bigwin_admin.core.database import get_db_session
from bigwin_admin.admin.admin_auth import require_admin_auth
from bigwin_admin.api.dependencies import get_approval_service
from bigwin_admin.api.schemas.common import SuccessResponse, create_success_response
from bigwin_admin.api.schemas.admin import GameRequest, AssignGameIdRequest
from bigwin_admin.services.admin_views import AdminViewService
from bigwin_admin.services.approval_service import ApprovalService
from bigwin_admin.services.scope import CallerIdentity

router = APIRouter(tags=["Admin Games"])
logger = structlog.get_logger(__name__)


@router.get("/profiles", response_model=SuccessResponse)
async def get_game_profiles(
    caller: CallerIdentity = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_db_session)
):
    """Game profiles of the caller's users, one entry per user."""
    profiles = await AdminViewService(db).fetch_game_profiles(caller)
    return create_success_response(
        data={"count": len(profiles), "profiles": profiles},
        message="Game profiles retrieved"
    )


@router.get("/statistics", response_model=SuccessResponse)
async def get_game_statistics(
    caller: CallerIdentity = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_db_session)
):
    statistics = await AdminViewService(db).fetch_game_statistics(caller)
    return create_success_response(data=statistics, message="Game statistics retrieved")


@router.get("/pending-requests", response_model=SuccessResponse)
async def get_pending_requests(
    caller: CallerIdentity = Depends(require_admin_auth),
    db: AsyncSession = Depends(get_db_session)
):
    """Pending profile activations, credit and redeem requests, newest first."""
    pending = await AdminViewService(db).fetch_pending_requests(caller)
    return create_success_response(data=pending, message="Pending requests retrieved")


@router.post("/assign-gameid", response_model=SuccessResponse)
async def assign_game_id(
    request: AssignGameIdRequest,
    caller: CallerIdentity = Depends(require_admin_auth),
    service: ApprovalService = Depends(get_approval_service)
):
    result = await service.assign_game_id(
        caller,
        request.user_id,
        request.game_name,
        request.game_id,
        request.game_password
    )
    return create_success_response(data=result, message="Game ID assigned successfully")


@router.post("/approve-credit", response_model=SuccessResponse)
async def approve_credit(
    request: GameRequest,
    caller: CallerIdentity = Depends(require_admin_auth),
    service: ApprovalService = Depends(get_approval_service)
):
    result = await service.approve_credit(caller, request.user_id, request.game_name)
    return create_success_response(data=result, message="Credit amount approved successfully")


@router.post("/approve-redeem", response_model=SuccessResponse)
async def approve_redeem(
    request: GameRequest,
    caller: CallerIdentity = Depends(require_admin_auth),
    service: ApprovalService = Depends(get_approval_service)
):
    result = await service.approve_redeem(caller, request.user_id, request.game_name)
    return create_success_response(data=result, message="Redeem request approved successfully")


@router.post("/disapprove-credit", response_model=SuccessResponse)
async def disapprove_credit(
    request: GameRequest,
    caller: CallerIdentity = Depends(require_admin_auth),
    service: ApprovalService = Depends(get_approval_service)
):
    result = await service.disapprove_credit(caller, request.user_id, request.game_name)
    return create_success_response(data=result, message="Credit request disapproved and amount refunded")


@router.post("/disapprove-redeem", response_model=SuccessResponse)
async def disapprove_redeem(
    request: GameRequest,
    caller: CallerIdentity = Depends(require_admin_auth),
    service: ApprovalService = Depends(get_approval_service)
):
    result = await service.disapprove_redeem(caller, request.user_id, request.game_name)
    return create_success_response(data=result, message="Redeem request disapproved")
