"""
API dependencies for FastAPI endpoints.
Provides the services and registries routes depend on.
"""

from fastapi import Query, Request

from bigwin_admin.api.schemas.common import PaginationParams
from bigwin_admin.services.approval_service import ApprovalService
from bigwin_admin.services.withdrawal_service import WithdrawalService


async def get_pagination_params(
    limit: int = Query(100, ge=1, le=1000, description="Number of items per page"),
    offset: int = Query(0, ge=0, description="Number of items to skip")
) -> PaginationParams:
    """Get pagination parameters."""
    return PaginationParams(limit=limit, offset=offset)


def get_approval_service(request: Request) -> ApprovalService:
    return request.app.state.approval_service


def get_withdrawal_service(request: Request) -> WithdrawalService:
    return request.app.state.withdrawal_service
