"""
Response envelope shared by every admin route.

Successful calls return {success, message, data, timestamp}; failures
return {success: false, error, message, details, timestamp}.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from pydantic import BaseModel, Field, ConfigDict

from bigwin_admin.core.config import settings


class APIResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class SuccessResponse(APIResponse):
    data: Optional[Any] = None


class ErrorResponse(APIResponse):
    success: bool = False
    error: str
    details: Dict[str, Any] = Field(default_factory=dict)


class PaginationParams(BaseModel):
    """limit/offset for the users and wallets listings."""
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class HealthCheckResponse(BaseModel):
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str = settings.app_version
    services: Dict[str, str] = Field(default_factory=dict)


class FieldError(BaseModel):
    """One rejected request field."""
    field: Optional[str] = None
    code: str
    message: str


def create_success_response(data: Any = None, message: Optional[str] = None) -> SuccessResponse:
    return SuccessResponse(data=data, message=message)


def create_error_response(
    message: str,
    error_code: str,
    details: Optional[Dict[str, Any]] = None
) -> ErrorResponse:
    return ErrorResponse(message=message, error=error_code, details=details or {})


def page_payload(key: str, items: Sequence[Any], pagination: PaginationParams) -> Dict[str, Any]:
    """List payload: the serialized items under key plus paging info."""
    return {
        "count": len(items),
        "limit": pagination.limit,
        "offset": pagination.offset,
        key: [item.to_dict() for item in items],
    }


def field_errors(errors: List[Dict[str, Any]]) -> List[FieldError]:
    """Flatten pydantic validation errors, dropping the leading "body" location."""
    return [
        FieldError(
            field=".".join(str(part) for part in error.get("loc", ()) if part != "body") or None,
            code=str(error.get("type", "invalid")),
            message=str(error.get("msg", "Invalid value"))
        )
        for error in errors
    ]
