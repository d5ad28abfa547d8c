"""
User schemas.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class UserUpdateRequest(BaseModel):
    """Editable user fields. Omitted fields are left unchanged."""
    model_config = ConfigDict(populate_by_name=True)

    username: Optional[str] = Field(default=None, min_length=1, max_length=64)
    email: Optional[str] = Field(default=None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    is_active: Optional[bool] = Field(default=None, alias="isActive")
    role: Optional[str] = None
