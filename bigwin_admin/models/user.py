"""
Player accounts and the admins that manage them.
"""

from typing import Optional, Dict, Any
from enum import Enum

from sqlalchemy import String, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, new_id, iso


class AdminRole(str, Enum):
    """Admin authorization roles."""
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class User(BaseModel, TimestampMixin):
    """Player account. Read-mostly from the admin backend's perspective."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=new_id,
        comment="Unique user identifier"
    )

    username: Mapped[str] = mapped_column(String(64), comment="Display username")

    email: Mapped[Optional[str]] = mapped_column(String(255), comment="Contact email")

    assigned_admin: Mapped[Optional[str]] = mapped_column(
        String(64),
        index=True,
        comment="Username of the admin responsible for this user"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    role: Mapped[str] = mapped_column(String(20), default="user")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "assignedAdmin": self.assigned_admin,
            "isActive": self.is_active,
            "role": self.role,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class Admin(BaseModel, TimestampMixin):
    """Back-office operator authenticated by an API key."""

    __tablename__ = "admins"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    username: Mapped[str] = mapped_column(String(64), unique=True)

    email: Mapped[Optional[str]] = mapped_column(String(255))

    role: Mapped[str] = mapped_column(
        String(20),
        default=AdminRole.ADMIN.value,
        comment="admin or superadmin"
    )

    api_key_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        comment="SHA-256 hex digest of the bearer API key"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "isActive": self.is_active,
            "createdAt": iso(self.created_at),
        }

    __table_args__ = (
        Index("idx_admin_active", "is_active"),
    )
