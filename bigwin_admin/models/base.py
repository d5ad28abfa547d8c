"""
Declarative base and shared mixins for all models.
"""

from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base holding the shared metadata."""


class BaseModel(Base):
    """Abstract base for application tables."""

    __abstract__ = True

    def __repr__(self) -> str:
        pk = ", ".join(
            f"{col.name}={getattr(self, col.key, None)!r}"
            for col in self.__table__.primary_key.columns
        )
        return f"<{self.__class__.__name__}({pk})>"


class TimestampMixin:
    """Creation and last-modification timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        server_default=func.now(),
        comment="Row creation time"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        server_default=func.now(),
        comment="Last modification time"
    )


def new_id() -> str:
    """Generate a string primary key."""
    return uuid4().hex


def money(value) -> float:
    """Render a stored decimal amount for JSON views."""
    if value is None:
        return 0.0
    return float(Decimal(value))


def iso(value):
    """Render a timestamp for JSON views."""
    return value.isoformat() if value else None
