"""
SQLAlchemy declarative base and common model utilities.

Every table (users, their extra permissions, registration applications)
inherits from Base so that init_db can create them in one pass.
"""
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """
    Server-side ``created_at`` and ``updated_at`` columns.

    Usage:
        class UserApplication(Base, TimestampMixin):
            __tablename__ = "user_applications"
            id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
