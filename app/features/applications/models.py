"""
Registration application model.

An application is created on registration and replaced by a User row once
approved.
"""
from sqlalchemy import String, Boolean, Integer
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin


class UserApplication(Base, TimestampMixin):
    __tablename__ = "user_applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    is_email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # False once rejected
    is_application_pending: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<UserApplication(id={self.id}, email={self.email!r}, pending={self.is_application_pending})>"
