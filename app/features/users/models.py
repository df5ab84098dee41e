"""
User and extra permission models.
"""
import enum
from datetime import datetime
from sqlalchemy import String, Boolean, ForeignKey, Integer, Enum, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin


class UserState(int, enum.Enum):
    NORMAL = 0
    BANNED = 1


class User(Base, TimestampMixin):
    """
    User model representing registered accounts.

    ``role_id`` references the closed role catalog in
    app.features.permissions.roles; it is not a foreign key.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # User information
    username: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    role_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    state: Mapped[UserState] = mapped_column(
        Enum(UserState),
        default=UserState.NORMAL,
        nullable=False,
    )

    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    extra_permissions: Mapped[list["ExtraPermission"]] = relationship(
        "ExtraPermission",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role_id={self.role_id})>"


class ExtraPermission(Base):
    """
    Per-user override of the role defaults.

    ``is_shield`` revokes the permission (and its expansion) instead of
    granting it.
    """
    __tablename__ = "extra_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "permission_code", "is_shield", name="uq_extra_permission"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    permission_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    is_shield: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="extra_permissions")

    def __repr__(self) -> str:
        return f"<ExtraPermission(user_id={self.user_id}, code={self.permission_code!r}, shield={self.is_shield})>"
