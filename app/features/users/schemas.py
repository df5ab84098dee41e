"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator

from app.features.permissions.roles import roles
from app.features.permissions.schemas import (
    InboundExtraPermission,
    OutboundPermission,
    OutboundRole,
    outbound_permissions,
    outbound_role,
)


MAX_USERNAME_LENGTH = 16
MIN_PASSWORD_LENGTH = 7
MAX_PASSWORD_LENGTH = 64


class UserResponse(BaseModel):
    """Full profile, including the effective permission set."""
    id: int
    state: int
    username: str
    email: str
    role: OutboundRole
    permissions: list[OutboundPermission] = []
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class UserListEntry(BaseModel):
    id: int
    state: int
    username: str
    email: str
    role: OutboundRole
    last_login_at: datetime | None = None
    created_at: datetime | None = None


class UserListResponse(BaseModel):
    total: int
    result: list[UserListEntry]


class UserUpdate(BaseModel):
    """
    All fields are optional. Modifications take effect at the modified
    user's next login.
    """
    username: str | None = Field(None, min_length=1, max_length=MAX_USERNAME_LENGTH)
    email: EmailStr | None = None
    role_id: int | None = None
    extra_permissions: list[InboundExtraPermission] | None = None

    @field_validator("role_id")
    @classmethod
    def known_role(cls, v: int | None) -> int | None:
        if v is not None and v not in roles:
            raise ValueError("invalid role id")
        return v

    @property
    def touches_data(self) -> bool:
        return self.username is not None or self.email is not None

    @property
    def touches_permissions(self) -> bool:
        return self.role_id is not None or self.extra_permissions is not None


def user_response(user, permissions) -> UserResponse:
    """Profile of ``user`` carrying the given effective permission codes."""
    return UserResponse(
        id=user.id,
        state=user.state.value,
        username=user.username,
        email=user.email,
        role=outbound_role(roles.get(user.role_id)),
        permissions=outbound_permissions(permissions),
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    )


def user_list_entry(user) -> UserListEntry:
    return UserListEntry(
        id=user.id,
        state=user.state.value,
        username=user.username,
        email=user.email,
        role=outbound_role(roles.get(user.role_id)),
        last_login_at=user.last_login_at,
        created_at=user.created_at,
    )
