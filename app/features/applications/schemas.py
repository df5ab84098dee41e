"""
Pydantic schemas for registration applications.
"""
from pydantic import BaseModel, EmailStr, Field, field_validator

from app.features.permissions.roles import roles
from app.features.permissions.schemas import InboundExtraPermission
from app.features.users.schemas import MAX_PASSWORD_LENGTH, MAX_USERNAME_LENGTH, MIN_PASSWORD_LENGTH


class ApplicationCreate(BaseModel):
    email: EmailStr
    username: str = Field(..., min_length=1, max_length=MAX_USERNAME_LENGTH)
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)


class ApplicationListEntry(BaseModel):
    id: int
    email: str
    username: str
    is_application_pending: bool

    model_config = {"from_attributes": True}


class ApplicationListResponse(BaseModel):
    total: int
    result: list[ApplicationListEntry]


class ApproveRequest(BaseModel):
    role_id: int
    extra_permissions: list[InboundExtraPermission] = []

    @field_validator("role_id")
    @classmethod
    def known_role(cls, v: int) -> int:
        if v not in roles:
            raise ValueError("invalid role id")
        return v
