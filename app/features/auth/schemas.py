"""
Pydantic schemas for login.
"""
from pydantic import BaseModel, EmailStr, Field

from app.features.users.schemas import UserResponse


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    bearer: str
    expire_in: int = Field(..., description="Seconds of inactivity before the bearer expires")
    user: UserResponse
