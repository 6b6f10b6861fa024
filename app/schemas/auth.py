"""Pydantic schemas for authentication endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.models.user import UserRole

# bcrypt only looks at the first 72 bytes
PASSWORD_MAX_LENGTH = 72


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
    role: UserRole | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class AuthPayload(BaseModel):
    id: int
    name: str
    email: str
    role: str
    token: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ForgotPasswordResponse(BaseModel):
    success: bool = True
    message: str
    reset_token: str | None = Field(default=None, alias="resetToken")

    model_config = {"populate_by_name": True}


class ResetPasswordRequest(BaseModel):
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class ProfileUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str | None = Field(default=None, min_length=1, max_length=PASSWORD_MAX_LENGTH)
    profile_picture: str | None = Field(default=None, max_length=512)


class ProfileResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    is_active: bool
    profile_picture: str | None
    last_login_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}
