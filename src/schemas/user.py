"""User schema definitions.

This module defines the User data model and the request/response models used
by the authentication endpoints.
"""

import uuid
from datetime import datetime
from typing import Optional

import pytz
from pydantic import BaseModel, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _utc_now_iso() -> str:
    return datetime.now(pytz.utc).isoformat()


class User(BaseModel):
    """A user account as handled by the managers."""

    user_id: str = Field(
        description="The unique identifier for the user.",
        default_factory=lambda: str(uuid.uuid4()),
    )
    email: str
    username: str
    password_hash: Optional[str] = None
    display_name: Optional[str] = None
    avatar: Optional[str] = None
    provider: str = "local"
    status: str = "active"
    role: str = "user"
    invite_code_id: Optional[int] = None
    invite_code_used: Optional[str] = None
    created_at: str = Field(default_factory=_utc_now_iso)
    updated_at: str = Field(default_factory=_utc_now_iso)
    deleted_at: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == "active" and self.deleted_at is None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin" and self.is_active

    @property
    def is_local_account(self) -> bool:
        return self.provider == "local"


class UserResponse(BaseModel):
    """User information returned to clients (no password hash)."""

    user_id: str
    email: str
    username: str
    display_name: Optional[str] = None
    avatar: Optional[str] = None
    provider: str
    status: str
    role: str
    invite_code_id: Optional[int] = None
    invite_code_used: Optional[str] = None
    created_at: str
    updated_at: str


class UserSummary(BaseModel):
    """Short user snapshot embedded in invite code and usage views."""

    user_id: str
    username: str
    display_name: Optional[str] = None
    avatar: Optional[str] = None


class RegisterRequest(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=6)
    display_name: Optional[str] = Field(default=None, max_length=255)
    invite_code: Optional[str] = Field(
        default=None, description="Optional invite code consumed on registration."
    )
    admin_token: Optional[str] = Field(
        default=None, description="Grants the admin role when it matches ADMIN_TOKEN."
    )


class LoginRequest(BaseModel):
    email: str
    password: str


class UpdateProfileRequest(BaseModel):
    display_name: Optional[str] = Field(default=None, max_length=255)
    avatar: Optional[str] = Field(default=None, max_length=500)


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(min_length=6)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int = Field(description="Lifetime of the token in seconds.")
    expires_at: datetime


class AuthResponse(BaseModel):
    user: UserResponse
    token: TokenResponse
