"""Pydantic schemas for authentication and session administration."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class LoginRequest(BaseModel):
    """Request schema for admin login (username or email)."""

    username: Optional[str] = Field(default=None, max_length=64)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(..., min_length=1, description="Admin password")

    @property
    def identifier(self) -> Optional[str]:
        return self.username or self.email


class AdminInfo(BaseModel):
    """Schema for the authenticated admin."""

    model_config = ConfigDict(from_attributes=True)

    admin_id: str
    username: str
    email: str


class TokenResponse(BaseModel):
    """Response schema for successful login."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiration time in seconds")
    session_id: str
    admin: AdminInfo


class RegisterRequest(BaseModel):
    """Request schema for admin registration."""

    username: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ForgotPasswordResponse(BaseModel):
    message: str
    reset_token: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=72)


class MessageResponse(BaseModel):
    message: str


class SessionInfo(BaseModel):
    """Caller-visible view of an active session."""

    session_id: str
    username: Optional[str] = None
    ip_address: str
    user_agent: str
    created_at: datetime
    last_activity_at: datetime
    expires_at: Optional[datetime] = None
    current: bool = False


class SessionListResponse(BaseModel):
    sessions: list[SessionInfo]


class SecurityMetrics(BaseModel):
    """Counters shown on the admin security dashboard."""

    active_sessions: int
    successful_logins: int
    failed_logins: int
    logouts: int
    revoked_sessions: int
    last_event_at: Optional[datetime] = None


class CurrentAdmin(BaseModel):
    """Claims attached to an admitted request."""

    owner_id: str
    username: str
    email: str
    session_id: str
