"""Authentication module for certificate platform admin login."""

from .router import router as auth_router
from .deps import get_current_admin
from .registry import SessionRegistry
from .schemas import CurrentAdmin, LoginRequest, TokenResponse

__all__ = [
    "auth_router",
    "get_current_admin",
    "SessionRegistry",
    "CurrentAdmin",
    "LoginRequest",
    "TokenResponse",
]
