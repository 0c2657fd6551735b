"""
FastAPI dependencies for authentication - the access gate.

Every protected request walks the same states:

    Unauthenticated -> CredentialPresent -> CredentialValid
        -> SessionActive -> Admitted

and any failed step ends in Rejected with a machine-readable reason.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
from sqlalchemy.orm import Session

from certauth.db.deps import get_db

from .events import SecurityEventBus
from .registry import SessionRegistry
from .schemas import CurrentAdmin
from .service import AuthService, AuthenticationError

logger = logging.getLogger(__name__)

# Security scheme for Swagger UI
security = HTTPBearer(auto_error=False)


class GateState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    CREDENTIAL_PRESENT = "credential_present"
    CREDENTIAL_VALID = "credential_valid"
    SESSION_ACTIVE = "session_active"
    ADMITTED = "admitted"
    REJECTED = "rejected"


class RejectReason(str, Enum):
    NO_CREDENTIAL = "no_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    SESSION_REVOKED = "session_revoked"
    SESSION_UNVERIFIABLE = "session_unverifiable"


REJECT_MESSAGES = {
    RejectReason.NO_CREDENTIAL: "No credential provided",
    RejectReason.INVALID_CREDENTIAL: "Invalid or expired credential",
    RejectReason.SESSION_REVOKED: "Session revoked, please reauthenticate",
    RejectReason.SESSION_UNVERIFIABLE: "Session could not be verified, please retry",
}


@dataclass
class GateDecision:
    """Outcome of running a request through the access gate."""

    state: GateState
    admin: Optional[CurrentAdmin] = None
    reason: Optional[RejectReason] = None

    @property
    def admitted(self) -> bool:
        return self.state == GateState.ADMITTED

    @property
    def message(self) -> Optional[str]:
        return REJECT_MESSAGES.get(self.reason) if self.reason else None

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": self.message, "reason": self.reason.value},
            headers={"WWW-Authenticate": "Bearer"},
        )


def _reject(reason: RejectReason) -> GateDecision:
    return GateDecision(state=GateState.REJECTED, reason=reason)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def evaluate_credential(
    authorization: Optional[str],
    auth_service: AuthService,
    registry: SessionRegistry,
) -> GateDecision:
    """
    Decide whether a request may proceed.

    Never raises: every failure, including a registry that cannot answer,
    becomes a rejection.

    Args:
        authorization: Raw Authorization header value
        auth_service: Verifies token signature, expiry and type
        registry: Source of truth for session activeness

    Returns:
        GateDecision, with the admitted admin's claims when admitted
    """
    token = extract_bearer_token(authorization)
    if token is None:
        return _reject(RejectReason.NO_CREDENTIAL)

    # CredentialPresent
    try:
        payload = auth_service.verify_token(token)
        session_id = payload.get("jti")
        admin = CurrentAdmin(
            owner_id=str(payload["sub"]),
            username=payload.get("username") or "",
            email=payload.get("email") or "",
            session_id=session_id or "",
        )
    except (AuthenticationError, KeyError, ValidationError) as e:
        logger.debug(f"Credential rejected: {e}")
        return _reject(RejectReason.INVALID_CREDENTIAL)

    # CredentialValid
    try:
        active = registry.is_active(session_id)
    except Exception as e:
        logger.error(f"Session registry unavailable, denying request: {e}")
        return _reject(RejectReason.SESSION_UNVERIFIABLE)

    if not active:
        return _reject(RejectReason.SESSION_REVOKED)

    # SessionActive
    try:
        registry.touch(session_id)
    except Exception as e:
        logger.warning(f"Failed to record session activity: {e}")

    return GateDecision(state=GateState.ADMITTED, admin=admin)


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.session_registry


def get_event_bus(request: Request) -> SecurityEventBus:
    return request.app.state.event_bus


def get_auth_service(
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
    events: SecurityEventBus = Depends(get_event_bus),
) -> AuthService:
    return AuthService(db, registry, events)


def get_current_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    auth_service: AuthService = Depends(get_auth_service),
) -> CurrentAdmin:
    """
    FastAPI dependency to get the current authenticated admin.

    Raises:
        HTTPException 401: With detail {"message", "reason"} on any rejection
    """
    decision = evaluate_credential(
        request.headers.get("Authorization"),
        auth_service,
        auth_service.registry,
    )
    if not decision.admitted:
        raise decision.to_http_exception()
    return decision.admin


# Type aliases for cleaner dependency injection
CurrentAdminDep = Annotated[CurrentAdmin, Depends(get_current_admin)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
