"""Authentication and session administration API router."""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from certauth.core.settings import settings
from certauth.utils.notifications import send_password_reset_email

from .deps import (
    AuthServiceDep,
    CurrentAdminDep,
    extract_bearer_token,
    get_event_bus,
    get_session_registry,
)
from .events import SecurityEventBus, SecurityEventType
from .registry import RegistryUnavailableError, SessionRegistry
from .schemas import (
    AdminInfo,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    SecurityMetrics,
    SessionInfo,
    SessionListResponse,
    TokenResponse,
)
from .service import AccountExistsError, AuthenticationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{settings.api_prefix}/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)


def _registry_unavailable(e: Exception) -> HTTPException:
    logger.error(f"Session registry unavailable: {e}")
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Session store unavailable, please retry",
    )


@router.post("/login", response_model=TokenResponse)
def login(request: Request, login_data: LoginRequest, auth_service: AuthServiceDep):
    """
    Authenticate an admin and return an access token.

    - **username** or **email**: login identifier
    - **password**: admin password
    """
    if not login_data.identifier:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username or email and password required",
        )

    try:
        admin = auth_service.authenticate(login_data.identifier, login_data.password)

        user_agent = request.headers.get("user-agent")
        client_ip = request.client.host if request.client else None

        access_token, _, session = auth_service.create_access_token(
            admin, user_agent=user_agent, ip_address=client_ip
        )
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e)

    logger.info(f"Successful login for admin: {admin.username}")

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        session_id=session.session_id,
        admin=AdminInfo(admin_id=admin.owner_id, username=admin.username, email=admin.email),
    )


@router.post("/register", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, auth_service: AuthServiceDep):
    """Create an admin account (initial setup)."""
    if not settings.allow_registration:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin registration is disabled",
        )

    try:
        auth_service.register_admin(data.username, data.email, data.password)
    except AccountExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return MessageResponse(message="Admin registered")


@router.post("/forgot-password", response_model=ForgotPasswordResponse)
def forgot_password(
    data: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    auth_service: AuthServiceDep,
):
    """
    Request a password reset.

    The reset link is emailed after the response is sent, so neither the
    body nor the response time reveals whether the email is registered.
    """
    reset_token = auth_service.create_password_reset_token(data.email)

    if reset_token:
        background_tasks.add_task(send_password_reset_email, data.email, reset_token)

    return ForgotPasswordResponse(
        message=FORGOT_PASSWORD_MESSAGE,
        reset_token=reset_token if settings.expose_reset_token else None,
    )


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(data: ResetPasswordRequest, auth_service: AuthServiceDep):
    """Set a new password with a reset token. Signs out every session."""
    try:
        auth_service.reset_password(data.token, data.new_password)
    except AuthenticationError as e:
        logger.warning(f"Password reset rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired reset token",
        )
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e)

    return MessageResponse(message="Password has been reset successfully")


@router.post("/logout", response_model=MessageResponse)
def logout(request: Request, auth_service: AuthServiceDep):
    """
    Revoke the caller's own session.

    Always succeeds: a missing, invalid or already revoked token just
    means there is nothing left to revoke.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))

    if token:
        try:
            auth_service.logout(token)
        except RegistryUnavailableError as e:
            logger.error(f"Could not revoke session on logout: {e}")

    return MessageResponse(message="Logged out")


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(current_admin: CurrentAdminDep, auth_service: AuthServiceDep):
    """List the caller's active sessions, most recently active first."""
    try:
        sessions = auth_service.registry.list_for_owner(current_admin.owner_id)
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e)

    return SessionListResponse(
        sessions=[
            SessionInfo(
                session_id=s.session_id,
                username=s.username,
                ip_address=s.ip_address,
                user_agent=s.user_agent,
                created_at=s.created_at,
                last_activity_at=s.last_activity_at,
                expires_at=s.expires_at,
                current=s.session_id == current_admin.session_id,
            )
            for s in sessions
        ]
    )


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
def revoke_session(
    session_id: str, current_admin: CurrentAdminDep, auth_service: AuthServiceDep
):
    """Revoke one of the caller's sessions."""
    try:
        revoked = auth_service.revoke_session(current_admin.owner_id, session_id)
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e)

    if not revoked:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )

    return MessageResponse(message="Session revoked")


@router.get("/me", response_model=AdminInfo)
def get_current_admin_info(current_admin: CurrentAdminDep):
    """Get the authenticated admin's information."""
    return AdminInfo(
        admin_id=current_admin.owner_id,
        username=current_admin.username,
        email=current_admin.email,
    )


@router.get("/security/metrics", response_model=SecurityMetrics)
def security_metrics(
    current_admin: CurrentAdminDep,
    registry: SessionRegistry = Depends(get_session_registry),
    events: SecurityEventBus = Depends(get_event_bus),
):
    """Counters for the security dashboard panel."""
    try:
        registry.sweep_expired()
        active_sessions = registry.count()
    except RegistryUnavailableError as e:
        raise _registry_unavailable(e)

    return SecurityMetrics(
        active_sessions=active_sessions,
        successful_logins=events.count(SecurityEventType.LOGIN_SUCCEEDED),
        failed_logins=events.count(SecurityEventType.LOGIN_FAILED),
        logouts=events.count(SecurityEventType.LOGOUT),
        revoked_sessions=events.count(SecurityEventType.SESSION_REVOKED),
        last_event_at=events.last_event_at,
    )
