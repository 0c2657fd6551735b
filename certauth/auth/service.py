"""Authentication service - admin login, credential issuance and revocation."""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from sqlalchemy import or_
from sqlalchemy.orm import Session

from certauth.core.settings import settings

from .events import SecurityEventBus, SecurityEventType
from .models import AdminAccount
from .registry import Provenance, SessionRegistry
from .registry import Session as AdminSession

logger = logging.getLogger(__name__)

# JWT configuration
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
RESET_TOKEN_TYPE = "password_reset"

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


class AuthenticationError(Exception):
    """Raised when authentication fails."""

    pass


class AccountExistsError(Exception):
    """Raised when registering a username or email that is taken."""

    pass


def hash_password(password: str) -> str:
    """Hash a password with the configured bcrypt cost."""
    password_bytes = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    password_bytes = password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(password_bytes, password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def new_session_id() -> str:
    """Unpredictable session identifier (256 bits from the OS CSPRNG)."""
    return secrets.token_urlsafe(32)


def password_fingerprint(password_hash: str) -> str:
    """Keyed digest of a stored password hash, bound into reset tokens."""
    return hmac.new(
        settings.jwt_secret_key.encode("utf-8"),
        password_hash.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class AuthService:
    """Service for admin authentication and session lifecycle."""

    def __init__(
        self,
        db: Session,
        registry: SessionRegistry,
        events: Optional[SecurityEventBus] = None,
    ):
        self.db = db
        self.registry = registry
        self.events = events or SecurityEventBus()

    def get_admin_by_identifier(self, identifier: str) -> Optional[AdminAccount]:
        """
        Look up an admin by username or email.

        Args:
            identifier: Username or email address

        Returns:
            AdminAccount if found, None otherwise
        """
        return (
            self.db.query(AdminAccount)
            .filter(
                or_(
                    AdminAccount.username == identifier,
                    AdminAccount.email == identifier.lower(),
                )
            )
            .first()
        )

    def get_admin_by_id(self, owner_id: str) -> Optional[AdminAccount]:
        try:
            admin_no = int(owner_id)
        except (TypeError, ValueError):
            return None
        return self.db.get(AdminAccount, admin_no)

    def authenticate(self, identifier: str, password: str) -> AdminAccount:
        """
        Verify admin credentials.

        Args:
            identifier: Username or email
            password: Plain-text password

        Returns:
            AdminAccount for the authenticated admin

        Raises:
            AuthenticationError: If the admin is unknown or the password is wrong
        """
        admin = self.get_admin_by_identifier(identifier)

        if not admin or not verify_password(password, admin.password_hash):
            logger.warning(f"Failed login attempt for: {identifier}")
            self.events.emit(SecurityEventType.LOGIN_FAILED)
            raise AuthenticationError("Invalid credentials")

        logger.info(f"Successfully authenticated admin: {admin.username}")
        return admin

    def register_admin(self, username: str, email: str, password: str) -> AdminAccount:
        """
        Create a new admin account.

        Raises:
            AccountExistsError: If the username or email is already registered
        """
        email = email.lower()
        exists = (
            self.db.query(AdminAccount)
            .filter(or_(AdminAccount.username == username, AdminAccount.email == email))
            .first()
        )
        if exists:
            raise AccountExistsError("Username or email already exists")

        admin = AdminAccount(
            username=username,
            email=email,
            password_hash=hash_password(password),
        )
        self.db.add(admin)
        self.db.commit()
        self.db.refresh(admin)

        logger.info(f"Registered admin: {username}")
        return admin

    def create_access_token(
        self,
        admin: AdminAccount,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> tuple[str, datetime, AdminSession]:
        """
        Issue an access token and register its session.

        The token is signed before the session is registered, and is only
        returned once registration succeeded.

        Args:
            admin: Authenticated AdminAccount
            user_agent: Browser user agent
            ip_address: Client IP

        Returns:
            Tuple of (token string, expiration datetime, registered Session)
        """
        session_id = new_session_id()
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + timedelta(minutes=settings.jwt_access_token_expire_minutes)

        payload = {
            "sub": admin.owner_id,
            "username": admin.username,
            "email": admin.email,
            "jti": session_id,
            "iat": issued_at,
            "exp": expires_at,
            "type": ACCESS_TOKEN_TYPE,
        }

        token = jwt.encode(payload, settings.jwt_secret_key, algorithm=JWT_ALGORITHM)

        session = self.registry.create(
            session_id,
            admin.owner_id,
            Provenance(
                ip_address=ip_address,
                user_agent=user_agent[:512] if user_agent else None,
            ),
            expires_at=expires_at,
            username=admin.username,
        )

        self.events.emit(
            SecurityEventType.LOGIN_SUCCEEDED,
            owner_id=admin.owner_id,
            admin=admin.username,
        )
        return token, expires_at, session

    def verify_token(self, token: str, token_type: str = ACCESS_TOKEN_TYPE) -> dict:
        """
        Verify and decode a JWT token.

        Only signature, expiry and type are checked here. Whether the session
        behind an access token is still active is the registry's call.

        Raises:
            AuthenticationError: If token is invalid, expired or of another type
        """
        try:
            payload = jwt.decode(
                token, settings.jwt_secret_key, algorithms=[JWT_ALGORITHM]
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}")

        if payload.get("type") != token_type:
            raise AuthenticationError("Invalid token type")

        return payload

    def logout(self, token: Optional[str]) -> bool:
        """
        Revoke the session behind a token, if any.

        Returns:
            True if a session was revoked
        """
        if not token:
            return False

        try:
            payload = self.verify_token(token)
        except AuthenticationError:
            return False

        revoked = self.registry.revoke_by_credential_claim(payload.get("jti"))
        if revoked:
            self.events.emit(SecurityEventType.LOGOUT, owner_id=payload.get("sub"))
        return revoked

    def revoke_session(self, owner_id: str, session_id: str) -> bool:
        """Revoke one of the owner's sessions. False if not found or not owned."""
        revoked = self.registry.revoke_by_session_id(owner_id, session_id)
        if revoked:
            self.events.emit(SecurityEventType.SESSION_REVOKED, owner_id=owner_id)
        return revoked

    def revoke_all_sessions(self, owner_id: str) -> int:
        """Revoke every active session of an owner. Returns the count."""
        revoked = 0
        for session in self.registry.list_for_owner(owner_id):
            if self.registry.revoke_by_session_id(owner_id, session.session_id):
                revoked += 1
        return revoked

    def create_password_reset_token(self, email: str) -> Optional[str]:
        """
        Create a password reset token for a registered email.

        Returns:
            Token string, or None if no admin has that email
        """
        admin = (
            self.db.query(AdminAccount)
            .filter(AdminAccount.email == email.lower())
            .first()
        )
        if not admin:
            logger.info("Password reset requested for unknown email")
            return None

        now = datetime.now(timezone.utc)
        payload = {
            "sub": admin.owner_id,
            "email": admin.email,
            "iat": now,
            "exp": now + timedelta(minutes=settings.password_reset_expire_minutes),
            "type": RESET_TOKEN_TYPE,
            "pwd": password_fingerprint(admin.password_hash),
        }

        logger.info(f"Password reset token issued for admin: {admin.username}")
        return jwt.encode(payload, settings.jwt_secret_key, algorithm=JWT_ALGORITHM)

    def reset_password(self, token: str, new_password: str) -> AdminAccount:
        """
        Set a new password using a reset token.

        Every active session of the admin is revoked. A token only works
        against the password it was issued for, so it cannot be used twice.

        Raises:
            AuthenticationError: If the token is invalid, expired, used or unknown
        """
        payload = self.verify_token(token, token_type=RESET_TOKEN_TYPE)

        admin = self.get_admin_by_id(payload.get("sub"))
        if not admin:
            raise AuthenticationError("Invalid reset token")

        fingerprint = str(payload.get("pwd") or "")
        if not hmac.compare_digest(fingerprint, password_fingerprint(admin.password_hash)):
            logger.warning(f"Stale password reset token for admin: {admin.username}")
            raise AuthenticationError("Reset token already used")

        admin.password_hash = hash_password(new_password)
        self.db.commit()

        revoked = self.revoke_all_sessions(admin.owner_id)
        logger.info(
            f"Password reset for admin {admin.username}, revoked {revoked} sessions"
        )
        self.events.emit(
            SecurityEventType.PASSWORD_RESET,
            owner_id=admin.owner_id,
            revoked_sessions=revoked,
        )
        return admin
