"""
In-memory registry of active admin sessions.

Each issued access token carries a ``jti`` claim that names exactly one
session here. The registry is the single source of truth for "is this
credential still usable": a token whose session is absent, revoked or
expired is rejected by the access gate even while its signature is valid.

Sessions are indexed twice, by session id and by owner id. Both indexes are
always updated together under the registry lock.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import count
from typing import Optional

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


class SessionExistsError(Exception):
    """Raised when creating a session whose id is already registered."""

    pass


class RegistryUnavailableError(Exception):
    """Raised by a registry backend that cannot answer (e.g. store down)."""

    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Provenance:
    """Where a session was opened from. Captured once at login."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class Session:
    """Server-side record of one issued access token."""

    session_id: str
    owner_id: str
    ip_address: str
    user_agent: str
    created_at: datetime
    last_activity_at: datetime
    expires_at: Optional[datetime] = None
    username: Optional[str] = None
    revoked: bool = False
    # Registry-wide tiebreaker so ordering is stable within one clock tick
    activity_seq: int = field(default=0, repr=False, compare=False)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or _utcnow()) >= self.expires_at


class SessionRegistry:
    """
    Tracks active sessions keyed by session id and by owner id.

    Mutations go through create, touch, revoke_by_session_id and
    revoke_by_credential_claim (plus expiry purges, which reuse the same
    removal path). Revocation is one-way: a revoked Session is dropped from
    both indexes and flagged, and nothing puts it back.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._by_session: dict[str, Session] = {}
        self._by_owner: dict[str, dict[str, Session]] = {}
        self._seq = count(1)

    def create(
        self,
        session_id: str,
        owner_id: str,
        provenance: Optional[Provenance] = None,
        expires_at: Optional[datetime] = None,
        username: Optional[str] = None,
    ) -> Session:
        """
        Register a new active session.

        Args:
            session_id: The jti claim embedded in the issued token
            owner_id: Admin the token was issued to
            provenance: Client address and user agent at login
            expires_at: Expiry of the token, for lazy and swept expiry
            username: Display name shown in session listings

        Returns:
            The new Session

        Raises:
            SessionExistsError: If session_id is already registered
        """
        provenance = provenance or Provenance()
        now = _utcnow()

        with self._lock:
            if session_id in self._by_session:
                raise SessionExistsError(f"Session {session_id} already exists")

            session = Session(
                session_id=session_id,
                owner_id=owner_id,
                ip_address=provenance.ip_address or UNKNOWN,
                user_agent=provenance.user_agent or UNKNOWN,
                created_at=now,
                last_activity_at=now,
                expires_at=expires_at,
                username=username,
                activity_seq=next(self._seq),
            )
            self._by_session[session_id] = session
            self._by_owner.setdefault(owner_id, {})[session_id] = session

        logger.debug(f"Registered session for owner {owner_id}")
        return session

    def touch(self, session_id: str) -> None:
        """Record activity on a live session. No-op for unknown ids."""
        if not session_id:
            return
        with self._lock:
            session = self._by_session.get(session_id)
            if session is None or session.revoked:
                return
            session.last_activity_at = _utcnow()
            session.activity_seq = next(self._seq)

    def is_active(self, session_id: Optional[str]) -> bool:
        """True iff a non-revoked, unexpired session exists for this id."""
        if not session_id:
            return False
        with self._lock:
            session = self._by_session.get(session_id)
            if session is None or session.revoked:
                return False
            if session.is_expired():
                self._remove(session)
                logger.info(f"Session for owner {session.owner_id} expired")
                return False
            return True

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._by_session.get(session_id)

    def revoke_by_session_id(self, owner_id: str, session_id: str) -> bool:
        """
        Revoke a session on behalf of its owner.

        Returns:
            True if a session owned by owner_id was removed
        """
        with self._lock:
            session = self._by_owner.get(owner_id, {}).get(session_id)
            if session is None:
                return False
            self._remove(session)

        logger.info(f"Revoked session for owner {owner_id}")
        return True

    def revoke_by_credential_claim(self, session_id: Optional[str]) -> bool:
        """
        Revoke the session named by a token's jti claim.

        No ownership check: holding the token proves ownership.
        """
        if not session_id:
            return False
        with self._lock:
            session = self._by_session.get(session_id)
            if session is None:
                return False
            self._remove(session)

        logger.info(f"Revoked session for owner {session.owner_id} (self logout)")
        return True

    def list_for_owner(self, owner_id: str) -> list[Session]:
        """Active sessions of an owner, most recently active first."""
        now = _utcnow()
        with self._lock:
            sessions = list(self._by_owner.get(owner_id, {}).values())
            live = []
            for session in sessions:
                if session.is_expired(now):
                    self._remove(session)
                else:
                    live.append(session)

        return sorted(
            live,
            key=lambda s: (s.last_activity_at, s.activity_seq),
            reverse=True,
        )

    def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Purge every session whose token has expired.

        Returns:
            Number of sessions removed
        """
        now = now or _utcnow()
        with self._lock:
            expired = [s for s in self._by_session.values() if s.is_expired(now)]
            for session in expired:
                self._remove(session)

        if expired:
            logger.info(f"Swept {len(expired)} expired sessions")
        return len(expired)

    def count(self) -> int:
        with self._lock:
            return len(self._by_session)

    def clear(self) -> None:
        """Revoke everything. Used on shutdown and by tests."""
        with self._lock:
            for session in list(self._by_session.values()):
                self._remove(session)

    def _remove(self, session: Session) -> None:
        # Caller holds the lock
        session.revoked = True
        self._by_session.pop(session.session_id, None)
        owned = self._by_owner.get(session.owner_id)
        if owned is not None:
            owned.pop(session.session_id, None)
            if not owned:
                del self._by_owner[session.owner_id]
