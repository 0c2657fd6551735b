"""
Security event bus - fire-and-forget notifications for auth activity.

Publishers (login, logout, revocation, password reset) never wait on or
fail because of subscribers. The dashboard's real-time channel and any
audit sink attach as subscribers.
"""

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)


class SecurityEventType(str, Enum):
    """Auth events broadcast to subscribers."""

    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    SESSION_REVOKED = "session_revoked"
    PASSWORD_RESET = "password_reset"


@dataclass
class SecurityEvent:
    type: SecurityEventType
    owner_id: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "owner_id": self.owner_id,
            "data": self.data,
            "at": self.timestamp.isoformat(),
        }


EventHandler = Callable[[SecurityEvent], None]


class SecurityEventBus:
    """
    In-process pub/sub for security events.

    Features:
    - Per-type and wildcard ("*") subscriptions
    - Handler errors are logged and swallowed
    - Running counters per event type for the security metrics endpoint
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: dict[SecurityEventType, list[EventHandler]] = defaultdict(list)
        self._wildcard_handlers: list[EventHandler] = []
        self._counts: dict[SecurityEventType, int] = defaultdict(int)
        self._last_event_at: Optional[datetime] = None

    def subscribe(
        self, event_type: Union[SecurityEventType, str], handler: EventHandler
    ) -> None:
        with self._lock:
            if event_type == "*":
                self._wildcard_handlers.append(handler)
            else:
                self._handlers[SecurityEventType(event_type)].append(handler)

    def unsubscribe(
        self, event_type: Union[SecurityEventType, str], handler: EventHandler
    ) -> None:
        with self._lock:
            if event_type == "*":
                handlers = self._wildcard_handlers
            else:
                handlers = self._handlers[SecurityEventType(event_type)]
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: SecurityEvent) -> None:
        """Deliver an event to every matching subscriber."""
        with self._lock:
            self._counts[event.type] += 1
            self._last_event_at = event.timestamp
            handlers = list(self._handlers[event.type]) + list(self._wildcard_handlers)

        logger.debug(f"Publishing {event.type.value} event")

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Security event handler error for {event.type.value}: {e}")

    def emit(
        self,
        event_type: SecurityEventType,
        owner_id: Optional[str] = None,
        **data: Any,
    ) -> SecurityEvent:
        """Build and publish an event in one call."""
        event = SecurityEvent(type=event_type, owner_id=owner_id, data=data)
        self.publish(event)
        return event

    def count(self, event_type: SecurityEventType) -> int:
        with self._lock:
            return self._counts[event_type]

    @property
    def last_event_at(self) -> Optional[datetime]:
        return self._last_event_at
