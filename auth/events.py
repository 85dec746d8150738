"""
Auth-state event bus.

Views that care about sign-in/sign-out subscribe when they are set up and
unsubscribe on teardown. The Flask app publishes events from its login,
logout and per-request session checks.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


Listener = Callable[[AuthEvent, Optional[Dict[str, Any]]], None]


class Subscription:
    """Handle returned by AuthEventBus.subscribe()."""

    def __init__(self, bus: "AuthEventBus", key: int):
        self._bus = bus
        self._key = key

    def unsubscribe(self) -> None:
        self._bus._remove(self._key)


class AuthEventBus:
    def __init__(self):
        self._listeners: Dict[int, Listener] = {}
        self._next_key = 0
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Subscription:
        with self._lock:
            key = self._next_key
            self._next_key += 1
            self._listeners[key] = listener
        return Subscription(self, key)

    def _remove(self, key: int) -> None:
        with self._lock:
            self._listeners.pop(key, None)

    def publish(self, event: AuthEvent, session: Optional[Dict[str, Any]] = None) -> int:
        """
        Deliver an event to every listener in subscription order.
        A failing listener is logged and skipped.

        Returns:
            Number of listeners that handled the event without raising
        """
        with self._lock:
            listeners = list(self._listeners.values())
        delivered = 0
        for listener in listeners:
            try:
                listener(event, session)
                delivered += 1
            except Exception as e:
                logger.error(f"Auth listener failed on {event.value}: {e}")
        return delivered


def is_session_locked(session: Optional[Dict[str, Any]]) -> bool:
    """True when the session's user_metadata marks the account as locked."""
    if not session:
        return False
    metadata = session.get("user_metadata") or {}
    return bool(metadata.get("is_locked"))


def enforce_account_lock(sign_out: Callable[[], None]) -> Listener:
    """
    Build a listener that signs the user out whenever an event arrives for a locked account.
    """
    def _listener(event: AuthEvent, session: Optional[Dict[str, Any]]) -> None:
        if event == AuthEvent.SIGNED_OUT:
            return
        if is_session_locked(session):
            logger.warning(f"Locked account {session.get('user_id')} signed out")
            sign_out()

    return _listener


# Process-wide bus used by flask_app
auth_events = AuthEventBus()
