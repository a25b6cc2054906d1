"""
Observable session state and the sign-in redirect rule.

The dashboard shell owns a ``SessionState`` and subscribes to it instead of
reading a global. Whenever the session appears it goes to the dashboard,
whenever it disappears it goes back to sign-in.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DASHBOARD_PATH = '/dashboard'
SIGN_IN_PATH = '/auth'


@dataclass(frozen=True)
class Session:
    """Authenticated user context handed out by the auth provider"""
    email: str
    access_token: str
    refresh_token: str = ''
    user: dict = field(default_factory=dict, compare=False)


def redirect_for(session: Optional[Session]) -> str:
    """Where the shell should be when ``session`` is the current session"""
    return DASHBOARD_PATH if session else SIGN_IN_PATH


class SessionState:
    """Current session value with subscribe/unsubscribe notifications"""

    def __init__(self, session: Optional[Session] = None):
        self._session = session
        self._subscribers = []
        self._lock = threading.Lock()

    @property
    def current(self) -> Optional[Session]:
        return self._session

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    def subscribe(self, callback: Callable[[Optional[Session]], None]) -> Callable[[], None]:
        """Register ``callback(session)``; returns a function that unsubscribes it"""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def set(self, session: Optional[Session]) -> None:
        with self._lock:
            if session == self._session:
                return
            self._session = session
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(session)
            except Exception:
                logger.exception("Session subscriber %r failed", callback)

    def clear(self) -> None:
        self.set(None)
