"""
HTTP client for the storefront API and the dashboard shell's redirect logic.

Usage:
    state = SessionState()
    shell = DashboardShell(state)
    shell.start()

    client = StorefrontClient("http://127.0.0.1:8000/api/v1", session_state=state)
    client.login("ana@example.com", "secret1")
    shell.location  # "/dashboard"
"""
import logging
from typing import Dict, Optional

import requests
from django.core.exceptions import ValidationError
from django.core.validators import validate_email

from storefront.core.exceptions import AuthFailure
from storefront.core.session import Session, SessionState, redirect_for

logger = logging.getLogger(__name__)

EMAIL_MAX_LENGTH = 255
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 100


def validate_credentials(email: str, password: str) -> str:
    """Check credentials before any network call; returns the normalized email"""
    email = (email or '').strip().lower()
    if not email or len(email) > EMAIL_MAX_LENGTH:
        raise AuthFailure(AuthFailure.INVALID, 'Invalid email')
    try:
        validate_email(email)
    except ValidationError:
        raise AuthFailure(AuthFailure.INVALID, 'Invalid email')
    password = password or ''
    if len(password) < PASSWORD_MIN_LENGTH:
        raise AuthFailure(AuthFailure.INVALID, f'Password must be at least {PASSWORD_MIN_LENGTH} characters')
    if len(password) > PASSWORD_MAX_LENGTH:
        raise AuthFailure(AuthFailure.INVALID, f'Password must be at most {PASSWORD_MAX_LENGTH} characters')
    return email


def classify_auth_error(response: requests.Response) -> AuthFailure:
    """Turn a failed auth response into an AuthFailure of the matching kind"""
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    message = data.get('error') or data.get('detail') or response.reason or 'Authentication failed'

    if data.get('code') == AuthFailure.DUPLICATE_ACCOUNT or response.status_code == 409:
        return AuthFailure(AuthFailure.DUPLICATE_ACCOUNT, message)
    if response.status_code == 401:
        return AuthFailure(AuthFailure.BAD_CREDENTIALS, message)
    if response.status_code >= 500:
        return AuthFailure(AuthFailure.UNAVAILABLE, 'Authentication service unavailable')
    return AuthFailure(AuthFailure.INVALID, message)


class StorefrontClient:
    """Client for the /api/v1 endpoints holding its session in a SessionState"""

    def __init__(self, base_url: str, session_state: Optional[SessionState] = None, timeout: int = 10):
        self.base_url = base_url.rstrip('/')
        self.session_state = session_state if session_state is not None else SessionState()
        self.timeout = timeout
        self.http = requests.Session()
        self.http.headers.update({'Content-Type': 'application/json'})

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _post_credentials(self, path: str, email: str, password: str) -> requests.Response:
        try:
            return self.http.post(self._url(path), json={'email': email, 'password': password}, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Auth request to {path} failed: {str(e)}")
            raise AuthFailure(AuthFailure.UNAVAILABLE, 'Authentication service unavailable') from e

    def _start_session(self, email: str, data: Dict) -> Session:
        session = Session(
            email=email,
            access_token=data.get('access', ''),
            refresh_token=data.get('refresh', ''),
            user=data.get('user') or {},
        )
        self.http.headers.update({'Authorization': f'Bearer {session.access_token}'})
        self.session_state.set(session)
        return session

    def login(self, email: str, password: str) -> Session:
        email = validate_credentials(email, password)
        response = self._post_credentials('auth/login/', email, password)
        if response.status_code != 200:
            raise classify_auth_error(response)
        logger.info(f"Signed in as {email}")
        return self._start_session(email, response.json())

    def signup(self, email: str, password: str) -> Session:
        email = validate_credentials(email, password)
        response = self._post_credentials('auth/register/', email, password)
        if response.status_code != 201:
            raise classify_auth_error(response)
        logger.info(f"Registered {email}")
        return self._start_session(email, response.json())

    def logout(self) -> None:
        self.http.headers.pop('Authorization', None)
        self.session_state.clear()

    def get(self, path: str, params: Optional[Dict] = None) -> requests.Response:
        """Authenticated GET; a 401 ends the session"""
        response = self.http.get(self._url(path), params=params, timeout=self.timeout)
        if response.status_code == 401 and self.session_state.is_authenticated:
            logger.info("Session rejected by the API, signing out")
            self.logout()
        return response


class DashboardShell:
    """Follows the session and keeps ``location`` on the dashboard or sign-in page"""

    def __init__(self, session_state: SessionState):
        self.session_state = session_state
        self.location = redirect_for(session_state.current)
        self._unsubscribe = None

    @property
    def is_running(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.session_state.subscribe(self._on_session_change)
        self.location = redirect_for(self.session_state.current)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_session_change(self, session: Optional[Session]) -> None:
        self.location = redirect_for(session)
        logger.debug(f"Session changed, redirecting to {self.location}")
