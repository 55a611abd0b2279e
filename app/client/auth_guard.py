# app/client/auth_guard.py
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

import httpx

from app.client.session import AuthSession, SessionStore
from app.client.storage import KeyValueStore

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"

TokenChecker = Callable[[str], bool]


class GuardState(str, enum.Enum):
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class GuardDecision:
    state: GuardState
    redirect_to: str | None = None
    session: AuthSession | None = None

    @property
    def allowed(self) -> bool:
        return self.state is GuardState.AUTHENTICATED and self.redirect_to is None


class HttpTokenChecker:
    """
    Asks the API whether a token is still good (GET /auth/verify-token).

    `http` is any httpx.Client whose base_url points at the API prefix.
    """

    def __init__(self, http: httpx.Client):
        self.http = http

    def __call__(self, token: str) -> bool:
        response = self.http.get(
            "auth/verify-token",
            headers={"Authorization": f"Bearer {token}"},
        )
        response.raise_for_status()
        return bool(response.json().get("valid"))


class AuthGuard:
    """
    Route gate for pages that need a signed-in user.

    evaluate() runs in a fixed order:
      1. restore a session stashed in session storage (post-payment
         redirect) into local storage
      2. load the session from local storage
      3. accept mock tokens, otherwise ask the token checker
      4. apply the role requirement
    """

    def __init__(
        self,
        local_store: KeyValueStore,
        session_store: KeyValueStore,
        token_checker: TokenChecker,
    ):
        self.sessions = SessionStore(local_store)
        self.session_store = session_store
        self.token_checker = token_checker
        self.state = GuardState.CHECKING

    def _check_token(self, token: str) -> bool:
        if "mock" in token:
            return True
        try:
            return self.token_checker(token)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Token validation error: %s", e)
            return False

    def evaluate(self, required_role: str | None = None) -> GuardDecision:
        self.state = GuardState.CHECKING

        self.sessions.recover(self.session_store)

        session = self.sessions.load()
        if session is None:
            self.state = GuardState.UNAUTHENTICATED
            return GuardDecision(self.state, redirect_to=LOGIN_PATH)

        if not self._check_token(session.token):
            logger.info("Token rejected for user %s; signing out", session.user_id)
            self.sessions.clear()
            self.state = GuardState.UNAUTHENTICATED
            return GuardDecision(self.state, redirect_to=LOGIN_PATH)

        self.state = GuardState.AUTHENTICATED
        if required_role and session.user.role != required_role:
            redirect = "/" if required_role == "admin" else "/admin"
            return GuardDecision(self.state, redirect_to=redirect, session=session)

        return GuardDecision(self.state, session=session)
