# app/client/session.py
import base64
import binascii
import json
import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from urllib.parse import quote, unquote

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.client.storage import KeyValueStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_KEY = "user"
AUTHENTICATED_KEY = "isAuthenticated"
RECOVERY_KEY = "auth_data"

ADMIN_SESSION_KEY = "admin_session_id"
ADMIN_LOGIN_TIME_KEY = "admin_login_time"
ADMIN_SESSION_MAX_AGE = timedelta(hours=8)


class SessionUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str = Field(alias="_id")
    email: str | None = None
    name: str | None = None
    role: str = "user"


class AuthSession(BaseModel):
    """The signed-in state: one token, one user."""

    token: str
    user: SessionUser

    @property
    def user_id(self) -> str:
        return self.user.id


def encode_recovery_payload(session: AuthSession) -> str:
    """
    Build the `auth_data` value stashed before leaving for the payment
    page: {"t": token, "u": base64(url-encoded user JSON), "a": "true"}.
    """
    user_json = session.user.model_dump_json(by_alias=True)
    encoded_user = base64.b64encode(quote(user_json).encode("ascii")).decode("ascii")
    return json.dumps({"t": session.token, "u": encoded_user, "a": "true"})


def decode_recovery_payload(raw: str) -> AuthSession:
    """
    Inverse of encode_recovery_payload.

    Raises:
        ValueError: the payload is not valid JSON, base64 or user data.
    """
    try:
        data = json.loads(raw)
        user_json = unquote(base64.b64decode(data["u"], validate=True).decode("ascii"))
        return AuthSession(
            token=data["t"],
            user=SessionUser.model_validate_json(user_json),
        )
    except (json.JSONDecodeError, binascii.Error, KeyError, TypeError, UnicodeDecodeError) as e:
        raise ValueError(f"Malformed recovery payload: {e}") from e
    except ValidationError as e:
        raise ValueError(f"Malformed recovery payload: {e}") from e


class SessionStore:
    """
    Reads and writes the auth session in local storage.

    `token`, `user` and `isAuthenticated` are always written and removed
    together; `load()` only returns a session when all three agree.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self) -> AuthSession | None:
        token = self.store.get_item(TOKEN_KEY)
        user_raw = self.store.get_item(USER_KEY)
        if not token or not user_raw:
            return None
        if self.store.get_item(AUTHENTICATED_KEY) != "true":
            return None
        try:
            user = SessionUser.model_validate_json(user_raw)
        except ValidationError as e:
            logger.error("Error parsing stored user: %s", e)
            return None
        return AuthSession(token=token, user=user)

    def save(self, session: AuthSession) -> None:
        self.store.set_item(TOKEN_KEY, session.token)
        self.store.set_item(USER_KEY, session.user.model_dump_json(by_alias=True))
        self.store.set_item(AUTHENTICATED_KEY, "true")

    def clear(self) -> None:
        """Sign out. Carts are left alone."""
        for key in (TOKEN_KEY, USER_KEY, AUTHENTICATED_KEY):
            self.store.remove_item(key)

    def stash_for_redirect(self, session_store: KeyValueStore) -> None:
        """Keep a copy of the session in short-lived storage across a redirect."""
        session = self.load()
        if session is not None:
            session_store.set_item(RECOVERY_KEY, encode_recovery_payload(session))

    def recover(self, session_store: KeyValueStore) -> AuthSession | None:
        """
        Restore a session stashed before an external redirect.

        The payload is consumed whether or not it parses.

        Returns:
            The restored session, or None when there was nothing usable.
        """
        raw = session_store.get_item(RECOVERY_KEY)
        if raw is None:
            return None
        session_store.remove_item(RECOVERY_KEY)
        try:
            session = decode_recovery_payload(raw)
        except ValueError as e:
            logger.error("Error restoring auth data: %s", e)
            return None
        self.save(session)
        logger.info("Auth data restored for user %s", session.user_id)
        return session


def generate_session_id(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"session_{int(now.timestamp() * 1000)}_{suffix}"


class AdminSessionTracker:
    """
    Admin session id + login time, used to tell which notifications are
    new since the admin signed in.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get_session_id(self) -> str:
        session_id = self.store.get_item(ADMIN_SESSION_KEY)
        if not session_id:
            session_id = generate_session_id()
            self.store.set_item(ADMIN_SESSION_KEY, session_id)
        return session_id

    def create_new_session(self, now: datetime | None = None) -> str:
        now = now or datetime.now(timezone.utc)
        session_id = generate_session_id(now)
        self.store.set_item(ADMIN_SESSION_KEY, session_id)
        self.store.set_item(ADMIN_LOGIN_TIME_KEY, now.isoformat())
        logger.info("New admin session %s", session_id)
        return session_id

    def get_login_time(self) -> datetime | None:
        raw = self.store.get_item(ADMIN_LOGIN_TIME_KEY)
        if not raw:
            return None
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            return None

    def is_new_session(self, now: datetime | None = None) -> bool:
        """True if there is no session yet or it is older than 8 hours."""
        login_time = self.get_login_time()
        if login_time is None or not self.store.get_item(ADMIN_SESSION_KEY):
            return True
        if login_time.tzinfo is None:
            login_time = login_time.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return now - login_time > ADMIN_SESSION_MAX_AGE

    def clear(self) -> None:
        self.store.remove_item(ADMIN_SESSION_KEY)
        self.store.remove_item(ADMIN_LOGIN_TIME_KEY)
