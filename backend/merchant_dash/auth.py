# Overview: Authentication boundary for the dashboard plus a local, bcrypt-backed implementation.

"""
The sync engine only needs three things from authentication: who is signed
in, a way to hear about sign-in/sign-out, and sign_out(). AuthSession is
that boundary. LocalAuthSession is the provider the Flask app ships
with: accounts in the users table, one signed-in user at a time,
identified to the API by a bearer token.
"""

from __future__ import annotations

import logging
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

import bcrypt
from sqlalchemy.exc import IntegrityError

from .errors import AuthenticationRequired, ConflictError, ValidationError
from .extensions import db
from .models.users import User
from .time_utils import utcnow


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str

    def to_dict(self) -> dict:
        return {"id": self.id, "email": self.email}


SessionListener = Callable[["AuthUser | None"], None]


class AuthSession(ABC):
    """What the dashboard requires of an authentication provider."""

    @abstractmethod
    def current_user(self) -> AuthUser | None:
        ...

    @abstractmethod
    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        """Registers callback(user_or_None); returns an unsubscribe function."""

    @abstractmethod
    def sign_out(self) -> None:
        ...


def hash_password(password: str, rounds: int = 12) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash
        return False


class LocalAuthSession(AuthSession):
    """
    Single signed-in user, backed by the users table.

    Accounts are created with register(); sign_in() verifies the bcrypt
    hash and issues a fresh bearer token, replacing any previous session.
    Tokens live in process memory, so a restart signs everyone out but
    keeps their accounts. Database methods need an application context.
    """

    def __init__(self, *, rounds: int = 12):
        self._rounds = rounds
        self._user: AuthUser | None = None
        self._token: str | None = None
        self._listeners: list[SessionListener] = []
        self._lock = threading.RLock()

    def register(self, email: str, password: str, *, user_id: str | None = None) -> AuthUser:
        """
        Creates an account. Raises ValidationError for a bad email or a
        short password and ConflictError when the email is taken.
        """
        email = str(email or "").strip().lower()
        if not email or "@" not in email:
            raise ValidationError("A valid email is required")
        password_hash = hash_password(password, self._rounds)

        if db.session.query(User).filter_by(email=email).first() is not None:
            raise ConflictError(f"{email} is already registered")
        user = User(email=email, password_hash=password_hash)
        if user_id:
            user.id = str(user_id)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError(f"{email} is already registered")
        logger.info("Registered user %s", user.id)
        return AuthUser(id=user.id, email=user.email)

    def remove(self, user_id: str) -> bool:
        """Deletes an account, e.g. when the rest of a registration failed."""
        user = db.session.get(User, user_id)
        if user is None:
            return False
        db.session.delete(user)
        db.session.commit()
        logger.info("Removed user %s", user_id)
        return True

    def sign_in(self, email: str, password: str) -> str:
        """Returns the bearer token for the new session."""
        email = str(email or "").strip().lower()
        account = db.session.query(User).filter_by(email=email).first()
        if account is None or not isinstance(password, str) or not verify_password(password, account.password_hash):
            logger.info("Failed sign-in for %s", email)
            raise AuthenticationRequired("Invalid email or password")

        account.last_login_at = utcnow()
        db.session.commit()
        with self._lock:
            self._user = AuthUser(id=account.id, email=account.email)
            self._token = secrets.token_urlsafe(32)
            user, token = self._user, self._token
        logger.info("User %s signed in", user.id)
        self._notify(user)
        return token

    def sign_out(self) -> None:
        with self._lock:
            user, self._user, self._token = self._user, None, None
        if user is not None:
            logger.info("User %s signed out", user.id)
            self._notify(None)

    def current_user(self) -> AuthUser | None:
        return self._user

    def authenticate(self, token: str | None) -> AuthUser:
        with self._lock:
            if not token or self._token is None or not secrets.compare_digest(token, self._token):
                raise AuthenticationRequired("Authentication required")
            return self._user

    def on_session_change(self, callback: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, user: AuthUser | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(user)
            except Exception:
                logger.exception("Session change listener failed")
