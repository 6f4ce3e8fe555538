"""
Credential check, artifact issuing and artifact verification.

The artifact that proves a login is produced by one of three strategies,
selected by ``Settings.auth_mode``:

* ``cookie``  - signed JWT in an HttpOnly ``token`` cookie
* ``bearer``  - signed JWT returned in the body, sent back as ``Authorization: Bearer``
* ``session`` - opaque id in a ``sid`` cookie, resolved through a ``SessionStore``
"""

from __future__ import annotations

import hmac
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import jwt
from fastapi import Request, Response

from gallery.config import Settings
from gallery.db import DbClient
from gallery.errors import InvalidArtifact, InvalidCredentials, Unauthenticated
from gallery.sessions import SessionStore

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
TOKEN_COOKIE_NAME = "token"
SESSION_COOKIE_NAME = "sid"


@dataclass
class AdminIdentity:
    email: str
    expires_at: float


def _matches(stored: Any, given: Any) -> bool:
    return hmac.compare_digest(str(stored).encode("utf-8"), str(given).encode("utf-8"))


def verify_credentials(db: DbClient, email: Any, password: Any) -> str:
    """Check the pair against the stored credential record and return the admin email.

    Wrong email and wrong password fail the same way.
    """
    record = db.get_credentials()
    if (
        record is None
        or record.email is None
        or record.password is None
        or email is None
        or password is None
    ):
        raise InvalidCredentials()
    # Both fields are always compared.
    email_ok = _matches(record.email, email)
    password_ok = _matches(record.password, password)
    if not (email_ok and password_ok):
        logger.warning("Rejected login attempt")
        raise InvalidCredentials()
    return str(record.email)


def issue_token(
    email: str, secret: str, ttl_seconds: int, now: Optional[float] = None
) -> str:
    issued_at = int(now if now is not None else time.time())
    payload = {"email": email, "iat": issued_at, "exp": issued_at + ttl_seconds}
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, secret: str) -> AdminIdentity:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["email", "iat", "exp"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidArtifact("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise InvalidArtifact() from e
    return AdminIdentity(email=str(payload["email"]), expires_at=float(payload["exp"]))


def cookie_kwargs(
    settings: Settings, key: str, value: str, max_age: Optional[int] = None
) -> dict:
    return {
        "key": key,
        "value": value,
        "max_age": max_age if max_age is not None else settings.token_ttl_seconds,
        "httponly": True,
        "secure": settings.cookie_secure,
        # Browsers only accept SameSite=None together with Secure.
        "samesite": "none" if settings.cookie_secure else "lax",
        "path": "/",
    }


def clear_cookie_kwargs(settings: Settings, key: str) -> dict:
    return {
        "key": key,
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": "none" if settings.cookie_secure else "lax",
        "path": "/",
    }


class ArtifactStrategy(Protocol):
    def issue(self, email: str, response: Response) -> dict:
        """Attach the artifact to ``response``; return extra body fields."""
        ...

    def authenticate(self, request: Request) -> AdminIdentity:
        ...

    def revoke(self, request: Request, response: Response) -> None:
        ...


class CookieTokenStrategy:
    def __init__(self, settings: Settings):
        self.settings = settings

    def issue(self, email: str, response: Response) -> dict:
        token = issue_token(
            email, self.settings.jwt_secret, self.settings.token_ttl_seconds
        )
        response.set_cookie(**cookie_kwargs(self.settings, TOKEN_COOKIE_NAME, token))
        return {}

    def authenticate(self, request: Request) -> AdminIdentity:
        token = request.cookies.get(TOKEN_COOKIE_NAME)
        if not token:
            raise Unauthenticated()
        return decode_token(token, self.settings.jwt_secret)

    def revoke(self, request: Request, response: Response) -> None:
        response.delete_cookie(**clear_cookie_kwargs(self.settings, TOKEN_COOKIE_NAME))


class BearerTokenStrategy:
    def __init__(self, settings: Settings):
        self.settings = settings

    def issue(self, email: str, response: Response) -> dict:
        token = issue_token(
            email, self.settings.jwt_secret, self.settings.token_ttl_seconds
        )
        return {"token": token}

    def authenticate(self, request: Request) -> AdminIdentity:
        header = request.headers.get("authorization") or ""
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise Unauthenticated()
        return decode_token(token.strip(), self.settings.jwt_secret)

    def revoke(self, request: Request, response: Response) -> None:
        # Stateless tokens cannot be revoked; they lapse at expiry.
        return None


class SessionStrategy:
    def __init__(self, settings: Settings, store: SessionStore):
        self.settings = settings
        self.store = store

    def issue(self, email: str, response: Response) -> dict:
        record = self.store.create(email, self.settings.token_ttl_seconds)
        response.set_cookie(
            **cookie_kwargs(self.settings, SESSION_COOKIE_NAME, record.session_id)
        )
        return {}

    def authenticate(self, request: Request) -> AdminIdentity:
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        if not session_id:
            raise Unauthenticated()
        record = self.store.get(session_id)
        if record is None:
            raise InvalidArtifact("Session expired or invalid")
        return AdminIdentity(email=record.email, expires_at=record.expires_at)

    def revoke(self, request: Request, response: Response) -> None:
        session_id = request.cookies.get(SESSION_COOKIE_NAME)
        if session_id:
            self.store.delete(session_id)
            logger.info("Session revoked")
        response.delete_cookie(**clear_cookie_kwargs(self.settings, SESSION_COOKIE_NAME))


def build_strategy(settings: Settings, session_store: SessionStore) -> ArtifactStrategy:
    if settings.auth_mode == "bearer":
        return BearerTokenStrategy(settings)
    if settings.auth_mode == "session":
        return SessionStrategy(settings, session_store)
    return CookieTokenStrategy(settings)
