"""
Server-side session store used by the ``session`` auth mode.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production.
"""

from __future__ import annotations

import json
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis


@dataclass
class SessionRecord:
    session_id: str
    email: str
    expires_at: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


class SessionStore(Protocol):
    """Minimal interface for keyed, time-bound admin sessions."""

    def create(self, email: str, ttl_seconds: int) -> SessionRecord:
        ...

    def get(self, session_id: str) -> Optional[SessionRecord]:
        ...

    def delete(self, session_id: str) -> None:
        ...


def _new_session_id() -> str:
    return secrets.token_urlsafe(32)


@dataclass
class InMemorySessionStore:
    """Dict-backed sessions for testing/dev. Expired sessions are dropped on read."""

    sessions: dict[str, SessionRecord] = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def create(self, email: str, ttl_seconds: int) -> SessionRecord:
        record = SessionRecord(
            session_id=_new_session_id(),
            email=email,
            expires_at=time.time() + ttl_seconds,
        )
        with self._lock:
            self.sessions[record.session_id] = record
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self.sessions.get(session_id)
            if record and record.is_expired():
                del self.sessions[session_id]
                return None
            return record

    def delete(self, session_id: str) -> None:
        with self._lock:
            self.sessions.pop(session_id, None)


@dataclass
class RedisSessionStore:
    """Redis-backed sessions; Redis key expiry bounds the lifetime."""

    url: str
    key_prefix: str = "gallery:session:"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def create(self, email: str, ttl_seconds: int) -> SessionRecord:
        record = SessionRecord(
            session_id=_new_session_id(),
            email=email,
            expires_at=time.time() + ttl_seconds,
        )
        payload = json.dumps({"email": email, "expires_at": record.expires_at})
        self.client.set(self._key(record.session_id), payload, ex=ttl_seconds)
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        raw = self.client.get(self._key(session_id))
        if raw is None:
            return None
        data = json.loads(raw)
        record = SessionRecord(
            session_id=session_id,
            email=data["email"],
            expires_at=float(data["expires_at"]),
        )
        return None if record.is_expired() else record

    def delete(self, session_id: str) -> None:
        self.client.delete(self._key(session_id))
