"""
Email one-time-password side-channel.

Codes are kept per OTP id rather than in a single global slot, so two
concurrent requests never overwrite each other. A code is single-use: it is
deleted as soon as it verifies.
"""

from __future__ import annotations

import hmac
import json
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis

from gallery.errors import OtpDeliveryFailed, OtpExpired, OtpMismatch
from gallery.mailer import Mailer

logger = logging.getLogger(__name__)

OTP_SUBJECT = "Your login OTP"


@dataclass
class OtpRecord:
    code: str
    expires_at: float


class OtpStore(Protocol):
    def put(self, otp_id: str, record: OtpRecord) -> None:
        ...

    def get(self, otp_id: str) -> Optional[OtpRecord]:
        ...

    def delete(self, otp_id: str) -> None:
        ...

    def pop(self, otp_id: str) -> Optional[OtpRecord]:
        """Remove and return the record in one step; ``None`` if it was already gone."""
        ...


@dataclass
class InMemoryOtpStore:
    """
    Process-local store. Expired codes are swept on every write, and at most
    ``max_records`` codes are live at once; the oldest is evicted first.
    """

    records: dict[str, OtpRecord] = field(default_factory=dict)
    max_records: int = 1000

    def __post_init__(self):
        self._lock = threading.Lock()

    def put(self, otp_id: str, record: OtpRecord) -> None:
        now = time.time()
        with self._lock:
            for stale in [k for k, r in self.records.items() if r.expires_at < now]:
                del self.records[stale]
            while self.records and len(self.records) >= self.max_records:
                evicted = next(iter(self.records))
                del self.records[evicted]
                logger.warning("OTP store full; evicted %s", evicted)
            self.records[otp_id] = record

    def get(self, otp_id: str) -> Optional[OtpRecord]:
        with self._lock:
            return self.records.get(otp_id)

    def delete(self, otp_id: str) -> None:
        with self._lock:
            self.records.pop(otp_id, None)

    def pop(self, otp_id: str) -> Optional[OtpRecord]:
        with self._lock:
            return self.records.pop(otp_id, None)


@dataclass
class RedisOtpStore:
    url: str
    key_prefix: str = "gallery:otp:"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def put(self, otp_id: str, record: OtpRecord) -> None:
        ttl = max(1, int(record.expires_at - time.time()) + 1)
        payload = json.dumps({"code": record.code, "expires_at": record.expires_at})
        self.client.set(f"{self.key_prefix}{otp_id}", payload, ex=ttl)

    def get(self, otp_id: str) -> Optional[OtpRecord]:
        return self._load(self.client.get(f"{self.key_prefix}{otp_id}"))

    def pop(self, otp_id: str) -> Optional[OtpRecord]:
        return self._load(self.client.getdel(f"{self.key_prefix}{otp_id}"))

    @staticmethod
    def _load(raw) -> Optional[OtpRecord]:
        if raw is None:
            return None
        data = json.loads(raw)
        return OtpRecord(code=data["code"], expires_at=float(data["expires_at"]))

    def delete(self, otp_id: str) -> None:
        self.client.delete(f"{self.key_prefix}{otp_id}")


def generate_code() -> str:
    """Return a 6-digit numeric code."""
    return str(100000 + secrets.randbelow(900000))


def send_otp(
    store: OtpStore,
    mailer: Mailer,
    recipient: str,
    ttl_seconds: int,
    now: Optional[float] = None,
) -> str:
    """Generate, store and email a code. Returns the OTP id the client must echo back."""
    otp_id = secrets.token_urlsafe(16)
    issued = now if now is not None else time.time()
    code = generate_code()
    store.put(otp_id, OtpRecord(code=code, expires_at=issued + ttl_seconds))

    minutes = max(1, ttl_seconds // 60)
    body = f"Your OTP is {code}. It is valid for {minutes} minutes."
    try:
        mailer.send(recipient, OTP_SUBJECT, body)
    except Exception as e:
        store.delete(otp_id)
        logger.error("Sending OTP to %s failed: %s", recipient, e)
        raise OtpDeliveryFailed() from e
    return otp_id


def verify_otp(
    store: OtpStore,
    otp_id: Optional[str],
    code: Optional[str],
    now: Optional[float] = None,
) -> None:
    """Raise ``OtpExpired``/``OtpMismatch`` unless ``code`` is the live code for ``otp_id``."""
    record = store.get(otp_id) if otp_id else None
    if record is None:
        raise OtpExpired()
    if (now if now is not None else time.time()) > record.expires_at:
        store.delete(otp_id)
        raise OtpExpired()
    if code is None or not hmac.compare_digest(
        str(code).strip().encode("utf-8"), record.code.encode("utf-8")
    ):
        raise OtpMismatch()
    if store.pop(otp_id) is None:
        # Consumed by a concurrent verify between the read and now.
        raise OtpExpired()
