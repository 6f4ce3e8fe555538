"""
Document store abstraction for the Firebase Realtime Database and an
in-memory test implementation.

Layout at the store::

    login/                 {email, password}           (singleton, read-only)
    galleryImages/{key}    {url, public_id}
    orphanedAssets/{key}   {public_id, gallery_key, reason, flagged_at}
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import firebase_admin
from firebase_admin import credentials
from firebase_admin import db as firebase_db
from firebase_admin import exceptions as firebase_exceptions

from gallery.errors import GalleryStoreError

logger = logging.getLogger(__name__)

LOGIN_PATH = "login"
GALLERY_PATH = "galleryImages"
ORPHANS_PATH = "orphanedAssets"


@dataclass
class CredentialRecord:
    email: Optional[str]
    password: Optional[str]


@dataclass
class GalleryEntry:
    key: str
    url: str
    public_id: str

    def as_dict(self) -> dict:
        return {"key": self.key, "url": self.url, "public_id": self.public_id}


@dataclass
class OrphanRecord:
    key: str
    public_id: Optional[str]
    gallery_key: Optional[str]
    reason: str
    flagged_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "public_id": self.public_id,
            "gallery_key": self.gallery_key,
            "reason": self.reason,
            "flagged_at": self.flagged_at,
        }


class DbClient(Protocol):
    """Interface for the document store."""

    def get_credentials(self) -> Optional[CredentialRecord]:
        ...

    def push_image(self, url: str, public_id: str) -> GalleryEntry:
        ...

    def get_image(self, key: str) -> Optional[GalleryEntry]:
        ...

    def list_images(self) -> list[GalleryEntry]:
        ...

    def remove_image(self, key: str) -> None:
        ...

    def flag_orphan(
        self, public_id: Optional[str], gallery_key: Optional[str], reason: str
    ) -> str:
        ...

    def list_orphans(self) -> list[OrphanRecord]:
        ...

    def clear_orphan(self, key: str) -> None:
        ...


def _credential_from_value(value) -> Optional[CredentialRecord]:
    if not isinstance(value, dict):
        return None
    return CredentialRecord(email=value.get("email"), password=value.get("password"))


def _entry_from_value(key: str, value) -> Optional[GalleryEntry]:
    if not isinstance(value, dict):
        return None
    return GalleryEntry(
        key=key, url=value.get("url", ""), public_id=value.get("public_id", "")
    )


class InMemoryDbClient:
    """Simple in-memory document store for development and tests."""

    def __init__(self, login: Optional[dict] = None):
        self.login: Optional[dict] = dict(login) if login else None
        self.images: Dict[str, dict] = {}
        self.orphans: Dict[str, OrphanRecord] = {}
        self._counter = 0
        self._lock = threading.Lock()

    def _next_key(self) -> str:
        # Sortable like Firebase push ids so insertion order survives sorting.
        with self._lock:
            self._counter += 1
            return f"-{self._counter:010d}{uuid.uuid4().hex[:8]}"

    def set_credentials(self, email, password) -> None:
        self.login = {"email": email, "password": password}

    def get_credentials(self) -> Optional[CredentialRecord]:
        return _credential_from_value(self.login)

    def push_image(self, url: str, public_id: str) -> GalleryEntry:
        key = self._next_key()
        self.images[key] = {"url": url, "public_id": public_id}
        return GalleryEntry(key=key, url=url, public_id=public_id)

    def get_image(self, key: str) -> Optional[GalleryEntry]:
        return _entry_from_value(key, self.images.get(key))

    def list_images(self) -> list[GalleryEntry]:
        entries = [
            GalleryEntry(key=key, url=value["url"], public_id=value["public_id"])
            for key, value in self.images.items()
        ]
        entries.reverse()
        return entries

    def remove_image(self, key: str) -> None:
        self.images.pop(key, None)

    def flag_orphan(
        self, public_id: Optional[str], gallery_key: Optional[str], reason: str
    ) -> str:
        key = self._next_key()
        self.orphans[key] = OrphanRecord(
            key=key, public_id=public_id, gallery_key=gallery_key, reason=reason
        )
        return key

    def list_orphans(self) -> list[OrphanRecord]:
        return list(self.orphans.values())

    def clear_orphan(self, key: str) -> None:
        self.orphans.pop(key, None)


class FirebaseDbClient:
    """
    Firebase Realtime Database implementation backed by ``firebase_admin.db``.
    """

    APP_NAME = "gallery"

    def __init__(self, service_account_key: str, database_url: str):
        if not service_account_key or not database_url:
            raise ValueError(
                "FIREBASE_SERVICE_ACCOUNT_KEY and FIREBASE_DB_URL are required"
            )
        try:
            self.app = firebase_admin.get_app(self.APP_NAME)
        except ValueError:
            cred = credentials.Certificate(json.loads(service_account_key))
            self.app = firebase_admin.initialize_app(
                cred, {"databaseURL": database_url}, name=self.APP_NAME
            )

    def _ref(self, path: str):
        return firebase_db.reference(path, app=self.app)

    def get_credentials(self) -> Optional[CredentialRecord]:
        try:
            value = self._ref(LOGIN_PATH).get()
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            logger.error("Reading credential record failed: %s", e)
            raise GalleryStoreError() from e
        return _credential_from_value(value)

    def push_image(self, url: str, public_id: str) -> GalleryEntry:
        try:
            ref = self._ref(GALLERY_PATH).push({"url": url, "public_id": public_id})
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            logger.error("Writing gallery entry for %s failed: %s", public_id, e)
            raise GalleryStoreError("Failed to save image record") from e
        return GalleryEntry(key=ref.key, url=url, public_id=public_id)

    def get_image(self, key: str) -> Optional[GalleryEntry]:
        try:
            value = self._ref(GALLERY_PATH).child(key).get()
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            logger.error("Reading gallery entry %s failed: %s", key, e)
            raise GalleryStoreError("Failed to fetch image record") from e
        return _entry_from_value(key, value)

    def list_images(self) -> list[GalleryEntry]:
        try:
            value = self._ref(GALLERY_PATH).order_by_key().get() or {}
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            logger.error("Listing gallery entries failed: %s", e)
            raise GalleryStoreError("Failed to fetch images") from e
        entries = [
            entry
            for entry in (_entry_from_value(key, item) for key, item in value.items())
            if entry is not None
        ]
        entries.reverse()
        return entries

    def remove_image(self, key: str) -> None:
        try:
            self._ref(GALLERY_PATH).child(key).delete()
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            logger.error("Removing gallery entry %s failed: %s", key, e)
            raise GalleryStoreError("Failed to remove image record") from e

    def flag_orphan(
        self, public_id: Optional[str], gallery_key: Optional[str], reason: str
    ) -> str:
        record = OrphanRecord(
            key="", public_id=public_id, gallery_key=gallery_key, reason=reason
        )
        try:
            ref = self._ref(ORPHANS_PATH).push(record.as_dict())
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            raise GalleryStoreError("Failed to flag orphan") from e
        return ref.key

    def list_orphans(self) -> list[OrphanRecord]:
        try:
            value = self._ref(ORPHANS_PATH).order_by_key().get() or {}
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            raise GalleryStoreError("Failed to fetch orphans") from e
        return [
            OrphanRecord(
                key=key,
                public_id=item.get("public_id"),
                gallery_key=item.get("gallery_key"),
                reason=item.get("reason", ""),
                flagged_at=item.get("flagged_at", 0.0),
            )
            for key, item in value.items()
            if isinstance(item, dict)
        ]

    def clear_orphan(self, key: str) -> None:
        try:
            self._ref(ORPHANS_PATH).child(key).delete()
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            raise GalleryStoreError("Failed to clear orphan") from e
