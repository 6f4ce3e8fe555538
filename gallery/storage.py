"""
Asset host abstraction for Cloudinary and in-memory testing.
"""

from __future__ import annotations

import io
import threading
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import cloudinary
import cloudinary.uploader

DESTROY_OK = "ok"
DESTROY_NOT_FOUND = "not found"


@dataclass
class HostedAsset:
    secure_url: str
    public_id: str


class AssetHost(Protocol):
    """Defines the operations the API needs from the media host."""

    def upload(
        self,
        data: bytes,
        folder: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> HostedAsset:
        ...

    def destroy(self, public_id: str) -> str:
        """Delete an asset; returns the host's result string ("ok", "not found", ...)."""
        ...


@dataclass
class InMemoryAssetHost:
    """Test double for asset host interactions."""

    base_url: str = "https://example.test/assets"
    assets: dict = field(default_factory=dict)
    fail_uploads: set = field(default_factory=set)
    destroy_result: Optional[str] = None

    def __post_init__(self):
        self._lock = threading.Lock()

    def upload(
        self,
        data: bytes,
        folder: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> HostedAsset:
        if filename and filename in self.fail_uploads:
            raise RuntimeError(f"upload rejected for {filename}")
        public_id = f"{folder}/{uuid.uuid4().hex[:12]}"
        with self._lock:
            self.assets[public_id] = data
        return HostedAsset(
            secure_url=f"{self.base_url}/{public_id}", public_id=public_id
        )

    def destroy(self, public_id: str) -> str:
        if self.destroy_result is not None:
            return self.destroy_result
        with self._lock:
            if self.assets.pop(public_id, None) is None:
                return DESTROY_NOT_FOUND
        return DESTROY_OK


@dataclass
class CloudinaryAssetHost:
    """
    Cloudinary-backed host. Uploads are streamed from memory as image resources.
    """

    cloud_name: str
    api_key: str
    api_secret: str

    def __post_init__(self):
        cloudinary.config(
            cloud_name=self.cloud_name,
            api_key=self.api_key,
            api_secret=self.api_secret,
            secure=True,
        )

    def upload(
        self,
        data: bytes,
        folder: str,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> HostedAsset:
        result = cloudinary.uploader.upload(
            io.BytesIO(data),
            folder=folder,
            resource_type="image",
            overwrite=False,
        )
        url = result.get("secure_url") or result.get("url")
        public_id = result.get("public_id")
        if not url or not public_id:
            raise RuntimeError(f"Cloudinary returned an incomplete result: {result}")
        return HostedAsset(secure_url=url, public_id=public_id)

    def destroy(self, public_id: str) -> str:
        result = cloudinary.uploader.destroy(public_id, invalidate=True)
        return str(result.get("result", ""))
