"""
Configuration and settings for the gallery backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")
    log_level: str = Field(default="INFO")

    # Firebase Realtime Database
    firebase_service_account_key: Optional[str] = Field(default=None)
    firebase_db_url: Optional[str] = Field(default=None)

    # Cloudinary
    cloudinary_cloud_name: Optional[str] = Field(default=None)
    cloudinary_api_key: Optional[str] = Field(default=None)
    cloudinary_api_secret: Optional[str] = Field(default=None)

    # Auth
    jwt_secret: str = Field(default="supersecret")
    auth_mode: Literal["cookie", "bearer", "session"] = Field(default="cookie")
    cookie_secure: bool = Field(default=True)
    token_ttl_seconds: int = Field(default=3600, ge=1)
    allowed_origin: str = Field(default="http://localhost:3000")
    api_key: Optional[str] = Field(default=None)

    # Uploads
    upload_folder: str = Field(default="gallery")
    enforce_upload_policy: bool = Field(default=True)
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, ge=1)
    upload_concurrency: int = Field(default=4, ge=1)

    # OTP / email
    otp_ttl_seconds: int = Field(default=300, ge=1)
    otp_recipient: Optional[str] = Field(default=None)
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_user: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_sender: Optional[str] = Field(default=None)

    # Session/OTP stores (Redis)
    redis_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    @property
    def cloudinary_configured(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
