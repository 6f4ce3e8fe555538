"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import hmac
import logging

from fastapi import Depends, Request

from gallery.auth import AdminIdentity, ArtifactStrategy, build_strategy
from gallery.config import get_settings
from gallery.db import DbClient, FirebaseDbClient, InMemoryDbClient
from gallery.errors import InvalidApiKey
from gallery.mailer import InMemoryMailer, Mailer, SmtpMailer
from gallery.otp import InMemoryOtpStore, OtpStore, RedisOtpStore
from gallery.sessions import InMemorySessionStore, RedisSessionStore, SessionStore
from gallery.storage import AssetHost, CloudinaryAssetHost, InMemoryAssetHost

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_asset_host: AssetHost | None = None
_session_store: SessionStore | None = None
_otp_store: OtpStore | None = None
_mailer: Mailer | None = None
_strategy: ArtifactStrategy | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton document store client shared across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if (
        settings.use_in_memory_backends
        or not settings.firebase_service_account_key
        or not settings.firebase_db_url
    ):
        logger.warning("Firebase not configured; using in-memory document store")
        _db_client = InMemoryDbClient()
    else:
        _db_client = FirebaseDbClient(
            settings.firebase_service_account_key, settings.firebase_db_url
        )
    return _db_client


def get_asset_host() -> AssetHost:
    global _asset_host
    if _asset_host:
        return _asset_host

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.cloudinary_configured:
        _asset_host = InMemoryAssetHost()
    else:
        _asset_host = CloudinaryAssetHost(
            cloud_name=settings.cloudinary_cloud_name or "",
            api_key=settings.cloudinary_api_key or "",
            api_secret=settings.cloudinary_api_secret or "",
        )
    return _asset_host


def get_session_store() -> SessionStore:
    global _session_store
    if _session_store:
        return _session_store

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _session_store = RedisSessionStore(url=settings.redis_url)
    else:
        _session_store = InMemorySessionStore()
    return _session_store


def get_otp_store() -> OtpStore:
    global _otp_store
    if _otp_store:
        return _otp_store

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _otp_store = RedisOtpStore(url=settings.redis_url)
    else:
        _otp_store = InMemoryOtpStore()
    return _otp_store


def get_mailer() -> Mailer:
    global _mailer
    if _mailer:
        return _mailer

    settings = get_settings()
    if settings.smtp_host and not settings.use_in_memory_backends:
        _mailer = SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_sender,
        )
    else:
        _mailer = InMemoryMailer()
    return _mailer


def get_artifact_strategy() -> ArtifactStrategy:
    global _strategy
    if _strategy:
        return _strategy
    _strategy = build_strategy(get_settings(), get_session_store())
    return _strategy


def reset_clients() -> None:
    """Drop every cached client so the next request rebuilds them from settings."""
    global _db_client, _asset_host, _session_store, _otp_store, _mailer, _strategy
    _db_client = None
    _asset_host = None
    _session_store = None
    _otp_store = None
    _mailer = None
    _strategy = None


def require_api_key(request: Request) -> None:
    expected = get_settings().api_key
    if not expected:
        return
    provided = request.headers.get("x-api-key") or ""
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise InvalidApiKey()


def require_admin(
    request: Request,
    strategy: ArtifactStrategy = Depends(get_artifact_strategy),
) -> AdminIdentity:
    """Access guard for protected routes."""
    identity = strategy.authenticate(request)
    request.state.admin = identity
    return identity
