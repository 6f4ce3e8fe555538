"""
HTTP routes for the gallery API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, Response, UploadFile

from gallery.auth import (
    AdminIdentity,
    ArtifactStrategy,
    clear_cookie_kwargs,
    cookie_kwargs,
    verify_credentials,
)
from gallery.config import get_settings
from gallery.db import DbClient
from gallery.dependencies import (
    get_artifact_strategy,
    get_asset_host,
    get_db_client,
    get_mailer,
    get_otp_store,
    require_admin,
    require_api_key,
)
from gallery.errors import OtpDeliveryFailed
from gallery.gallery import delete_entry, list_entries
from gallery.mailer import Mailer
from gallery.otp import OtpStore, send_otp, verify_otp
from gallery.schemas import (
    AuthStatusResponse,
    DeleteRequest,
    ImageEntry,
    LoginRequest,
    LoginResponse,
    SendOtpResponse,
    SuccessResponse,
    UploadResponse,
    VerifyOtpRequest,
)
from gallery.storage import AssetHost
from gallery.uploads import read_upload_files, upload_images, validate_files

logger = logging.getLogger(__name__)

OTP_COOKIE_NAME = "otp_id"

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.post(
    "/login", response_model=LoginResponse, response_model_exclude_none=True
)
def login(
    payload: LoginRequest,
    response: Response,
    db: DbClient = Depends(get_db_client),
    strategy: ArtifactStrategy = Depends(get_artifact_strategy),
):
    email = verify_credentials(db, payload.email, payload.password)
    extra = strategy.issue(email, response)
    logger.info("Admin login succeeded")
    return LoginResponse(**extra)


@router.post("/logout", response_model=SuccessResponse)
def logout(
    request: Request,
    response: Response,
    strategy: ArtifactStrategy = Depends(get_artifact_strategy),
):
    strategy.revoke(request, response)
    return SuccessResponse()


@router.get("/check-auth", response_model=AuthStatusResponse)
@router.get("/verify-token", response_model=AuthStatusResponse)
def check_auth(admin: AdminIdentity = Depends(require_admin)):
    return AuthStatusResponse(email=admin.email)


@router.post("/upload", response_model=UploadResponse)
async def upload(
    images: Optional[list[UploadFile]] = File(None),
    admin: AdminIdentity = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    host: AssetHost = Depends(get_asset_host),
):
    settings = get_settings()
    files = await read_upload_files(images or [])
    validate_files(
        files,
        enforce_policy=settings.enforce_upload_policy,
        max_bytes=settings.max_upload_bytes,
    )
    entries = await upload_images(
        files,
        settings.upload_folder,
        db=db,
        host=host,
        concurrency=settings.upload_concurrency,
    )
    return UploadResponse(images=[ImageEntry(**e.as_dict()) for e in entries])


@router.get("/images", response_model=list[ImageEntry])
def images(
    admin: AdminIdentity = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    return [ImageEntry(**e.as_dict()) for e in list_entries(db)]


@router.post("/delete", response_model=SuccessResponse)
def delete(
    payload: Optional[DeleteRequest] = None,
    admin: AdminIdentity = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
    host: AssetHost = Depends(get_asset_host),
):
    payload = payload or DeleteRequest()
    delete_entry(db, host, payload.key, payload.public_id)
    return SuccessResponse()


@router.post("/send-otp", response_model=SendOtpResponse)
def send_otp_code(
    response: Response,
    db: DbClient = Depends(get_db_client),
    store: OtpStore = Depends(get_otp_store),
    mailer: Mailer = Depends(get_mailer),
):
    settings = get_settings()
    recipient = settings.otp_recipient
    if not recipient:
        record = db.get_credentials()
        recipient = record.email if record else None
    if not recipient:
        raise OtpDeliveryFailed("No OTP recipient configured")

    otp_id = send_otp(store, mailer, str(recipient), settings.otp_ttl_seconds)
    response.set_cookie(
        **cookie_kwargs(
            settings, OTP_COOKIE_NAME, otp_id, max_age=settings.otp_ttl_seconds
        )
    )
    return SendOtpResponse(otp_id=otp_id)


@router.post("/verify-otp", response_model=SuccessResponse)
def verify_otp_code(
    request: Request,
    response: Response,
    payload: Optional[VerifyOtpRequest] = None,
    store: OtpStore = Depends(get_otp_store),
):
    payload = payload or VerifyOtpRequest()
    otp_id = payload.otp_id or request.cookies.get(OTP_COOKIE_NAME)
    verify_otp(store, otp_id, payload.otp)
    response.delete_cookie(**clear_cookie_kwargs(get_settings(), OTP_COOKIE_NAME))
    return SuccessResponse()
