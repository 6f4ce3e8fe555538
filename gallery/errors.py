"""
Error taxonomy for the gallery backend.

Every failure a route can surface is a ``GalleryError`` carrying its HTTP
status. The handlers registered by ``register_error_handlers`` render them, and
request-validation failures, as ``{"success": false, "error": <message>}``.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class GalleryError(Exception):
    status_code: int = 500
    message: str = "Internal error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidCredentials(GalleryError):
    status_code = 401
    message = "Invalid credentials"


class Unauthenticated(GalleryError):
    status_code = 401
    message = "Not authenticated"


class InvalidArtifact(GalleryError):
    status_code = 403
    message = "Invalid or expired token"


class InvalidApiKey(GalleryError):
    status_code = 401
    message = "Invalid API key"


class NoFilesProvided(GalleryError):
    status_code = 400
    message = "No files uploaded"


class EmptyFile(GalleryError):
    status_code = 400
    message = "Uploaded file is empty"


class UnsupportedFileType(GalleryError):
    status_code = 400
    message = "Only image files are allowed"


class FileTooLarge(GalleryError):
    status_code = 400
    message = "File too large"


class UpstreamUploadFailure(GalleryError):
    """Raised when any file of a batch fails at the asset host.

    The batch is rolled back, so no gallery entry is written.
    """

    status_code = 500
    message = "Upload failed"


class MissingParameters(GalleryError):
    status_code = 400
    message = "Missing key or public_id"


class InvalidParameters(GalleryError):
    status_code = 400
    message = "Invalid request parameters"


class RemoteDeleteFailed(GalleryError):
    status_code = 500
    message = "Failed to delete image from host"


class GalleryStoreError(GalleryError):
    status_code = 500
    message = "Gallery store unavailable"


class OtpExpired(GalleryError):
    status_code = 400
    message = "OTP expired"


class OtpMismatch(GalleryError):
    status_code = 400
    message = "Invalid OTP"


class OtpDeliveryFailed(GalleryError):
    status_code = 500
    message = "Failed to send OTP"


def _render(error: GalleryError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.message},
    )


async def _handle_gallery_error(request: Request, exc: GalleryError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _render(exc)


async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """A malformed login body is a failed login; anything else is a bad request."""
    logger.warning(
        "%s %s rejected malformed input: %s",
        request.method,
        request.url.path,
        [error.get("msg") for error in exc.errors()],
    )
    if request.url.path.rstrip("/").endswith("/login"):
        return _render(InvalidCredentials())
    return _render(InvalidParameters("Invalid request body"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GalleryError, _handle_gallery_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
