"""
Pydantic schemas for the gallery API.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    # Compared as strings against the stored record, so any JSON scalar is accepted.
    email: Any = None
    password: Any = None


class LoginResponse(BaseModel):
    success: bool = True
    token: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool = True


class AuthStatusResponse(BaseModel):
    success: bool = True
    email: str


class ImageEntry(BaseModel):
    key: str
    url: str
    public_id: str


class UploadResponse(BaseModel):
    success: bool = True
    images: list[ImageEntry]


class DeleteRequest(BaseModel):
    key: Optional[str] = None
    public_id: Optional[str] = None


class SendOtpResponse(BaseModel):
    success: bool = True
    otp_id: str


class VerifyOtpRequest(BaseModel):
    otp: Any = None
    otp_id: Optional[str] = None
