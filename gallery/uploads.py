"""
Media upload pipeline: validate a batch of image files, send them to the asset
host with bounded concurrency, and persist one gallery entry per file.

A batch is all-or-nothing. If any file fails at the host, the assets that did
upload are destroyed and nothing is written to the gallery store. Results are
returned in input order.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from gallery.db import DbClient, GalleryEntry
from gallery.errors import (
    EmptyFile,
    FileTooLarge,
    GalleryError,
    NoFilesProvided,
    UnsupportedFileType,
    UpstreamUploadFailure,
)
from gallery.storage import DESTROY_NOT_FOUND, DESTROY_OK, AssetHost, HostedAsset

logger = logging.getLogger(__name__)


@dataclass
class IncomingFile:
    filename: Optional[str]
    content_type: Optional[str]
    data: bytes

    @property
    def label(self) -> str:
        return self.filename or "<unnamed>"


async def read_upload_files(files: Iterable[UploadFile]) -> list[IncomingFile]:
    incoming = []
    for upload in files:
        data = await upload.read()
        if not upload.filename and not data:
            # Blank file input submitted by a browser form.
            continue
        incoming.append(
            IncomingFile(
                filename=upload.filename,
                content_type=upload.content_type,
                data=data,
            )
        )
    return incoming


def validate_files(
    files: list[IncomingFile], *, enforce_policy: bool, max_bytes: int
) -> None:
    if not files:
        raise NoFilesProvided()
    for f in files:
        if not f.data:
            raise EmptyFile(f"Uploaded file is empty: {f.label}")
        if not enforce_policy:
            continue
        if not (f.content_type or "").startswith("image/"):
            raise UnsupportedFileType(f"Only image files are allowed: {f.label}")
        if len(f.data) > max_bytes:
            limit_mb = max_bytes / (1024 * 1024)
            raise FileTooLarge(f"File too large (max {limit_mb:g} MB): {f.label}")


async def _destroy_quietly(
    host: AssetHost, db: DbClient, public_id: str, reason: str
) -> None:
    try:
        result = await run_in_threadpool(host.destroy, public_id)
    except Exception as e:
        logger.warning("Rollback destroy of %s raised: %s", public_id, e)
        result = None
    if result in (DESTROY_OK, DESTROY_NOT_FOUND):
        return
    logger.warning("Asset %s survived rollback; flagging orphan", public_id)
    try:
        await run_in_threadpool(db.flag_orphan, public_id, None, reason)
    except GalleryError:
        logger.error("Could not flag orphaned asset %s", public_id)


async def _discard_assets(
    assets: list[HostedAsset],
    host: AssetHost,
    db: DbClient,
    concurrency: int,
    reason: str,
) -> None:
    semaphore = asyncio.Semaphore(concurrency)

    async def _one(asset: HostedAsset) -> None:
        async with semaphore:
            await _destroy_quietly(host, db, asset.public_id, reason)

    await asyncio.gather(*(_one(asset) for asset in assets))


async def _remove_entries(entries: list[GalleryEntry], db: DbClient) -> None:
    for entry in entries:
        try:
            await run_in_threadpool(db.remove_image, entry.key)
        except GalleryError:
            logger.error("Could not roll back gallery entry %s", entry.key)


async def upload_images(
    files: list[IncomingFile],
    folder: str,
    *,
    db: DbClient,
    host: AssetHost,
    concurrency: int = 4,
) -> list[GalleryEntry]:
    """Upload a validated batch and return the new gallery entries in input order."""
    if not files:
        raise NoFilesProvided()

    semaphore = asyncio.Semaphore(concurrency)

    async def _send(f: IncomingFile) -> HostedAsset:
        async with semaphore:
            return await run_in_threadpool(
                host.upload, f.data, folder, f.filename, f.content_type
            )

    results = await asyncio.gather(*(_send(f) for f in files), return_exceptions=True)

    uploaded = [r for r in results if isinstance(r, HostedAsset)]
    failures = [
        (f, r) for f, r in zip(files, results) if isinstance(r, BaseException)
    ]
    if failures:
        for f, err in failures:
            logger.error("Upload of %s failed: %s", f.label, err)
        await _discard_assets(
            uploaded, host, db, concurrency, reason="upload batch rolled back"
        )
        failed_names = ", ".join(f.label for f, _ in failures)
        raise UpstreamUploadFailure(f"Upload failed: {failed_names}")

    entries: list[GalleryEntry] = []
    try:
        for asset in uploaded:
            entry = await run_in_threadpool(
                db.push_image, asset.secure_url, asset.public_id
            )
            entries.append(entry)
    except GalleryError:
        logger.error(
            "Persisting batch failed after %d of %d entries; rolling back",
            len(entries),
            len(uploaded),
        )
        await _remove_entries(entries, db)
        await _discard_assets(
            uploaded, host, db, concurrency, reason="gallery write rolled back"
        )
        raise

    logger.info("Uploaded %d image(s) to %s", len(entries), folder)
    return entries
