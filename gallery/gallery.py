"""
Gallery listing and the delete workflow.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from gallery.db import DbClient, GalleryEntry
from gallery.errors import (
    GalleryStoreError,
    InvalidParameters,
    MissingParameters,
    RemoteDeleteFailed,
)
from gallery.storage import DESTROY_NOT_FOUND, DESTROY_OK, AssetHost

logger = logging.getLogger(__name__)

# A gallery key must be one database path segment.
VALID_KEY = re.compile(r"[^.$#\[\]/?\x00-\x1f\x7f]+")


def list_entries(db: DbClient) -> list[GalleryEntry]:
    """All gallery entries, newest first."""
    return db.list_images()


def delete_entry(
    db: DbClient, host: AssetHost, key: Optional[str], public_id: Optional[str]
) -> None:
    """
    Delete the hosted asset, then the gallery record.

    The record is only removed once the host confirms the asset is gone
    ("ok", or "not found" for an asset that was already deleted). If the
    record removal then fails, the record is flagged as an orphan so it can
    be reconciled later.

    A key with no record is treated as already deleted and the host is left
    alone. A ``public_id`` that does not belong to the record at ``key`` is
    rejected before anything is destroyed.
    """
    if not key or not public_id:
        raise MissingParameters()
    if not VALID_KEY.fullmatch(key):
        raise InvalidParameters("Invalid key")

    entry = db.get_image(key)
    if entry is None:
        logger.info("No gallery entry %s; nothing to delete", key)
        return
    if entry.public_id != public_id:
        logger.warning(
            "Delete of %s named asset %s, record holds %s",
            key,
            public_id,
            entry.public_id,
        )
        raise InvalidParameters("public_id does not match key")

    try:
        result = host.destroy(public_id)
    except Exception as e:
        logger.error("Host delete of %s raised: %s", public_id, e)
        raise RemoteDeleteFailed() from e

    if result not in (DESTROY_OK, DESTROY_NOT_FOUND):
        logger.error("Host delete of %s returned %r; keeping record %s", public_id, result, key)
        raise RemoteDeleteFailed(f"Failed to delete image from host: {result}")
    if result == DESTROY_NOT_FOUND:
        logger.info("Asset %s was already gone at the host", public_id)

    try:
        db.remove_image(key)
    except GalleryStoreError:
        logger.error("Asset %s deleted but record %s remains; flagging", public_id, key)
        try:
            db.flag_orphan(public_id, key, "record left after host delete")
        except GalleryStoreError:
            logger.error("Could not flag orphaned record %s", key)
        raise

    logger.info("Deleted gallery entry %s (%s)", key, public_id)
