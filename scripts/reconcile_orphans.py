"""
Reconcile orphans flagged by the upload and delete workflows.

An orphan is either a hosted asset with no gallery record (an upload rollback
could not destroy it) or a gallery record whose asset is already gone (the
record removal failed after a successful host delete). This lists them and,
with --apply, retries the cleanup and clears each flag that succeeds.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from gallery.db import DbClient, OrphanRecord
from gallery.dependencies import get_asset_host, get_db_client
from gallery.storage import DESTROY_NOT_FOUND, DESTROY_OK, AssetHost


logger = logging.getLogger(__name__)


def reconcile_orphan(orphan: OrphanRecord, db: DbClient, host: AssetHost) -> bool:
    if orphan.public_id:
        result = host.destroy(orphan.public_id)
        if result not in (DESTROY_OK, DESTROY_NOT_FOUND):
            logger.warning(
                "Asset %s still present (host returned %r)", orphan.public_id, result
            )
            return False
    if orphan.gallery_key:
        db.remove_image(orphan.gallery_key)
    db.clear_orphan(orphan.key)
    return True


def reconcile(db: DbClient, host: AssetHost, *, apply: bool) -> tuple[int, int]:
    orphans = db.list_orphans()
    fixed = 0
    for orphan in orphans:
        logger.info(
            "orphan %s public_id=%s gallery_key=%s reason=%s",
            orphan.key,
            orphan.public_id,
            orphan.gallery_key,
            orphan.reason,
        )
        if not apply:
            continue
        try:
            if reconcile_orphan(orphan, db, host):
                fixed += 1
        except Exception as e:
            logger.error("Could not reconcile %s: %s", orphan.key, e)
    return len(orphans), fixed


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Retry cleanup for each orphan instead of only listing them.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    total, fixed = reconcile(get_db_client(), get_asset_host(), apply=args.apply)
    if args.apply:
        logger.info("Reconciled %d of %d orphan(s)", fixed, total)
    else:
        logger.info("Found %d orphan(s); rerun with --apply to clean up", total)
    return 0 if fixed == total or not args.apply else 1


if __name__ == "__main__":
    raise SystemExit(main())
