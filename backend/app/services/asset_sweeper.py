"""Garbage-collect stored images that no product references any more."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.services.product_store import ProductStore
from app.storage.attachments import AttachmentManager, asset_ref_created_at

logger = logging.getLogger(__name__)


def sweep_orphaned_assets(
    session: Session,
    attachments: AttachmentManager,
    *,
    grace_seconds: int,
    now: datetime | None = None,
) -> list[str]:
    """Release unreferenced assets older than the grace period.

    Young assets are skipped because a create/update may have stored the
    image but not yet committed the record pointing at it. References that
    carry no timestamp are never touched.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=grace_seconds)
    referenced = ProductStore(session).referenced_image_refs()

    released: list[str] = []
    for ref in attachments.list_refs():
        if ref in referenced:
            continue
        created_at = asset_ref_created_at(ref)
        if created_at is None or created_at > cutoff:
            continue
        if attachments.release_quietly(ref):
            released.append(ref)

    logger.info(
        f"Asset sweep released {len(released)} orphan(s); "
        f"{len(referenced)} asset(s) still referenced"
    )
    return released
