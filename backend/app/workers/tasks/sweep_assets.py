"""Celery task that releases product images nobody references."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_settings
from app.core.exceptions import StorageError
from app.db.session import get_fresh_session
from app.services.asset_sweeper import sweep_orphaned_assets
from app.storage.attachments import build_attachment_manager
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="app.workers.tasks.sweep_assets")
def sweep_assets_task(self) -> list[str]:
    """Run one orphan sweep and return the released references."""
    settings = get_settings()
    session = get_fresh_session()
    attachments = build_attachment_manager(settings)
    try:
        return sweep_orphaned_assets(
            session, attachments, grace_seconds=settings.orphan_grace_seconds
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error during asset sweep: {e}", exc_info=True)
        raise
    except StorageError as e:
        logger.error(f"Storage error during asset sweep: {e}", exc_info=True)
        raise
    finally:
        session.close()
        attachments.shutdown()
