"""Request-scoped dependencies for the product routes."""

from collections.abc import Generator
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.db.session import get_db
from app.services.product_lifecycle import ProductLifecycle
from app.services.product_store import ProductStore
from app.storage.attachments import AttachmentManager, build_attachment_manager


def get_session() -> Generator[Session, None, None]:
    """Managed SQLAlchemy session, committed when the request succeeds."""
    yield from get_db()


@lru_cache
def get_attachment_manager() -> AttachmentManager:
    """One manager (and its I/O thread pool) per process."""
    return build_attachment_manager(get_settings())


def get_product_store(db: Session = Depends(get_session)) -> ProductStore:
    return ProductStore(db)


def get_lifecycle(
    db: Session = Depends(get_session),
    attachments: AttachmentManager = Depends(get_attachment_manager),
) -> ProductLifecycle:
    return ProductLifecycle(db, attachments)
