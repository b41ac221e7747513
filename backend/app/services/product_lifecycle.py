"""Create/update/soft-delete/restore orchestration over store and attachments."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidStateError
from app.db.models.product import Product
from app.services.product_store import ProductStore, clean_fields
from app.storage.attachments import AttachmentManager, ImageUpload
from app.utils.record_locks import RecordLocks, record_locks

logger = logging.getLogger(__name__)


def _as_fields(payload: BaseModel | Mapping[str, Any] | None) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_none=True)
    return dict(payload)


class ProductLifecycle:
    """Visibility state machine for a single product: Active <-> Deleted.

    Every operation validates all input before touching storage or the
    database, and mutations to one record id are serialized. Image I/O
    happens outside the record lock; only the ``image_ref`` swap is locked.
    """

    def __init__(
        self,
        session: Session,
        attachments: AttachmentManager,
        locks: RecordLocks = record_locks,
    ) -> None:
        self.store = ProductStore(session)
        self.attachments = attachments
        self.locks = locks

    def create(
        self,
        payload: BaseModel | Mapping[str, Any],
        image: ImageUpload | None = None,
    ) -> Product:
        fields = _as_fields(payload)
        fields.pop("image_ref", None)
        clean_fields(fields, partial=False)
        if image is not None:
            self.attachments.validate(image)

        image_ref = None
        if image is not None:
            image_ref = self.attachments.store(image.content, image.filename)
        try:
            return self.store.create({**fields, "image_ref": image_ref})
        except Exception:
            if image_ref is not None:
                self.attachments.release_quietly(image_ref)
            raise

    def update(
        self,
        product_id: int,
        payload: BaseModel | Mapping[str, Any] | None,
        image: ImageUpload | None = None,
    ) -> Product:
        fields = _as_fields(payload)
        fields.pop("image_ref", None)
        clean_fields(fields, partial=True)
        if image is not None:
            self.attachments.validate(image)

        current = self.store.get(product_id)
        if current.is_deleted:
            raise InvalidStateError(
                f"Product {product_id} is deleted; restore it before editing"
            )

        if image is None:
            with self.locks.hold(product_id):
                self._ensure_active(product_id)
                return self.store.update(product_id, fields)

        updated: dict[str, Product] = {}

        def swap(new_ref: str) -> str | None:
            with self.locks.hold(product_id):
                product, displaced = self.store.swap_image_ref(
                    product_id, new_ref, fields
                )
            updated["product"] = product
            return displaced

        self.attachments.replace(current.image_ref, image.content, image.filename, swap)
        return updated["product"]

    def soft_delete(self, product_id: int) -> Product:
        """Active -> Deleted. The attached image is kept for a later restore."""
        with self.locks.hold(product_id):
            return self.store.soft_delete(product_id)

    def restore(self, product_id: int) -> Product:
        """Deleted -> Active; raises InvalidStateError on an active record."""
        with self.locks.hold(product_id):
            return self.store.restore(product_id)

    def _ensure_active(self, product_id: int) -> None:
        if self.store.get(product_id).is_deleted:
            raise InvalidStateError(
                f"Product {product_id} is deleted; restore it before editing"
            )
