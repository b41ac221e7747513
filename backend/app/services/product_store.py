"""Persistence primitives for product records, including soft delete/restore."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.schemas.product import ProductListParams
from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.db.models.product import Product, ProductStatus, utcnow
from app.services.product_query import (
    CENT,
    MAX_PRICE,
    build_count_query,
    build_list_query,
)

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("name", "details", "size", "color", "category")
REQUIRED_FIELDS = (*TEXT_FIELDS, "price")
UPDATABLE_FIELDS = frozenset((*REQUIRED_FIELDS, "image_ref"))


@dataclass
class ProductPage:
    items: list[Product]
    total: int
    page: int
    page_size: int


def _clean_price(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError("must be a number")
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError("must be a number") from e
    if not price.is_finite():
        raise ValueError("must be a finite number")
    if price < 0:
        raise ValueError("must be greater than or equal to 0")
    if price > MAX_PRICE:
        raise ValueError("is too large")
    return price.quantize(CENT)


def clean_fields(fields: Mapping[str, Any], *, partial: bool) -> dict[str, Any]:
    """Trim text fields and normalise price, collecting every problem at once."""
    errors: dict[str, str] = {}
    cleaned: dict[str, Any] = {}

    unknown = set(fields) - UPDATABLE_FIELDS
    for name in sorted(unknown):
        errors[name] = "is not an editable field"

    if not partial:
        for name in REQUIRED_FIELDS:
            if fields.get(name) is None:
                errors[name] = "is required"

    for name in TEXT_FIELDS:
        if name not in fields or fields[name] is None:
            if partial and name in fields:
                errors[name] = "cannot be null"
            continue
        value = fields[name]
        if not isinstance(value, str) or not value.strip():
            errors[name] = "cannot be empty"
            continue
        cleaned[name] = value.strip()

    if fields.get("price") is not None:
        try:
            cleaned["price"] = _clean_price(fields["price"])
        except ValueError as e:
            errors["price"] = str(e)
    elif partial and "price" in fields:
        errors["price"] = "cannot be null"

    if "image_ref" in fields:
        ref = fields["image_ref"]
        if ref is not None and (not isinstance(ref, str) or not ref.strip()):
            errors["image_ref"] = "must be a non-empty reference or null"
        else:
            cleaned["image_ref"] = ref

    if errors:
        raise ValidationError(errors)
    return cleaned


class ProductStore:
    """Record store over the ``products`` table.

    Every mutating method commits its own transaction and returns the
    refreshed record. Database errors roll the session back and propagate.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, product_id: int) -> Product:
        """Direct lookup by id; soft-deleted records are returned too."""
        product = self.session.get(Product, product_id, populate_existing=True)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    def create(self, fields: Mapping[str, Any]) -> Product:
        cleaned = clean_fields(fields, partial=False)
        product = Product(**cleaned, status=ProductStatus.ACTIVE, deleted_at=None)
        try:
            self.session.add(product)
            self.session.commit()
            self.session.refresh(product)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error creating product: {e}", exc_info=True)
            raise
        logger.info(f"Created product {product.id}")
        return product

    def update(self, product_id: int, fields: Mapping[str, Any]) -> Product:
        """Partial update of editable fields inside one transaction."""
        cleaned = clean_fields(fields, partial=True)
        try:
            product = self.session.scalar(
                select(Product)
                .where(Product.id == product_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if product is None:
                self.session.rollback()
                raise NotFoundError(f"Product {product_id} not found")
            for name, value in cleaned.items():
                setattr(product, name, value)
            product.updated_at = utcnow()
            self.session.commit()
            self.session.refresh(product)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                f"Database error updating product {product_id}: {e}", exc_info=True
            )
            raise
        logger.info(f"Updated product {product_id} fields={sorted(cleaned)}")
        return product

    def swap_image_ref(
        self, product_id: int, new_ref: str, fields: Mapping[str, Any] | None = None
    ) -> tuple[Product, str | None]:
        """Point the record at ``new_ref`` and return the reference it displaced.

        Field edits, if any, are written in the same transaction. Only active
        records accept a new image.
        """
        cleaned = clean_fields(dict(fields or {}), partial=True)
        try:
            product = self.session.scalar(
                select(Product)
                .where(Product.id == product_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            if product is None:
                self.session.rollback()
                raise NotFoundError(f"Product {product_id} not found")
            if product.is_deleted:
                self.session.rollback()
                raise InvalidStateError(f"Product {product_id} is deleted")
            displaced = product.image_ref
            for name, value in cleaned.items():
                setattr(product, name, value)
            product.image_ref = new_ref
            product.updated_at = utcnow()
            self.session.commit()
            self.session.refresh(product)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                f"Database error swapping image for product {product_id}: {e}",
                exc_info=True,
            )
            raise
        logger.info(f"Product {product_id} image {displaced!r} -> {new_ref!r}")
        return product, displaced

    def soft_delete(self, product_id: int) -> Product:
        """Mark the record deleted in one statement; repeat calls are no-ops."""
        now = utcnow()
        result = self._transition(
            update(Product)
            .where(Product.id == product_id, Product.status == ProductStatus.ACTIVE)
            .values(status=ProductStatus.DELETED, deleted_at=now, updated_at=now),
            product_id,
            "soft deleting",
        )
        product = self.get(product_id)
        if result:
            logger.info(f"Soft deleted product {product_id}")
        else:
            logger.info(f"Product {product_id} already deleted, nothing to do")
        return product

    def restore(self, product_id: int) -> Product:
        """Bring a deleted record back; restoring an active record is an error."""
        result = self._transition(
            update(Product)
            .where(Product.id == product_id, Product.status == ProductStatus.DELETED)
            .values(status=ProductStatus.ACTIVE, deleted_at=None, updated_at=utcnow()),
            product_id,
            "restoring",
        )
        product = self.get(product_id)
        if not result:
            raise InvalidStateError(f"Product {product_id} is not deleted")
        logger.info(f"Restored product {product_id}")
        return product

    def _transition(self, stmt, product_id: int, action: str) -> int:
        try:
            rowcount = self.session.execute(
                stmt.execution_options(synchronize_session=False)
            ).rowcount
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                f"Database error {action} product {product_id}: {e}", exc_info=True
            )
            raise
        return rowcount

    def list(self, params: ProductListParams | None = None) -> ProductPage:
        """Run a listing query; deleted rows only appear when the scope asks."""
        params = params or ProductListParams()
        try:
            total = self.session.scalar(build_count_query(params)) or 0
            items = list(self.session.scalars(build_list_query(params)).all())
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error listing products: {e}", exc_info=True)
            raise
        return ProductPage(
            items=items, total=total, page=params.page, page_size=params.page_size
        )

    def referenced_image_refs(self) -> set[str]:
        """Asset references currently held by any record, deleted ones included."""
        rows = self.session.scalars(
            select(Product.image_ref).where(Product.image_ref.is_not(None))
        )
        return set(rows)
