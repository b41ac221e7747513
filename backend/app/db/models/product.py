"""SQLAlchemy model for product records."""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.types import DateTime

from app.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProductStatus(str, enum.Enum):
    ACTIVE = "active"
    DELETED = "deleted"


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    details = Column(Text, nullable=False)
    size = Column(String(64), nullable=False)
    color = Column(String(64), nullable=False)
    category = Column(String(128), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    image_ref = Column(String(255))
    status = Column(
        Enum(
            ProductStatus,
            name="product_status",
            native_enum=False,
            length=16,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=ProductStatus.ACTIVE,
    )
    deleted_at = Column(DateTime(timezone=True))
    # Microsecond python-side timestamps keep "newest first" ordering stable.
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "(status = 'deleted') = (deleted_at IS NOT NULL)",
            name="ck_products_status_matches_deleted_at",
        ),
        Index("ix_products_status_created_at", status, created_at),
        Index("ix_products_price", price),
    )

    @property
    def is_deleted(self) -> bool:
        return self.status == ProductStatus.DELETED

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} status={self.status}>"
