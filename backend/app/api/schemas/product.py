"""Pydantic models describing Product payloads and listing parameters."""

import enum
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import get_settings
from app.db.models.product import ProductStatus


class ProductSort(str, enum.Enum):
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"


class DeletionScope(str, enum.Enum):
    """Which lifecycle states a listing may return."""

    ACTIVE = "active"
    ALL = "all"
    DELETED = "deleted"


class ProductBase(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    details: str = Field(..., min_length=1)
    size: str = Field(..., min_length=1, max_length=64)
    color: str = Field(..., min_length=1, max_length=64)
    category: str = Field(..., min_length=1, max_length=128)
    price: Decimal = Field(
        ..., ge=0, max_digits=10, decimal_places=2, allow_inf_nan=False
    )


class ProductCreate(ProductBase):
    """Field set for a new catalog record (image travels separately)."""


class ProductUpdate(BaseModel):
    """Partial edit; omitted fields keep their current value."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(None, min_length=1, max_length=255)
    details: str | None = Field(None, min_length=1)
    size: str | None = Field(None, min_length=1, max_length=64)
    color: str | None = Field(None, min_length=1, max_length=64)
    category: str | None = Field(None, min_length=1, max_length=128)
    price: Decimal | None = Field(
        None, ge=0, max_digits=10, decimal_places=2, allow_inf_nan=False
    )


class ProductRead(BaseModel):
    id: int
    name: str
    details: str
    size: str
    color: str
    category: str
    price: Decimal
    image_ref: str | None = None
    status: ProductStatus
    deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProductListParams(BaseModel):
    """Typed listing request: keyword search, price sort, paging and scope."""

    keyword: str | None = None
    sort: ProductSort | None = None
    page: int = Field(1, ge=1)
    page_size: int = Field(
        default_factory=lambda: get_settings().default_page_size, ge=1
    )
    scope: DeletionScope = DeletionScope.ACTIVE

    @field_validator("keyword", mode="before")
    @classmethod
    def blank_keyword_is_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("sort", mode="before")
    @classmethod
    def unknown_sort_falls_back(cls, v):
        """Unrecognised sort values mean default ordering, never an error."""
        if isinstance(v, ProductSort):
            return v
        if isinstance(v, str):
            try:
                return ProductSort(v.strip().lower())
            except ValueError:
                return None
        return None

    @field_validator("page_size", mode="after")
    @classmethod
    def cap_page_size(cls, v: int) -> int:
        return min(v, get_settings().max_page_size)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class ProductListResponse(BaseModel):
    items: list[ProductRead]
    total: int
    page: int
    page_size: int
