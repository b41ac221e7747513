"""Compose scope, keyword and sort predicates into product listing queries."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from sqlalchemy import Select, String, cast, false, func, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from app.api.schemas.product import DeletionScope, ProductListParams, ProductSort
from app.db.models.product import Product, ProductStatus

SEARCHABLE_COLUMNS = (
    Product.name,
    Product.category,
    Product.color,
    Product.size,
    Product.details,
)

# Stricter than Decimal(), which also accepts underscores and NaN
NUMERIC_KEYWORD = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?", re.ASCII)
CENT = Decimal("0.01")
MAX_PRICE = Decimal("99999999.99")


def parse_price_keyword(keyword: str) -> Decimal | None:
    """Return the keyword as a Decimal if it is a plain numeric literal."""
    text = keyword.strip()
    if not NUMERIC_KEYWORD.fullmatch(text):
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None


def storable_price(value: Decimal) -> Decimal | None:
    """The price column value equal to ``value``, or None if none can be."""
    try:
        cents = value.quantize(CENT)
    except InvalidOperation:
        return None
    if cents != value or abs(cents) > MAX_PRICE:
        return None
    return cents


def scope_predicate(scope: DeletionScope) -> ColumnElement[bool]:
    if scope is DeletionScope.ALL:
        return true()
    if scope is DeletionScope.DELETED:
        return Product.status == ProductStatus.DELETED
    return Product.status == ProductStatus.ACTIVE


def keyword_predicate(keyword: str | None) -> ColumnElement[bool] | None:
    """Numeric keywords match the price exactly; anything else is a text search.

    Text search is a case-insensitive substring match OR-ed across the text
    columns and the string form of the price.
    """
    if keyword is None or not keyword.strip():
        return None
    price = parse_price_keyword(keyword)
    if price is not None:
        cents = storable_price(price)
        # A number no stored price can equal matches nothing
        return false() if cents is None else Product.price == cents

    needle = keyword.strip().lower()
    columns = [*SEARCHABLE_COLUMNS, cast(Product.price, String)]
    return or_(
        *(func.lower(column).contains(needle, autoescape=True) for column in columns)
    )


def order_by_clauses(sort: ProductSort | None) -> list[ColumnElement]:
    if sort is ProductSort.PRICE_ASC:
        return [Product.price.asc(), Product.id.asc()]
    if sort is ProductSort.PRICE_DESC:
        return [Product.price.desc(), Product.id.asc()]
    return [Product.created_at.desc(), Product.id.desc()]


def where_clauses(params: ProductListParams) -> list[ColumnElement[bool]]:
    """Scope first, then the optional keyword filter."""
    clauses = [scope_predicate(params.scope)]
    keyword = keyword_predicate(params.keyword)
    if keyword is not None:
        clauses.append(keyword)
    return clauses


def build_list_query(params: ProductListParams) -> Select:
    return (
        select(Product)
        .where(*where_clauses(params))
        .order_by(*order_by_clauses(params.sort))
        .offset(params.offset)
        .limit(params.page_size)
    )


def build_count_query(params: ProductListParams) -> Select:
    return select(func.count(Product.id)).where(*where_clauses(params))
