"""Database models package."""
from app.db.models.product import Product, ProductStatus

__all__ = ["Product", "ProductStatus"]
