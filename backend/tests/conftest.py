"""
Pytest configuration for the catalog service.

Provides fixtures for:
- An in-memory SQLite database per test
- Record store / lifecycle wired to a local asset directory under tmp_path
- A FastAPI TestClient with the database and storage dependencies overridden
"""

from __future__ import annotations

import os
import tempfile
from decimal import Decimal
from typing import Any, Callable, Generator

# Must be set before the app modules read settings
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ASSETS_DIR", tempfile.mkdtemp(prefix="catalog-assets-"))
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")
os.environ.setdefault("ASSET_BACKEND", "local")

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.db.base import Base
from app.db.models.product import Product
from app.db.session import build_engine
from app.services.product_lifecycle import ProductLifecycle
from app.services.product_store import ProductStore
from app.storage.attachments import AttachmentManager
from app.storage.local_storage import LocalAssetStorage
from app.utils.record_locks import RecordLocks


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with the catalog schema."""
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def storage(tmp_path) -> LocalAssetStorage:
    return LocalAssetStorage(tmp_path / "assets")


@pytest.fixture
def attachments(storage: LocalAssetStorage) -> Generator[AttachmentManager, None, None]:
    manager = AttachmentManager(storage, timeout=5.0, max_bytes=1024)
    try:
        yield manager
    finally:
        manager.shutdown()


@pytest.fixture
def store(session: Session) -> ProductStore:
    return ProductStore(session)


@pytest.fixture
def lifecycle(session: Session, attachments: AttachmentManager) -> ProductLifecycle:
    return ProductLifecycle(session, attachments, locks=RecordLocks())


def product_fields(**overrides: Any) -> dict[str, Any]:
    fields = {
        "name": "Plain Tee",
        "details": "Cotton crew neck",
        "size": "M",
        "color": "white",
        "category": "shirts",
        "price": Decimal("15.00"),
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def make_product(store: ProductStore) -> Callable[..., Product]:
    """Create a product through the store, overriding any default field."""

    def _make(**overrides: Any) -> Product:
        return store.create(product_fields(**overrides))

    return _make


@pytest.fixture
def png_bytes() -> bytes:
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def new_fields() -> Callable[..., dict[str, Any]]:
    """Factory for a valid create payload."""
    return product_fields
