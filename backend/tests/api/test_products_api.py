import asyncio
import threading
from decimal import Decimal
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from app.api.dependencies.services import get_attachment_manager, get_session
from app.api.routers.products import delete_product, restore_product
from app.main import create_app
from app.services.product_store import ProductStore

FORM = {
    "name": "Red Shirt",
    "details": "Cotton tee",
    "size": "L",
    "color": "red",
    "category": "shirts",
    "price": "19.99",
}


@pytest.fixture
def client(session_factory, attachments) -> Generator[TestClient, None, None]:
    app = create_app()

    def _session():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_attachment_manager] = lambda: attachments
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, **overrides):
    data = {**FORM, **overrides}
    response = client.post("/api/products/", data=data)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_fetch(client):
    created = _create(client)

    assert created["status"] == "active"
    assert created["deleted_at"] is None
    fetched = client.get(f"/api/products/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Red Shirt"


def test_create_with_image_and_download_it(client, png_bytes):
    response = client.post(
        "/api/products/",
        data=FORM,
        files={"image": ("front.png", png_bytes, "image/png")},
    )
    assert response.status_code == 201, response.text
    product = response.json()
    assert product["image_ref"].endswith(".png")

    image = client.get(f"/api/products/{product['id']}/image")
    assert image.status_code == 200
    assert image.content == png_bytes
    assert image.headers["content-type"] == "image/png"


def test_create_validation_errors_are_422(client):
    response = client.post("/api/products/", data={**FORM, "price": "-1"})
    assert response.status_code == 422
    assert "price" in response.json()["detail"]["fields"]


def test_create_rejects_non_image_upload(client):
    response = client.post(
        "/api/products/",
        data=FORM,
        files={"image": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 422
    assert "image" in response.json()["detail"]["fields"]


def test_list_search_sort_and_paging(client):
    _create(client, name="Red Shirt", price="19.99")
    _create(client, name="Blue Hat", price="9.99", color="blue", category="hats")

    by_text = client.get("/api/products/", params={"keyword": "red"}).json()
    assert [p["name"] for p in by_text["items"]] == ["Red Shirt"]

    by_price = client.get("/api/products/", params={"keyword": "9.99"}).json()
    assert [p["name"] for p in by_price["items"]] == ["Blue Hat"]

    sorted_asc = client.get("/api/products/", params={"sort": "price-asc"}).json()
    assert [p["name"] for p in sorted_asc["items"]] == ["Blue Hat", "Red Shirt"]

    fallback = client.get("/api/products/", params={"sort": "sideways"})
    assert fallback.status_code == 200

    empty = client.get("/api/products/", params={"page": 5}).json()
    assert empty["items"] == []
    assert empty["total"] == 2
    assert empty["page_size"] == 3


def test_soft_delete_restore_cycle(client):
    product = _create(client)
    url = f"/api/products/{product['id']}"

    assert client.delete(url).status_code == 204
    assert client.delete(url).status_code == 204

    listed = client.get("/api/products/").json()
    assert listed["total"] == 0
    trash = client.get("/api/products/trash").json()
    assert [p["id"] for p in trash["items"]] == [product["id"]]
    everything = client.get("/api/products/", params={"include_deleted": True}).json()
    assert everything["total"] == 1

    deleted = client.get(url).json()
    assert deleted["status"] == "deleted"
    assert deleted["deleted_at"] is not None

    restored = client.post(f"{url}/restore")
    assert restored.status_code == 200
    assert restored.json()["status"] == "active"
    assert restored.json()["deleted_at"] is None

    again = client.post(f"{url}/restore")
    assert again.status_code == 409


def test_update_replaces_image(client, attachments, png_bytes):
    created = client.post(
        "/api/products/",
        data=FORM,
        files={"image": ("old.png", b"old-bytes", "image/png")},
    ).json()

    response = client.put(
        f"/api/products/{created['id']}",
        data={"price": "25.00"},
        files={"image": ("new.png", png_bytes, "image/png")},
    )

    assert response.status_code == 200, response.text
    updated = response.json()
    assert Decimal(str(updated["price"])) == Decimal("25.00")
    assert updated["image_ref"] != created["image_ref"]
    assert not attachments.exists(created["image_ref"])
    assert client.get(f"/api/products/{created['id']}/image").content == png_bytes


def test_update_deleted_product_conflicts(client):
    product = _create(client)
    client.delete(f"/api/products/{product['id']}")

    response = client.put(f"/api/products/{product['id']}", data={"name": "Edited"})

    assert response.status_code == 409


def test_unknown_ids_are_404(client):
    assert client.get("/api/products/999").status_code == 404
    assert client.get("/api/products/999/image").status_code == 404
    assert client.delete("/api/products/999").status_code == 404
    assert client.post("/api/products/999/restore").status_code == 404
    assert client.put("/api/products/999", data={"name": "x"}).status_code == 404


def test_liveness(client):
    assert client.get("/health/live").json()["status"] == "ok"


@pytest.mark.parametrize("action", ["delete", "restore"])
def test_lock_wait_does_not_block_the_event_loop(lifecycle, new_fields, action):
    product = lifecycle.create(new_fields())
    if action == "restore":
        lifecycle.soft_delete(product.id)
    handler = delete_product if action == "delete" else restore_product
    held = threading.Event()
    release = threading.Event()

    def hold_record() -> None:
        with lifecycle.locks.hold(product.id):
            held.set()
            release.wait(5)

    holder = threading.Thread(target=hold_record)
    holder.start()
    assert held.wait(5)

    async def scenario():
        pending = asyncio.create_task(handler(product.id, lifecycle=lifecycle))
        await asyncio.sleep(0.1)
        # The loop kept running while the handler waited on the record lock
        waiting = not pending.done()
        release.set()
        await asyncio.wait_for(pending, timeout=5)
        return waiting

    try:
        assert asyncio.run(scenario())
    finally:
        release.set()
        holder.join()


def test_malformed_image_reference_is_404(client, session_factory, new_fields):
    db = session_factory()
    try:
        product = ProductStore(db).create(new_fields(image_ref="../outside.png"))
    finally:
        db.close()

    assert client.get(f"/api/products/{product.id}/image").status_code == 404
