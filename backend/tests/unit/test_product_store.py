from decimal import Decimal

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.db.models.product import ProductStatus


def test_create_starts_active_without_deletion_marker(make_product):
    product = make_product(name="  Red Shirt ", price="19.99")

    assert product.id is not None
    assert product.name == "Red Shirt"
    assert product.price == Decimal("19.99")
    assert product.status == ProductStatus.ACTIVE
    assert product.deleted_at is None
    assert product.image_ref is None
    assert product.created_at is not None
    assert product.updated_at is not None


def test_create_reports_every_offending_field(store, new_fields):
    fields = new_fields(name="   ", price=Decimal("-1"))
    del fields["color"]

    with pytest.raises(ValidationError) as excinfo:
        store.create(fields)

    assert set(excinfo.value.fields) == {"name", "price", "color"}
    assert store.list().total == 0


@pytest.mark.parametrize("price", ["abc", "NaN", "Infinity", True, "123456789.00"])
def test_create_rejects_unusable_prices(store, new_fields, price):
    with pytest.raises(ValidationError) as excinfo:
        store.create(new_fields(price=price))
    assert "price" in excinfo.value.fields


def test_create_accepts_zero_price(make_product):
    assert make_product(price=0).price == Decimal("0.00")


def test_get_unknown_id_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.get(999)


def test_update_is_partial_and_bumps_updated_at(store, make_product):
    product = make_product()
    before = product.updated_at

    updated = store.update(product.id, {"color": "black", "price": "12.5"})

    assert updated.color == "black"
    assert updated.price == Decimal("12.50")
    assert updated.name == "Plain Tee"
    assert updated.updated_at >= before


def test_update_unknown_id_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.update(42, {"name": "Ghost"})


def test_update_rejects_invalid_values_without_writing(store, make_product):
    product = make_product()

    with pytest.raises(ValidationError) as excinfo:
        store.update(product.id, {"name": "", "status": "deleted", "price": None})

    assert set(excinfo.value.fields) == {"name", "status", "price"}
    assert store.get(product.id).name == "Plain Tee"


def test_soft_delete_sets_status_and_timestamp_together(store, make_product):
    product = make_product()

    deleted = store.soft_delete(product.id)

    assert deleted.status == ProductStatus.DELETED
    assert deleted.deleted_at is not None


def test_soft_delete_is_idempotent(store, make_product):
    product = make_product()
    first = store.soft_delete(product.id)
    first_state = (first.status, first.deleted_at, first.updated_at)

    second = store.soft_delete(product.id)

    assert (second.status, second.deleted_at, second.updated_at) == first_state


def test_soft_delete_unknown_id_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.soft_delete(7)


def test_restore_is_full_inverse_of_soft_delete(store, make_product):
    product = make_product()
    store.soft_delete(product.id)

    restored = store.restore(product.id)

    assert restored.status == ProductStatus.ACTIVE
    assert restored.deleted_at is None


def test_restore_active_record_fails_and_leaves_it_unchanged(store, make_product):
    product = make_product()
    before = (product.status, product.deleted_at, product.updated_at)

    with pytest.raises(InvalidStateError):
        store.restore(product.id)

    after = store.get(product.id)
    assert (after.status, after.deleted_at, after.updated_at) == before


def test_restore_unknown_id_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.restore(3)


def test_deleted_record_still_reachable_by_id(store, make_product):
    product = make_product()
    store.soft_delete(product.id)

    assert store.get(product.id).status == ProductStatus.DELETED


def test_database_rejects_status_without_deletion_timestamp(store, session, make_product):
    product = make_product()

    with pytest.raises(IntegrityError):
        session.execute(
            text("UPDATE products SET status = 'deleted' WHERE id = :id"),
            {"id": product.id},
        )
    session.rollback()


def test_referenced_image_refs_includes_deleted_records(store, make_product):
    kept = make_product(image_ref="a.png")
    gone = make_product(image_ref="b.png")
    make_product()
    store.soft_delete(gone.id)

    assert store.referenced_image_refs() == {"a.png", "b.png"}
    assert kept.image_ref == "a.png"
