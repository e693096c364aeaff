import pytest

from conftest import make_product
from errors import DataValidationError
from schemas import ProductUpdate


def test_create_and_get_product(store, clock):
    product = make_product(store, "HP-1", inventory=5, price=149.99)
    assert product.id == 1
    assert product.created_at == clock.now
    assert store.get_product_by_id(1) == product
    assert store.get_product_by_id(2) is None


def test_duplicate_sku_rejected(store):
    make_product(store, "DUP")
    with pytest.raises(DataValidationError):
        make_product(store, "DUP")


def test_update_product_partial(store):
    product = make_product(store, "A", inventory=5, price=10.0)
    updated = store.update_product(product.id, ProductUpdate(price=12.5))
    assert updated.price == 12.5
    assert updated.inventory == 5
    assert updated.sku == "A"


def test_update_product_clamps_negative_inventory(store, caplog):
    product = make_product(store, "A", inventory=5)
    with caplog.at_level("WARNING"):
        updated = store.update_product(product.id, {"inventory": -3})
    assert updated.inventory == 0
    assert store.get_product_by_id(product.id).inventory == 0
    assert "clamping" in caplog.text


def test_update_product_rejects_taken_sku(store):
    make_product(store, "A")
    b = make_product(store, "B")
    with pytest.raises(DataValidationError):
        store.update_product(b.id, {"sku": "A"})


def test_update_missing_product_returns_none(store):
    assert store.update_product(42, {"price": 1.0}) is None


def test_delete_product(store):
    product = make_product(store, "A")
    assert store.delete_product(product.id) is True
    assert store.delete_product(product.id) is False
    assert store.get_products() == []


def test_search_matches_name_description_or_category(store):
    make_product(store, "A", name="Running Shoes", category="Fashion")
    make_product(store, "B", name="Water Bottle", description="Keeps drinks COLD", category="Home")
    make_product(store, "C", name="Headphones", category="Electronics")

    assert [p.sku for p in store.search_products("shoes")] == ["A"]
    assert [p.sku for p in store.search_products("cold")] == ["B"]
    assert [p.sku for p in store.search_products("ELECTRO")] == ["C"]
    assert store.search_products("nothing-like-this") == []


def test_featured_and_category_filters(store):
    make_product(store, "A", category="Fashion", featured=True)
    make_product(store, "B", category="fashion")
    make_product(store, "C", category="Electronics", featured=True)

    assert {p.sku for p in store.get_featured_products()} == {"A", "C"}
    assert {p.sku for p in store.get_products_by_category_name("FASHION")} == {"A", "B"}
