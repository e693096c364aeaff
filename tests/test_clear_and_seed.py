from datetime import datetime

import pytest

from conftest import make_product, make_user, place_order
from errors import DataValidationError
from export import export_table_csv
from schemas import CartItemInput, HashedCredential
from seed import historical_orders, seed_sample_data
from security import verify_password
from storage import DataStore


def test_clear_all_data_preserves_users(store, data_dir, clock):
    alice = make_user(store, "alice")
    make_user(store, "bob")
    p1 = make_product(store, "A")
    make_product(store, "B")
    make_product(store, "C")
    place_order(store, alice.id, [(p1.id, 1)])
    store.update_user_cart(alice.id, [CartItemInput(product_id=p1.id, quantity=1)])

    assert store.clear_all_data() is True

    assert len(store.get_users()) == 2
    assert store.get_products() == []
    assert store.get_orders() == []
    assert store.get_order_items_by_order_id(1) == []
    assert store.get_user_cart(alice.id) == []
    assert make_product(store, "D").id == 1

    reloaded = DataStore(data_dir, seed=False, clock=clock)
    reloaded.init()
    assert len(reloaded.get_users()) == 2
    assert [p.sku for p in reloaded.get_products()] == ["D"]
    assert reloaded.get_orders() == []


def test_seeded_store(tmp_path, clock):
    clock.now = datetime(2026, 5, 14, 12, 0)
    s = DataStore(tmp_path / "data", clock=clock)
    s.init()

    admin = s.get_user_by_username("admin")
    assert admin.is_admin
    assert isinstance(admin.password, HashedCredential)
    assert verify_password("admin123", admin.password)

    assert len(s.get_products()) == 6
    assert len(s.get_featured_products()) == 4

    orders = s.get_orders()
    assert orders
    assert all(o.created_at <= clock.now for o in orders)
    assert {o.created_at.month for o in orders} == {1, 2, 3, 4, 5}
    # seeded history does not consume stock
    assert s.get_product_by_id(1).inventory == 23

    monthly = s.get_revenue_stats("yearly")["monthly"]
    counts = [m["orders"] for m in monthly]
    assert counts == sorted(counts)


def test_historical_orders_are_deterministic(store, clock):
    products = [make_product(store, "A"), make_product(store, "B")]
    first = historical_orders(products, 1, clock.now)
    second = historical_orders(products, 1, clock.now)
    assert [(o.total, ts) for o, _, ts in first] == [(o.total, ts) for o, _, ts in second]
    assert historical_orders([], 1, clock.now) == []


def test_seed_sample_data_only_fills_empty_store(store):
    make_user(store, "admin", is_admin=True)
    created = seed_sample_data(store)
    assert created["products"] == 6
    assert created["orders"] > 0
    assert seed_sample_data(store) == {"products": 0, "orders": 0}


def test_export_products_csv(store):
    make_product(store, "A", name="Mug, large", price=9.5)
    csv_text = export_table_csv(store, "products")
    lines = csv_text.strip().split("\n")
    assert lines[0].startswith("name,description,price,imageUrl,category,inventory,sku,featured")
    assert '"Mug, large"' in lines[1]


def test_export_users_omits_passwords(store):
    make_user(store, "alice")
    csv_text = export_table_csv(store, "users")
    assert "password" not in csv_text
    assert "alice" in csv_text


def test_export_order_items_and_unknown_table(store):
    user = make_user(store, "alice")
    p = make_product(store, "A")
    place_order(store, user.id, [(p.id, 2)])
    assert export_table_csv(store, "order_items").startswith("id,orderId,productId,quantity,price")
    assert export_table_csv(store, "orders").count("\n") == 2
    with pytest.raises(DataValidationError):
        export_table_csv(store, "sessions")


def test_export_empty_table(store):
    assert export_table_csv(store, "orders") == ""
