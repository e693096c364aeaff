import hashlib
import json
from datetime import datetime, timezone

import pytest

from conftest import make_product, make_user, place_order
from database import CART_FILE, ORDER_FILE, PRODUCT_FILE, USER_FILE, SnapshotFile
from errors import PersistenceError
from schemas import CartItemInput, HashedCredential, LegacyCredential
from security import verify_password
from storage import DataStore


def reopen(data_dir, clock, seed=False):
    s = DataStore(data_dir, seed=seed, clock=clock)
    s.init()
    return s


def test_round_trip_all_entity_kinds(store, data_dir, clock):
    user = make_user(store, "Alice")
    p1 = make_product(store, "A", inventory=5, price=19.99, featured=True)
    p2 = make_product(store, "B", inventory=8)
    order = place_order(store, user.id, [(p1.id, 2), (p2.id, 1)])
    store.update_order_status(order.id, "shipped")
    store.update_user_cart(user.id, [CartItemInput(product_id=p2.id, quantity=3)])

    reloaded = reopen(data_dir, clock)

    assert reloaded.get_users() == store.get_users()
    assert reloaded.get_products() == store.get_products()
    assert reloaded.get_orders() == store.get_orders()
    assert reloaded.get_order_items_by_order_id(order.id) == store.get_order_items_by_order_id(order.id)
    assert reloaded.get_user_cart(user.id) == store.get_user_cart(user.id)
    assert reloaded.get_order_by_id(order.id).created_at == clock.now


def test_id_counters_restored(store, data_dir, clock):
    make_product(store, "A")
    b = make_product(store, "B")
    store.delete_product(b.id)

    reloaded = reopen(data_dir, clock)
    assert make_product(reloaded, "C").id == 3


def test_file_layout(store, data_dir):
    user = make_user(store, "bob")
    product = make_product(store, "A")
    place_order(store, user.id, [(product.id, 1)])
    store.update_user_cart(user.id, [CartItemInput(product_id=product.id, quantity=1)])

    users = json.loads((data_dir / USER_FILE).read_text())
    assert users["nextUserId"] == 2
    assert users["users"][0]["username"] == "bob"
    assert users["users"][0]["password"]["kind"] == "hashed"
    assert isinstance(users["users"][0]["createdAt"], str)

    products = json.loads((data_dir / PRODUCT_FILE).read_text())
    assert products["nextProductId"] == 2
    assert products["products"][0]["imageUrl"] == ""

    orders = json.loads((data_dir / ORDER_FILE).read_text())
    assert set(orders) == {"orders", "orderItems", "nextOrderId", "nextOrderItemId"}
    assert orders["orderItems"][0]["orderId"] == 1

    carts = json.loads((data_dir / CART_FILE).read_text())
    assert carts["carts"][0]["userId"] == user.id
    assert carts["carts"][0]["cartItems"][0]["productId"] == product.id


@pytest.mark.parametrize("filename", [USER_FILE, PRODUCT_FILE, ORDER_FILE, CART_FILE])
def test_corrupted_file_falls_back_to_seed(tmp_path, clock, filename):
    data_dir = tmp_path / "data"
    seeded = reopen(data_dir, clock, seed=True)
    assert seeded.get_products()

    path = data_dir / filename
    path.write_text("{ this is not json")

    recovered = reopen(data_dir, clock, seed=True)
    assert recovered.get_user_by_username("admin") is not None
    assert len(recovered.get_products()) == 6
    assert recovered.get_orders()
    # seeding rewrote every kind except the cart map, which has no seed
    if filename == CART_FILE:
        assert not path.exists()
    else:
        json.loads(path.read_text())


def test_invalid_shape_is_treated_as_corrupted(store, data_dir, clock):
    make_product(store, "A")
    (data_dir / PRODUCT_FILE).write_text(json.dumps({"products": [{"id": "nope"}], "nextProductId": 2}))

    reloaded = reopen(data_dir, clock)
    assert reloaded.get_products() == []
    assert not (data_dir / PRODUCT_FILE).exists()


def test_save_leaves_no_temp_files(store, data_dir):
    for i in range(3):
        make_product(store, f"SKU-{i}")
    leftovers = [p.name for p in data_dir.iterdir() if p.name.endswith(".tmp")]
    assert leftovers == []


def test_snapshot_save_failure_raises(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    snapshot = SnapshotFile(blocker / "product-data.json")
    with pytest.raises(PersistenceError):
        snapshot.save({"products": []})


def test_failed_write_keeps_memory_state(tmp_path, clock, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    s = DataStore(blocker / "data", seed=False, clock=clock)
    s.init()

    with caplog.at_level("ERROR"):
        product = make_product(s, "A", inventory=4)
    assert s.get_product_by_id(product.id) is not None
    assert s.clear_all_data() is False
    assert "Could not persist" in caplog.text


def test_utc_suffixed_timestamps_load_as_local_time(store, data_dir, clock):
    user = make_user(store, "alice")
    product = make_product(store, "A", inventory=10, price=12.5)
    place_order(store, user.id, [(product.id, 1)])

    path = data_dir / ORDER_FILE
    data = json.loads(path.read_text())
    data["orders"][0]["createdAt"] = "2026-05-14T10:00:00.000Z"
    path.write_text(json.dumps(data))

    reloaded = reopen(data_dir, clock)
    loaded = reloaded.get_order_by_id(1)
    assert loaded.created_at.tzinfo is None
    assert loaded.created_at == datetime(2026, 5, 14, 10, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)

    # period filters and sorting mix loaded and freshly created orders
    reloaded.get_revenue_stats("daily")
    assert reloaded.get_revenue_stats("yearly")["monthly"][0]["revenue"] == 12.5
    place_order(reloaded, user.id, [(product.id, 1)])
    assert len(reloaded.get_recent_orders(10, "weekly")) == 2


def legacy_hash(password, salt="a1b2c3"):
    digest = hashlib.scrypt(password.encode(), salt=salt.encode(), n=16384, r=8, p=1, dklen=64)
    return f"{digest.hex()}.{salt}"


def test_bare_string_passwords_are_tagged_not_discarded(data_dir, clock):
    data_dir.mkdir(parents=True)
    (data_dir / USER_FILE).write_text(json.dumps({
        "users": [
            {
                "id": 1, "username": "alice", "email": "alice@shopelite.com",
                "password": legacy_hash("secret"), "fullName": None, "isAdmin": False,
                "createdAt": "2026-01-02T08:00:00.000Z",
            },
            {
                "id": 2, "username": "admin", "email": "admin@shopelite.com",
                "password": "admin123", "fullName": "Admin User", "isAdmin": True,
                "createdAt": "2026-01-01T00:00:00.000Z",
            },
        ],
        "nextUserId": 3,
    }))

    s = reopen(data_dir, clock)

    alice = s.get_user_by_username("alice")
    assert isinstance(alice.password, LegacyCredential)
    assert verify_password("secret", alice.password)
    assert not verify_password("wrong", alice.password)

    admin = s.get_user_by_username("admin")
    assert isinstance(admin.password, HashedCredential)
    assert verify_password("admin123", admin.password)

    saved = json.loads((data_dir / USER_FILE).read_text())
    assert [u["password"]["kind"] for u in saved["users"]] == ["legacy", "hashed"]
    assert saved["nextUserId"] == 3
