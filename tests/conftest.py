from datetime import datetime

import pytest

from schemas import HashedCredential, OrderCreate, OrderItemCreate, ProductCreate, UserCreate
from storage import DataStore


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 5, 14, 12, 0, 0))


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def store(data_dir, clock):
    s = DataStore(data_dir, seed=False, clock=clock)
    s.init()
    return s


def make_user(store, username="shopper", email=None, is_admin=False):
    return store.create_user(UserCreate(
        username=username,
        email=email or f"{username.lower()}@shopelite.com",
        password=HashedCredential(hash="$2b$12$notarealhashnotarealhashnotarealhashnotarealhash"),
        is_admin=is_admin,
    ))


def make_product(store, sku="SKU-1", inventory=10, price=10.0, category="Electronics", **extra):
    fields = dict(
        name=extra.pop("name", f"Product {sku}"),
        description=extra.pop("description", ""),
        price=price,
        category=category,
        inventory=inventory,
        sku=sku,
    )
    fields.update(extra)
    return store.create_product(ProductCreate(**fields))


def place_order(store, user_id, lines, payment_method="credit_card", total=None):
    """lines: [(product_id, quantity)]"""
    return store.create_order(
        OrderCreate(user_id=user_id, payment_method=payment_method, total=total, shipping_address="1 Main St"),
        [OrderItemCreate(product_id=pid, quantity=qty) for pid, qty in lines],
    )
