"""
Seed data loaded when a snapshot file is missing: the default admin account,
a sample catalog and a synthetic order history running from January through
the current month with growing monthly revenue.
"""
import logging
import random
from datetime import datetime, timedelta
from typing import List, Tuple

from faker import Faker

from schemas import OrderCreate, OrderItemCreate, PlaintextCredential, Product, ProductCreate, UserCreate

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ["credit_card", "paypal", "stripe", "cash_on_delivery"]
OPEN_STATUSES = ["pending", "processing", "shipped"]


def admin_user() -> UserCreate:
    # hashed by the credential migration that runs right after seeding
    return UserCreate(
        username="admin",
        email="admin@shopelite.com",
        password=PlaintextCredential(value="admin123"),
        full_name="Admin User",
        is_admin=True,
    )


SAMPLE_PRODUCTS = [
    ProductCreate(
        name="Premium Headphones",
        description="Superior sound quality for music lovers. Features active noise cancellation and 20 hour battery life.",
        price=149.99,
        image_url="https://images.unsplash.com/photo-1560343090-f0409e92791a?auto=format&fit=crop&w=400&h=500&q=80",
        category="Electronics",
        inventory=23,
        sku="HP-100-BK",
        featured=True,
    ),
    ProductCreate(
        name="Smartwatch Pro",
        description="Track fitness and stay connected with this premium smartwatch. Features heart rate monitoring and GPS.",
        price=199.99,
        image_url="https://images.unsplash.com/photo-1523275335684-37898b6baf30?auto=format&fit=crop&w=400&h=500&q=80",
        category="Electronics",
        inventory=15,
        sku="SW-PRO-BK",
        featured=True,
    ),
    ProductCreate(
        name="Eco-Friendly Water Bottle",
        description="Sustainable hydration solution that keeps your drinks cold for 24 hours or hot for 12 hours.",
        price=24.99,
        image_url="https://images.unsplash.com/photo-1625772452859-1c03d5bf1137?auto=format&fit=crop&w=400&h=500&q=80",
        category="Home & Kitchen",
        inventory=50,
        sku="WB-ECO-GR",
        featured=True,
    ),
    ProductCreate(
        name="Running Shoes",
        description="Professional athletic footwear with shock absorption and breathable material.",
        price=89.99,
        image_url="https://images.unsplash.com/photo-1542291026-7eec264c27ff?auto=format&fit=crop&w=400&h=500&q=80",
        category="Fashion",
        inventory=35,
        sku="RN-SH-BL-10",
        featured=True,
    ),
    ProductCreate(
        name="Wireless Phone Charger",
        description="Fast 15W wireless charging pad compatible with all Qi-enabled devices.",
        price=29.99,
        image_url="https://images.unsplash.com/photo-1590794056226-79ef3a8147e1?auto=format&fit=crop&w=400&h=500&q=80",
        category="Electronics",
        inventory=45,
        sku="CH-WL-10W",
        featured=False,
    ),
    ProductCreate(
        name="Organic Cotton T-Shirt",
        description="Soft, sustainable cotton t-shirt with a classic fit.",
        price=19.99,
        image_url="https://images.unsplash.com/photo-1581655353564-df123a1eb820?auto=format&fit=crop&w=400&h=500&q=80",
        category="Fashion",
        inventory=100,
        sku="TS-ORG-BL-M",
        featured=False,
    ),
]


def historical_orders(
    products: List[Product], user_id: int, now: datetime, seed: int = 42
) -> List[Tuple[OrderCreate, List[OrderItemCreate], datetime]]:
    """
    Build synthetic orders for every month from January up to `now`.

    Later months get more orders and larger quantities so revenue trends
    upward. Inventory is not touched; these orders describe past sales.
    """
    if not products:
        return []
    rng = random.Random(seed)
    fake = Faker()
    fake.seed_instance(seed)

    history = []
    for month in range(1, now.month + 1):
        month_start = datetime(now.year, month, 1)
        if month == 12:
            month_end = datetime(now.year + 1, 1, 1)
        else:
            month_end = datetime(now.year, month + 1, 1)
        window_end = min(month_end, now)
        span = int((window_end - month_start).total_seconds())
        if span <= 0:
            continue

        n_orders = 3 + 2 * month
        for _ in range(n_orders):
            created_at = month_start + timedelta(seconds=rng.randrange(span))
            picks = rng.sample(products, k=min(len(products), rng.randint(1, 3)))
            items = [
                OrderItemCreate(
                    product_id=p.id,
                    quantity=rng.randint(1, 1 + month // 3),
                    price=p.price,
                )
                for p in picks
            ]
            total = round(sum(i.price * i.quantity for i in items), 2)
            current = month == now.month
            order = OrderCreate(
                user_id=user_id,
                status=rng.choice(OPEN_STATUSES) if current else "delivered",
                total=total,
                payment_method=rng.choice(PAYMENT_METHODS),
                payment_status="pending" if current else "paid",
                shipping_address=fake.address().replace("\n", ", "),
            )
            history.append((order, items, created_at))

    history.sort(key=lambda entry: entry[2])
    return history


def seed_sample_data(store) -> dict:
    """Re-seed catalog and order history on a store that has none."""
    created = {"products": 0, "orders": 0}
    if not store.get_products():
        for product in SAMPLE_PRODUCTS:
            store.create_product(product)
            created["products"] += 1
    if not store.get_orders():
        created["orders"] = store.seed_order_history()
    logger.info("Seeded %d products and %d orders", created["products"], created["orders"])
    return created
