"""
In-process data store for the shop.

DataStore keeps users, products, orders, order items and carts in maps keyed
by auto-incrementing ids, snapshots each entity kind to its own JSON file after
every mutation and reloads them on init(). All access goes through one
re-entrant lock, so validate-then-commit sequences such as order creation are
atomic with respect to other callers.
"""
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from pydantic import ValidationError

import analytics
import seed
from config import DATA_DIR, LOW_STOCK_THRESHOLD
from database import CART_FILE, ORDER_FILE, PRODUCT_FILE, USER_FILE, SnapshotFile
from errors import (
    DataValidationError,
    InsufficientInventoryError,
    NotFoundError,
    PersistenceError,
    ProductNotFoundError,
)
from schemas import (
    ORDER_STATUSES,
    CartItem,
    CartItemInput,
    CartProduct,
    HashedCredential,
    LegacyCredential,
    Order,
    OrderCreate,
    OrderItem,
    OrderItemCreate,
    PlaintextCredential,
    Product,
    ProductCreate,
    ProductUpdate,
    User,
    UserCart,
    UserCreate,
)
from security import hash_password

logger = logging.getLogger(__name__)

Listener = Callable[[dict], None]


class DataStore:
    def __init__(
        self,
        data_dir: Union[str, Path] = DATA_DIR,
        seed: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.data_dir = Path(data_dir)
        self.seed = seed
        self.clock = clock
        self.initialized = False

        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

        self._users: Dict[int, User] = {}
        self._products: Dict[int, Product] = {}
        self._orders: Dict[int, Order] = {}
        self._order_items: Dict[int, OrderItem] = {}
        self._carts: Dict[int, List[CartItem]] = {}
        self._reset_counters()

        self._user_file = SnapshotFile(self.data_dir / USER_FILE)
        self._product_file = SnapshotFile(self.data_dir / PRODUCT_FILE)
        self._order_file = SnapshotFile(self.data_dir / ORDER_FILE)
        self._cart_file = SnapshotFile(self.data_dir / CART_FILE)

    def _reset_counters(self):
        self._next_user_id = 1
        self._next_product_id = 1
        self._next_order_id = 1
        self._next_order_item_id = 1

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Load every snapshot, seeding defaults for kinds that did not load."""
        with self._lock:
            if not self._load_users() and self.seed:
                logger.info("No user data found, creating default admin user")
                self.create_user(seed.admin_user())
            self.migrate_credentials()

            if not self._load_products() and self.seed:
                logger.info("No product data found, loading sample catalog")
                for product in seed.SAMPLE_PRODUCTS:
                    self.create_product(product)

            if not self._load_orders() and self.seed:
                logger.info("No order data found, generating order history")
                self.seed_order_history()

            self._load_carts()
            self.initialized = True
            logger.info(
                "Store ready: %d users, %d products, %d orders, %d carts",
                len(self._users), len(self._products), len(self._orders), len(self._carts),
            )

    def migrate_credentials(self) -> int:
        """Hash every plaintext credential in place. Returns how many were migrated."""
        with self._lock:
            migrated = 0
            for user_id, user in list(self._users.items()):
                if isinstance(user.password, PlaintextCredential):
                    self._users[user_id] = user.model_copy(
                        update={"password": hash_password(user.password.value)}
                    )
                    migrated += 1
            if migrated:
                logger.info("Hashed %d plaintext credential(s)", migrated)
                self._save_users()
            legacy = sum(1 for u in self._users.values() if isinstance(u.password, LegacyCredential))
            if legacy:
                logger.info("%d legacy credential(s) will be rehashed at next login", legacy)
            return migrated

    def seed_order_history(self) -> int:
        with self._lock:
            admin = next((u for u in self._users.values() if u.is_admin), None)
            user_id = admin.id if admin else 1
            history = seed.historical_orders(list(self._products.values()), user_id, self.clock())
            for order_data, items, created_at in history:
                self._insert_order(order_data, items, created_at)
            self._save_orders()
            return len(history)

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: dict) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed for %s event", event.get("type"))

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def get_users(self) -> List[User]:
        with self._lock:
            return list(self._users.values())

    def get_user_by_username(self, username: str) -> Optional[User]:
        wanted = username.lower()
        with self._lock:
            return next((u for u in self._users.values() if u.username.lower() == wanted), None)

    def get_user_by_email(self, email: str) -> Optional[User]:
        wanted = email.lower()
        with self._lock:
            return next((u for u in self._users.values() if u.email.lower() == wanted), None)

    def create_user(self, data: UserCreate) -> User:
        with self._lock:
            if self.get_user_by_username(data.username):
                raise DataValidationError("Username already exists")
            if self.get_user_by_email(data.email):
                raise DataValidationError("Email already exists")
            password = data.password
            if isinstance(password, PlaintextCredential):
                password = hash_password(password.value)
            user = User(
                **data.model_dump(exclude={"password"}),
                password=password,
                id=self._next_user_id,
                created_at=self.clock(),
            )
            self._next_user_id += 1
            self._users[user.id] = user
            self._save_users()
            return user

    def update_user_password(self, user_id: int, credential: HashedCredential) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            user = user.model_copy(update={"password": credential})
            self._users[user_id] = user
            self._save_users()
            return user

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    def get_products(self) -> List[Product]:
        with self._lock:
            return list(self._products.values())

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        return self._products.get(product_id)

    def get_products_by_category_name(self, category: str) -> List[Product]:
        wanted = category.lower()
        with self._lock:
            return [p for p in self._products.values() if p.category.lower() == wanted]

    def get_featured_products(self) -> List[Product]:
        with self._lock:
            return [p for p in self._products.values() if p.featured]

    def search_products(self, query: str) -> List[Product]:
        q = query.lower()
        with self._lock:
            return [
                p for p in self._products.values()
                if q in p.name.lower() or q in p.description.lower() or q in p.category.lower()
            ]

    def create_product(self, data: ProductCreate) -> Product:
        with self._lock:
            if any(p.sku == data.sku for p in self._products.values()):
                raise DataValidationError(f"SKU {data.sku} already exists")
            product = Product(**data.model_dump(), id=self._next_product_id, created_at=self.clock())
            self._next_product_id += 1
            self._products[product.id] = product
            self._save_products()
            return product

    def update_product(self, product_id: int, changes: Union[ProductUpdate, dict]) -> Optional[Product]:
        with self._lock:
            product = self._apply_product_update(product_id, changes)
            if product is not None:
                self._save_products()
            return product

    def _apply_product_update(self, product_id: int, changes: Union[ProductUpdate, dict]) -> Optional[Product]:
        # shared by admin edits and order inventory decrements; does not persist
        product = self._products.get(product_id)
        if product is None:
            return None
        if isinstance(changes, ProductUpdate):
            changes = changes.model_dump(exclude_unset=True)
        changes = {k: v for k, v in changes.items() if v is not None}

        inventory = changes.get("inventory")
        if inventory is not None and inventory < 0:
            logger.warning(
                "Inventory for product %d would drop to %d; clamping to 0", product_id, inventory
            )
            changes["inventory"] = 0

        sku = changes.get("sku")
        if sku is not None and any(p.sku == sku and p.id != product_id for p in self._products.values()):
            raise DataValidationError(f"SKU {sku} already exists")

        try:
            updated = Product.model_validate({**product.model_dump(), **changes, "id": product_id})
        except ValidationError as e:
            raise DataValidationError(str(e)) from e
        self._products[product_id] = updated
        return updated

    def delete_product(self, product_id: int) -> bool:
        with self._lock:
            if self._products.pop(product_id, None) is None:
                return False
            self._save_products()
            return True

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def get_orders(self) -> List[Order]:
        with self._lock:
            return list(self._orders.values())

    def get_order_by_id(self, order_id: int) -> Optional[Order]:
        return self._orders.get(order_id)

    def get_orders_by_user_id(self, user_id: int) -> List[Order]:
        with self._lock:
            return [o for o in self._orders.values() if o.user_id == user_id]

    def get_order_items_by_order_id(self, order_id: int) -> List[OrderItem]:
        with self._lock:
            return [i for i in self._order_items.values() if i.order_id == order_id]

    def create_order(self, order_data: OrderCreate, items: List[OrderItemCreate]) -> Order:
        if not items:
            raise DataValidationError("Order must contain at least one item")

        with self._lock:
            requested: Dict[int, int] = {}
            for item in items:
                requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity
            for product_id, quantity in requested.items():
                product = self._products.get(product_id)
                if product is None:
                    raise ProductNotFoundError(product_id)
                if product.inventory < quantity:
                    raise InsufficientInventoryError(product_id, product.name, product.inventory, quantity)

            order = self._insert_order(order_data, items, self.clock())
            for product_id, quantity in requested.items():
                product = self._products[product_id]
                self._apply_product_update(product_id, {"inventory": product.inventory - quantity})

            self._save_products()
            self._save_orders()

        logger.info("Order %d created for user %d (total %.2f)", order.id, order.user_id, order.total)
        self._emit({"type": "order-created", "orderId": order.id, "userId": order.user_id, "total": order.total})
        return order

    def _insert_order(self, order_data: OrderCreate, items: List[OrderItemCreate], created_at: datetime) -> Order:
        priced = []
        for item in items:
            price = item.price
            if price is None:
                product = self._products.get(item.product_id)
                price = product.price if product else 0.0
            priced.append((item, price))

        total = order_data.total
        if total is None:
            total = round(sum(price * item.quantity for item, price in priced), 2)

        order = Order(
            **order_data.model_dump(exclude={"total"}),
            total=total,
            id=self._next_order_id,
            created_at=created_at,
        )
        self._next_order_id += 1
        self._orders[order.id] = order

        for item, price in priced:
            order_item = OrderItem(
                id=self._next_order_item_id,
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                price=price,
            )
            self._next_order_item_id += 1
            self._order_items[order_item.id] = order_item
        return order

    def update_order_status(self, order_id: int, status: str) -> Optional[Order]:
        # any status may follow any other; only the value itself is checked
        if status not in ORDER_STATUSES:
            raise DataValidationError(f"Invalid status '{status}'")
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            order = order.model_copy(update={"status": status})
            self._orders[order_id] = order
            self._save_orders()
            return order

    # ------------------------------------------------------------------
    # Carts
    # ------------------------------------------------------------------

    def get_user_cart(self, user_id: int) -> List[CartItem]:
        with self._lock:
            return list(self._carts.get(user_id, []))

    def update_user_cart(self, user_id: int, items: List[CartItemInput]) -> List[CartItem]:
        with self._lock:
            if user_id not in self._users:
                raise NotFoundError(f"User {user_id} not found")

            cart = []
            for item in items:
                product = self._products.get(item.product_id)
                if product is None:
                    raise ProductNotFoundError(item.product_id)
                if item.quantity <= 0:
                    raise DataValidationError(f"Quantity for product {item.product_id} must be greater than 0")
                if item.quantity > product.inventory:
                    logger.warning(
                        "Cart for user %d holds %d of product %d but only %d in stock",
                        user_id, item.quantity, product.id, product.inventory,
                    )
                snapshot = item.product or CartProduct(
                    id=product.id,
                    name=product.name,
                    price=product.price,
                    image_url=product.image_url,
                    category=product.category,
                    sku=product.sku,
                )
                cart.append(CartItem(product_id=item.product_id, quantity=item.quantity, product=snapshot))

            self._carts[user_id] = cart
            self._save_carts()
            return list(cart)

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def _orders_in(self, period: str) -> List[Order]:
        return analytics.filter_orders_by_period(self._orders.values(), period, self.clock())

    def get_recent_orders(self, limit: int = 10, period: str = "all") -> List[Order]:
        with self._lock:
            return analytics.recent_orders(self._orders_in(period), limit)

    def get_low_stock_products(self, threshold: int = LOW_STOCK_THRESHOLD) -> List[Product]:
        with self._lock:
            return analytics.low_stock(self._products.values(), threshold)

    def get_revenue_stats(self, period: str = "all") -> dict:
        with self._lock:
            return analytics.revenue_stats(self._orders_in(period))

    def get_category_distribution(self, period: str = "all") -> List[dict]:
        with self._lock:
            return analytics.category_distribution(
                self._orders_in(period), self._order_items.values(), self._products
            )

    def get_top_selling_products(self, limit: int = 5, period: str = "all") -> List[dict]:
        with self._lock:
            return analytics.top_selling_products(
                self._orders_in(period), self._order_items.values(), self._products, limit
            )

    def get_payment_method_distribution(self, period: str = "all") -> List[dict]:
        with self._lock:
            return analytics.payment_method_distribution(self._orders_in(period))

    def get_dashboard_summary(self, period: str = "all") -> dict:
        with self._lock:
            orders = self._orders_in(period)
            start = analytics.period_start(period, self.clock())
            new_customers = sum(
                1 for u in self._users.values()
                if not u.is_admin and (start is None or u.created_at >= start)
            )
            low = analytics.low_stock(self._products.values(), LOW_STOCK_THRESHOLD)
            return analytics.dashboard_summary(orders, new_customers, len(low))

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def clear_all_data(self) -> bool:
        """Drop products, orders and carts. Users are kept."""
        with self._lock:
            self._products.clear()
            self._orders.clear()
            self._order_items.clear()
            self._carts.clear()
            self._next_product_id = 1
            self._next_order_id = 1
            self._next_order_item_id = 1
            logger.warning("Cleared all product, order and cart data")
            saved = [self._save_products(), self._save_orders(), self._save_carts()]
            return all(saved)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _write(self, snapshot: SnapshotFile, payload: dict) -> bool:
        try:
            snapshot.save(payload)
            return True
        except PersistenceError:
            logger.exception("Could not persist %s", snapshot.path.name)
            return False

    @staticmethod
    def _dump(models) -> List[dict]:
        return [m.model_dump(mode="json", by_alias=True) for m in models]

    def _save_users(self) -> bool:
        return self._write(self._user_file, {
            "users": self._dump(self._users.values()),
            "nextUserId": self._next_user_id,
        })

    def _save_products(self) -> bool:
        return self._write(self._product_file, {
            "products": self._dump(self._products.values()),
            "nextProductId": self._next_product_id,
        })

    def _save_orders(self) -> bool:
        return self._write(self._order_file, {
            "orders": self._dump(self._orders.values()),
            "orderItems": self._dump(self._order_items.values()),
            "nextOrderId": self._next_order_id,
            "nextOrderItemId": self._next_order_item_id,
        })

    def _save_carts(self) -> bool:
        carts = [UserCart(user_id=uid, cart_items=items) for uid, items in self._carts.items()]
        return self._write(self._cart_file, {"carts": self._dump(carts)})

    def save_all(self) -> bool:
        with self._lock:
            return all([self._save_users(), self._save_products(), self._save_orders(), self._save_carts()])

    @staticmethod
    def _next_id(data: dict, key: str, entities: Dict[int, object]) -> int:
        # never hand out an id at or below one already in use
        stored = data.get(key)
        floor = max(entities, default=0) + 1
        if isinstance(stored, int) and stored >= floor:
            return stored
        return floor

    def _load(self, snapshot: SnapshotFile, parse: Callable[[dict], None]) -> bool:
        data = snapshot.load()
        if data is None:
            return False
        try:
            parse(data)
        except (ValidationError, KeyError, TypeError) as e:
            logger.warning("Snapshot %s has invalid contents (%s); removing it", snapshot.path, e)
            snapshot.discard()
            return False
        logger.info("Loaded %s", snapshot.path)
        return True

    def _load_users(self) -> bool:
        def parse(data):
            users = [User.model_validate(raw) for raw in data["users"]]
            self._users = {u.id: u for u in users}
            self._next_user_id = self._next_id(data, "nextUserId", self._users)
        return self._load(self._user_file, parse)

    def _load_products(self) -> bool:
        def parse(data):
            products = [Product.model_validate(raw) for raw in data["products"]]
            self._products = {p.id: p for p in products}
            self._next_product_id = self._next_id(data, "nextProductId", self._products)
        return self._load(self._product_file, parse)

    def _load_orders(self) -> bool:
        def parse(data):
            orders = [Order.model_validate(raw) for raw in data["orders"]]
            items = [OrderItem.model_validate(raw) for raw in data.get("orderItems", [])]
            self._orders = {o.id: o for o in orders}
            self._order_items = {i.id: i for i in items}
            self._next_order_id = self._next_id(data, "nextOrderId", self._orders)
            self._next_order_item_id = self._next_id(data, "nextOrderItemId", self._order_items)
        return self._load(self._order_file, parse)

    def _load_carts(self) -> bool:
        def parse(data):
            carts = [UserCart.model_validate(raw) for raw in data["carts"]]
            self._carts = {c.user_id: list(c.cart_items) for c in carts}
        return self._load(self._cart_file, parse)
