"""
Data Schemas for the ShopElite store

Each entity kind (users, products, orders, order items, cart items) is a
Pydantic model. Field names are snake_case in Python and camelCase on the
wire and in the JSON snapshot files.
"""
from datetime import datetime
from typing import Annotated, Optional, List, Literal, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, EmailStr, field_validator
from pydantic.alias_generators import to_camel

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _to_local_naive(value: datetime) -> datetime:
    # the store clock is naive local time; "...Z" timestamps are shifted to match
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


LocalDatetime = Annotated[datetime, AfterValidator(_to_local_naive)]


# Credentials are tagged; bare strings from older user files are tagged once, on load
class HashedCredential(CamelModel):
    kind: Literal["hashed"] = "hashed"
    hash: str = Field(..., min_length=1)


class PlaintextCredential(CamelModel):
    kind: Literal["plaintext"] = "plaintext"
    value: str


class LegacyCredential(CamelModel):
    """scrypt "hexdigest.salt" string written by older deployments; rehashed on next login."""
    kind: Literal["legacy"] = "legacy"
    hash: str = Field(..., min_length=1)


Credential = Annotated[
    Union[HashedCredential, PlaintextCredential, LegacyCredential], Field(discriminator="kind")
]


# Users
class UserCreate(CamelModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: Credential
    full_name: Optional[str] = None
    is_admin: bool = False

    @field_validator("password", mode="before")
    @classmethod
    def tag_bare_password(cls, value):
        if isinstance(value, str):
            if "." in value:
                return {"kind": "legacy", "hash": value}
            return {"kind": "plaintext", "value": value}
        return value


class User(UserCreate):
    id: int
    created_at: LocalDatetime


# Products
class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: float = Field(..., ge=0)
    image_url: str = ""
    category: str = Field(..., min_length=1)
    inventory: int = Field(default=0, ge=0)
    sku: str = Field(..., min_length=1)
    featured: bool = False


class ProductUpdate(CamelModel):
    """Partial update; inventory is left unconstrained so the store can clamp it."""
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    category: Optional[str] = None
    inventory: Optional[int] = None
    sku: Optional[str] = None
    featured: Optional[bool] = None


class Product(ProductCreate):
    id: int
    created_at: LocalDatetime


# Orders
class OrderCreate(CamelModel):
    user_id: int
    status: OrderStatus = "pending"
    total: Optional[float] = Field(default=None, ge=0)
    payment_method: str = "unknown"
    payment_status: str = "pending"
    shipping_address: str = ""


class Order(CamelModel):
    id: int
    user_id: int
    status: OrderStatus = "pending"
    total: float
    payment_method: str = "unknown"
    payment_status: str = "pending"
    shipping_address: str = ""
    created_at: LocalDatetime


class OrderItemCreate(CamelModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    price: Optional[float] = Field(default=None, ge=0)


class OrderItem(CamelModel):
    id: int
    order_id: int
    product_id: int
    quantity: int = Field(..., gt=0)
    price: float


# Carts
class CartProduct(CamelModel):
    id: int
    name: str
    price: float
    image_url: str = ""
    category: str = ""
    sku: str = ""


class CartItemInput(CamelModel):
    product_id: int
    quantity: int
    product: Optional[CartProduct] = None


class CartItem(CamelModel):
    product_id: int
    quantity: int = Field(..., gt=0)
    product: CartProduct


class UserCart(CamelModel):
    user_id: int
    cart_items: List[CartItem] = Field(default_factory=list)
