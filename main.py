import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional, Dict

from fastapi import APIRouter, FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field

from config import (
    DATA_DIR,
    LOG_LEVEL,
    LOGIN_RATE_LIMIT_MAX_ATTEMPTS,
    LOGIN_RATE_LIMIT_WINDOW_SEC,
    LOW_STOCK_THRESHOLD,
    PORT,
    SEED_SAMPLE_DATA,
)
from errors import DataValidationError, InventoryError, NotFoundError
from export import export_table_csv
from schemas import (
    CamelModel,
    CartItemInput,
    OrderCreate,
    OrderItemCreate,
    OrderStatus,
    PlaintextCredential,
    ProductCreate,
    ProductUpdate,
    User,
    UserCreate,
)
from security import (
    create_access_token,
    decode_access_token,
    hash_password,
    needs_rehash,
    verify_password,
)
from seed import seed_sample_data
from storage import DataStore

logger = logging.getLogger(__name__)

auth_scheme = HTTPBearer(auto_error=False)


def configure_logging(level: str = LOG_LEVEL):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# Simple in-memory rate limiting for login (per-IP)
rate_store: Dict[str, List[float]] = {}


def check_rate_limit(ip: str):
    now = datetime.now().timestamp()
    bucket = [t for t in rate_store.get(ip, []) if now - t <= LOGIN_RATE_LIMIT_WINDOW_SEC]
    if len(bucket) >= LOGIN_RATE_LIMIT_MAX_ATTEMPTS:
        raise HTTPException(status_code=429, detail="Too many login attempts. Please try again later.")
    bucket.append(now)
    rate_store[ip] = bucket


# Dependencies
def get_store(request: Request) -> DataStore:
    return request.app.state.store


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme),
    store: DataStore = Depends(get_store),
) -> User:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    payload = decode_access_token(credentials.credentials)
    if payload is None or payload.get("sub") is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    try:
        user = store.get_user(int(payload["sub"]))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def public_user(user: User) -> dict:
    return user.model_dump(mode="json", by_alias=True, exclude={"password"})


router = APIRouter()


# Health checks
@router.get("/")
def root():
    return {"message": "ShopElite API running"}


@router.get("/test")
def test_store(store: DataStore = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "store": "❌ Not Initialized",
        "data_dir": str(store.data_dir),
        "counts": {},
    }
    if store.initialized:
        response["store"] = "✅ Loaded"
        response["counts"] = {
            "users": len(store.get_users()),
            "products": len(store.get_products()),
            "orders": len(store.get_orders()),
        }
    return response


# Auth models
class RegisterPayload(CamelModel):
    username: str
    email: EmailStr
    password: str
    confirm_password: Optional[str] = None
    full_name: Optional[str] = None


class LoginPayload(BaseModel):
    username: str
    password: str


class PasswordChangePayload(CamelModel):
    current_password: str
    new_password: str


@router.post("/api/register", status_code=201)
def register(payload: RegisterPayload, store: DataStore = Depends(get_store)):
    if payload.confirm_password is not None and payload.confirm_password != payload.password:
        raise HTTPException(status_code=400, detail="Passwords don't match")
    if len(payload.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")
    try:
        user = store.create_user(UserCreate(
            username=payload.username,
            email=payload.email,
            password=PlaintextCredential(value=payload.password),
            full_name=payload.full_name,
        ))
    except DataValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    token = create_access_token({"sub": str(user.id), "admin": user.is_admin})
    return {"token": token, "user": public_user(user)}


@router.post("/api/login")
def login(payload: LoginPayload, request: Request, store: DataStore = Depends(get_store)):
    ip = request.client.host if request.client else "unknown"
    check_rate_limit(ip)

    if "@" in payload.username:
        user = store.get_user_by_email(payload.username)
    else:
        user = store.get_user_by_username(payload.username)
    if not user or not verify_password(payload.password, user.password):
        logger.info("Failed login for %s from %s", payload.username, ip)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if needs_rehash(user.password):
        user = store.update_user_password(user.id, hash_password(payload.password))
        logger.info("Rehashed legacy credential for user %d", user.id)
    token = create_access_token({"sub": str(user.id), "admin": user.is_admin})
    return {"token": token, "user": public_user(user)}


@router.get("/api/user")
def current_user(user: User = Depends(get_current_user)):
    return public_user(user)


@router.post("/api/user/password")
def change_password(
    payload: PasswordChangePayload,
    user: User = Depends(get_current_user),
    store: DataStore = Depends(get_store),
):
    if not verify_password(payload.current_password, user.password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if len(payload.new_password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")
    store.update_user_password(user.id, hash_password(payload.new_password))
    return {"updated": True}


# Products
@router.get("/api/products")
def list_products(
    q: Optional[str] = None,
    category: Optional[str] = None,
    store: DataStore = Depends(get_store),
):
    if q:
        items = store.search_products(q)
    elif category:
        items = store.get_products_by_category_name(category)
    else:
        items = store.get_products()
    if q and category:
        items = [p for p in items if p.category.lower() == category.lower()]
    return items


@router.get("/api/products/featured")
def featured_products(store: DataStore = Depends(get_store)):
    return store.get_featured_products()


@router.get("/api/products/category/{category}")
def products_by_category(category: str, store: DataStore = Depends(get_store)):
    return store.get_products_by_category_name(category)


@router.get("/api/products/search")
def search_products(q: Optional[str] = None, store: DataStore = Depends(get_store)):
    if not q:
        raise HTTPException(status_code=400, detail="Search query is required")
    return store.search_products(q)


@router.get("/api/products/{product_id}")
def get_product(product_id: int, store: DataStore = Depends(get_store)):
    product = store.get_product_by_id(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/api/products", status_code=201, dependencies=[Depends(require_admin)])
def create_product(payload: ProductCreate, store: DataStore = Depends(get_store)):
    try:
        return store.create_product(payload)
    except DataValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/api/products/{product_id}", dependencies=[Depends(require_admin)])
def update_product(product_id: int, payload: ProductUpdate, store: DataStore = Depends(get_store)):
    try:
        product = store.update_product(product_id, payload)
    except DataValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.delete("/api/products/{product_id}", status_code=204, dependencies=[Depends(require_admin)])
def delete_product(product_id: int, store: DataStore = Depends(get_store)):
    if not store.delete_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return Response(status_code=204)


# Orders
class OrderDetails(CamelModel):
    status: OrderStatus = "pending"
    total: Optional[float] = Field(default=None, ge=0)
    payment_method: str = "unknown"
    payment_status: str = "pending"
    shipping_address: str = ""


class CreateOrderPayload(BaseModel):
    order: OrderDetails
    items: List[OrderItemCreate]


class StatusPayload(BaseModel):
    status: str


@router.get("/api/orders")
def list_orders(user: User = Depends(get_current_user), store: DataStore = Depends(get_store)):
    if user.is_admin:
        return store.get_orders()
    return store.get_orders_by_user_id(user.id)


@router.get("/api/orders/{order_id}")
def get_order(order_id: int, user: User = Depends(get_current_user), store: DataStore = Depends(get_store)):
    order = store.get_order_by_id(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if not user.is_admin and order.user_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")
    items = store.get_order_items_by_order_id(order.id)
    return {
        **order.model_dump(mode="json", by_alias=True),
        "items": [i.model_dump(mode="json", by_alias=True) for i in items],
    }


@router.post("/api/orders", status_code=201)
def create_order(
    payload: CreateOrderPayload,
    user: User = Depends(get_current_user),
    store: DataStore = Depends(get_store),
):
    if not payload.items:
        raise HTTPException(status_code=400, detail="Cart is empty")
    order_data = OrderCreate(user_id=user.id, **payload.order.model_dump())
    try:
        return store.create_order(order_data, payload.items)
    except InventoryError as e:
        raise HTTPException(status_code=400, detail={"message": "Inventory error", "error": str(e)})
    except DataValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/api/orders/{order_id}/status", dependencies=[Depends(require_admin)])
def update_order_status(order_id: int, payload: StatusPayload, store: DataStore = Depends(get_store)):
    try:
        order = store.update_order_status(order_id, payload.status)
    except DataValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# Cart
class CartPayload(BaseModel):
    items: List[CartItemInput]


@router.get("/api/cart")
def get_cart(user: User = Depends(get_current_user), store: DataStore = Depends(get_store)):
    return store.get_user_cart(user.id)


@router.put("/api/cart")
def update_cart(payload: CartPayload, user: User = Depends(get_current_user), store: DataStore = Depends(get_store)):
    try:
        return store.update_user_cart(user.id, payload.items)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DataValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


# Analytics (admin)
analytics_router = APIRouter(prefix="/api/analytics", dependencies=[Depends(require_admin)])


def _analytics(call):
    try:
        return call()
    except DataValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@analytics_router.get("/recent-orders")
def recent_orders(limit: int = 10, period: str = "all", store: DataStore = Depends(get_store)):
    return _analytics(lambda: store.get_recent_orders(limit, period))


@analytics_router.get("/low-stock-products")
def low_stock_products(threshold: int = LOW_STOCK_THRESHOLD, store: DataStore = Depends(get_store)):
    return store.get_low_stock_products(threshold)


@analytics_router.get("/revenue-stats")
def revenue_stats(period: str = "all", store: DataStore = Depends(get_store)):
    return _analytics(lambda: store.get_revenue_stats(period))


@analytics_router.get("/category-distribution")
def category_distribution(period: str = "all", store: DataStore = Depends(get_store)):
    return _analytics(lambda: store.get_category_distribution(period))


@analytics_router.get("/top-selling-products")
def top_selling_products(limit: int = 5, period: str = "all", store: DataStore = Depends(get_store)):
    return _analytics(lambda: store.get_top_selling_products(limit, period))


@analytics_router.get("/payment-method-distribution")
def payment_method_distribution(period: str = "all", store: DataStore = Depends(get_store)):
    return _analytics(lambda: store.get_payment_method_distribution(period))


@analytics_router.get("/dashboard-summary")
def dashboard_summary(period: str = "all", store: DataStore = Depends(get_store)):
    return _analytics(lambda: store.get_dashboard_summary(period))


# Admin
admin_router = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


@admin_router.get("/users")
def list_users(store: DataStore = Depends(get_store)):
    return [public_user(u) for u in store.get_users()]


@admin_router.post("/clear-data")
def clear_data(store: DataStore = Depends(get_store)):
    if not store.clear_all_data():
        raise HTTPException(status_code=500, detail="Data cleared in memory but could not be saved")
    return {"cleared": True}


@admin_router.post("/seed")
def seed_data(store: DataStore = Depends(get_store)):
    return {"created": seed_sample_data(store)}


@admin_router.get("/export/{table}", response_class=PlainTextResponse)
def export_table(table: str, store: DataStore = Depends(get_store)):
    try:
        csv_text = export_table_csv(store, table)
    except DataValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PlainTextResponse(
        csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{table}.csv"'},
    )


def log_order_event(event: dict):
    logger.info("Event %s: order %s, total %.2f", event["type"], event["orderId"], event["total"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    store: DataStore = app.state.store
    if not store.initialized:
        store.init()
    yield


def create_app(store: Optional[DataStore] = None) -> FastAPI:
    if store is None:
        store = DataStore(DATA_DIR, seed=SEED_SAMPLE_DATA)
    store.add_listener(log_order_event)

    app = FastAPI(title="ShopElite API", lifespan=lifespan)
    app.state.store = store
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    app.include_router(analytics_router)
    app.include_router(admin_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=PORT)
