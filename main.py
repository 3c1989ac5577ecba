import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

import auth
import catalog
import orders
import reporting
from cart import CartStore, get_cart_store, get_session_id
from config import Settings, setup_logging
from database import connect, ensure_indexes, get_db
from errors import NotFound, register_error_handlers
from schemas import (
    BulkCategoryUpdate,
    BulkStatusUpdate,
    CartAddRequest,
    CartUpdateRequest,
    CategoryPayload,
    CategoryUpdate,
    CheckoutRequest,
    LoginRequest,
    OrderStatus,
    OrderStatusUpdate,
    ProductPayload,
    ProductSort,
    ProductStatusUpdate,
    ProductUpdate,
    RegisterRequest,
    RoleUpdate,
    StockUpdate,
)

logger = logging.getLogger("storefront.http")

router = APIRouter()
admin = APIRouter(prefix="/api/admin", dependencies=[Depends(auth.require_admin)])


@router.get("/")
def root():
    return {"status": "ok", "service": "storefront-backend"}


@router.get("/api/health")
def health():
    return {"status": "ok"}


@router.get("/test")
def test_database(db: Database = Depends(get_db)):
    status = {
        "backend": "running",
        "database": "not-configured",
        "collections": [],
    }
    try:
        status["collections"] = db.list_collection_names()[:10]
        status["database"] = "connected"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        status["database"] = "error"
    return status


# Auth Endpoints
@router.post("/api/auth/register")
def register(payload: RegisterRequest, db: Database = Depends(get_db), settings: Settings = Depends(auth.get_settings)):
    return auth.register(db, settings, payload.name, payload.email, payload.password)


@router.post("/api/auth/login")
def login(payload: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(auth.get_settings)):
    return auth.login(db, settings, payload.email, payload.password)


@router.get("/api/auth/me")
def me(user: dict = Depends(auth.get_current_user)):
    return user


# Product Endpoints
@router.get("/api/products")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    sort: ProductSort = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return catalog.list_products(db, category, search, min_price, max_price, sort, page, limit)


@router.get("/api/products/featured")
def featured_products(db: Database = Depends(get_db)):
    return catalog.featured_products(db)


@router.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, product_id)


@router.post("/api/products", status_code=201, dependencies=[Depends(auth.require_admin)])
@admin.post("/products", status_code=201)
def create_product(payload: ProductPayload, db: Database = Depends(get_db)):
    return catalog.create_product(db, payload)


# Bulk routes come before /products/{product_id}/... so "bulk" is not taken as an id.
@admin.put("/products/bulk/status")
def bulk_product_status(payload: BulkStatusUpdate, db: Database = Depends(get_db)):
    return catalog.bulk_set_active(db, payload.ids, payload.is_active)


@admin.put("/products/bulk/category")
def bulk_product_category(payload: BulkCategoryUpdate, db: Database = Depends(get_db)):
    return catalog.bulk_set_category(db, payload.ids, payload.category)


@router.put("/api/products/{product_id}", dependencies=[Depends(auth.require_admin)])
@admin.put("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, db: Database = Depends(get_db)):
    return catalog.update_product(db, product_id, payload)


@router.delete("/api/products/{product_id}", dependencies=[Depends(auth.require_admin)])
@admin.delete("/products/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"message": "Product deleted successfully"}


# Category Endpoints
@router.get("/api/categories")
def list_categories(db: Database = Depends(get_db)):
    return catalog.list_categories(db)


@router.get("/api/categories/{category_id}")
def get_category(category_id: str, db: Database = Depends(get_db)):
    return catalog.get_category(db, category_id)


@router.get("/api/categories/{category_id}/products")
def category_products(
    category_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return catalog.category_products(db, category_id, page, limit)


@router.post("/api/categories", status_code=201, dependencies=[Depends(auth.require_admin)])
@admin.post("/categories", status_code=201)
def create_category(payload: CategoryPayload, db: Database = Depends(get_db)):
    return catalog.create_category(db, payload)


@router.put("/api/categories/{category_id}", dependencies=[Depends(auth.require_admin)])
@admin.put("/categories/{category_id}")
def update_category(category_id: str, payload: CategoryUpdate, db: Database = Depends(get_db)):
    return catalog.update_category(db, category_id, payload)


@router.delete("/api/categories/{category_id}", dependencies=[Depends(auth.require_admin)])
@admin.delete("/categories/{category_id}")
def delete_category(category_id: str, db: Database = Depends(get_db)):
    catalog.delete_category(db, category_id)
    return {"message": "Category deleted successfully"}


# Cart (keyed by the X-Session-Id header)
@router.get("/api/cart")
def get_cart(session_id: str = Depends(get_session_id), carts: CartStore = Depends(get_cart_store)):
    return carts.get(session_id)


@router.post("/api/cart/add")
def add_to_cart(
    payload: CartAddRequest,
    session_id: str = Depends(get_session_id),
    carts: CartStore = Depends(get_cart_store),
):
    cart = carts.add(session_id, payload.product_id, payload.quantity)
    return {"message": "Item added to cart", "cart": cart}


@router.put("/api/cart/update")
def update_cart(
    payload: CartUpdateRequest,
    session_id: str = Depends(get_session_id),
    carts: CartStore = Depends(get_cart_store),
):
    cart = carts.update(session_id, payload.product_id, payload.quantity)
    return {"message": "Cart updated", "cart": cart}


@router.delete("/api/cart/remove/{product_id}")
def remove_from_cart(
    product_id: str,
    session_id: str = Depends(get_session_id),
    carts: CartStore = Depends(get_cart_store),
):
    cart = carts.remove(session_id, product_id)
    return {"message": "Item removed from cart", "cart": cart}


@router.delete("/api/cart/clear")
def clear_cart(session_id: str = Depends(get_session_id), carts: CartStore = Depends(get_cart_store)):
    carts.clear(session_id)
    return {"message": "Cart cleared"}


# Orders
@router.post("/api/orders/checkout", status_code=201)
def checkout(payload: CheckoutRequest, user: dict = Depends(auth.get_current_user), db: Database = Depends(get_db)):
    return orders.place_order(db, user, payload.items, payload.address)


@router.get("/api/orders/my-orders")
def my_orders(user: dict = Depends(auth.get_current_user), db: Database = Depends(get_db)):
    return orders.my_orders(db, user)


@router.get("/api/orders/stats/overview", dependencies=[Depends(auth.require_admin)])
def order_stats(db: Database = Depends(get_db)):
    return reporting.order_overview(db)


@router.get("/api/orders", dependencies=[Depends(auth.require_admin)])
def list_orders(
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return orders.list_orders(db, status=status, page=page, limit=limit)


@router.get("/api/orders/{order_id}")
def get_order(order_id: str, user: dict = Depends(auth.get_current_user), db: Database = Depends(get_db)):
    return orders.get_order(db, order_id, user)


@router.put("/api/orders/{order_id}/status", dependencies=[Depends(auth.require_admin)])
def update_order_status(order_id: str, payload: OrderStatusUpdate, db: Database = Depends(get_db)):
    return orders.update_status(db, order_id, payload.status)


# Admin console
@admin.get("/dashboard")
def admin_dashboard(db: Database = Depends(get_db)):
    return reporting.dashboard(db)


@admin.get("/users")
def admin_users(
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return auth.list_users(db, search, page, limit)


@admin.put("/users/{user_id}/role")
def admin_set_role(user_id: str, payload: RoleUpdate, db: Database = Depends(get_db)):
    user = auth.set_role(db, user_id, payload.role)
    if user is None:
        raise NotFound("User not found")
    return user


@admin.post("/create-admin", status_code=201)
def admin_create_admin(
    payload: RegisterRequest,
    db: Database = Depends(get_db),
    settings: Settings = Depends(auth.get_settings),
):
    user = auth.create_user(db, settings, payload.name, payload.email, payload.password, role="admin")
    return {"message": "Admin user created successfully", "user": auth.public_user(user)}


@admin.get("/products")
def admin_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return catalog.admin_list_products(db, search, category, status, page, limit)


@admin.put("/products/{product_id}/stock")
def admin_set_stock(product_id: str, payload: StockUpdate, db: Database = Depends(get_db)):
    return catalog.set_stock(db, product_id, payload.stock)


@admin.put("/products/{product_id}/status")
def admin_set_product_status(product_id: str, payload: ProductStatusUpdate, db: Database = Depends(get_db)):
    return catalog.set_active(db, product_id, payload.is_active)


@admin.get("/categories")
def admin_categories(db: Database = Depends(get_db)):
    return catalog.list_categories(db)


@admin.get("/orders")
def admin_orders(
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
):
    return orders.list_orders(db, status=status, search=search, page=page, limit=limit)


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)
    if db is None:
        db = connect(settings)

    app = FastAPI(title="Storefront API")
    app.state.settings = settings
    app.state.db = db
    app.state.carts = CartStore(db)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000
        logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, elapsed)
        return response

    @app.on_event("startup")
    def on_startup():
        ensure_indexes(db)
        auth.ensure_admin(db, settings)

    register_error_handlers(app)
    app.include_router(router)
    app.include_router(admin)
    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
