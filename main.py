import os
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import List, Optional

import structlog
from fastapi import FastAPI, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import services
from database import DATABASE_NAME, ensure_indexes, open_client
from errors import StoreError
from references import resolve_cart, resolve_order, resolve_product, resolve_user
from repository import (
    CartRepository,
    CategoryRepository,
    ClientRepository,
    OrderRepository,
    ProductRepository,
    ProfileRepository,
    UserRepository,
)
from schemas import DeliveryMethod, OrderStatus, UserStatus

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    ),
)
logger = structlog.get_logger(__name__)


# Request models
class AddressInput(BaseModel):
    street: str
    district: str
    region: str
    instructions: Optional[str] = None

class ClientInput(BaseModel):
    full_name: str
    national_id: str
    birth_date: Optional[date] = None
    sex: Optional[str] = None
    phone: str
    addresses: List[AddressInput] = []

class ProfileInput(BaseModel):
    name: str
    description: Optional[str] = None

class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None

class UserCreate(BaseModel):
    email: str
    password: str
    profile_id: str
    client: ClientInput

class UserUpdate(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    profile_id: Optional[str] = None
    status: Optional[UserStatus] = None

class UserStatusChange(BaseModel):
    status: UserStatus

class CategoryInput(BaseModel):
    name: str
    description: Optional[str] = None

class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None

class ProductInput(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    image_url: Optional[str] = None
    available: bool = True
    category_id: str

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    image_url: Optional[str] = None
    available: Optional[bool] = None
    category_id: Optional[str] = None

class AvailabilityChange(BaseModel):
    available: bool

class CartItemInput(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)

class QuantityChange(BaseModel):
    quantity: int = Field(..., ge=1)

class OrderItemInput(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    price_at_purchase: float = Field(..., ge=0)
    product_name: str

class OrderCreate(BaseModel):
    items: List[OrderItemInput]
    total: float = Field(..., ge=0)
    delivery_method: DeliveryMethod
    shipping_address: Optional[AddressInput] = None

class OrderStatusChange(BaseModel):
    status: OrderStatus

class CancellationRequest(BaseModel):
    reason: Optional[str] = None


def _partial(body: BaseModel) -> dict:
    return body.model_dump(exclude_unset=True)


# Dependencies
def get_db(request: Request):
    return request.app.state.db


def create_app(database=None) -> FastAPI:
    """Build the API. ``database`` replaces the MongoDB connection (tests)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = None
        if database is None:
            client = open_client()
            app.state.db = client[DATABASE_NAME]
        else:
            app.state.db = database
        await ensure_indexes(app.state.db)
        logger.info("api.started")
        try:
            yield
        finally:
            if client is not None:
                await client.close()
            logger.info("api.stopped")

    app = FastAPI(title="Nikkei Store API", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.info("api.error", path=request.url.path, code=exc.code, message=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        message = "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in errors)
        return JSONResponse(status_code=422, content={"code": "VALIDATION_ERROR", "message": message, "errors": errors})

    register_routes(app)
    return app


def register_routes(app: FastAPI) -> None:
    # Profiles
    @app.get("/api/profiles")
    async def list_profiles(db=Depends(get_db)):
        return await ProfileRepository(db).find_all()

    @app.post("/api/profiles")
    async def create_profile(body: ProfileInput, db=Depends(get_db)):
        return await ProfileRepository(db).create(body.model_dump())

    @app.put("/api/profiles/{profile_id}")
    async def update_profile(profile_id: str, body: ProfileUpdate, db=Depends(get_db)):
        return await ProfileRepository(db).update_by_id(profile_id, _partial(body))

    @app.delete("/api/profiles/{profile_id}")
    async def delete_profile(profile_id: str, db=Depends(get_db)):
        return await ProfileRepository(db).delete_by_id(profile_id)

    # Users
    @app.get("/api/users")
    async def list_users(db=Depends(get_db)):
        return [await resolve_user(db, u) for u in await UserRepository(db).find_all()]

    @app.get("/api/users/{user_id}")
    async def get_user(user_id: str, db=Depends(get_db)):
        return await resolve_user(db, await UserRepository(db).find_by_id(user_id))

    @app.post("/api/users")
    async def create_user(body: UserCreate, db=Depends(get_db)):
        return await services.create_user(db, body.email, body.password, body.profile_id, body.client.model_dump())

    @app.put("/api/users/{user_id}")
    async def update_user(user_id: str, body: UserUpdate, db=Depends(get_db)):
        return await resolve_user(db, await UserRepository(db).update_by_id(user_id, _partial(body)))

    @app.delete("/api/users/{user_id}")
    async def delete_user(user_id: str, db=Depends(get_db)):
        return await UserRepository(db).delete_by_id(user_id)

    @app.patch("/api/users/{user_id}/status")
    async def change_user_status(user_id: str, body: UserStatusChange, db=Depends(get_db)):
        return await services.change_user_status(db, user_id, body.status)

    # Clients
    @app.get("/api/clients/{client_id}")
    async def get_client(client_id: str, db=Depends(get_db)):
        return await ClientRepository(db).find_by_id(client_id)

    @app.post("/api/clients/{client_id}/addresses")
    async def add_address(client_id: str, body: AddressInput, db=Depends(get_db)):
        return await services.add_address(db, client_id, body.model_dump())

    @app.put("/api/clients/{client_id}/addresses/{address_id}")
    async def edit_address(client_id: str, address_id: str, body: AddressInput, db=Depends(get_db)):
        return await services.edit_address(db, client_id, address_id, body.model_dump())

    # Categories
    @app.get("/api/categories")
    async def list_categories(db=Depends(get_db)):
        return await CategoryRepository(db).find_all()

    @app.post("/api/categories")
    async def create_category(body: CategoryInput, db=Depends(get_db)):
        return await CategoryRepository(db).create(body.model_dump())

    @app.put("/api/categories/{category_id}")
    async def update_category(category_id: str, body: CategoryUpdate, db=Depends(get_db)):
        return await CategoryRepository(db).update_by_id(category_id, _partial(body))

    @app.delete("/api/categories/{category_id}")
    async def delete_category(category_id: str, db=Depends(get_db)):
        return await CategoryRepository(db).delete_by_id(category_id)

    # Products
    @app.get("/api/products")
    async def list_products(category_id: Optional[str] = None, db=Depends(get_db)):
        query = {"category_id": category_id} if category_id else None
        return [await resolve_product(db, p) for p in await ProductRepository(db).find_all(query)]

    @app.get("/api/products/{product_id}")
    async def get_product(product_id: str, db=Depends(get_db)):
        return await resolve_product(db, await ProductRepository(db).find_by_id(product_id))

    @app.post("/api/products")
    async def create_product(body: ProductInput, db=Depends(get_db)):
        return await resolve_product(db, await ProductRepository(db).create(body.model_dump()))

    @app.put("/api/products/{product_id}")
    async def update_product(product_id: str, body: ProductUpdate, db=Depends(get_db)):
        return await resolve_product(db, await ProductRepository(db).update_by_id(product_id, _partial(body)))

    @app.delete("/api/products/{product_id}")
    async def delete_product(product_id: str, db=Depends(get_db)):
        return await ProductRepository(db).delete_by_id(product_id)

    @app.patch("/api/products/{product_id}/availability")
    async def change_availability(product_id: str, body: AvailabilityChange, db=Depends(get_db)):
        return await services.change_product_availability(db, product_id, body.available)

    # Cart
    @app.get("/api/clients/{client_id}/cart")
    async def get_cart(client_id: str, db=Depends(get_db)):
        return await resolve_cart(db, await CartRepository(db).find_by_client(client_id))

    @app.post("/api/clients/{client_id}/cart")
    async def open_cart(client_id: str, db=Depends(get_db)):
        return await services.open_cart(db, client_id)

    @app.post("/api/clients/{client_id}/cart/items")
    async def add_cart_item(client_id: str, body: CartItemInput, db=Depends(get_db)):
        return await services.add_item(db, client_id, body.product_id, body.quantity)

    @app.patch("/api/clients/{client_id}/cart/items/{item_id}")
    async def update_cart_item(client_id: str, item_id: str, body: QuantityChange, db=Depends(get_db)):
        return await services.update_item_quantity(db, client_id, item_id, body.quantity)

    @app.delete("/api/clients/{client_id}/cart/items/{item_id}")
    async def remove_cart_item(client_id: str, item_id: str, db=Depends(get_db)):
        return await services.remove_item(db, client_id, item_id)

    # Orders
    @app.get("/api/clients/{client_id}/orders")
    async def list_client_orders(client_id: str, db=Depends(get_db)):
        return await services.list_orders(db, client_id)

    @app.post("/api/clients/{client_id}/orders")
    async def create_order(client_id: str, body: OrderCreate, db=Depends(get_db)):
        shipping = body.shipping_address.model_dump() if body.shipping_address else None
        return await services.create_order(
            db, client_id, [i.model_dump() for i in body.items], body.total, body.delivery_method, shipping
        )

    @app.get("/api/orders/{order_id}")
    async def get_order(order_id: str, db=Depends(get_db)):
        return await resolve_order(db, await OrderRepository(db).find_by_id(order_id))

    @app.patch("/api/orders/{order_id}/status")
    async def change_order_status(order_id: str, body: OrderStatusChange, db=Depends(get_db)):
        return await services.transition_status(db, order_id, body.status)

    @app.post("/api/orders/{order_id}/cancellation")
    async def request_cancellation(order_id: str, body: CancellationRequest, db=Depends(get_db)):
        return await services.request_cancellation(db, order_id, body.reason)

    # Health + test
    @app.get("/")
    async def root():
        return {"message": "Nikkei Store API running"}

    @app.get("/test")
    async def test_database(db=Depends(get_db)):
        response = {
            "backend": "✅ Running",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
            "collections": []
        }
        try:
            collections = await db.list_collection_names()
            response["collections"] = collections[:10]
        except Exception as e:
            response["error"] = str(e)[:120]
        return response


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
