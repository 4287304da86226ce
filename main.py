import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field

from access import authorize, extract_token, resolve_caller
from cart import CartEngine
from config import Settings
from database import Database, create_document, serialize_doc, to_object_id, utcnow
from errors import ErrorKind, Failure, Result, STATUS_CODES, unwrap, validation_message
from mailer import MailDelivery, ResendMailer
from schemas import Address, Cart, Product, User, Wishlist
from tokens import SessionTokens
from users import Session, UserStore
from wishlist import WishlistEngine

logger = logging.getLogger(__name__)


@dataclass
class Services:
    db: Database
    sessions: SessionTokens
    users: UserStore
    carts: CartEngine
    wishlists: WishlistEngine


# Request models
class RegisterInput(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    password: str
    phone: str = ""
    address: Optional[Address] = None


class LoginInput(BaseModel):
    email: str
    password: str


class EmailInput(BaseModel):
    email: EmailStr


class ResetPasswordInput(BaseModel):
    password: str


class UpdateDetailsInput(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[Address] = None


class UpdatePasswordInput(BaseModel):
    current_password: str
    new_password: str


class CartItemInput(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartQuantityInput(BaseModel):
    quantity: int = Field(..., ge=1)


class ProductIn(BaseModel):
    name: str
    description: Optional[str] = None
    price: float = Field(..., ge=0)
    image: Optional[str] = None
    category: Optional[str] = None
    count_in_stock: int = Field(0, ge=0)


# Dependencies

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
    settings: Settings = Depends(get_settings),
) -> User:
    token = extract_token(authorization, request.cookies.get(settings.cookie_name))
    return unwrap(resolve_caller(services.users, services.sessions, token))


def require_roles(*roles: str) -> Callable[..., User]:
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        return unwrap(authorize(current_user, roles))
    return dependency


# Helpers

def fail(kind: ErrorKind, message: str):
    return unwrap(Result.fail(kind, message))


def session_response(response: Response, settings: Settings, session: Session, message: Optional[str] = None) -> Dict[str, Any]:
    response.set_cookie(
        settings.cookie_name,
        session.token,
        max_age=settings.jwt_expire_minutes * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    body: Dict[str, Any] = {"success": True, "token": session.token, "user": session.user.public()}
    if message:
        body["message"] = message
    return body


def find_product(services: Services, product_id: str) -> Optional[Product]:
    obj_id = to_object_id(product_id)
    if obj_id is None:
        return None
    doc = services.db["product"].find_one({"_id": obj_id})
    return Product.model_validate(serialize_doc(doc)) if doc else None


def product_summary(services: Services, product_id: str) -> Optional[Dict[str, Any]]:
    product = find_product(services, product_id)
    if product is None:
        return None
    return {"id": product.id, "name": product.name, "price": product.price, "image": product.image}


def cart_response(services: Services, cart: Cart) -> Dict[str, Any]:
    items = [{**line.model_dump(), "product": product_summary(services, line.product_id)} for line in cart.items]
    return {"user_id": cart.user_id, "items": items, "total": cart.total}


def wishlist_response(services: Services, wishlist: Wishlist) -> Dict[str, Any]:
    items = [{"product_id": pid, "product": product_summary(services, pid)} for pid in wishlist.product_ids]
    return {"user_id": wishlist.user_id, "items": items}


def check_stock(product: Product, quantity: int) -> None:
    if product.count_in_stock < quantity:
        fail(ErrorKind.VALIDATION, f"Only {product.count_in_stock} units available")


router = APIRouter()


@router.get("/")
def read_root():
    return {"message": "Shop API"}


@router.get("/test")
def test_database(services: Services = Depends(get_services)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        response["database_name"] = services.db.db.name
        response["collections"] = services.db.db.list_collection_names()
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = "❌ Error"
    return response


# Auth
@router.post("/api/auth/register")
def register(payload: RegisterInput, response: Response, services: Services = Depends(get_services), settings: Settings = Depends(get_settings)):
    profile = payload.model_dump(exclude={"password"}, exclude_none=True)
    user = unwrap(services.users.register(profile, payload.password))
    return session_response(
        response, settings, services.users.issue_session(user),
        "Registration successful. Please verify your email.",
    )


@router.post("/api/auth/login")
def login(payload: LoginInput, response: Response, services: Services = Depends(get_services), settings: Settings = Depends(get_settings)):
    session = unwrap(services.users.authenticate(payload.email, payload.password))
    return session_response(response, settings, session)


@router.get("/api/auth/logout")
def logout(response: Response, settings: Settings = Depends(get_settings)):
    response.set_cookie(settings.cookie_name, "none", max_age=10, httponly=True, secure=settings.cookie_secure)
    return {"success": True, "data": {}}


@router.post("/api/auth/forgotpassword")
def forgot_password(payload: EmailInput, services: Services = Depends(get_services)):
    unwrap(services.users.request_password_reset(payload.email))
    return {"success": True, "data": "Password reset email sent"}


@router.put("/api/auth/resetpassword/{reset_token}")
def reset_password(reset_token: str, payload: ResetPasswordInput, response: Response, services: Services = Depends(get_services), settings: Settings = Depends(get_settings)):
    user = unwrap(services.users.reset_password(reset_token, payload.password))
    return session_response(response, settings, services.users.issue_session(user), "Password reset successfully")


@router.get("/api/auth/verify-email/{verification_token}")
def verify_email(verification_token: str, services: Services = Depends(get_services)):
    user = unwrap(services.users.verify_email(verification_token))
    return {"success": True, "message": "Email verified", "user": user.public()}


@router.post("/api/auth/resend-verification")
def resend_verification(payload: EmailInput, services: Services = Depends(get_services)):
    unwrap(services.users.resend_verification(payload.email))
    return {"success": True, "data": "Verification email sent"}


@router.get("/api/auth/me")
def me(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": current_user.public()}


@router.put("/api/auth/updatedetails")
def update_details(payload: UpdateDetailsInput, current_user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    user = unwrap(services.users.update_details(current_user, payload.model_dump(exclude_none=True)))
    return {"success": True, "data": user.public()}


@router.put("/api/auth/updatepassword")
def update_password(payload: UpdatePasswordInput, response: Response, current_user: User = Depends(get_current_user), services: Services = Depends(get_services), settings: Settings = Depends(get_settings)):
    user = unwrap(services.users.change_password(current_user, payload.current_password, payload.new_password))
    return session_response(response, settings, services.users.issue_session(user), "Password updated")


# Products
@router.post("/api/products", status_code=201)
def create_product(data: ProductIn, _: User = Depends(require_roles("admin")), services: Services = Depends(get_services)):
    product_id = create_document(services.db, "product", Product(**data.model_dump()))
    return find_product(services, product_id)


@router.get("/api/products")
def list_products(q: Optional[str] = None, category: Optional[str] = None, limit: int = 20, page: int = 1, services: Services = Depends(get_services)):
    query: Dict[str, Any] = {}
    if q:
        query["$or"] = [
            {"name": {"$regex": q, "$options": "i"}},
            {"description": {"$regex": q, "$options": "i"}},
        ]
    if category:
        query["category"] = category
    collection = services.db["product"]
    total = collection.count_documents(query)
    skip = max(page - 1, 0) * limit
    items = [serialize_doc(d) for d in collection.find(query).skip(skip).limit(limit)]
    return {"items": items, "total": total, "page": page, "limit": limit}


@router.get("/api/products/{product_id}")
def get_product(product_id: str, services: Services = Depends(get_services)):
    product = find_product(services, product_id)
    if product is None:
        fail(ErrorKind.NOT_FOUND, "Product not found")
    return product


# Cart
@router.get("/api/cart")
def get_cart(current_user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    return cart_response(services, services.carts.get_cart(current_user))


@router.post("/api/cart", status_code=201)
def add_to_cart(item: CartItemInput, current_user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    product = find_product(services, item.product_id)
    if product is None:
        fail(ErrorKind.NOT_FOUND, "Product not found")
    existing = next((it for it in services.carts.get_cart(current_user).items if it.product_id == product.id), None)
    check_stock(product, item.quantity + (existing.quantity if existing else 0))
    cart = unwrap(services.carts.add_item(current_user, product.id, item.quantity, product.price))
    return cart_response(services, cart)


@router.put("/api/cart/{item_id}")
def update_cart_item(item_id: str, data: CartQuantityInput, current_user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    line = services.carts.get_cart(current_user).find_line(item_id)
    if line is None:
        fail(ErrorKind.NOT_FOUND, "Item not found in cart")
    product = find_product(services, line.product_id)
    if product is not None:
        check_stock(product, data.quantity)
    cart = unwrap(services.carts.update_item_quantity(current_user, item_id, data.quantity))
    return cart_response(services, cart)


@router.delete("/api/cart/{item_id}")
def remove_cart_item(item_id: str, current_user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    cart = unwrap(services.carts.remove_item(current_user, item_id))
    return cart_response(services, cart)


@router.delete("/api/cart")
def clear_cart(current_user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    return cart_response(services, services.carts.clear_cart(current_user))


# Wishlist
@router.get("/api/wishlist")
def get_wishlist(current_user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    return wishlist_response(services, services.wishlists.get(current_user))


@router.post("/api/wishlist/{product_id}", status_code=201)
def add_to_wishlist(product_id: str, current_user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    product = find_product(services, product_id)
    if product is None:
        fail(ErrorKind.NOT_FOUND, "Product not found")
    wishlist = unwrap(services.wishlists.add(current_user, product.id))
    return wishlist_response(services, wishlist)


@router.delete("/api/wishlist/{product_id}")
def remove_from_wishlist(product_id: str, current_user: User = Depends(get_current_user), services: Services = Depends(get_services)):
    obj_id = to_object_id(product_id)
    wishlist = unwrap(services.wishlists.remove(current_user, str(obj_id) if obj_id else product_id))
    return wishlist_response(services, wishlist)


# Error handlers

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    failure = Failure(kind=ErrorKind.VALIDATION, message=validation_message(exc.errors()))
    return JSONResponse(status_code=STATUS_CODES[ErrorKind.VALIDATION], content={"detail": failure.to_dict()})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": {"kind": "ServerError", "message": "Something went wrong"}})


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    mailer: Optional[MailDelivery] = None,
    clock: Callable = utcnow,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    database = database or Database(settings.database_url, settings.database_name)
    mailer = mailer or ResendMailer(settings.resend_api_key, settings.mail_sender)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.connect()
        sessions = SessionTokens(settings.jwt_secret, settings.jwt_algorithm, settings.jwt_expire_minutes)
        app.state.services = Services(
            db=database,
            sessions=sessions,
            users=UserStore(
                database, mailer, sessions,
                base_url=settings.public_base_url,
                password_min_length=settings.password_min_length,
                clock=clock,
            ),
            carts=CartEngine(database, clock=clock),
            wishlists=WishlistEngine(database, clock=clock),
        )
        try:
            yield
        finally:
            database.close()

    app = FastAPI(title="Shop API", lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
