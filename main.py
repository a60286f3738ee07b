import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field, field_validator

from cart_service import CartService, UserLocks, cart_total
from config import settings
from database import close_client, ensure_indexes, get_db
from errors import CartError, CartRequiredForUpdate, NoCartToModify
from logging_config import setup_logging
from repositories import MongoCartPersistence, MongoProductLookup, MongoUserPersistence
from schemas import Cart, Product, User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Shared by every request so per-user locking spans the whole process
user_locks = UserLocks()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes()
    yield
    await close_client()


setup_logging()

app = FastAPI(title=settings.service_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


@app.exception_handler(CartError)
async def cart_error_handler(request: Request, exc: CartError):
    level = logging.ERROR if exc.status >= 500 else logging.WARNING
    logger.log(level, "%s %s -> %s %s", request.method, request.url.path, int(exc.status), exc.message)
    return JSONResponse(status_code=int(exc.status), content=exc.to_dict())


# Utilities

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def cart_response(cart: Cart) -> Dict[str, Any]:
    return {**cart.model_dump(), "total": cart_total(cart)}


# Dependencies

def get_user_store() -> MongoUserPersistence:
    return MongoUserPersistence(get_db())


def get_product_store() -> MongoProductLookup:
    return MongoProductLookup(get_db())


def get_cart_service(
    users: MongoUserPersistence = Depends(get_user_store),
    products: MongoProductLookup = Depends(get_product_store),
) -> CartService:
    return CartService(MongoCartPersistence(get_db()), products, users, user_locks)


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    users: MongoUserPersistence = Depends(get_user_store),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    token = authorization.split(" ", 1)[1]
    payload = decode_token(token)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = await users.find_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


# Auth models
class RegisterInput(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(..., min_length=8)


class LoginInput(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]


class AddressInput(BaseModel):
    address: str = Field(..., min_length=20, max_length=128)

    @field_validator("address")
    @classmethod
    def not_placeholder(cls, v: str) -> str:
        if v.strip() == settings.default_address:
            raise ValueError("address must be a real shipping address")
        return v.strip()


# Cart models
class AddCartItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class UpdateCartItem(BaseModel):
    product_id: str
    # 0 removes the item
    quantity: int = Field(..., ge=0)


# Routes
@app.get("/")
def read_root():
    return {"message": "Cart Service API", "version": settings.version}


# Auth
@app.post("/auth/register", response_model=TokenResponse)
async def register(payload: RegisterInput, users: MongoUserPersistence = Depends(get_user_store)):
    if await users.find_by_email(payload.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = await users.create(
        User(
            name=payload.name,
            email=payload.email.lower(),
            password_hash=hash_password(payload.password),
        )
    )
    logger.info("Registered %s", user.email)
    token = create_access_token({"sub": user.id})
    return TokenResponse(access_token=token, user=user.public())


@app.post("/auth/login", response_model=TokenResponse)
async def login(payload: LoginInput, users: MongoUserPersistence = Depends(get_user_store)):
    user = await users.find_by_email(payload.email)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=400, detail="Invalid email or password")
    token = create_access_token({"sub": user.id})
    return TokenResponse(access_token=token, user=user.public())


@app.get("/auth/me")
def me(current_user: User = Depends(get_current_user)):
    return current_user.public()


@app.put("/users/me/address")
async def set_address(
    payload: AddressInput,
    current_user: User = Depends(get_current_user),
    users: MongoUserPersistence = Depends(get_user_store),
    service: CartService = Depends(get_cart_service),
):
    # only the address field is written, under the user's cart lock so it
    # cannot interleave with a checkout debit
    async with service.locks.hold(current_user.email):
        user = await users.set_address(current_user.email, payload.address)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user.public()


# Products
@app.get("/products")
async def list_products(
    q: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    page: int = Query(1, ge=1),
    products: MongoProductLookup = Depends(get_product_store),
):
    items, total = await products.search(q, skip=(page - 1) * limit, limit=limit)
    return {"items": [p.model_dump() for p in items], "total": total, "page": page, "limit": limit}


@app.get("/products/{product_id}", response_model=Product)
async def get_product(product_id: str, products: MongoProductLookup = Depends(get_product_store)):
    if not ObjectId.is_valid(product_id):
        raise HTTPException(status_code=400, detail="Invalid product id")
    product = await products.find_by_id(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


# Cart
@app.get("/cart")
async def get_cart(current_user: User = Depends(get_current_user), service: CartService = Depends(get_cart_service)):
    cart = await service.get_cart_by_user(current_user)
    return cart_response(cart)


@app.post("/cart")
async def add_to_cart(
    item: AddCartItem,
    current_user: User = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.add_product_to_cart(current_user, item.product_id, item.quantity)
    return cart_response(cart)


@app.put("/cart")
async def update_cart(
    item: UpdateCartItem,
    current_user: User = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    if item.quantity == 0:
        try:
            cart = await service.delete_product_from_cart(current_user, item.product_id)
        except NoCartToModify:
            # PUT reports a missing cart the same way whatever the quantity
            raise CartRequiredForUpdate() from None
    else:
        cart = await service.update_product_in_cart(current_user, item.product_id, item.quantity)
    return cart_response(cart)


@app.delete("/cart/{product_id}")
async def remove_from_cart(
    product_id: str,
    current_user: User = Depends(get_current_user),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.delete_product_from_cart(current_user, product_id)
    return cart_response(cart)


@app.put("/cart/checkout", status_code=204)
async def checkout(current_user: User = Depends(get_current_user), service: CartService = Depends(get_cart_service)):
    await service.checkout(current_user)
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
