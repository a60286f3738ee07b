"""Shared fixtures: in-memory stores standing in for MongoDB."""

from typing import Dict, List, Optional, Tuple

import pytest
from bson import ObjectId

from cart_service import CartService
from schemas import Cart, CartItem, Product, User


class InMemoryProducts:
    def __init__(self, products: List[Product]):
        self.products = {p.id: p for p in products}

    async def find_by_id(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    async def search(self, q: Optional[str] = None, skip: int = 0, limit: int = 20) -> Tuple[List[Product], int]:
        matches = [
            p for p in self.products.values()
            if not q or q.lower() in p.name.lower() or q.lower() in p.category.lower()
        ]
        return matches[skip:skip + limit], len(matches)


class InMemoryUsers:
    def __init__(self):
        self.users: Dict[str, User] = {}

    async def find_by_id(self, user_id: str) -> Optional[User]:
        for user in self.users.values():
            if user.id == user_id:
                return user.model_copy(deep=True)
        return None

    async def find_by_email(self, email: str) -> Optional[User]:
        user = self.users.get(email.lower())
        return user.model_copy(deep=True) if user else None

    async def create(self, user: User) -> User:
        user = user.model_copy(update={"id": str(ObjectId())})
        self.users[user.email] = user.model_copy(deep=True)
        return user

    async def save(self, user: User) -> User:
        # same contract as the Mongo store: only wallet_money is written back
        stored = self.users[user.email]
        stored.wallet_money = user.wallet_money
        return stored.model_copy(deep=True)

    async def set_address(self, email: str, address: str) -> Optional[User]:
        stored = self.users.get(email)
        if stored is None:
            return None
        stored.address = address
        return stored.model_copy(deep=True)


class InMemoryCarts:
    """Stores copies, so in-memory edits that were never saved stay invisible."""

    def __init__(self):
        self.carts: Dict[str, Cart] = {}

    async def find_one(self, email: str) -> Optional[Cart]:
        cart = self.carts.get(email)
        return cart.model_copy(deep=True) if cart else None

    async def create(self, email: str) -> Cart:
        cart = Cart(id=str(ObjectId()), email=email)
        self.carts[email] = cart.model_copy(deep=True)
        return cart

    async def save(self, cart: Cart) -> Cart:
        self.carts[cart.email] = cart.model_copy(deep=True)
        return cart


@pytest.fixture
def ball() -> Product:
    return Product(id=str(ObjectId()), name="ball", category="Sports", rating=5, cost=20, image="google.com")


@pytest.fixture
def bat() -> Product:
    return Product(id=str(ObjectId()), name="bat", category="Sports", rating=4, cost=15, image="google.com")


@pytest.fixture
def glove() -> Product:
    return Product(id=str(ObjectId()), name="glove", category="Sports", rating=3, cost=8, image="google.com")


@pytest.fixture
def products(ball, bat, glove) -> InMemoryProducts:
    return InMemoryProducts([ball, bat, glove])


@pytest.fixture
def users() -> InMemoryUsers:
    return InMemoryUsers()


@pytest.fixture
def carts() -> InMemoryCarts:
    return InMemoryCarts()


@pytest.fixture
def service(carts, products, users) -> CartService:
    return CartService(carts, products, users)


@pytest.fixture
def user(users) -> User:
    u = User(
        id=str(ObjectId()),
        name="crio-user",
        email="crio-user@gmail.com",
        wallet_money=100,
        address="ITPL Main Rd, Bengaluru, Karnataka 560066",
    )
    users.users[u.email] = u.model_copy(deep=True)
    return u


@pytest.fixture
def make_cart(carts):
    """Seed a stored cart: make_cart(email, (product, quantity), ...)."""

    def _make(email: str, *items: Tuple[Product, int]) -> Cart:
        cart = Cart(
            id=str(ObjectId()),
            email=email,
            cart_items=[CartItem(product=p, quantity=q) for p, q in items],
        )
        carts.carts[email] = cart.model_copy(deep=True)
        return cart

    return _make
