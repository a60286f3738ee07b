"""Cart operations for an authenticated user.

CartService is stateless apart from its per-user locks: every call reads the
user's cart from the store, validates, mutates it in memory and saves it back.
Mutating calls for the same email are serialized within the process so two
concurrent requests cannot overwrite each other's changes.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Protocol

from errors import (
    AddressNotSet,
    CartCreationFailed,
    CartEmpty,
    CartNotFound,
    CartRequiredForUpdate,
    InsufficientFunds,
    NoCartToModify,
    ProductAlreadyInCart,
    ProductNotFound,
    ProductNotInCart,
)
from schemas import Cart, CartItem, Product, User

logger = logging.getLogger(__name__)

MONEY_PLACES = 2


class ProductLookup(Protocol):
    async def find_by_id(self, product_id: str) -> Optional[Product]: ...


class UserPersistence(Protocol):
    async def find_by_email(self, email: str) -> Optional[User]: ...

    async def save(self, user: User) -> User:
        """Persist the fields this service owns (`wallet_money`)."""
        ...


class CartPersistence(Protocol):
    async def find_one(self, email: str) -> Optional[Cart]: ...

    async def create(self, email: str) -> Cart: ...

    async def save(self, cart: Cart) -> Cart: ...


class UserLocks:
    """One asyncio.Lock per email, dropped once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def hold(self, email: str) -> AsyncIterator[None]:
        lock = self._locks.get(email)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[email] = lock
        async with lock:
            yield


def cart_total(cart: Cart) -> float:
    # rounded to cents so float noise (0.1 + 0.2) never trips the wallet check
    return round(sum(item.product.cost * item.quantity for item in cart.cart_items), MONEY_PLACES)


class CartService:
    def __init__(
        self,
        carts: CartPersistence,
        products: ProductLookup,
        users: UserPersistence,
        locks: Optional[UserLocks] = None,
    ):
        self.carts = carts
        self.products = products
        self.users = users
        self.locks = locks or UserLocks()

    async def get_cart_by_user(self, user: User) -> Cart:
        cart = await self.carts.find_one(user.email)
        if cart is None:
            raise CartNotFound()
        return cart

    async def add_product_to_cart(self, user: User, product_id: str, quantity: int) -> Cart:
        """Append `product_id` to the user's cart, creating the cart if needed.

        A product already in the cart is reported before an unknown product.
        """
        async with self.locks.hold(user.email):
            cart = await self.carts.find_one(user.email)
            product = await self.products.find_by_id(product_id)

            if cart is None:
                try:
                    cart = await self.carts.create(user.email)
                except Exception as exc:
                    logger.exception("Cart creation failed for %s", user.email)
                    raise CartCreationFailed() from exc
                logger.info("Created cart for %s", user.email)

            if cart.find_item(product_id) >= 0:
                raise ProductAlreadyInCart()
            if product is None:
                raise ProductNotFound()

            cart.cart_items.append(CartItem(product=product, quantity=quantity))
            return await self.carts.save(cart)

    async def update_product_in_cart(self, user: User, product_id: str, quantity: int) -> Cart:
        async with self.locks.hold(user.email):
            cart = await self.carts.find_one(user.email)
            if cart is None:
                raise CartRequiredForUpdate()

            product = await self.products.find_by_id(product_id)
            if product is None:
                raise ProductNotFound()

            index = cart.find_item(product_id)
            if index < 0:
                raise ProductNotInCart()

            cart.cart_items[index].quantity = quantity
            return await self.carts.save(cart)

    async def delete_product_from_cart(self, user: User, product_id: str) -> Cart:
        async with self.locks.hold(user.email):
            cart = await self.carts.find_one(user.email)
            if cart is None:
                raise NoCartToModify()

            index = cart.find_item(product_id)
            if index < 0:
                raise ProductNotInCart()

            del cart.cart_items[index]
            return await self.carts.save(cart)

    async def checkout(self, user: User) -> None:
        """Debit the cart total from the user's wallet and empty the cart.

        The user is re-read under the lock, so the debit always applies to
        the stored balance rather than the copy the request authenticated
        with. Every precondition is checked before anything is written, so a
        rejected checkout leaves both the wallet and the cart untouched.
        """
        async with self.locks.hold(user.email):
            cart = await self.carts.find_one(user.email)
            if cart is None:
                raise CartNotFound()
            if not cart.cart_items:
                raise CartEmpty()

            current = await self.users.find_by_email(user.email) or user
            if not current.has_non_default_address():
                raise AddressNotSet()

            total = cart_total(cart)
            if total > current.wallet_money:
                logger.info("Checkout rejected for %s: total %s exceeds wallet %s", user.email, total, current.wallet_money)
                raise InsufficientFunds()

            current.wallet_money = round(current.wallet_money - total, MONEY_PLACES)
            await self.users.save(current)
            user.wallet_money = current.wallet_money

            cart.cart_items = []
            await self.carts.save(cart)
            logger.info("Checkout complete for %s, debited %s", user.email, total)
