"""MongoDB-backed persistence used by CartService."""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase

from schemas import Cart, Product, User, serialize_doc

logger = logging.getLogger(__name__)


class MongoProductLookup:
    def __init__(self, db: AsyncDatabase):
        self.collection = db["product"]

    async def find_by_id(self, product_id: str) -> Optional[Product]:
        if not ObjectId.is_valid(product_id):
            return None
        doc = await self.collection.find_one({"_id": ObjectId(product_id)})
        return Product(**serialize_doc(doc)) if doc else None

    async def search(self, q: Optional[str] = None, skip: int = 0, limit: int = 20) -> Tuple[List[Product], int]:
        """Products whose name or category contains `q` (case-insensitive), plus the match count."""
        query: Dict[str, Any] = {}
        if q:
            pattern = {"$regex": re.escape(q), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"category": pattern}]
        total = await self.collection.count_documents(query)
        cursor = self.collection.find(query).skip(skip).limit(limit)
        return [Product(**serialize_doc(d)) async for d in cursor], total


class MongoUserPersistence:
    def __init__(self, db: AsyncDatabase):
        self.collection = db["user"]

    async def find_by_id(self, user_id: str) -> Optional[User]:
        if not ObjectId.is_valid(user_id):
            return None
        doc = await self.collection.find_one({"_id": ObjectId(user_id)})
        return User(**serialize_doc(doc)) if doc else None

    async def find_by_email(self, email: str) -> Optional[User]:
        doc = await self.collection.find_one({"email": email.lower()})
        return User(**serialize_doc(doc)) if doc else None

    async def create(self, user: User) -> User:
        result = await self.collection.insert_one(user.to_document())
        return user.model_copy(update={"id": str(result.inserted_id)})

    async def save(self, user: User) -> User:
        """Write back `wallet_money` only; profile fields have their own setters."""
        doc = await self.collection.find_one_and_update(
            {"email": user.email},
            {"$set": {"wallet_money": user.wallet_money}},
            return_document=ReturnDocument.AFTER,
        )
        return User(**serialize_doc(doc)) if doc else user

    async def set_address(self, email: str, address: str) -> Optional[User]:
        doc = await self.collection.find_one_and_update(
            {"email": email},
            {"$set": {"address": address}},
            return_document=ReturnDocument.AFTER,
        )
        return User(**serialize_doc(doc)) if doc else None


class MongoCartPersistence:
    def __init__(self, db: AsyncDatabase):
        self.collection = db["cart"]

    async def find_one(self, email: str) -> Optional[Cart]:
        doc = await self.collection.find_one({"email": email})
        return Cart(**serialize_doc(doc)) if doc else None

    async def create(self, email: str) -> Cart:
        cart = Cart(email=email)
        result = await self.collection.insert_one(cart.to_document())
        logger.debug("Created cart %s for %s", result.inserted_id, email)
        return cart.model_copy(update={"id": str(result.inserted_id)})

    async def save(self, cart: Cart) -> Cart:
        await self.collection.update_one({"email": cart.email}, {"$set": cart.to_document()})
        return cart
