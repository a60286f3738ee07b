"""
Database Schemas

MongoDB collection schemas as Pydantic models.
Each Pydantic model represents a collection in the database.
Model name lowercased is the collection name; CartItem is embedded in Cart.
"""

from typing import Any, Dict, List, Optional

from bson import ObjectId
from pydantic import BaseModel, EmailStr, Field

from config import settings


def serialize_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a raw Mongo document into plain JSON-able data (`_id` -> `id`)."""
    if not doc:
        return doc
    doc = dict(doc)
    _id = doc.pop("_id", None)
    if _id is not None:
        doc["id"] = str(_id)
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, dict):
            doc[k] = serialize_doc(v)
        elif isinstance(v, list):
            doc[k] = [serialize_doc(i) if isinstance(i, dict) else i for i in v]
    return doc


class User(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field("", description="BCrypt hashed password")
    role: str = Field("customer", description="Role: customer | admin")
    wallet_money: float = Field(default_factory=lambda: settings.default_wallet_money, ge=0)
    address: str = Field(default_factory=lambda: settings.default_address)

    def has_non_default_address(self) -> bool:
        return bool(self.address) and self.address != settings.default_address

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"id"})

    def public(self) -> Dict[str, Any]:
        # Never send password hash
        return self.model_dump(exclude={"password_hash"})


class Product(BaseModel):
    id: Optional[str] = None
    name: str
    category: str
    rating: float = Field(default=0, ge=0, le=5)
    cost: float = Field(..., ge=0)
    image: Optional[str] = None


class CartItem(BaseModel):
    product: Product
    quantity: int


class Cart(BaseModel):
    id: Optional[str] = None
    email: EmailStr
    cart_items: List[CartItem] = Field(default_factory=list)
    payment_option: str = Field(default_factory=lambda: settings.default_payment_option)

    def find_item(self, product_id: str) -> int:
        """Index of the item holding `product_id`, or -1."""
        for i, item in enumerate(self.cart_items):
            if item.product.id == str(product_id):
                return i
        return -1

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(exclude={"id"})
        for item in doc["cart_items"]:
            # embedded products keep their catalogue id as `_id`
            product_id = item["product"].pop("id", None)
            item["product"]["_id"] = ObjectId(product_id) if product_id and ObjectId.is_valid(product_id) else product_id
        return doc
