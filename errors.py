"""Cart failure taxonomy.

Every cart operation fails with one of the classes below. Each carries an
HTTP status and a fixed message, so callers can branch on the class and the
HTTP layer can render it without string matching.
"""

from http import HTTPStatus
from typing import Any, Dict


class CartError(Exception):
    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    message: str = "Internal Server Error"

    def __init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": int(self.status), "message": self.message}


class NotFound(CartError):
    status = HTTPStatus.NOT_FOUND


class BadRequest(CartError):
    status = HTTPStatus.BAD_REQUEST


class InternalError(CartError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR


class CartNotFound(NotFound):
    message = "User does not have a cart"


class NoCartToModify(BadRequest):
    message = "User does not have a cart"


class CartRequiredForUpdate(BadRequest):
    message = "User does not have a cart. Use POST to create cart and add a product"


class ProductAlreadyInCart(BadRequest):
    message = "Product already in cart. Use the cart sidebar to update or remove product from cart"


class ProductNotFound(BadRequest):
    message = "Product doesn't exist in database"


class ProductNotInCart(BadRequest):
    message = "Product not in cart"


class CartEmpty(BadRequest):
    message = "Cart is empty"


class AddressNotSet(BadRequest):
    message = "Address not set"


class InsufficientFunds(BadRequest):
    message = "Insufficient money to checkout"


class CartCreationFailed(InternalError):
    message = "Internal Server Error"
