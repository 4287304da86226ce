from typing import Callable, Optional

from bson import ObjectId

from database import serialize_doc, utcnow
from errors import ErrorKind, Result
from schemas import Cart, CartLine, User


class CartEngine:
    """Per-user cart stored in the "cart" collection.

    The total is recomputed from the lines on every mutation. A cart that
    loses its last line is deleted; reading a missing cart yields an empty one.
    """

    def __init__(self, db, clock: Callable = utcnow):
        self.collection = db["cart"]
        self.clock = clock

    def _load(self, user_id: str) -> Optional[Cart]:
        doc = self.collection.find_one({"user_id": user_id})
        if not doc:
            return None
        return Cart.model_validate(serialize_doc(doc))

    def _save(self, cart: Cart) -> Cart:
        if not cart.items:
            self.collection.delete_one({"user_id": cart.user_id})
            return Cart(user_id=cart.user_id)
        cart.recompute_total()
        self.collection.update_one(
            {"user_id": cart.user_id},
            {"$set": {**cart.model_dump(), "updated_at": self.clock()}},
            upsert=True,
        )
        return cart

    def get_cart(self, user: User) -> Cart:
        return self._load(user.id) or Cart(user_id=user.id)

    def add_item(self, user: User, product_id: str, quantity: int, unit_price: float) -> Result[Cart]:
        if quantity < 1:
            return Result.fail(ErrorKind.VALIDATION, "Quantity must be at least 1")
        if unit_price < 0:
            return Result.fail(ErrorKind.VALIDATION, "Price cannot be negative")
        cart = self.get_cart(user)
        line = next((it for it in cart.items if it.product_id == product_id), None)
        if line is not None:
            # keep the price captured on the first add
            line.quantity += quantity
        else:
            cart.items.append(CartLine(
                item_id=str(ObjectId()),
                product_id=product_id,
                quantity=quantity,
                price=unit_price,
                added_at=self.clock(),
            ))
        return Result.success(self._save(cart))

    def update_item_quantity(self, user: User, item_id: str, quantity: int) -> Result[Cart]:
        if quantity < 1:
            return Result.fail(ErrorKind.VALIDATION, "Quantity must be at least 1")
        cart = self.get_cart(user)
        line = cart.find_line(item_id)
        if line is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Item not found in cart")
        line.quantity = quantity
        return Result.success(self._save(cart))

    def remove_item(self, user: User, item_id: str) -> Result[Cart]:
        cart = self.get_cart(user)
        line = cart.find_line(item_id)
        if line is None:
            return Result.fail(ErrorKind.NOT_FOUND, "Item not found in cart")
        cart.items.remove(line)
        return Result.success(self._save(cart))

    def clear_cart(self, user: User) -> Cart:
        self.collection.delete_one({"user_id": user.id})
        return Cart(user_id=user.id)
