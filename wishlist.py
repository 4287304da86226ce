from typing import Callable, Optional

from database import serialize_doc, utcnow
from errors import ErrorKind, Result
from schemas import User, Wishlist


class WishlistEngine:
    """Per-user wishlist. A product appears at most once; empty lists are deleted."""

    def __init__(self, db, clock: Callable = utcnow):
        self.collection = db["wishlist"]
        self.clock = clock

    def _load(self, user_id: str) -> Optional[Wishlist]:
        doc = self.collection.find_one({"user_id": user_id})
        if not doc:
            return None
        return Wishlist.model_validate(serialize_doc(doc))

    def get(self, user: User) -> Wishlist:
        return self._load(user.id) or Wishlist(user_id=user.id)

    def add(self, user: User, product_id: str) -> Result[Wishlist]:
        wishlist = self.get(user)
        if product_id in wishlist.product_ids:
            return Result.fail(ErrorKind.DUPLICATE_ENTRY, "Product is already in your wishlist")
        wishlist.product_ids.append(product_id)
        self.collection.update_one(
            {"user_id": user.id},
            {"$set": {**wishlist.model_dump(), "updated_at": self.clock()}},
            upsert=True,
        )
        return Result.success(wishlist)

    def remove(self, user: User, product_id: str) -> Result[Wishlist]:
        wishlist = self.get(user)
        if product_id not in wishlist.product_ids:
            return Result.fail(ErrorKind.NOT_FOUND, "Product not found in wishlist")
        wishlist.product_ids.remove(product_id)
        if not wishlist.product_ids:
            self.collection.delete_one({"user_id": user.id})
        else:
            self.collection.update_one(
                {"user_id": user.id},
                {"$set": {"product_ids": wishlist.product_ids, "updated_at": self.clock()}},
            )
        return Result.success(wishlist)
