"""Shopping cart service. One cart document per user."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from pymongo import ReturnDocument

from marketplace.api.exceptions import BadRequestError, NotFoundError
from marketplace.behavior.tracker import BackgroundTracker
from marketplace.db import Database, to_object_id, utcnow

# Configure module logger
logger = logging.getLogger(__name__)


def cart_subtotal(cart: Dict[str, Any]) -> int:
    return sum(item["price"] * item["quantity"] for item in cart.get("items", []))


class CartService:
    def __init__(
        self,
        database: Database,
        background: Optional[BackgroundTracker] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = database
        self.background = background
        self.clock = clock

    def _track(self, user_id: str, event_type: str, product: Dict[str, Any], quantity: int) -> None:
        if self.background is None:
            return
        self.background.submit(
            user_id,
            event_type,
            product_id=str(product["_id"]),
            event_data={
                "quantity": quantity,
                "price": product.get("price"),
                "category": product.get("category"),
                "tags": product.get("tags", []),
            },
        )

    def _product(self, product_id: str) -> Dict[str, Any]:
        product = self.db.products.find_one({"_id": to_object_id(product_id, "productId")})
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    def _save(self, cart: Dict[str, Any]) -> Dict[str, Any]:
        cart["updatedAt"] = self.clock()
        self.db.carts.replace_one({"_id": cart["_id"]}, cart)
        return cart

    def get_cart(self, user_id: str) -> Dict[str, Any]:
        """Return the user's cart, creating an empty one on first use."""
        user_oid = to_object_id(user_id, "userId")
        return self.db.carts.find_one_and_update(
            {"userId": user_oid},
            {"$setOnInsert": {"userId": user_oid, "items": [], "updatedAt": self.clock()}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    def add_item(self, user_id: str, product_id: str, quantity: int = 1) -> Dict[str, Any]:
        """Add ``quantity`` of a product, merging with an existing line.

        Raises:
            NotFoundError: If the product does not exist.
            BadRequestError: If the resulting quantity exceeds the stock.
        """
        if quantity < 1:
            raise BadRequestError("Quantity must be at least 1")

        cart = self.get_cart(user_id)
        product = self._product(product_id)

        line = next((i for i in cart["items"] if i["productId"] == product["_id"]), None)
        new_quantity = quantity + (line["quantity"] if line else 0)
        if product.get("stock", 0) < new_quantity:
            raise BadRequestError(
                "Insufficient stock",
                details={"available": product.get("stock", 0), "requested": new_quantity},
            )

        if line:
            line["quantity"] = new_quantity
            line["price"] = product["price"]
        else:
            cart["items"].append(
                {"productId": product["_id"], "quantity": quantity, "price": product["price"]}
            )

        self._save(cart)
        self._track(user_id, "add_to_cart", product, new_quantity)
        return cart

    def update_item(self, user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
        """Set the quantity of a line already in the cart."""
        if quantity < 1:
            raise BadRequestError("Quantity must be at least 1")

        cart = self.get_cart(user_id)
        product_oid = to_object_id(product_id, "productId")
        line = next((i for i in cart["items"] if i["productId"] == product_oid), None)
        if line is None:
            raise NotFoundError("Item not found in cart")

        product = self._product(product_id)
        if product.get("stock", 0) < quantity:
            raise BadRequestError(
                "Insufficient stock",
                details={"available": product.get("stock", 0), "requested": quantity},
            )

        line["quantity"] = quantity
        line["price"] = product["price"]
        return self._save(cart)

    def remove_item(self, user_id: str, product_id: str) -> Dict[str, Any]:
        cart = self.get_cart(user_id)
        product_oid = to_object_id(product_id, "productId")
        removed = [i for i in cart["items"] if i["productId"] == product_oid]
        cart["items"] = [i for i in cart["items"] if i["productId"] != product_oid]
        self._save(cart)

        if removed:
            product = self.db.products.find_one({"_id": product_oid}) or {"_id": product_oid}
            self._track(user_id, "remove_from_cart", product, removed[0]["quantity"])
        return cart

    def clear(self, user_id: str, session=None) -> None:
        self.db.carts.update_one(
            {"userId": to_object_id(user_id, "userId")},
            {"$set": {"items": [], "updatedAt": self.clock()}},
            session=session,
        )
