"""Named wishlists. Private by default; public lists are readable by anyone."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from pymongo import ReturnDocument

from marketplace.api.exceptions import ConflictError, ForbiddenError, NotFoundError
from marketplace.behavior.tracker import BackgroundTracker
from marketplace.db import Database, to_object_id, utcnow
from marketplace.pagination import build_pagination_meta, parse_pagination

# Configure module logger
logger = logging.getLogger(__name__)


class WishlistService:
    def __init__(
        self,
        database: Database,
        background: Optional[BackgroundTracker] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = database
        self.background = background
        self.clock = clock

    def _own(self, wishlist_id: str, user_id: str) -> Dict[str, Any]:
        """The wishlist if it belongs to ``user_id``."""
        query = self._own_query(wishlist_id, user_id)
        wishlist = self.db.wishlists.find_one(query)
        if wishlist is None:
            raise NotFoundError("Wishlist not found")
        return wishlist

    @staticmethod
    def _own_query(wishlist_id: str, user_id: str) -> Dict[str, Any]:
        return {
            "_id": to_object_id(wishlist_id, "wishlistId"),
            "userId": to_object_id(user_id, "userId"),
        }

    def create(
        self,
        user_id: str,
        name: str,
        description: Optional[str] = None,
        is_public: bool = False,
    ) -> Dict[str, Any]:
        now = self.clock()
        wishlist = {
            "userId": to_object_id(user_id, "userId"),
            "name": name,
            "description": description,
            "isPublic": bool(is_public),
            "items": [],
            "createdAt": now,
            "updatedAt": now,
        }
        wishlist["_id"] = self.db.wishlists.insert_one(wishlist).inserted_id
        return wishlist

    def update(self, wishlist_id: str, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        changes = {
            key: value
            for key, value in data.items()
            if key in ("name", "description", "isPublic") and value is not None
        }
        changes["updatedAt"] = self.clock()
        wishlist = self.db.wishlists.find_one_and_update(
            self._own_query(wishlist_id, user_id),
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if wishlist is None:
            raise NotFoundError("Wishlist not found")
        return wishlist

    def delete(self, wishlist_id: str, user_id: str) -> None:
        result = self.db.wishlists.delete_one(self._own_query(wishlist_id, user_id))
        if result.deleted_count == 0:
            raise NotFoundError("Wishlist not found")

    def _list(
        self, query: Dict[str, Any], page: Optional[int], limit: Optional[int]
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        params = parse_pagination(page, limit)
        wishlists = list(
            self.db.wishlists.find(query)
            .sort("createdAt", -1)
            .skip(params.skip)
            .limit(params.limit)
        )
        total = self.db.wishlists.count_documents(query)
        return wishlists, build_pagination_meta(params.page, params.limit, total)

    def list_for_user(self, user_id: str, page: Optional[int] = None, limit: Optional[int] = None):
        return self._list({"userId": to_object_id(user_id, "userId")}, page, limit)

    def list_public(self, page: Optional[int] = None, limit: Optional[int] = None):
        return self._list({"isPublic": True}, page, limit)

    def get(self, wishlist_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Fetch a wishlist readable by ``user_id`` (its owner, or anyone if public).

        Raises:
            NotFoundError: If the wishlist does not exist.
            ForbiddenError: If it is private and owned by someone else.
        """
        wishlist = self.db.wishlists.find_one({"_id": to_object_id(wishlist_id, "wishlistId")})
        if wishlist is None:
            raise NotFoundError("Wishlist not found")
        if not wishlist.get("isPublic") and str(wishlist["userId"]) != str(user_id):
            raise ForbiddenError("You do not have access to this wishlist")
        return wishlist

    def add_item(
        self, wishlist_id: str, user_id: str, product_id: str, notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """Add a product to a wishlist.

        Raises:
            NotFoundError: If the wishlist or product does not exist.
            ConflictError: If the product is already on the list.
        """
        wishlist = self._own(wishlist_id, user_id)
        product = self.db.products.find_one({"_id": to_object_id(product_id, "productId")})
        if product is None:
            raise NotFoundError("Product not found")

        now = self.clock()
        item = {"productId": product["_id"], "addedAt": now, "notes": notes}
        updated = self.db.wishlists.find_one_and_update(
            {"_id": wishlist["_id"], "items.productId": {"$ne": product["_id"]}},
            {"$push": {"items": item}, "$set": {"updatedAt": now}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise ConflictError("Product already in wishlist")

        if self.background is not None:
            self.background.submit(
                user_id,
                "wishlist_add",
                product_id=product_id,
                event_data={
                    "price": product.get("price"),
                    "category": product.get("category"),
                    "tags": product.get("tags", []),
                    "wishlistId": wishlist_id,
                },
            )
        return updated

    def remove_item(self, wishlist_id: str, user_id: str, product_id: str) -> Dict[str, Any]:
        wishlist = self._own(wishlist_id, user_id)
        return self.db.wishlists.find_one_and_update(
            {"_id": wishlist["_id"]},
            {
                "$pull": {"items": {"productId": to_object_id(product_id, "productId")}},
                "$set": {"updatedAt": self.clock()},
            },
            return_document=ReturnDocument.AFTER,
        )

    def update_item(
        self, wishlist_id: str, user_id: str, product_id: str, notes: Optional[str]
    ) -> Dict[str, Any]:
        wishlist = self._own(wishlist_id, user_id)
        product_oid = to_object_id(product_id, "productId")
        if not any(item["productId"] == product_oid for item in wishlist["items"]):
            raise NotFoundError("Item not found in wishlist")

        return self.db.wishlists.find_one_and_update(
            {"_id": wishlist["_id"], "items.productId": product_oid},
            {"$set": {"items.$.notes": notes, "updatedAt": self.clock()}},
            return_document=ReturnDocument.AFTER,
        )

    def users_watching(self, product_id: str) -> List[Any]:
        """Distinct owners of wishlists that contain ``product_id``."""
        return self.db.wishlists.distinct(
            "userId", {"items.productId": to_object_id(product_id, "productId")}
        )
