"""Favorite products."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from marketplace.api.exceptions import ConflictError, NotFoundError
from marketplace.behavior.tracker import BackgroundTracker
from marketplace.db import Database, to_object_id, utcnow
from marketplace.pagination import build_pagination_meta, parse_pagination

# Configure module logger
logger = logging.getLogger(__name__)


class FavoriteService:
    def __init__(
        self,
        database: Database,
        background: Optional[BackgroundTracker] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = database
        self.background = background
        self.clock = clock

    def add(self, user_id: str, product_id: str) -> Dict[str, Any]:
        """Favorite a product.

        Raises:
            NotFoundError: If the product does not exist.
            ConflictError: If it is already a favorite.
        """
        product = self.db.products.find_one({"_id": to_object_id(product_id, "productId")})
        if product is None:
            raise NotFoundError("Product not found")

        favorite = {
            "userId": to_object_id(user_id, "userId"),
            "productId": product["_id"],
            "createdAt": self.clock(),
        }
        try:
            favorite["_id"] = self.db.favorites.insert_one(favorite).inserted_id
        except DuplicateKeyError:
            raise ConflictError("Product already in favorites")

        if self.background is not None:
            self.background.submit(
                user_id,
                "favorite_add",
                product_id=product_id,
                event_data={
                    "price": product.get("price"),
                    "category": product.get("category"),
                    "tags": product.get("tags", []),
                },
            )
        return favorite

    def remove(self, user_id: str, product_id: str) -> None:
        result = self.db.favorites.delete_one(
            {
                "userId": to_object_id(user_id, "userId"),
                "productId": to_object_id(product_id, "productId"),
            }
        )
        if result.deleted_count == 0:
            raise NotFoundError("Favorite not found")

    def list_for_user(
        self, user_id: str, page: Optional[int] = None, limit: Optional[int] = None
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """Favorites newest first, each with its ``product`` attached."""
        params = parse_pagination(page, limit)
        query = {"userId": to_object_id(user_id, "userId")}
        favorites = list(
            self.db.favorites.find(query).sort("createdAt", -1).skip(params.skip).limit(params.limit)
        )
        products = self.db.find_by_ids("products", [f["productId"] for f in favorites])
        for favorite in favorites:
            favorite["product"] = products.get(str(favorite["productId"]))

        total = self.db.favorites.count_documents(query)
        return favorites, build_pagination_meta(params.page, params.limit, total)

    def is_favorite(self, user_id: str, product_id: str) -> bool:
        return (
            self.db.favorites.count_documents(
                {
                    "userId": to_object_id(user_id, "userId"),
                    "productId": to_object_id(product_id, "productId"),
                },
                limit=1,
            )
            > 0
        )

    def count_for_product(self, product_id: str) -> int:
        return self.db.favorites.count_documents(
            {"productId": to_object_id(product_id, "productId")}
        )
