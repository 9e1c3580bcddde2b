"""Product ratings and reviews.

One rating per user and product. A rating is a verified purchase when the
user has a delivered order containing the product. Products carry a
denormalized ``ratingStats`` summary refreshed on every change.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from marketplace.api.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from marketplace.db import Database, to_object_id, utcnow
from marketplace.pagination import build_pagination_meta, parse_pagination

# Configure module logger
logger = logging.getLogger(__name__)

RATING_VALUES = (1, 2, 3, 4, 5)


def summarize_ratings(values: List[int]) -> Dict[str, Any]:
    """Average (one decimal), count and 1..5 distribution of rating values."""
    distribution = {str(value): 0 for value in RATING_VALUES}
    if not values:
        return {"average": 0, "total": 0, "distribution": distribution}

    ratings = pd.Series(values, dtype="int64")
    for value, count in ratings.value_counts().items():
        distribution[str(value)] = int(count)
    return {
        "average": round(float(ratings.mean()), 1),
        "total": int(ratings.size),
        "distribution": distribution,
    }


def _check_rating(rating: int) -> None:
    if rating not in RATING_VALUES:
        raise BadRequestError("Rating must be an integer between 1 and 5")


class RatingService:
    def __init__(self, database: Database, clock: Callable[[], datetime] = utcnow):
        self.db = database
        self.clock = clock

    def _has_delivered_order(self, user_oid, product_oid) -> bool:
        return (
            self.db.orders.count_documents(
                {"userId": user_oid, "status": "delivered", "items.productId": product_oid},
                limit=1,
            )
            > 0
        )

    def _refresh_product_stats(self, product_oid) -> Dict[str, Any]:
        values = [r["rating"] for r in self.db.ratings.find({"productId": product_oid})]
        stats = summarize_ratings(values)
        self.db.products.update_one(
            {"_id": product_oid},
            {"$set": {"ratingStats": {"average": stats["average"], "total": stats["total"]}}},
        )
        return stats

    def create(
        self, user_id: str, product_id: str, rating: int, review: Optional[str] = None
    ) -> Dict[str, Any]:
        """Rate a product.

        Raises:
            NotFoundError: If the product does not exist.
            ConflictError: If the user already rated it.
        """
        _check_rating(rating)
        product_oid = to_object_id(product_id, "productId")
        user_oid = to_object_id(user_id, "userId")
        if self.db.products.count_documents({"_id": product_oid}, limit=1) == 0:
            raise NotFoundError("Product not found")

        now = self.clock()
        document = {
            "productId": product_oid,
            "userId": user_oid,
            "rating": rating,
            "review": review,
            "isVerifiedPurchase": self._has_delivered_order(user_oid, product_oid),
            "helpfulCount": 0,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            document["_id"] = self.db.ratings.insert_one(document).inserted_id
        except DuplicateKeyError:
            raise ConflictError("You have already rated this product")

        self._refresh_product_stats(product_oid)
        logger.info(
            "Product rated",
            extra={"product_id": product_id, "user_id": user_id, "rating": rating},
        )
        return document

    def update(self, rating_id: str, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Change the value or review of one's own rating."""
        changes = {k: v for k, v in data.items() if k in ("rating", "review") and v is not None}
        if "rating" in changes:
            _check_rating(changes["rating"])
        changes["updatedAt"] = self.clock()

        document = self.db.ratings.find_one_and_update(
            {"_id": to_object_id(rating_id, "ratingId"), "userId": to_object_id(user_id, "userId")},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            raise NotFoundError("Rating not found")

        self._refresh_product_stats(document["productId"])
        return document

    def delete(self, rating_id: str, user: Dict[str, Any]) -> None:
        document = self.db.ratings.find_one({"_id": to_object_id(rating_id, "ratingId")})
        if document is None:
            raise NotFoundError("Rating not found")
        if user.get("role") != "admin" and str(document["userId"]) != str(user["_id"]):
            raise ForbiddenError("You can only delete your own ratings")

        self.db.ratings.delete_one({"_id": document["_id"]})
        self._refresh_product_stats(document["productId"])

    def list_for_product(
        self,
        product_id: str,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        min_rating: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        params = parse_pagination(page, limit)
        query: Dict[str, Any] = {"productId": to_object_id(product_id, "productId")}
        if min_rating is not None:
            query["rating"] = {"$gte": min_rating}

        ratings = list(
            self.db.ratings.find(query).sort("createdAt", -1).skip(params.skip).limit(params.limit)
        )
        total = self.db.ratings.count_documents(query)
        return ratings, build_pagination_meta(params.page, params.limit, total)

    def stats(self, product_id: str) -> Dict[str, Any]:
        product_oid = to_object_id(product_id, "productId")
        return summarize_ratings([r["rating"] for r in self.db.ratings.find({"productId": product_oid})])

    def get_user_rating(self, product_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return self.db.ratings.find_one(
            {
                "productId": to_object_id(product_id, "productId"),
                "userId": to_object_id(user_id, "userId"),
            }
        )

    def mark_helpful(self, rating_id: str) -> Dict[str, Any]:
        document = self.db.ratings.find_one_and_update(
            {"_id": to_object_id(rating_id, "ratingId")},
            {"$inc": {"helpfulCount": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            raise NotFoundError("Rating not found")
        return document
