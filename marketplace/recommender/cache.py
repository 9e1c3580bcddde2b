"""Recommendation cache stored in the ``recommendation_cache`` collection.

An entry holds the ranked product ids and scores computed for one subject
(a user, a product, or nothing for trending) and one recommendation type. It
is valid while ``now < expiresAt``. Entries are never edited: a newer
computation for the same subject replaces the older one, and stale entries
are removed by the TTL index on ``expiresAt``.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from pymongo.errors import DuplicateKeyError

from marketplace.db import Database, to_object_id, utcnow
from marketplace.recommender.hybrid import ScoredProducts

# Configure module logger
logger = logging.getLogger(__name__)

RECOMMENDATION_TYPES = ("personalized", "similar", "trending")
DEFAULT_TTL = timedelta(hours=1)


class RecommendationCache:
    """Read and write cached recommendation lists."""

    def __init__(
        self,
        database: Database,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = database
        self.ttl = ttl
        self.clock = clock

    @staticmethod
    def _subject(
        recommendation_type: str,
        user_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if recommendation_type not in RECOMMENDATION_TYPES:
            raise ValueError(f"Unknown recommendation type: {recommendation_type}")
        return {
            "recommendationType": recommendation_type,
            "userId": to_object_id(user_id, "userId") if user_id else None,
            "productId": to_object_id(product_id, "productId") if product_id else None,
        }

    def get(
        self,
        recommendation_type: str,
        user_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Return the newest unexpired entry for the subject, if any."""
        query = self._subject(recommendation_type, user_id, product_id)
        query["expiresAt"] = {"$gt": self.clock()}

        entries = self.db.recommendation_cache.find(query).sort("createdAt", -1).limit(1)
        for entry in entries:
            return entry
        return None

    def put(
        self,
        recommendation_type: str,
        recommendations: ScoredProducts,
        user_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Store a freshly computed list, superseding older entries.

        The write is an upsert keyed on the subject that only replaces an
        entry created earlier, so concurrent writers settle on the newest
        computation.
        """
        now = self.clock()
        key = self._subject(recommendation_type, user_id, product_id)
        entry = dict(key)
        entry.update(
            {
                "productIds": [to_object_id(pid) for pid, _ in recommendations],
                "scores": {pid: float(score) for pid, score in recommendations},
                "expiresAt": now + self.ttl,
                "createdAt": now,
            }
        )

        query = dict(key)
        query["createdAt"] = {"$lte": now}
        try:
            self.db.recommendation_cache.replace_one(query, entry, upsert=True)
        except DuplicateKeyError:
            logger.info(
                "Newer recommendation cache entry already stored",
                extra={"recommendation_type": recommendation_type, "user_id": user_id,
                       "product_id": product_id},
            )

        logger.debug(
            "Cached recommendations",
            extra={
                "recommendation_type": recommendation_type,
                "user_id": user_id,
                "product_id": product_id,
                "num_products": len(recommendations),
            },
        )
        return entry

    def invalidate(
        self,
        recommendation_type: Optional[str] = None,
        user_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> int:
        """Delete entries matching the given filters. Returns the number removed."""
        query: Dict[str, Any] = {}
        if recommendation_type:
            query["recommendationType"] = recommendation_type
        if user_id:
            query["userId"] = to_object_id(user_id, "userId")
        if product_id:
            query["productId"] = to_object_id(product_id, "productId")

        result = self.db.recommendation_cache.delete_many(query)
        logger.info(
            "Invalidated recommendation cache",
            extra={"query": {k: str(v) for k, v in query.items()}, "deleted": result.deleted_count},
        )
        return result.deleted_count
