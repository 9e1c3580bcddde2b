"""Recommendation engine.

Serves three recommendation types, each backed by a one-hour cache entry:

- personalized: hybrid of collaborative and content-based scores per user
- similar: content-based neighbours of a product
- trending: weighted popularity over the last seven days

Ranked id lists are computed on a cache miss, cached, then paginated and
hydrated into product documents. ``totalItems`` is the length of the ranked
list at generation time, not a live product count.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from marketplace.api.exceptions import NotFoundError
from marketplace.api.metrics import MetricsService
from marketplace.behavior.tracker import BehaviorTracker
from marketplace.db import Database, to_object_id, utcnow
from marketplace.pagination import PageParams, build_pagination_meta, parse_pagination
from marketplace.recommender.cache import RecommendationCache
from marketplace.recommender.hybrid import (
    DEFAULT_CF_WEIGHT,
    DEFAULT_CONTENT_WEIGHT,
    HybridRecommender,
    ScoredProducts,
)
from marketplace.recommender.similar import find_similar_products
from marketplace.recommender.trending import find_trending_products

# Configure module logger
logger = logging.getLogger(__name__)

# Orders whose products count as already bought
PURCHASED_ORDER_STATUSES = ["confirmed", "processing", "shipped", "delivered"]


class RecommendationEngine:
    """Cached recommendation lists for users and products."""

    def __init__(
        self,
        database: Database,
        tracker: BehaviorTracker,
        cache: Optional[RecommendationCache] = None,
        metrics: Optional[MetricsService] = None,
        clock: Callable[[], datetime] = utcnow,
        cf_weight: float = DEFAULT_CF_WEIGHT,
        content_weight: float = DEFAULT_CONTENT_WEIGHT,
    ):
        self.db = database
        self.tracker = tracker
        self.clock = clock
        self.cache = cache or RecommendationCache(database, clock=clock)
        self.metrics = metrics
        self.hybrid = HybridRecommender(
            database, tracker, cf_weight=cf_weight, content_weight=content_weight
        )

    def _ranked_ids(
        self,
        recommendation_type: str,
        compute: Callable[[], ScoredProducts],
        user_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> List[str]:
        """Return the cached ranked ids, computing and caching them on a miss."""
        cached = self.cache.get(recommendation_type, user_id=user_id, product_id=product_id)
        if self.metrics is not None:
            self.metrics.record_cache_lookup(recommendation_type, hit=cached is not None)

        if cached is not None:
            logger.debug(
                "Recommendation cache hit",
                extra={
                    "recommendation_type": recommendation_type,
                    "user_id": user_id,
                    "product_id": product_id,
                },
            )
            return [str(pid) for pid in cached["productIds"]]

        start_time = time.time()
        recommendations = compute()
        generation_ms = round((time.time() - start_time) * 1000, 2)

        self.cache.put(
            recommendation_type, recommendations, user_id=user_id, product_id=product_id
        )
        if self.metrics is not None:
            self.metrics.record_generation(recommendation_type, generation_ms)

        logger.info(
            "Recommendations generated",
            extra={
                "recommendation_type": recommendation_type,
                "user_id": user_id,
                "product_id": product_id,
                "num_recommendations": len(recommendations),
                "generation_time_ms": generation_ms,
            },
        )
        return [pid for pid, _ in recommendations]

    def _page(self, ranked_ids: List[str], params: PageParams) -> Dict[str, Any]:
        """Hydrate one page of ranked ids, keeping rank order.

        Ids whose product no longer exists are dropped silently.
        """
        page_ids = params.slice(ranked_ids)
        products = self.db.find_by_ids("products", page_ids)
        items = [products[pid] for pid in page_ids if pid in products]
        return {
            "items": items,
            "meta": build_pagination_meta(params.page, params.limit, len(ranked_ids)),
        }

    def get_personalized_recommendations(
        self,
        user_id: str,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Hybrid collaborative + content-based recommendations for a user."""
        params = parse_pagination(page, limit)
        ranked_ids = self._ranked_ids(
            "personalized", lambda: self.hybrid.recommend(user_id), user_id=user_id
        )
        return self._page(ranked_ids, params)

    def get_similar_products(
        self,
        product_id: str,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Products similar to ``product_id``.

        Raises:
            NotFoundError: If the product does not exist and nothing is cached.
        """
        params = parse_pagination(page, limit)

        def compute() -> ScoredProducts:
            source = self.db.products.find_one({"_id": to_object_id(product_id, "productId")})
            if source is None:
                raise NotFoundError("Product not found", details={"product_id": product_id})
            return find_similar_products(self.db, source)

        ranked_ids = self._ranked_ids("similar", compute, product_id=product_id)
        return self._page(ranked_ids, params)

    def get_trending_products(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Most popular products of the last seven days."""
        params = parse_pagination(page, limit)
        ranked_ids = self._ranked_ids(
            "trending", lambda: find_trending_products(self.db, self.clock())
        )
        return self._page(ranked_ids, params)

    def get_recommended_for_you(
        self,
        user_id: str,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Personalized recommendations without products the user already ordered.

        The pagination metadata is the personalized list's, computed before
        ordered products are filtered out.
        """
        personalized = self.get_personalized_recommendations(user_id, page, limit)
        purchased = self.get_user_purchased_products(user_id)

        return {
            "items": [p for p in personalized["items"] if str(p["_id"]) not in purchased],
            "meta": personalized["meta"],
        }

    def get_user_purchased_products(self, user_id: str) -> set:
        """Product ids in the user's confirmed, processing, shipped or delivered orders."""
        orders = self.db.orders.find(
            {
                "userId": to_object_id(user_id, "userId"),
                "status": {"$in": PURCHASED_ORDER_STATUSES},
            }
        )
        return {str(item["productId"]) for order in orders for item in order.get("items", [])}

    def invalidate(
        self,
        recommendation_type: Optional[str] = None,
        user_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> int:
        """Drop cached lists so the next request recomputes them."""
        return self.cache.invalidate(
            recommendation_type=recommendation_type, user_id=user_id, product_id=product_id
        )
