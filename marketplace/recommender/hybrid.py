"""Hybrid recommendation module.

Combines collaborative filtering (what behaviorally similar users touched)
and content-based filtering (products that match the user's categories, tags
and price range) into a single ranked list.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import pandas as pd

from marketplace.behavior.tracker import BehaviorTracker
from marketplace.db import Database, to_object_id

# Configure module logger
logger = logging.getLogger(__name__)

# Default weights for hybrid scoring
DEFAULT_CF_WEIGHT = 0.4  # 40% collaborative filtering
DEFAULT_CONTENT_WEIGHT = 0.6  # 60% content-based

DEFAULT_SIMILAR_USERS = 50
DEFAULT_CF_TOP_N = 50
DEFAULT_CONTENT_TOP_N = 50
DEFAULT_HYBRID_TOP_N = 100
DEFAULT_CANDIDATE_LIMIT = 100

COLLABORATIVE_EVENTS = ["product_view", "purchase", "add_to_cart", "favorite_add"]

# Content-based scoring
CATEGORY_MATCH_SCORE = 3.0
TAG_MATCH_SCORE = 2.0
MAX_PRICE_SCORE = 3.0
PRICE_RANGE_PADDING = 0.5

ScoredProducts = List[Tuple[str, float]]


def rank_scores(scores: Dict[str, float], top_n: int) -> ScoredProducts:
    """Sort a score map descending and keep the first ``top_n`` entries."""
    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return ranked[:top_n]


def score_collaborative(
    events: pd.DataFrame,
    exclude_ids: Iterable[str] = (),
    top_n: int = DEFAULT_CF_TOP_N,
) -> ScoredProducts:
    """Score products by how much similar users interacted with them.

    Args:
        events: One row per interaction with ``userId`` and ``productId``.
        exclude_ids: Products the requesting user already interacted with.
        top_n: Number of products to keep.

    Returns:
        ``(product_id, score)`` pairs, highest score first, where score is
        ``distinct_users * (interactions / distinct_users)``.
    """
    if events.empty:
        return []

    grouped = events.groupby("productId").agg(
        interactionCount=("userId", "size"),
        userCount=("userId", "nunique"),
    )
    grouped["score"] = grouped["userCount"] * (
        grouped["interactionCount"] / grouped["userCount"]
    )

    excluded = set(exclude_ids)
    grouped = grouped[~grouped.index.isin(excluded)]
    grouped = grouped.sort_values("score", ascending=False, kind="mergesort")

    return [(str(pid), float(score)) for pid, score in grouped["score"].head(top_n).items()]


def extract_preferences(products: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Derive preferred categories, tags and the observed price range."""
    categories: Set[str] = set()
    tags: Set[str] = set()
    prices: List[float] = []

    for product in products:
        if product.get("category"):
            categories.add(product["category"])
        tags.update(product.get("tags") or [])
        if product.get("price") is not None:
            prices.append(float(product["price"]))

    return {
        "categories": categories,
        "tags": tags,
        "min_price": min(prices) if prices else None,
        "max_price": max(prices) if prices else None,
    }


def score_content_match(product: Dict[str, Any], preferences: Dict[str, Any]) -> float:
    """Score one candidate against a user's preferences.

    +3 for a preferred category, +2 per preferred tag and up to +3 the
    closer the price is to the middle of the observed price range.
    """
    score = 0.0

    if product.get("category") and product["category"] in preferences["categories"]:
        score += CATEGORY_MATCH_SCORE

    matching_tags = [tag for tag in product.get("tags") or [] if tag in preferences["tags"]]
    score += len(matching_tags) * TAG_MATCH_SCORE

    min_price = preferences["min_price"]
    max_price = preferences["max_price"]
    if min_price is not None and max_price:
        price_range = max_price - min_price
        if price_range > 0:
            midpoint = (min_price + max_price) / 2
            price_diff = abs(float(product.get("price") or 0) - midpoint)
            score += max(0.0, MAX_PRICE_SCORE - (price_diff / price_range) * MAX_PRICE_SCORE)

    return score


def fuse_scores(
    cf_scores: ScoredProducts,
    content_scores: ScoredProducts,
    cf_weight: float = DEFAULT_CF_WEIGHT,
    content_weight: float = DEFAULT_CONTENT_WEIGHT,
    top_n: int = DEFAULT_HYBRID_TOP_N,
) -> ScoredProducts:
    """Weighted sum of both score lists, summed when a product is in both."""
    combined: Dict[str, float] = {}

    for pid, score in cf_scores:
        combined[pid] = combined.get(pid, 0.0) + score * cf_weight

    for pid, score in content_scores:
        combined[pid] = combined.get(pid, 0.0) + score * content_weight

    return rank_scores(combined, top_n)


class HybridRecommender:
    """Combines CF and content-based recommendations.
    """

    def __init__(
        self,
        database: Database,
        tracker: BehaviorTracker,
        cf_weight: float = DEFAULT_CF_WEIGHT,
        content_weight: float = DEFAULT_CONTENT_WEIGHT,
        top_n: int = DEFAULT_HYBRID_TOP_N,
    ):
        """Initialize the recommender.
        """
        self.db = database
        self.tracker = tracker
        self.cf_weight = cf_weight
        self.content_weight = content_weight
        self.top_n = top_n

        logger.info(
            f"Initialized HybridRecommender: "
            f"CF weight={self.cf_weight:.2f}, "
            f"Content weight={self.content_weight:.2f}"
        )

    def get_collaborative_recommendations(
        self,
        user_id: str,
        interactions: Optional[Dict[str, float]] = None,
    ) -> ScoredProducts:
        """Products that behaviorally similar users interacted with.
        """
        similar_user_ids = self.tracker.get_similar_users(user_id, DEFAULT_SIMILAR_USERS)
        if not similar_user_ids:
            logger.debug(f"No similar users for {user_id}, returning empty CF scores")
            return []

        rows = self.db.user_behavior.find(
            {
                "userId": {"$in": [to_object_id(uid) for uid in similar_user_ids]},
                "productId": {"$exists": True},
                "eventType": {"$in": COLLABORATIVE_EVENTS},
            },
            {"userId": 1, "productId": 1},
        )
        events = pd.DataFrame(
            [{"userId": str(row["userId"]), "productId": str(row["productId"])} for row in rows],
            columns=["userId", "productId"],
        )

        if interactions is None:
            interactions = self.tracker.get_user_product_interactions(user_id)

        return score_collaborative(events, exclude_ids=interactions.keys())

    def get_content_based_recommendations(
        self,
        user_id: str,
        interactions: Optional[Dict[str, float]] = None,
    ) -> ScoredProducts:
        """Products matching the user's preferred categories, tags and prices.
        """
        if interactions is None:
            interactions = self.tracker.get_user_product_interactions(user_id)

        if not interactions:
            logger.debug(f"No interaction history for user {user_id}, returning empty content scores")
            return []

        interacted_oids = [to_object_id(pid) for pid in interactions]
        user_products = list(self.db.products.find({"_id": {"$in": interacted_oids}}))
        if not user_products:
            return []

        preferences = extract_preferences(user_products)
        if not preferences["categories"] and not preferences["tags"]:
            return []

        query: Dict[str, Any] = {
            "_id": {"$nin": interacted_oids},
            "stock": {"$gt": 0},
        }

        conditions = []
        if preferences["categories"]:
            conditions.append({"category": {"$in": sorted(preferences["categories"])}})
        if preferences["tags"]:
            conditions.append({"tags": {"$in": sorted(preferences["tags"])}})
        query["$or"] = conditions

        min_price = preferences["min_price"]
        max_price = preferences["max_price"]
        if min_price is not None and max_price:
            price_range = max_price - min_price
            query["price"] = {
                "$gte": max(0.0, min_price - price_range * PRICE_RANGE_PADDING),
                "$lte": max_price + price_range * PRICE_RANGE_PADDING,
            }

        candidates = self.db.products.find(
            query, {"category": 1, "tags": 1, "price": 1}
        ).limit(DEFAULT_CANDIDATE_LIMIT)

        scores = {
            str(product["_id"]): score_content_match(product, preferences)
            for product in candidates
        }
        return rank_scores(scores, DEFAULT_CONTENT_TOP_N)

    def recommend(self, user_id: str) -> ScoredProducts:
        """Get recommendations for a user.

        Combines CF and content scores.
        """
        logger.info(f"Generating hybrid recommendations for user {user_id}")

        interactions = self.tracker.get_user_product_interactions(user_id)

        cf_scores = self.get_collaborative_recommendations(user_id, interactions)
        content_scores = self.get_content_based_recommendations(user_id, interactions)

        recommendations = fuse_scores(
            cf_scores,
            content_scores,
            cf_weight=self.cf_weight,
            content_weight=self.content_weight,
            top_n=self.top_n,
        )

        if not recommendations:
            logger.warning(f"No valid products to recommend for user {user_id}")

        logger.info(
            f"Generated {len(recommendations)} hybrid recommendations for user {user_id}",
            extra={
                "user_id": user_id,
                "cf_candidates": len(cf_scores),
                "content_candidates": len(content_scores),
            },
        )
        return recommendations
