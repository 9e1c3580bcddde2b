"""Content-based "similar products" scoring.

Candidates share the source product's category, category id or a tag, are in
stock, and cost within 30% of the source price.
"""

import logging
from typing import Any, Dict, List

from marketplace.db import Database
from marketplace.recommender.hybrid import ScoredProducts, rank_scores

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 20
DEFAULT_CANDIDATE_LIMIT = 100
PRICE_TOLERANCE = 0.3

CATEGORY_MATCH_SCORE = 5.0
TAG_MATCH_SCORE = 3.0
MAX_PRICE_SCORE = 5.0


def score_similarity(source: Dict[str, Any], candidate: Dict[str, Any]) -> float:
    """Similarity of ``candidate`` to ``source``.

    +5 for the same category or category id, +3 per shared tag and
    ``max(0, 5 - |price delta| / source price * 5)``.
    """
    score = 0.0

    same_category = bool(source.get("category")) and candidate.get("category") == source.get(
        "category"
    )
    same_category_id = source.get("categoryId") is not None and str(
        candidate.get("categoryId")
    ) == str(source.get("categoryId"))
    if same_category or same_category_id:
        score += CATEGORY_MATCH_SCORE

    source_tags = set(source.get("tags") or [])
    shared_tags = [tag for tag in candidate.get("tags") or [] if tag in source_tags]
    score += len(shared_tags) * TAG_MATCH_SCORE

    source_price = float(source.get("price") or 0)
    price_diff = abs(float(candidate.get("price") or 0) - source_price)
    if source_price > 0:
        score += max(0.0, MAX_PRICE_SCORE - (price_diff / source_price) * MAX_PRICE_SCORE)
    elif price_diff == 0:
        score += MAX_PRICE_SCORE

    return score


def find_similar_products(
    database: Database,
    source: Dict[str, Any],
    top_n: int = DEFAULT_TOP_N,
) -> ScoredProducts:
    """Rank in-stock products similar to ``source``."""
    query: Dict[str, Any] = {
        "_id": {"$ne": source["_id"]},
        "stock": {"$gt": 0},
    }

    conditions: List[Dict[str, Any]] = []
    if source.get("category"):
        conditions.append({"category": source["category"]})
    if source.get("categoryId") is not None:
        conditions.append({"categoryId": source["categoryId"]})
    if source.get("tags"):
        conditions.append({"tags": {"$in": list(source["tags"])}})
    if conditions:
        query["$or"] = conditions

    price = float(source.get("price") or 0)
    price_range = price * PRICE_TOLERANCE
    query["price"] = {"$gte": price - price_range, "$lte": price + price_range}

    candidates = database.products.find(
        query, {"category": 1, "categoryId": 1, "tags": 1, "price": 1}
    ).limit(DEFAULT_CANDIDATE_LIMIT)

    scores = {str(candidate["_id"]): score_similarity(source, candidate) for candidate in candidates}

    logger.debug(
        "Scored similar products",
        extra={"product_id": str(source["_id"]), "num_candidates": len(scores)},
    )
    return rank_scores(scores, top_n)
