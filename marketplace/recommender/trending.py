"""Trending products: recency-windowed popularity."""

import logging
from datetime import datetime, timedelta

import pandas as pd

from marketplace.db import Database
from marketplace.recommender.hybrid import ScoredProducts

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 7
DEFAULT_TOP_N = 50

# Score contributed by each event type
EVENT_WEIGHTS = {
    "product_view": 1,
    "purchase": 5,
    "add_to_cart": 3,
}


def score_trending(events: pd.DataFrame, top_n: int = DEFAULT_TOP_N) -> ScoredProducts:
    """Score products by weighted event counts.

    Args:
        events: One row per event with ``productId`` and ``eventType``.
        top_n: Number of products to keep.

    Returns:
        ``(product_id, score)`` pairs where score is
        ``views * 1 + purchases * 5 + cart_adds * 3``, highest first.
    """
    if events.empty:
        return []

    counts = pd.crosstab(events["productId"], events["eventType"])
    counts = counts.reindex(columns=list(EVENT_WEIGHTS), fill_value=0)

    scores = sum(counts[event] * weight for event, weight in EVENT_WEIGHTS.items())
    scores = scores.sort_index().sort_values(ascending=False, kind="mergesort")

    return [(str(pid), float(score)) for pid, score in scores.head(top_n).items()]


def find_trending_products(
    database: Database,
    now: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
    top_n: int = DEFAULT_TOP_N,
) -> ScoredProducts:
    """Most viewed, carted and purchased products of the last ``window_days``."""
    since = now - timedelta(days=window_days)
    rows = database.user_behavior.find(
        {
            "createdAt": {"$gte": since},
            "productId": {"$exists": True},
            "eventType": {"$in": list(EVENT_WEIGHTS)},
        },
        {"productId": 1, "eventType": 1},
    )
    events = pd.DataFrame(
        [{"productId": str(row["productId"]), "eventType": row["eventType"]} for row in rows],
        columns=["productId", "eventType"],
    )

    trending = score_trending(events, top_n)
    logger.debug(
        "Computed trending products",
        extra={"num_events": len(events), "num_products": len(trending)},
    )
    return trending
