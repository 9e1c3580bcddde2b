"""User behavior tracking.

Records interaction events (views, cart adds, purchases ...) and answers the
queries the recommendation engine is built on: which products a user touched,
which users behave alike, and an aggregate preference profile.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

from marketplace.db import Database, to_object_id, utcnow
from marketplace.pagination import build_pagination_meta, parse_pagination

# Configure module logger
logger = logging.getLogger(__name__)

EVENT_TYPES = (
    "product_view",
    "search_query",
    "add_to_cart",
    "remove_from_cart",
    "purchase",
    "wishlist_add",
    "favorite_add",
    "category_view",
    "product_click",
)

# Events that say "this user is interested in that product"
SIMILARITY_EVENTS = ["product_view", "purchase"]

# Weight of each event in a user's own product interactions
INTERACTION_WEIGHTS = {
    "purchase": 5,
    "add_to_cart": 3,
    "favorite_add": 2,
    "wishlist_add": 2,
    "product_view": 1,
}

DEFAULT_SIMILAR_USERS = 50
TOP_STATS = 10


def build_interaction_matrix(
    events: pd.DataFrame,
    user_col: str = "userId",
    item_col: str = "productId",
) -> Tuple[csr_matrix, Dict[Any, int], Dict[Any, int]]:
    """Convert interaction rows into a binary sparse user-item matrix.

    Args:
        events: DataFrame with one row per interaction.
        user_col: Name of the column holding user identifiers.
        item_col: Name of the column holding product identifiers.

    Returns:
        A tuple containing:
            - Sparse CSR matrix of shape (n_users, n_items), 1 where the user
              interacted with the item at least once
            - Dictionary mapping user id to matrix row index
            - Dictionary mapping item id to matrix column index
    """
    unique_users = sorted(events[user_col].unique(), key=str)
    unique_items = sorted(events[item_col].unique(), key=str)

    user_id_to_idx = {user_id: idx for idx, user_id in enumerate(unique_users)}
    item_id_to_idx = {item_id: idx for idx, item_id in enumerate(unique_items)}

    pairs = events[[user_col, item_col]].drop_duplicates()
    rows = pairs[user_col].map(user_id_to_idx).to_numpy()
    cols = pairs[item_col].map(item_id_to_idx).to_numpy()
    data = np.ones(len(pairs), dtype=np.float64)

    matrix = csr_matrix(
        (data, (rows, cols)),
        shape=(len(unique_users), len(unique_items)),
    )
    return matrix, user_id_to_idx, item_id_to_idx


class BehaviorTracker:
    """Stores and queries behavior events in the ``user_behavior`` collection."""

    def __init__(self, database: Database, clock: Callable = utcnow):
        self.db = database
        self.clock = clock

    def track(
        self,
        user_id: str,
        event_type: str,
        product_id: Optional[str] = None,
        category_id: Optional[str] = None,
        event_data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Record one behavior event and return the stored document."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown behavior event type: {event_type}")

        event: Dict[str, Any] = {
            "userId": to_object_id(user_id, "userId"),
            "eventType": event_type,
            "eventData": dict(event_data or {}),
            "createdAt": self.clock(),
        }
        if product_id:
            event["productId"] = to_object_id(product_id, "productId")
        if category_id:
            event["categoryId"] = to_object_id(category_id, "categoryId")

        result = self.db.user_behavior.insert_one(event)
        event["_id"] = result.inserted_id

        logger.debug(
            "Tracked behavior event",
            extra={"user_id": user_id, "event_type": event_type, "product_id": product_id},
        )
        return event

    def get_user_behavior(
        self,
        user_id: str,
        event_type: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """List a user's events, newest first."""
        params = parse_pagination(page, limit)
        query: Dict[str, Any] = {"userId": to_object_id(user_id, "userId")}
        if event_type:
            query["eventType"] = event_type

        events = list(
            self.db.user_behavior.find(query)
            .sort("createdAt", -1)
            .skip(params.skip)
            .limit(params.limit)
        )
        total = self.db.user_behavior.count_documents(query)
        return events, build_pagination_meta(params.page, params.limit, total)

    def _interacted_products(self, user_oid, event_types: List[str]) -> Set:
        return set(
            self.db.user_behavior.distinct(
                "productId",
                {
                    "userId": user_oid,
                    "eventType": {"$in": event_types},
                    "productId": {"$exists": True},
                },
            )
        )

    def get_similar_users(self, user_id: str, limit: int = DEFAULT_SIMILAR_USERS) -> List[str]:
        """Find users who viewed or bought the same products.

        Similarity is ``common / (len(user_products) + common)`` where
        ``common`` is the number of distinct products both users touched.

        Returns:
            User ids (hex strings), most similar first.
        """
        user_oid = to_object_id(user_id, "userId")
        user_products = self._interacted_products(user_oid, SIMILARITY_EVENTS)
        if not user_products:
            return []

        rows = list(
            self.db.user_behavior.find(
                {
                    "userId": {"$ne": user_oid},
                    "productId": {"$in": list(user_products)},
                    "eventType": {"$in": SIMILARITY_EVENTS},
                },
                {"userId": 1, "productId": 1},
            )
        )
        if not rows:
            return []

        events = pd.DataFrame(
            [{"userId": str(row["userId"]), "productId": str(row["productId"])} for row in rows]
        )
        matrix, user_id_to_idx, _ = build_interaction_matrix(events)

        # Every column is one of the user's products, so row sums count overlap
        common = np.asarray(matrix.sum(axis=1)).flatten()
        similarity = common / (len(user_products) + common)

        ranked = pd.DataFrame(
            {"userId": list(user_id_to_idx.keys()), "score": similarity[list(user_id_to_idx.values())]}
        )
        ranked = ranked.sort_values(["score", "userId"], ascending=[False, True], kind="mergesort")
        return ranked["userId"].head(limit).tolist()

    def get_user_product_interactions(self, user_id: str) -> Dict[str, float]:
        """Weighted interaction score per product the user touched.

        Returns:
            Mapping of product id (hex string) to summed event weight.
        """
        rows = list(
            self.db.user_behavior.find(
                {
                    "userId": to_object_id(user_id, "userId"),
                    "productId": {"$exists": True},
                    "eventType": {"$in": list(INTERACTION_WEIGHTS)},
                },
                {"productId": 1, "eventType": 1},
            )
        )
        if not rows:
            return {}

        events = pd.DataFrame(
            [{"productId": str(row["productId"]), "eventType": row["eventType"]} for row in rows]
        )
        events["weight"] = events["eventType"].map(INTERACTION_WEIGHTS).fillna(0)
        totals = events.groupby("productId")["weight"].sum()
        return {product_id: float(score) for product_id, score in totals.items()}

    def get_user_stats(self, user_id: str) -> Dict[str, Any]:
        """Aggregate preference profile of a user."""
        user_oid = to_object_id(user_id, "userId")
        rows = list(self.db.user_behavior.find({"userId": user_oid}))

        stats: Dict[str, Any] = {
            "totalEvents": len(rows),
            "productViews": 0,
            "searches": 0,
            "cartAdditions": 0,
            "purchases": 0,
            "mostViewedCategories": [],
            "mostSearchedTerms": [],
            "preferredPriceRange": None,
            "preferredTags": [],
        }
        if not rows:
            return stats

        events = pd.DataFrame(
            [
                {"eventType": row["eventType"], "eventData": row.get("eventData") or {}}
                for row in rows
            ]
        )
        counts = events["eventType"].value_counts()
        stats["productViews"] = int(counts.get("product_view", 0))
        stats["searches"] = int(counts.get("search_query", 0))
        stats["cartAdditions"] = int(counts.get("add_to_cart", 0))
        stats["purchases"] = int(counts.get("purchase", 0))

        data = events["eventData"]
        category_views = data[events["eventType"] == "category_view"].map(
            lambda d: d.get("category")
        )
        stats["mostViewedCategories"] = _top_counts(category_views, "category")

        queries = data[events["eventType"] == "search_query"].map(lambda d: d.get("query"))
        stats["mostSearchedTerms"] = _top_counts(queries, "term")

        profile = data[events["eventType"].isin(SIMILARITY_EVENTS)]
        prices = pd.to_numeric(profile.map(lambda d: d.get("price")), errors="coerce").dropna()
        if not prices.empty:
            stats["preferredPriceRange"] = {"min": float(prices.min()), "max": float(prices.max())}

        tags = profile.map(lambda d: d.get("tags") if isinstance(d.get("tags"), list) else [])
        stats["preferredTags"] = _top_counts(tags.explode(), "tag")
        return stats


def _top_counts(values: pd.Series, label: str) -> List[Dict[str, Any]]:
    values = values.dropna()
    if values.empty:
        return []
    counts = values.value_counts().head(TOP_STATS)
    return [{label: key, "count": int(count)} for key, count in counts.items()]


class BackgroundTracker:
    """Fire-and-forget front end for :class:`BehaviorTracker`.

    Tracking runs on a small thread pool so request handlers never wait on
    it. Failures are logged and swallowed.
    """

    def __init__(self, tracker: BehaviorTracker, max_workers: int = 2):
        self.tracker = tracker
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="behavior-tracker"
        )
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, user_id: str, event_type: str, **kwargs: Any) -> Future:
        future = self._executor.submit(self._run, user_id, event_type, kwargs)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def _run(self, user_id: str, event_type: str, kwargs: Dict[str, Any]) -> None:
        try:
            self.tracker.track(user_id, event_type, **kwargs)
        except Exception as e:
            logger.error(
                "Behavior tracking failed",
                extra={
                    "user_id": user_id,
                    "event_type": event_type,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until every submitted event has been processed."""
        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
