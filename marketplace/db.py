"""Document store adapter.

Thin wrapper around a pymongo database: named collections, index creation,
an optional multi-document transaction boundary, and helpers to move ids
and documents across the API boundary.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.client_session import ClientSession

from marketplace.api.exceptions import BadRequestError
from marketplace.config import Settings

# Configure module logger
logger = logging.getLogger(__name__)

COLLECTION_NAMES = (
    "users",
    "products",
    "categories",
    "carts",
    "orders",
    "coupons",
    "ratings",
    "wishlists",
    "favorites",
    "scraper_jobs",
    "qr_sessions",
    "recommendation_cache",
    "user_behavior",
    "notifications",
)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching what pymongo returns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Any, field: str = "id") -> ObjectId:
    """Convert a hex string to an ObjectId.

    Raises:
        BadRequestError: If the value is not a valid ObjectId.
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise BadRequestError(f"Invalid {field}: {value!r}", details={field: str(value)})


def serialize(value: Any) -> Any:
    """Recursively make a stored document JSON friendly.

    ``_id`` becomes ``id``, ObjectIds become hex strings and datetimes become
    ISO-8601 strings.
    """
    if isinstance(value, dict):
        result: Dict[str, Any] = {}
        for key, item in value.items():
            if key == "_id":
                result["id"] = serialize(item)
            else:
                result[key] = serialize(item)
        return result
    if isinstance(value, (list, tuple)):
        return [serialize(item) for item in value]
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class Database:
    """Collections of the marketplace database.

    Attributes are named after the collections (``db.products``,
    ``db.user_behavior`` ...).
    """

    def __init__(self, client: MongoClient, name: str, use_transactions: bool = False):
        self.client = client
        self.name = name
        self.use_transactions = use_transactions
        self._db = client[name]
        for collection_name in COLLECTION_NAMES:
            setattr(self, collection_name, self._db[collection_name])

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Connect to MongoDB using the configured URI."""
        logger.info(
            "Connecting to MongoDB",
            extra={
                "database": settings.mongodb_database,
                "transactions": settings.mongodb_transactions,
            },
        )
        client = MongoClient(settings.mongodb_uri)
        return cls(client, settings.mongodb_database, settings.mongodb_transactions)

    def ensure_indexes(self) -> None:
        """Create the indexes queries rely on, including TTL indexes."""
        self.users.create_index("email", unique=True)
        self.products.create_index([("category", ASCENDING), ("price", ASCENDING)])
        self.products.create_index([("categoryId", ASCENDING), ("stock", ASCENDING)])
        self.products.create_index("tags")
        self.categories.create_index("slug", unique=True)
        self.categories.create_index([("parentId", ASCENDING), ("isActive", ASCENDING)])
        self.carts.create_index("userId", unique=True)
        self.orders.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
        self.orders.create_index("orderNumber", unique=True)
        self.coupons.create_index("code", unique=True)
        self.ratings.create_index([("productId", ASCENDING), ("userId", ASCENDING)], unique=True)
        self.favorites.create_index(
            [("userId", ASCENDING), ("productId", ASCENDING)], unique=True
        )
        self.wishlists.create_index("userId")
        self.wishlists.create_index("items.productId")
        self.scraper_jobs.create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
        self.qr_sessions.create_index("sessionId", unique=True)
        self.qr_sessions.create_index("expiresAt", expireAfterSeconds=0)
        # One live entry per subject; writers race on an upsert against it
        self.recommendation_cache.create_index(
            [
                ("recommendationType", ASCENDING),
                ("userId", ASCENDING),
                ("productId", ASCENDING),
            ],
            unique=True,
        )
        self.recommendation_cache.create_index("expiresAt", expireAfterSeconds=0)
        self.user_behavior.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
        self.user_behavior.create_index([("productId", ASCENDING), ("eventType", ASCENDING)])
        self.notifications.create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
        logger.info("Database indexes ensured", extra={"database": self.name})

    @contextmanager
    def transaction(self) -> Iterator[Optional[ClientSession]]:
        """Run a block inside a multi-document transaction.

        Yields the client session to pass to every write in the block, or
        ``None`` when transactions are disabled (standalone servers).
        Leaving the block with an exception aborts the transaction.
        """
        if not self.use_transactions:
            yield None
            return

        with self.client.start_session() as session:
            with session.start_transaction():
                yield session

    def find_by_ids(self, collection_name: str, ids: List[Any]) -> Dict[str, Dict[str, Any]]:
        """Fetch documents by id, keyed by their hex id. Unknown ids are skipped."""
        object_ids = [to_object_id(item) for item in ids]
        if not object_ids:
            return {}
        collection = getattr(self, collection_name)
        return {str(doc["_id"]): doc for doc in collection.find({"_id": {"$in": object_ids}})}

    def close(self) -> None:
        self.client.close()
