"""Product catalog service."""

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from marketplace.api.exceptions import ConflictError, ForbiddenError, NotFoundError
from marketplace.behavior.tracker import BackgroundTracker
from marketplace.db import Database, to_object_id, utcnow
from marketplace.pagination import build_pagination_meta, parse_pagination

# Configure module logger
logger = logging.getLogger(__name__)

SORTABLE_FIELDS = ("createdAt", "price", "title", "stock")
UPDATABLE_FIELDS = (
    "title",
    "description",
    "price",
    "currency",
    "images",
    "stock",
    "category",
    "categoryId",
    "tags",
)


def generate_slug(title: str) -> str:
    """Lower-case, dash separated slug of a product title."""
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def build_product_filter(
    q: Optional[str] = None,
    category: Optional[str] = None,
    tag: Optional[str] = None,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if q and q.strip():
        query["title"] = {"$regex": re.escape(q.strip()), "$options": "i"}
    if category:
        query["category"] = category
    if tag:
        query["tags"] = tag
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = min_price
        if max_price is not None:
            query["price"]["$lte"] = max_price
    return query


def parse_sort(sort: Optional[str]) -> List[Tuple[str, int]]:
    """Parse ``field:asc|desc``; unknown fields fall back to newest first."""
    if not sort:
        return [("createdAt", DESCENDING)]
    field, _, order = sort.partition(":")
    if field not in SORTABLE_FIELDS:
        return [("createdAt", DESCENDING)]
    return [(field, ASCENDING if order == "asc" else DESCENDING)]


class ProductService:
    """CRUD over the ``products`` collection."""

    def __init__(
        self,
        database: Database,
        background: Optional[BackgroundTracker] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = database
        self.background = background
        self.clock = clock

    def _get(self, product_id: str) -> Dict[str, Any]:
        product = self.db.products.find_one({"_id": to_object_id(product_id, "productId")})
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product

    @staticmethod
    def _check_owner(product: Dict[str, Any], user: Dict[str, Any], action: str) -> None:
        if user.get("role") != "admin" and str(product["sellerId"]) != str(user["_id"]):
            raise ForbiddenError(f"You can only {action} your own products")

    def create(self, data: Dict[str, Any], seller_id: str) -> Dict[str, Any]:
        """Create a product owned by ``seller_id``.

        Raises:
            ConflictError: If another product already uses the same slug.
        """
        slug = generate_slug(data["title"])
        if self.db.products.find_one({"slug": slug}):
            raise ConflictError("Product with this title already exists")

        now = self.clock()
        product = {
            "title": data["title"],
            "slug": slug,
            "description": data.get("description", ""),
            "price": data["price"],
            "currency": data.get("currency", "USD"),
            "images": list(data.get("images") or []),
            "stock": data.get("stock", 0),
            "category": data.get("category"),
            "tags": list(data.get("tags") or []),
            "sellerId": to_object_id(seller_id, "sellerId"),
            "createdAt": now,
            "updatedAt": now,
        }
        if data.get("categoryId"):
            product["categoryId"] = to_object_id(data["categoryId"], "categoryId")

        product["_id"] = self.db.products.insert_one(product).inserted_id
        logger.info(
            "Product created", extra={"product_id": str(product["_id"]), "seller_id": seller_id}
        )
        return product

    def get(self, product_id: str, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        """Fetch a product. An authenticated viewer records a ``product_view``."""
        product = self._get(product_id)
        if viewer_id and self.background is not None:
            self.background.submit(
                viewer_id,
                "product_view",
                product_id=str(product["_id"]),
                event_data={
                    "price": product.get("price"),
                    "category": product.get("category"),
                    "tags": product.get("tags", []),
                },
            )
        return product

    def list(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        sort: Optional[str] = None,
        viewer_id: Optional[str] = None,
        **filters: Any,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """Filtered, sorted page of products.

        A signed-in viewer's search text is recorded as a ``search_query``
        event and a category filter as a ``category_view`` event.
        """
        params = parse_pagination(page, limit)
        query = build_product_filter(**filters)
        products = list(
            self.db.products.find(query)
            .sort(parse_sort(sort))
            .skip(params.skip)
            .limit(params.limit)
        )
        total = self.db.products.count_documents(query)

        if viewer_id and self.background is not None:
            search = (filters.get("q") or "").strip()
            if search:
                self.background.submit(
                    viewer_id,
                    "search_query",
                    event_data={"query": search, "resultCount": total},
                )
            if filters.get("category"):
                self.background.submit(
                    viewer_id, "category_view", event_data={"category": filters["category"]}
                )
        return products, build_pagination_meta(params.page, params.limit, total)

    def update(self, product_id: str, data: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Update a product. Sellers may only edit their own products.

        Raises:
            NotFoundError: If the product does not exist.
            ForbiddenError: If the user is neither the owner nor an admin.
            ConflictError: If the new title collides with another product.
        """
        product = self._get(product_id)
        self._check_owner(product, user, "update")

        changes = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}
        if "title" in changes and changes["title"] != product["title"]:
            slug = generate_slug(changes["title"])
            if self.db.products.find_one({"slug": slug, "_id": {"$ne": product["_id"]}}):
                raise ConflictError("Product with this title already exists")
            changes["slug"] = slug
        if changes.get("categoryId"):
            changes["categoryId"] = to_object_id(changes["categoryId"], "categoryId")
        changes["updatedAt"] = self.clock()

        return self.db.products.find_one_and_update(
            {"_id": product["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )

    def delete(self, product_id: str, user: Dict[str, Any]) -> None:
        product = self._get(product_id)
        self._check_owner(product, user, "delete")
        self.db.products.delete_one({"_id": product["_id"]})
        logger.info("Product deleted", extra={"product_id": product_id})

    def update_stock(self, product_id: str, quantity: int) -> Dict[str, Any]:
        """Add ``quantity`` (possibly negative) to the product's stock."""
        product = self.db.products.find_one_and_update(
            {"_id": to_object_id(product_id, "productId")},
            {"$inc": {"stock": quantity}, "$set": {"updatedAt": self.clock()}},
            return_document=ReturnDocument.AFTER,
        )
        if product is None:
            raise NotFoundError("Product not found", details={"product_id": product_id})
        return product
