"""Product categories.

Categories form a tree through ``parentId``. Products refer to a category
by name (``category``) and optionally by id (``categoryId``).
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, ReturnDocument

from marketplace.api.exceptions import BadRequestError, ConflictError, NotFoundError
from marketplace.catalog.products import generate_slug
from marketplace.db import Database, to_object_id, utcnow
from marketplace.pagination import build_pagination_meta, parse_pagination

# Configure module logger
logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "slug", "description", "image", "isActive", "order")
CATEGORY_SORT = [("order", ASCENDING), ("name", ASCENDING)]

# Query value selecting top level categories
ROOT_PARENT = "null"


def build_tree(categories: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Nest categories under their parents.

    Categories whose parent is missing from ``categories`` become roots.
    Sibling order follows the input order.
    """
    nodes = {category["_id"]: dict(category, children=[]) for category in categories}
    roots = []
    for category in categories:
        node = nodes[category["_id"]]
        parent = nodes.get(category.get("parentId"))
        if parent is None:
            roots.append(node)
        else:
            parent["children"].append(node)
    return roots


class CategoryService:
    """CRUD and tree views over the ``categories`` collection."""

    def __init__(self, database: Database, clock: Callable[[], datetime] = utcnow):
        self.db = database
        self.clock = clock

    def _get(self, category_id: str) -> Dict[str, Any]:
        category = self.db.categories.find_one({"_id": to_object_id(category_id, "categoryId")})
        if category is None:
            raise NotFoundError("Category not found")
        return category

    def _product_filter(self, category: Dict[str, Any]) -> Dict[str, Any]:
        return {"$or": [{"category": category["name"]}, {"categoryId": category["_id"]}]}

    def _with_product_count(self, category: Dict[str, Any]) -> Dict[str, Any]:
        category["productCount"] = self.db.products.count_documents(self._product_filter(category))
        return category

    def _check_unique(
        self, slug: str, name: str, exclude_id: Optional[ObjectId] = None
    ) -> None:
        query: Dict[str, Any] = {"$or": [{"slug": slug}, {"name": name}]}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if self.db.categories.find_one(query):
            raise ConflictError("Category with this slug or name already exists")

    def _resolve_parent(
        self, parent_id: Optional[str], category_id: Optional[ObjectId] = None
    ) -> Optional[ObjectId]:
        """Validate a new parent and return its id (``None`` for a root).

        Raises:
            BadRequestError: If the parent does not exist, or would make the
                category its own ancestor.
        """
        if parent_id is None or parent_id == ROOT_PARENT:
            return None

        parent_oid = to_object_id(parent_id, "parentId")
        if parent_oid == category_id:
            raise BadRequestError("Category cannot be its own parent")

        ancestor = self.db.categories.find_one({"_id": parent_oid})
        if ancestor is None:
            raise BadRequestError("Parent category does not exist")

        while category_id is not None and ancestor is not None:
            if ancestor["_id"] == category_id:
                raise BadRequestError("Category cannot be moved under its own descendant")
            if ancestor.get("parentId") is None:
                break
            ancestor = self.db.categories.find_one({"_id": ancestor["parentId"]})
        return parent_oid

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a category. The slug defaults to one derived from the name.

        Raises:
            ConflictError: If the slug or name is taken.
            BadRequestError: If ``parentId`` names no category.
        """
        slug = data.get("slug") or generate_slug(data["name"])
        self._check_unique(slug, data["name"])

        now = self.clock()
        category = {
            "name": data["name"],
            "slug": slug,
            "description": data.get("description"),
            "parentId": self._resolve_parent(data.get("parentId")),
            "image": data.get("image"),
            "isActive": data.get("isActive", True),
            "order": data.get("order", 0),
            "createdAt": now,
            "updatedAt": now,
        }
        category["_id"] = self.db.categories.insert_one(category).inserted_id
        logger.info(
            "Category created", extra={"category_id": str(category["_id"]), "slug": slug}
        )
        return category

    def get(self, category_id: str, include_product_count: bool = False) -> Dict[str, Any]:
        category = self._get(category_id)
        if include_product_count:
            self._with_product_count(category)
        return category

    def get_by_slug(self, slug: str, include_product_count: bool = False) -> Dict[str, Any]:
        category = self.db.categories.find_one({"slug": slug.lower()})
        if category is None:
            raise NotFoundError("Category not found")
        if include_product_count:
            self._with_product_count(category)
        return category

    def list(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        parent_id: Optional[str] = None,
        is_active: Optional[bool] = None,
        include_product_count: bool = False,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """Page of categories ordered by ``order`` then name.

        ``parent_id="null"`` selects top level categories.
        """
        params = parse_pagination(page, limit)
        query: Dict[str, Any] = {}
        if parent_id is not None:
            query["parentId"] = (
                None if parent_id == ROOT_PARENT else to_object_id(parent_id, "parentId")
            )
        if is_active is not None:
            query["isActive"] = is_active

        categories = list(
            self.db.categories.find(query)
            .sort(CATEGORY_SORT)
            .skip(params.skip)
            .limit(params.limit)
        )
        if include_product_count:
            for category in categories:
                self._with_product_count(category)
        total = self.db.categories.count_documents(query)
        return categories, build_pagination_meta(params.page, params.limit, total)

    def tree(self, include_product_count: bool = False) -> List[Dict[str, Any]]:
        """Active categories nested under their parents."""
        categories = list(self.db.categories.find({"isActive": True}).sort(CATEGORY_SORT))
        if include_product_count:
            for category in categories:
                self._with_product_count(category)
        return build_tree(categories)

    def get_with_children(self, category_id: str) -> Dict[str, Any]:
        """A category and its active direct children."""
        category = self._get(category_id)
        children = self.db.categories.find(
            {"parentId": category["_id"], "isActive": True}
        ).sort(CATEGORY_SORT)
        category["children"] = [dict(child, children=[]) for child in children]
        return category

    def update(self, category_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Update a category. Renaming it regenerates the slug unless one is given.

        Raises:
            NotFoundError: If the category does not exist.
            ConflictError: If the new slug or name is taken.
            BadRequestError: If the new parent is invalid.
        """
        category = self._get(category_id)
        changes = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}

        if "name" in changes and changes["name"] != category["name"] and not changes.get("slug"):
            changes["slug"] = generate_slug(changes["name"])
        if "name" in changes or "slug" in changes:
            self._check_unique(
                changes.get("slug", category["slug"]),
                changes.get("name", category["name"]),
                exclude_id=category["_id"],
            )
        if "parentId" in data:
            changes["parentId"] = self._resolve_parent(data["parentId"], category["_id"])
        changes["updatedAt"] = self.clock()

        updated = self.db.categories.find_one_and_update(
            {"_id": category["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
        if updated is None:
            raise NotFoundError("Category not found")
        return updated

    def delete(self, category_id: str) -> None:
        """Delete a category that has no children and no products.

        Raises:
            NotFoundError: If the category does not exist.
            BadRequestError: If it still has children or products.
        """
        category = self._get(category_id)
        if self.db.categories.count_documents({"parentId": category["_id"]}) > 0:
            raise BadRequestError("Cannot delete category with child categories")
        if self.db.products.count_documents(self._product_filter(category)) > 0:
            raise BadRequestError("Cannot delete category with associated products")

        self.db.categories.delete_one({"_id": category["_id"]})
        logger.info("Category deleted", extra={"category_id": category_id})
