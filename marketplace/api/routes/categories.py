"""Category endpoints. Reads are public, writes are admin only."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_container, require_roles
from marketplace.api.responses import envelope
from marketplace.api.schemas import CategoryCreate, CategoryUpdate
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("/tree")
def category_tree(
    includeProductCount: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.categories.tree(include_product_count=includeProductCount))


@router.get("")
def list_categories(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    parentId: Optional[str] = Query(default=None, description='"null" for top level'),
    isActive: Optional[bool] = Query(default=None),
    includeProductCount: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    categories, meta = container.categories.list(
        page=page,
        limit=limit,
        parent_id=parentId,
        is_active=isActive,
        include_product_count=includeProductCount,
    )
    return envelope(categories, meta=meta)


@router.get("/slug/{slug}")
def get_category_by_slug(
    slug: str,
    includeProductCount: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(
        container.categories.get_by_slug(slug, include_product_count=includeProductCount)
    )


@router.get("/{category_id}")
def get_category(
    category_id: str,
    includeProductCount: bool = Query(default=False),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(
        container.categories.get(category_id, include_product_count=includeProductCount)
    )


@router.get("/{category_id}/children")
def get_category_children(
    category_id: str,
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.categories.get_with_children(category_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    body: CategoryCreate,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    category = container.categories.create(body.model_dump())
    return envelope(category, status=201)


@router.patch("/{category_id}")
def update_category(
    category_id: str,
    body: CategoryUpdate,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    changes = body.model_dump(exclude_unset=True)
    return envelope(container.categories.update(category_id, changes))


@router.delete("/{category_id}")
def delete_category(
    category_id: str,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    container.categories.delete(category_id)
    return envelope({"message": "Category deleted"})
