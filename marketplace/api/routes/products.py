"""Product catalog endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_container, get_optional_user, require_roles
from marketplace.api.responses import envelope
from marketplace.api.schemas import ProductCreate, ProductUpdate
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/products", tags=["products"])


@router.get("")
def list_products(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    sort: Optional[str] = Query(default=None, description="field:asc or field:desc"),
    q: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    tag: Optional[str] = Query(default=None),
    minPrice: Optional[int] = Query(default=None, ge=0),
    maxPrice: Optional[int] = Query(default=None, ge=0),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
):
    viewer_id = str(user["_id"]) if user else None
    products, meta = container.products.list(
        page=page,
        limit=limit,
        sort=sort,
        q=q,
        category=category,
        tag=tag,
        min_price=minPrice,
        max_price=maxPrice,
        viewer_id=viewer_id,
    )
    return envelope(products, meta=meta)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_product(
    body: ProductCreate,
    user: Dict[str, Any] = Depends(require_roles("seller", "admin")),
    container: ServiceContainer = Depends(get_container),
):
    product = container.products.create(body.model_dump(), str(user["_id"]))
    return envelope(product, status=201)


@router.get("/{product_id}")
def get_product(
    product_id: str,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
):
    viewer_id = str(user["_id"]) if user else None
    return envelope(container.products.get(product_id, viewer_id=viewer_id))


@router.patch("/{product_id}")
def update_product(
    product_id: str,
    body: ProductUpdate,
    user: Dict[str, Any] = Depends(require_roles("seller", "admin")),
    container: ServiceContainer = Depends(get_container),
):
    changes = body.model_dump(exclude_unset=True)
    return envelope(container.products.update(product_id, changes, user))


@router.delete("/{product_id}")
def delete_product(
    product_id: str,
    user: Dict[str, Any] = Depends(require_roles("seller", "admin")),
    container: ServiceContainer = Depends(get_container),
):
    container.products.delete(product_id, user)
    return envelope({"message": "Product deleted"})
