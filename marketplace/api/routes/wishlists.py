"""Wishlist endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_container, get_current_user, get_optional_user
from marketplace.api.responses import envelope
from marketplace.api.schemas import (
    WishlistCreate,
    WishlistItemCreate,
    WishlistItemUpdate,
    WishlistUpdate,
)
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/wishlists", tags=["wishlists"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_wishlist(
    body: WishlistCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    wishlist = container.wishlists.create(
        str(user["_id"]), body.name, description=body.description, is_public=body.isPublic
    )
    return envelope(wishlist, status=201)


@router.get("")
def list_my_wishlists(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    wishlists, meta = container.wishlists.list_for_user(str(user["_id"]), page, limit)
    return envelope(wishlists, meta=meta)


@router.get("/public")
def list_public_wishlists(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    container: ServiceContainer = Depends(get_container),
):
    wishlists, meta = container.wishlists.list_public(page, limit)
    return envelope(wishlists, meta=meta)


@router.get("/{wishlist_id}")
def get_wishlist(
    wishlist_id: str,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
):
    viewer_id = str(user["_id"]) if user else None
    return envelope(container.wishlists.get(wishlist_id, viewer_id))


@router.patch("/{wishlist_id}")
def update_wishlist(
    wishlist_id: str,
    body: WishlistUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    data = body.model_dump(exclude_unset=True)
    return envelope(container.wishlists.update(wishlist_id, str(user["_id"]), data))


@router.delete("/{wishlist_id}")
def delete_wishlist(
    wishlist_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    container.wishlists.delete(wishlist_id, str(user["_id"]))
    return envelope({"message": "Wishlist deleted"})


@router.post("/{wishlist_id}/items", status_code=status.HTTP_201_CREATED)
def add_wishlist_item(
    wishlist_id: str,
    body: WishlistItemCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    wishlist = container.wishlists.add_item(
        wishlist_id, str(user["_id"]), body.productId, notes=body.notes
    )
    return envelope(wishlist, status=201)


@router.patch("/{wishlist_id}/items/{product_id}")
def update_wishlist_item(
    wishlist_id: str,
    product_id: str,
    body: WishlistItemUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    wishlist = container.wishlists.update_item(
        wishlist_id, str(user["_id"]), product_id, body.notes
    )
    return envelope(wishlist)


@router.delete("/{wishlist_id}/items/{product_id}")
def remove_wishlist_item(
    wishlist_id: str,
    product_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.wishlists.remove_item(wishlist_id, str(user["_id"]), product_id))
