"""Favorite product endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_container, get_current_user
from marketplace.api.responses import envelope
from marketplace.api.schemas import FavoriteCreate
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/favorites", tags=["favorites"])


@router.post("", status_code=status.HTTP_201_CREATED)
def add_favorite(
    body: FavoriteCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.favorites.add(str(user["_id"]), body.productId), status=201)


@router.get("")
def list_favorites(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    favorites, meta = container.favorites.list_for_user(str(user["_id"]), page, limit)
    return envelope(favorites, meta=meta)


@router.get("/check/{product_id}")
def is_favorite(
    product_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope({"isFavorite": container.favorites.is_favorite(str(user["_id"]), product_id)})


@router.get("/count/{product_id}")
def favorite_count(product_id: str, container: ServiceContainer = Depends(get_container)):
    return envelope({"count": container.favorites.count_for_product(product_id)})


@router.delete("/{product_id}")
def remove_favorite(
    product_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    container.favorites.remove(str(user["_id"]), product_id)
    return envelope({"message": "Removed from favorites"})
