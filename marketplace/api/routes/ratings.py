"""Rating and review endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_container, get_current_user
from marketplace.api.responses import envelope
from marketplace.api.schemas import RatingCreate, RatingUpdate
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/ratings", tags=["ratings"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_rating(
    body: RatingCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    rating = container.ratings.create(
        str(user["_id"]), body.productId, body.rating, review=body.review
    )
    return envelope(rating, status=201)


@router.get("/product/{product_id}")
def list_product_ratings(
    product_id: str,
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    minRating: Optional[int] = Query(default=None, ge=1, le=5),
    container: ServiceContainer = Depends(get_container),
):
    ratings, meta = container.ratings.list_for_product(
        product_id, page=page, limit=limit, min_rating=minRating
    )
    return envelope(ratings, meta=meta)


@router.get("/product/{product_id}/stats")
def product_rating_stats(product_id: str, container: ServiceContainer = Depends(get_container)):
    return envelope(container.ratings.stats(product_id))


@router.get("/product/{product_id}/mine")
def my_rating(
    product_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.ratings.get_user_rating(product_id, str(user["_id"])))


@router.patch("/{rating_id}")
def update_rating(
    rating_id: str,
    body: RatingUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    data = body.model_dump(exclude_unset=True)
    return envelope(container.ratings.update(rating_id, str(user["_id"]), data))


@router.delete("/{rating_id}")
def delete_rating(
    rating_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    container.ratings.delete(rating_id, user)
    return envelope({"message": "Rating deleted"})


@router.post("/{rating_id}/helpful")
def mark_rating_helpful(
    rating_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.ratings.mark_helpful(rating_id))
