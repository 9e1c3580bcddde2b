"""Recommendation endpoints.

List responses carry the ranked products as ``data`` and the pagination of
the full ranked list as ``meta``.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from marketplace.api.deps import get_container, get_current_user, require_roles
from marketplace.api.responses import envelope
from marketplace.api.schemas import RefreshRecommendationsRequest
from marketplace.container import ServiceContainer

# Configure module logger
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


def _listing(result: Dict[str, Any]) -> Dict[str, Any]:
    return envelope(result["items"], meta=result["meta"])


@router.get("/personalized")
def personalized(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """Hybrid collaborative and content-based recommendations for the caller."""
    return _listing(
        container.recommendations.get_personalized_recommendations(str(user["_id"]), page, limit)
    )


@router.get("/for-you")
def for_you(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """Personalized recommendations minus products the caller already bought."""
    return _listing(
        container.recommendations.get_recommended_for_you(str(user["_id"]), page, limit)
    )


@router.get("/trending")
def trending(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    container: ServiceContainer = Depends(get_container),
):
    return _listing(container.recommendations.get_trending_products(page, limit))


@router.get("/similar/{product_id}")
def similar(
    product_id: str,
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    container: ServiceContainer = Depends(get_container),
):
    return _listing(container.recommendations.get_similar_products(product_id, page, limit))


@router.post("/refresh")
def refresh(
    body: RefreshRecommendationsRequest,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    """Drop cached recommendation lists so they are recomputed on next request."""
    deleted = container.recommendations.invalidate(
        recommendation_type=body.type, user_id=body.userId, product_id=body.productId
    )
    logger.info(
        "Recommendation cache refresh requested",
        extra={"admin_id": str(user["_id"]), "deleted": deleted},
    )
    return envelope({"deleted": deleted})
