"""Behavior tracking endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_container, get_current_user
from marketplace.api.exceptions import BadRequestError
from marketplace.api.responses import envelope
from marketplace.api.schemas import BehaviorEventCreate
from marketplace.behavior.tracker import EVENT_TYPES
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/behavior", tags=["behavior"])


@router.post("/track", status_code=status.HTTP_201_CREATED)
def track_event(
    body: BehaviorEventCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    if body.eventType not in EVENT_TYPES:
        raise BadRequestError(
            f"Unknown event type: {body.eventType}", details={"allowed": list(EVENT_TYPES)}
        )
    event = container.tracker.track(
        str(user["_id"]),
        body.eventType,
        product_id=body.productId,
        category_id=body.categoryId,
        event_data=body.eventData,
    )
    return envelope(event, status=201)


@router.get("")
def list_events(
    eventType: Optional[str] = Query(default=None),
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    events, meta = container.tracker.get_user_behavior(str(user["_id"]), eventType, page, limit)
    return envelope(events, meta=meta)


@router.get("/stats")
def behavior_stats(
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.tracker.get_user_stats(str(user["_id"])))
