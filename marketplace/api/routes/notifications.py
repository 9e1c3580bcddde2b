"""Notification inbox endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from marketplace.api.deps import get_container, get_current_user
from marketplace.api.responses import envelope
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    isRead: Optional[bool] = Query(default=None),
    type: Optional[str] = Query(default=None),
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    notifications, meta = container.notifications.list_for_user(
        str(user["_id"]), page=page, limit=limit, is_read=isRead, notification_type=type
    )
    return envelope(notifications, meta=meta)


@router.get("/unread-count")
def unread_count(
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope({"count": container.notifications.unread_count(str(user["_id"]))})


@router.patch("/read-all")
def mark_all_read(
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope({"count": container.notifications.mark_all_read(str(user["_id"]))})


@router.patch("/{notification_id}/read")
def mark_read(
    notification_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.notifications.mark_read(notification_id, str(user["_id"])))
