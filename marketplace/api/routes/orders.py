"""Order endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_container, get_current_user, require_roles
from marketplace.api.responses import envelope
from marketplace.api.schemas import OrderCreate, OrderStatusUpdate, ShippingInfoUpdate
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_order(
    body: OrderCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """Place an order for the contents of the caller's cart."""
    order = container.orders.create_order(
        str(user["_id"]),
        shipping_address=body.shippingAddress.model_dump(),
        payment_method=body.paymentMethod,
        notes=body.notes,
        coupon_code=body.couponCode,
    )
    return envelope(order, status=201)


@router.get("")
def list_orders(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    orders, meta = container.orders.list_orders(user, status=status_filter, page=page, limit=limit)
    return envelope(orders, meta=meta)


@router.get("/track/{order_number}")
def track_order(
    order_number: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.orders.track_order(order_number, user))


@router.get("/{order_id}")
def get_order(
    order_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.orders.get_order(order_id, user))


@router.patch("/{order_id}/status")
def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.orders.update_status(order_id, body.status, user))


@router.patch("/{order_id}/shipping")
def update_shipping_info(
    order_id: str,
    body: ShippingInfoUpdate,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    data = body.model_dump(exclude_unset=True)
    return envelope(container.orders.update_shipping_info(order_id, data, user))
