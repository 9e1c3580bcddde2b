"""Coupon endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from marketplace.api.deps import get_container, get_current_user, require_roles
from marketplace.api.responses import envelope
from marketplace.api.schemas import CouponCreate, CouponUpdate, CouponValidateRequest
from marketplace.container import ServiceContainer

router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("/validate")
def validate_coupon(
    body: CouponValidateRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    """Check a code against the caller's cart. The coupon is not used up."""
    return envelope(container.orders.check_coupon(str(user["_id"]), body.code))


@router.get("")
def list_coupons(
    page: Optional[int] = Query(default=None),
    limit: Optional[int] = Query(default=None),
    isActive: Optional[bool] = Query(default=None),
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    coupons, meta = container.coupons.list(page=page, limit=limit, is_active=isActive)
    return envelope(coupons, meta=meta)


@router.get("/code/{code}")
def get_coupon_by_code(
    code: str,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.coupons.get_by_code(code))


@router.get("/{coupon_id}")
def get_coupon(
    coupon_id: str,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(container.coupons.get(coupon_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_coupon(
    body: CouponCreate,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    coupon = container.coupons.create(body.model_dump())
    return envelope(coupon, status=201)


@router.patch("/{coupon_id}")
def update_coupon(
    coupon_id: str,
    body: CouponUpdate,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    changes = body.model_dump(exclude_unset=True)
    return envelope(container.coupons.update(coupon_id, changes))


@router.delete("/{coupon_id}")
def delete_coupon(
    coupon_id: str,
    user: Dict[str, Any] = Depends(require_roles("admin")),
    container: ServiceContainer = Depends(get_container),
):
    container.coupons.delete(coupon_id)
    return envelope({"message": "Coupon deleted"})
