"""Shopping cart endpoints."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from marketplace.api.deps import get_container, get_current_user
from marketplace.api.responses import envelope
from marketplace.api.schemas import CartItemCreate, CartItemUpdate
from marketplace.container import ServiceContainer
from marketplace.orders.cart import cart_subtotal

router = APIRouter(prefix="/cart", tags=["cart"])


def _cart_payload(cart: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(cart)
    payload["subtotal"] = cart_subtotal(cart)
    return payload


@router.get("")
def get_cart(
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    return envelope(_cart_payload(container.cart.get_cart(str(user["_id"]))))


@router.post("/items")
def add_cart_item(
    body: CartItemCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    cart = container.cart.add_item(str(user["_id"]), body.productId, body.quantity)
    return envelope(_cart_payload(cart))


@router.patch("/items/{product_id}")
def update_cart_item(
    product_id: str,
    body: CartItemUpdate,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    cart = container.cart.update_item(str(user["_id"]), product_id, body.quantity)
    return envelope(_cart_payload(cart))


@router.delete("/items/{product_id}")
def remove_cart_item(
    product_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    cart = container.cart.remove_item(str(user["_id"]), product_id)
    return envelope(_cart_payload(cart))


@router.delete("")
def clear_cart(
    user: Dict[str, Any] = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    container.cart.clear(str(user["_id"]))
    return envelope({"message": "Cart cleared"})
