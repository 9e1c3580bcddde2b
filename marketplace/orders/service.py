"""Order placement and fulfilment.

Placing an order turns the user's cart into an order document, takes the
ordered quantities out of stock and empties the cart. Either all of that
happens or none of it: with transactions enabled the writes share one
transaction, otherwise stock already taken is put back when a later step
fails.
"""

import logging
import secrets
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
from bson import ObjectId
from pymongo import ReturnDocument

from marketplace.api.exceptions import BadRequestError, ForbiddenError, NotFoundError
from marketplace.behavior.tracker import BackgroundTracker
from marketplace.db import Database, to_object_id, utcnow
from marketplace.orders.cart import CartService
from marketplace.orders.coupons import CouponService
from marketplace.pagination import build_pagination_meta, parse_pagination

# Configure module logger
logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled")

# Amounts are in cents
FREE_SHIPPING_THRESHOLD = 50000
SHIPPING_COST = 1000
TAX_RATE = 0.1
CURRENCY = "USD"


def _base36(number: int) -> str:
    return np.base_repr(number, 36)


def generate_order_number() -> str:
    """``ORD-<base36 millis>-<6 random base36 chars>``."""
    timestamp = _base36(int(time.time() * 1000))
    random_part = _base36(secrets.randbelow(36**6)).rjust(6, "0")
    return f"ORD-{timestamp}-{random_part}"


def calculate_totals(subtotal: int, discount: int = 0) -> Dict[str, int]:
    """Shipping is free above the threshold; tax is 10% of the discounted
    amount rounded to the cent.
    """
    shipping_cost = 0 if subtotal > FREE_SHIPPING_THRESHOLD else SHIPPING_COST
    taxable = subtotal - discount
    tax = int(round(taxable * TAX_RATE))
    return {
        "subtotal": subtotal,
        "discountAmount": discount,
        "shippingCost": shipping_cost,
        "tax": tax,
        "total": taxable + shipping_cost + tax,
    }


class OrderService:
    """Creates orders from carts and manages their lifecycle."""

    def __init__(
        self,
        database: Database,
        cart: CartService,
        coupons: Optional[CouponService] = None,
        background: Optional[BackgroundTracker] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = database
        self.cart = cart
        self.coupons = coupons
        self.background = background
        self.clock = clock

    def _order_items(self, cart: Dict[str, Any]) -> List[Dict[str, Any]]:
        products = self.db.find_by_ids("products", [item["productId"] for item in cart["items"]])

        items = []
        for line in cart["items"]:
            product = products.get(str(line["productId"]))
            if product is None:
                raise BadRequestError(f"Product {line['productId']} no longer exists")
            if product.get("stock", 0) < line["quantity"]:
                raise BadRequestError(f"Insufficient stock for {product['title']}")

            items.append(
                {
                    "productId": product["_id"],
                    "title": product["title"],
                    "quantity": line["quantity"],
                    "price": line["price"],
                    "total": line["price"] * line["quantity"],
                    "category": product.get("category"),
                    "tags": product.get("tags", []),
                }
            )
        return items

    def _restore_stock(self, items: List[Dict[str, Any]], session=None) -> None:
        for item in items:
            self.db.products.update_one(
                {"_id": item["productId"]}, {"$inc": {"stock": item["quantity"]}}, session=session
            )

    def check_coupon(self, user_id: str, code: str) -> Dict[str, Any]:
        """Validate a coupon against the user's current cart without using it."""
        if self.coupons is None:
            raise BadRequestError("Coupons are not accepted")
        cart = self.cart.get_cart(user_id)
        if not cart.get("items"):
            raise BadRequestError("Cart is empty")

        items = self._order_items(cart)
        subtotal = sum(item["total"] for item in items)
        result = self.coupons.validate(code, user_id, items, subtotal)
        result["subtotal"] = subtotal
        return result

    def create_order(
        self,
        user_id: str,
        shipping_address: Dict[str, Any],
        payment_method: str,
        notes: Optional[str] = None,
        coupon_code: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Place an order for everything in the user's cart.

        Args:
            coupon_code: Optional coupon taken off the subtotal before tax.

        Raises:
            BadRequestError: If the cart is empty, a product is gone, there
                is not enough stock or the coupon cannot be used.
        """
        cart = self.cart.get_cart(user_id)
        if not cart.get("items"):
            raise BadRequestError("Cart is empty")

        items = self._order_items(cart)
        subtotal = sum(item["total"] for item in items)

        coupon = None
        discount = 0
        if coupon_code:
            if self.coupons is None:
                raise BadRequestError("Coupons are not accepted")
            check = self.coupons.validate(coupon_code, user_id, items, subtotal)
            if not check["isValid"]:
                raise BadRequestError(check["error"], details={"couponCode": coupon_code})
            coupon = check["coupon"]
            discount = check["discountAmount"]

        now = self.clock()
        order: Dict[str, Any] = {
            "_id": ObjectId(),
            "orderNumber": generate_order_number(),
            "userId": to_object_id(user_id, "userId"),
            "items": [
                {key: item[key] for key in ("productId", "title", "quantity", "price", "total")}
                for item in items
            ],
            "currency": CURRENCY,
            "status": "pending",
            "shippingAddress": shipping_address,
            "paymentMethod": payment_method,
            "paymentStatus": "pending",
            "shippingInfo": {},
            "notes": notes,
            "createdAt": now,
            "updatedAt": now,
        }
        if coupon is not None:
            order["couponCode"] = coupon["code"]
            order["couponId"] = coupon["_id"]
        order.update(calculate_totals(subtotal, discount))

        taken: List[Dict[str, Any]] = []
        redeemed = False
        try:
            with self.db.transaction() as session:
                for item in items:
                    # Conditional decrement: never drives stock below zero
                    result = self.db.products.update_one(
                        {"_id": item["productId"], "stock": {"$gte": item["quantity"]}},
                        {"$inc": {"stock": -item["quantity"]}},
                        session=session,
                    )
                    if result.modified_count == 0:
                        raise BadRequestError(f"Insufficient stock for {item['title']}")
                    taken.append(item)

                if coupon is not None:
                    self.coupons.redeem(coupon, user_id, order["_id"], session=session)
                    redeemed = True

                self.db.orders.insert_one(order, session=session)
                self.cart.clear(user_id, session=session)
        except Exception as e:
            if not self.db.use_transactions:
                if taken:
                    self._restore_stock(taken)
                if redeemed:
                    self.coupons.release(coupon, order["_id"])
            logger.warning(
                "Order placement rolled back",
                extra={"user_id": user_id, "error": str(e), "error_type": type(e).__name__},
            )
            raise

        logger.info(
            "Order created",
            extra={
                "order_id": str(order["_id"]),
                "order_number": order["orderNumber"],
                "user_id": user_id,
                "total": order["total"],
            },
        )

        if self.background is not None:
            for item in items:
                self.background.submit(
                    user_id,
                    "purchase",
                    product_id=str(item["productId"]),
                    event_data={
                        "quantity": item["quantity"],
                        "price": item["price"],
                        "category": item["category"],
                        "tags": item["tags"],
                        "orderId": str(order["_id"]),
                    },
                )
        return order

    def _get(self, order_id: str) -> Dict[str, Any]:
        order = self.db.orders.find_one({"_id": to_object_id(order_id, "orderId")})
        if order is None:
            raise NotFoundError("Order not found")
        return order

    @staticmethod
    def _check_access(order: Dict[str, Any], user: Dict[str, Any], action: str) -> None:
        if user.get("role") != "admin" and str(order["userId"]) != str(user["_id"]):
            raise ForbiddenError(f"You can only {action} your own orders")

    @staticmethod
    def _require_admin(user: Dict[str, Any], action: str) -> None:
        if user.get("role") != "admin":
            raise ForbiddenError(f"Only admins can {action}")

    def get_order(self, order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
        order = self._get(order_id)
        self._check_access(order, user, "view")
        return order

    def list_orders(
        self,
        user: Dict[str, Any],
        status: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """Own orders, newest first. Admins see every order."""
        params = parse_pagination(page, limit)
        query: Dict[str, Any] = {}
        if user.get("role") != "admin":
            query["userId"] = user["_id"]
        if status:
            query["status"] = status

        orders = list(
            self.db.orders.find(query).sort("createdAt", -1).skip(params.skip).limit(params.limit)
        )
        total = self.db.orders.count_documents(query)
        return orders, build_pagination_meta(params.page, params.limit, total)

    def update_status(self, order_id: str, status: str, user: Dict[str, Any]) -> Dict[str, Any]:
        """Move an order to ``status``. Cancelling puts the items back in stock.

        Raises:
            BadRequestError: For an unknown status, or when the order is
                already cancelled.
        """
        self._require_admin(user, "update order status")
        if status not in ORDER_STATUSES:
            raise BadRequestError(f"Invalid order status: {status}")

        order = self._get(order_id)
        old_status = order["status"]
        if old_status == "cancelled" and status != "cancelled":
            raise BadRequestError("Cancelled orders cannot be reopened")
        now = self.clock()
        changes: Dict[str, Any] = {"status": status, "updatedAt": now}

        if status == "shipped" and old_status != "shipped":
            changes["shippingInfo.shippedAt"] = now
        if status == "delivered" and old_status != "delivered":
            changes["shippingInfo.deliveredAt"] = now

        updated = self.db.orders.find_one_and_update(
            {"_id": order["_id"], "status": old_status},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise BadRequestError("Order was modified concurrently, retry")

        if status == "cancelled" and old_status != "cancelled":
            self._restore_stock(order["items"])

        logger.info(
            "Order status updated",
            extra={"order_id": order_id, "old_status": old_status, "new_status": status},
        )
        return updated

    def update_shipping_info(
        self, order_id: str, data: Dict[str, Any], user: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Set carrier, tracking number or estimated delivery.

        Adding a tracking number to a ``processing`` order marks it shipped.
        """
        self._require_admin(user, "update shipping info")
        order = self._get(order_id)
        now = self.clock()

        changes: Dict[str, Any] = {"updatedAt": now}
        for field in ("carrier", "trackingNumber", "estimatedDelivery"):
            if data.get(field):
                changes[f"shippingInfo.{field}"] = data[field]

        if data.get("trackingNumber") and order["status"] == "processing":
            changes["status"] = "shipped"
            changes["shippingInfo.shippedAt"] = now

        return self.db.orders.find_one_and_update(
            {"_id": order["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )

    def track_order(self, order_number: str, user: Dict[str, Any]) -> Dict[str, Any]:
        order = self.db.orders.find_one({"orderNumber": order_number})
        if order is None:
            raise NotFoundError("Order not found")
        self._check_access(order, user, "track")
        return order
