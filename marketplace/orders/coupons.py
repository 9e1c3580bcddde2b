"""Discount coupons redeemed at checkout.

A coupon takes either a percentage (optionally capped) or a fixed amount
in cents off the order subtotal. It can be limited in time, in total uses
and in uses per user, and restricted to some categories or products.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pymongo import ReturnDocument

from marketplace.api.exceptions import BadRequestError, ConflictError, NotFoundError
from marketplace.db import Database, to_object_id, utcnow
from marketplace.pagination import build_pagination_meta, parse_pagination

# Configure module logger
logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "description",
    "discountValue",
    "minPurchaseAmount",
    "maxDiscountAmount",
    "validFrom",
    "validUntil",
    "usageLimit",
    "usageLimitPerUser",
    "applicableTo",
    "applicableCategories",
    "applicableProducts",
    "isActive",
)


def naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Drop the timezone of an aware datetime after converting it to UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def compute_discount(coupon: Dict[str, Any], subtotal: int) -> int:
    """Discount in cents, never more than ``subtotal``.

    Example:
        >>> compute_discount({"discountType": "percentage", "discountValue": 20}, 10000)
        2000
    """
    if coupon["discountType"] == "percentage":
        discount = int(round(subtotal * coupon["discountValue"] / 100))
        if coupon.get("maxDiscountAmount"):
            discount = min(discount, coupon["maxDiscountAmount"])
    else:
        discount = int(coupon["discountValue"])
    return max(0, min(discount, subtotal))


class CouponService:
    """Coupon administration and checkout validation."""

    def __init__(self, database: Database, clock: Callable[[], datetime] = utcnow):
        self.db = database
        self.clock = clock

    def _get(self, coupon_id: str) -> Dict[str, Any]:
        coupon = self.db.coupons.find_one({"_id": to_object_id(coupon_id, "couponId")})
        if coupon is None:
            raise NotFoundError("Coupon not found")
        return coupon

    def _check_products_exist(self, product_ids: List[str]) -> List[Any]:
        oids = [to_object_id(pid, "productId") for pid in product_ids]
        if self.db.products.count_documents({"_id": {"$in": oids}}) != len(set(oids)):
            raise BadRequestError("Some products do not exist")
        return oids

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a coupon. Codes are stored upper-case.

        Raises:
            ConflictError: If the code is taken.
            BadRequestError: If a percentage exceeds 100 or a listed product
                does not exist.
        """
        code = data["code"].strip().upper()
        if self.db.coupons.find_one({"code": code}):
            raise ConflictError("Coupon code already exists")
        if data["discountType"] == "percentage" and data["discountValue"] > 100:
            raise BadRequestError("Percentage discount cannot exceed 100%")

        now = self.clock()
        coupon = {
            "code": code,
            "description": data.get("description"),
            "discountType": data["discountType"],
            "discountValue": data["discountValue"],
            "minPurchaseAmount": data.get("minPurchaseAmount"),
            "maxDiscountAmount": data.get("maxDiscountAmount"),
            "validFrom": naive_utc(data.get("validFrom")) or now,
            "validUntil": naive_utc(data["validUntil"]),
            "usageLimit": data.get("usageLimit"),
            "usageLimitPerUser": data.get("usageLimitPerUser"),
            "applicableTo": data.get("applicableTo", "all"),
            "applicableCategories": list(data.get("applicableCategories") or []),
            "applicableProducts": self._check_products_exist(data.get("applicableProducts") or []),
            "isActive": data.get("isActive", True),
            "usageCount": 0,
            "usageHistory": [],
            "createdAt": now,
            "updatedAt": now,
        }
        coupon["_id"] = self.db.coupons.insert_one(coupon).inserted_id
        logger.info("Coupon created", extra={"coupon_id": str(coupon["_id"]), "code": code})
        return coupon

    def get(self, coupon_id: str) -> Dict[str, Any]:
        return self._get(coupon_id)

    def get_by_code(self, code: str) -> Dict[str, Any]:
        coupon = self.db.coupons.find_one({"code": code.strip().upper()})
        if coupon is None:
            raise NotFoundError("Coupon not found")
        return coupon

    def list(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        is_active: Optional[bool] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        params = parse_pagination(page, limit)
        query: Dict[str, Any] = {}
        if is_active is not None:
            query["isActive"] = is_active

        coupons = list(
            self.db.coupons.find(query).sort("createdAt", -1).skip(params.skip).limit(params.limit)
        )
        total = self.db.coupons.count_documents(query)
        return coupons, build_pagination_meta(params.page, params.limit, total)

    def update(self, coupon_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        coupon = self._get(coupon_id)
        changes = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}

        if (
            coupon["discountType"] == "percentage"
            and changes.get("discountValue") is not None
            and changes["discountValue"] > 100
        ):
            raise BadRequestError("Percentage discount cannot exceed 100%")
        if changes.get("applicableProducts"):
            changes["applicableProducts"] = self._check_products_exist(
                changes["applicableProducts"]
            )
        for field in ("validFrom", "validUntil"):
            if changes.get(field) is not None:
                changes[field] = naive_utc(changes[field])
        changes["updatedAt"] = self.clock()

        return self.db.coupons.find_one_and_update(
            {"_id": coupon["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )

    def delete(self, coupon_id: str) -> None:
        result = self.db.coupons.delete_one({"_id": to_object_id(coupon_id, "couponId")})
        if result.deleted_count == 0:
            raise NotFoundError("Coupon not found")
        logger.info("Coupon deleted", extra={"coupon_id": coupon_id})

    def _rejection(
        self, coupon: Dict[str, Any], user_id: str, items: List[Dict[str, Any]], subtotal: int
    ) -> Optional[str]:
        """Why ``coupon`` cannot be used on this cart, or ``None`` if it can."""
        now = self.clock()
        if not coupon.get("isActive"):
            return "Coupon is not active"
        if coupon.get("validFrom") and now < coupon["validFrom"]:
            return "Coupon is not yet valid"
        if coupon.get("validUntil") and now > coupon["validUntil"]:
            return "Coupon has expired"
        if coupon.get("usageLimit") and coupon.get("usageCount", 0) >= coupon["usageLimit"]:
            return "Coupon usage limit reached"
        if coupon.get("usageLimitPerUser"):
            used = sum(
                1 for usage in coupon.get("usageHistory", []) if str(usage["userId"]) == user_id
            )
            if used >= coupon["usageLimitPerUser"]:
                return "You have reached the usage limit for this coupon"
        if coupon.get("minPurchaseAmount") and subtotal < coupon["minPurchaseAmount"]:
            return f"Minimum purchase amount of {coupon['minPurchaseAmount'] / 100:.2f} required"

        applicable_to = coupon.get("applicableTo", "all")
        if applicable_to == "category":
            categories = set(coupon.get("applicableCategories") or [])
            if not any(item.get("category") in categories for item in items):
                return "Coupon is not applicable to items in your cart"
        elif applicable_to == "product":
            product_ids = {str(pid) for pid in coupon.get("applicableProducts") or []}
            if not any(str(item["productId"]) in product_ids for item in items):
                return "Coupon is not applicable to items in your cart"
        return None

    def validate(
        self, code: str, user_id: str, items: List[Dict[str, Any]], subtotal: int
    ) -> Dict[str, Any]:
        """Check a code against a cart without redeeming it.

        Args:
            items: Cart lines carrying ``productId`` and, for category
                coupons, ``category``.
            subtotal: Cart subtotal in cents.

        Returns:
            ``{"isValid", "discountAmount", "error"?, "coupon"?}``.
        """
        coupon = self.db.coupons.find_one({"code": code.strip().upper()})
        if coupon is None:
            return {"isValid": False, "discountAmount": 0, "error": "Coupon not found"}

        error = self._rejection(coupon, user_id, items, subtotal)
        if error is not None:
            return {"isValid": False, "discountAmount": 0, "error": error}
        return {
            "isValid": True,
            "discountAmount": compute_discount(coupon, subtotal),
            "coupon": coupon,
        }

    def redeem(self, coupon: Dict[str, Any], user_id: str, order_id: Any, session=None) -> None:
        """Count one use of ``coupon`` by ``user_id`` for ``order_id``.

        The increment only applies while the total usage limit has room.

        Raises:
            BadRequestError: If the limit was reached in the meantime.
        """
        query: Dict[str, Any] = {"_id": coupon["_id"]}
        if coupon.get("usageLimit"):
            query["usageCount"] = {"$lt": coupon["usageLimit"]}

        result = self.db.coupons.update_one(
            query,
            {
                "$inc": {"usageCount": 1},
                "$push": {
                    "usageHistory": {
                        "userId": to_object_id(user_id, "userId"),
                        "orderId": order_id,
                        "usedAt": self.clock(),
                    }
                },
            },
            session=session,
        )
        if result.modified_count == 0:
            raise BadRequestError("Coupon usage limit reached")

    def release(self, coupon: Dict[str, Any], order_id: Any) -> None:
        """Undo :meth:`redeem` for an order that was not placed."""
        self.db.coupons.update_one(
            {"_id": coupon["_id"], "usageHistory.orderId": order_id},
            {"$inc": {"usageCount": -1}, "$pull": {"usageHistory": {"orderId": order_id}}},
        )
