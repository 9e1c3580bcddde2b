"""Tests for coupons and their use at checkout."""

from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from conftest import make_product, make_user
from marketplace.api.exceptions import BadRequestError, ConflictError
from marketplace.orders.coupons import compute_discount, naive_utc

ADDRESS = {
    "fullName": "Ada Lovelace",
    "addressLine1": "12 St James's Square",
    "city": "London",
    "postalCode": "SW1Y 4JH",
    "country": "GB",
}


@pytest.fixture
def coupons(container):
    return container.coupons


@pytest.fixture
def shopper(database):
    return make_user(database)


@pytest.fixture
def lamp_in_cart(container, database, shopper):
    lamp = make_product(database, title="Lamp", price=5000, stock=5, category="lighting")
    container.cart.add_item(str(shopper["_id"]), str(lamp["_id"]), 2)
    return lamp


def _coupon(coupons, clock, **overrides):
    data = {
        "code": "save20",
        "discountType": "percentage",
        "discountValue": 20,
        "validUntil": clock() + timedelta(days=7),
    }
    data.update(overrides)
    return coupons.create(data)


@pytest.mark.parametrize(
    "coupon,subtotal,discount",
    [
        ({"discountType": "percentage", "discountValue": 20}, 10000, 2000),
        ({"discountType": "percentage", "discountValue": 50, "maxDiscountAmount": 1500}, 10000, 1500),
        ({"discountType": "fixed", "discountValue": 2500}, 10000, 2500),
        ({"discountType": "fixed", "discountValue": 2500}, 1000, 1000),
    ],
)
def test_compute_discount(coupon, subtotal, discount):
    assert compute_discount(coupon, subtotal) == discount


def test_naive_utc_converts_aware_datetimes():
    aware = datetime(2030, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

    assert naive_utc(aware) == datetime(2030, 1, 1, 10, 0)


def test_create_upper_cases_code(coupons, clock):
    coupon = _coupon(coupons, clock)

    assert coupon["code"] == "SAVE20"
    assert coupon["usageCount"] == 0
    assert coupons.get_by_code("Save20")["_id"] == coupon["_id"]


def test_create_duplicate_code_conflicts(coupons, clock):
    _coupon(coupons, clock)

    with pytest.raises(ConflictError):
        _coupon(coupons, clock, code="SAVE20")


def test_percentage_over_100_is_rejected(coupons, clock):
    with pytest.raises(BadRequestError):
        _coupon(coupons, clock, discountValue=120)


def test_create_with_unknown_product_is_rejected(coupons, clock):
    with pytest.raises(BadRequestError):
        _coupon(coupons, clock, applicableTo="product", applicableProducts=[str(ObjectId())])


def test_expired_coupon_is_invalid(coupons, clock, shopper):
    _coupon(coupons, clock, validUntil=clock() + timedelta(hours=1))
    clock.advance(hours=2)

    result = coupons.validate("SAVE20", str(shopper["_id"]), [], 10000)

    assert result == {"isValid": False, "discountAmount": 0, "error": "Coupon has expired"}


def test_minimum_purchase_amount(coupons, clock, shopper):
    _coupon(coupons, clock, minPurchaseAmount=20000)

    result = coupons.validate("SAVE20", str(shopper["_id"]), [], 10000)

    assert result["isValid"] is False
    assert "200.00" in result["error"]


def test_category_coupon_needs_a_matching_item(coupons, clock, shopper):
    _coupon(coupons, clock, applicableTo="category", applicableCategories=["audio"])
    items = [{"productId": ObjectId(), "category": "lighting"}]

    result = coupons.validate("SAVE20", str(shopper["_id"]), items, 10000)

    assert result["error"] == "Coupon is not applicable to items in your cart"


def test_check_coupon_against_cart(container, coupons, clock, shopper, lamp_in_cart):
    _coupon(coupons, clock)

    result = container.orders.check_coupon(str(shopper["_id"]), "save20")

    assert result["isValid"] is True
    assert result["discountAmount"] == 2000
    assert result["subtotal"] == 10000
    assert coupons.get_by_code("SAVE20")["usageCount"] == 0


def test_order_with_coupon_discounts_before_tax(
    container, database, coupons, clock, shopper, lamp_in_cart
):
    coupon = _coupon(coupons, clock)

    order = container.orders.create_order(
        str(shopper["_id"]), ADDRESS, "card", coupon_code="save20"
    )

    assert order["subtotal"] == 10000
    assert order["discountAmount"] == 2000
    assert order["tax"] == 800
    assert order["total"] == 8000 + 1000 + 800
    assert order["couponCode"] == "SAVE20"

    stored = database.coupons.find_one({"_id": coupon["_id"]})
    assert stored["usageCount"] == 1
    assert stored["usageHistory"][0]["orderId"] == order["_id"]
    assert stored["usageHistory"][0]["userId"] == shopper["_id"]


def test_per_user_limit_blocks_second_order(
    container, database, coupons, clock, shopper, lamp_in_cart
):
    _coupon(coupons, clock, usageLimitPerUser=1)
    container.orders.create_order(str(shopper["_id"]), ADDRESS, "card", coupon_code="SAVE20")
    container.cart.add_item(str(shopper["_id"]), str(lamp_in_cart["_id"]), 1)

    with pytest.raises(BadRequestError):
        container.orders.create_order(str(shopper["_id"]), ADDRESS, "card", coupon_code="SAVE20")

    assert database.orders.count_documents({}) == 1
    assert database.products.find_one({"_id": lamp_in_cart["_id"]})["stock"] == 3


def test_invalid_coupon_leaves_cart_and_stock_untouched(
    container, database, shopper, lamp_in_cart
):
    with pytest.raises(BadRequestError):
        container.orders.create_order(str(shopper["_id"]), ADDRESS, "card", coupon_code="NOPE")

    assert database.products.find_one({"_id": lamp_in_cart["_id"]})["stock"] == 5
    assert len(container.cart.get_cart(str(shopper["_id"]))["items"]) == 1


def test_used_up_coupon_rolls_back_stock(
    container, database, coupons, clock, shopper, lamp_in_cart
):
    """A coupon used up between validation and redemption fails the order."""
    coupon = _coupon(coupons, clock, usageLimit=1)
    validate = coupons.validate

    def validate_then_use_up(*args, **kwargs):
        result = validate(*args, **kwargs)
        database.coupons.update_one({"_id": coupon["_id"]}, {"$set": {"usageCount": 1}})
        return result

    coupons.validate = validate_then_use_up

    with pytest.raises(BadRequestError):
        container.orders.create_order(str(shopper["_id"]), ADDRESS, "card", coupon_code="SAVE20")

    assert database.products.find_one({"_id": lamp_in_cart["_id"]})["stock"] == 5
    assert database.orders.count_documents({}) == 0
