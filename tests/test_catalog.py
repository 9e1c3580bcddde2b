"""Tests for the product catalog service."""

import pytest
from bson import ObjectId

from conftest import make_product, make_user
from marketplace.api.exceptions import ConflictError, ForbiddenError, NotFoundError
from marketplace.catalog.products import build_product_filter, generate_slug, parse_sort


@pytest.fixture
def products(container):
    return container.products


@pytest.fixture
def seller(database):
    return make_user(database, role="seller")


def test_generate_slug():
    assert generate_slug("  Oak Desk (Large) ") == "oak-desk-large"


def test_build_product_filter_escapes_search_text():
    query = build_product_filter(q="a+b", min_price=100)

    assert query["title"] == {"$regex": r"a\+b", "$options": "i"}
    assert query["price"] == {"$gte": 100}


def test_parse_sort_falls_back_to_newest_first():
    assert parse_sort("price:asc") == [("price", 1)]
    assert parse_sort("passwordHash:asc") == [("createdAt", -1)]
    assert parse_sort(None) == [("createdAt", -1)]


def test_create_product(products, seller, clock):
    product = products.create(
        {"title": "Oak Desk", "price": 25000, "stock": 3, "tags": ["oak"]}, str(seller["_id"])
    )

    assert product["slug"] == "oak-desk"
    assert product["sellerId"] == seller["_id"]
    assert product["currency"] == "USD"
    assert product["createdAt"] == clock()


def test_create_duplicate_title_conflicts(products, seller):
    products.create({"title": "Oak Desk", "price": 25000}, str(seller["_id"]))

    with pytest.raises(ConflictError):
        products.create({"title": "oak desk", "price": 100}, str(seller["_id"]))


def test_get_tracks_view_for_signed_in_viewer(container, database, products):
    product = make_product(database, price=700, tags=["lamp"])
    viewer = make_user(database)

    products.get(str(product["_id"]), viewer_id=str(viewer["_id"]))
    products.get(str(product["_id"]))
    container.background.drain(timeout=5)

    events = list(database.user_behavior.find({"productId": product["_id"]}))
    assert len(events) == 1
    assert events[0]["eventType"] == "product_view"
    assert events[0]["eventData"]["price"] == 700


def test_get_missing_product(products):
    with pytest.raises(NotFoundError):
        products.get(str(ObjectId()))


def test_list_filters_sorts_and_paginates(database, products):
    make_product(database, title="Red Lamp", price=3000, category="lighting")
    make_product(database, title="Blue Lamp", price=1000, category="lighting")
    make_product(database, title="Lamp Oil", price=500, category="supplies")
    make_product(database, title="Desk", price=9000, category="lighting")

    items, meta = products.list(page=1, limit=1, sort="price:asc", q="lamp", category="lighting")

    assert [item["title"] for item in items] == ["Blue Lamp"]
    assert meta["totalItems"] == 2
    assert meta["totalPages"] == 2


def test_list_price_range(database, products):
    make_product(database, price=500)
    inside = make_product(database, price=1500)
    make_product(database, price=5000)

    items, _ = products.list(min_price=1000, max_price=2000)

    assert [item["_id"] for item in items] == [inside["_id"]]


def test_list_tracks_search_and_category_for_signed_in_viewer(container, database, products):
    make_product(database, title="Red Lamp", category="lighting")
    make_product(database, title="Desk Lamp", category="lighting")
    viewer = make_user(database)

    products.list(q="  lamp ", category="lighting", viewer_id=str(viewer["_id"]))
    products.list(q="lamp")
    container.background.drain(timeout=5)

    events = {
        event["eventType"]: event["eventData"]
        for event in database.user_behavior.find({"userId": viewer["_id"]})
    }
    assert events == {
        "search_query": {"query": "lamp", "resultCount": 2},
        "category_view": {"category": "lighting"},
    }
    assert database.user_behavior.count_documents({}) == 2

    stats = container.tracker.get_user_stats(str(viewer["_id"]))
    assert stats["mostSearchedTerms"] == [{"term": "lamp", "count": 1}]
    assert stats["mostViewedCategories"] == [{"category": "lighting", "count": 1}]


def test_list_blank_search_tracks_nothing(container, database, products):
    viewer = make_user(database)

    products.list(q="   ", viewer_id=str(viewer["_id"]))
    container.background.drain(timeout=5)

    assert database.user_behavior.count_documents({}) == 0


def test_update_by_owner(products, seller):
    product = products.create({"title": "Oak Desk", "price": 25000}, str(seller["_id"]))

    updated = products.update(
        str(product["_id"]), {"title": "Walnut Desk", "price": 27000, "sellerId": "x"}, seller
    )

    assert updated["slug"] == "walnut-desk"
    assert updated["price"] == 27000
    assert updated["sellerId"] == seller["_id"]


def test_update_by_other_seller_is_forbidden(database, products, seller):
    product = products.create({"title": "Oak Desk", "price": 25000}, str(seller["_id"]))
    other = make_user(database, role="seller")

    with pytest.raises(ForbiddenError):
        products.update(str(product["_id"]), {"price": 1}, other)


def test_admin_can_delete_any_product(database, products, seller):
    product = products.create({"title": "Oak Desk", "price": 25000}, str(seller["_id"]))
    admin = make_user(database, role="admin")

    products.delete(str(product["_id"]), admin)

    assert database.products.find_one({"_id": product["_id"]}) is None


def test_update_stock(database, products):
    product = make_product(database, stock=5)

    assert products.update_stock(str(product["_id"]), -2)["stock"] == 3
    with pytest.raises(NotFoundError):
        products.update_stock(str(ObjectId()), 1)
