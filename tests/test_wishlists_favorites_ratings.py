"""Tests for wishlists, favorites, ratings and notifications."""

import pytest
from bson import ObjectId

from conftest import make_product, make_user
from marketplace.api.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from marketplace.ratings.service import summarize_ratings


@pytest.fixture
def owner(database):
    return make_user(database, email="owner@example.com")


@pytest.fixture
def product(database):
    return make_product(database, price=4200, tags=["oak"])


# Wishlists


def test_wishlist_private_by_default(container, database, owner):
    wishlists = container.wishlists
    wishlist = wishlists.create(str(owner["_id"]), "Birthday")
    stranger = make_user(database)

    assert wishlists.get(str(wishlist["_id"]), str(owner["_id"]))["name"] == "Birthday"
    with pytest.raises(ForbiddenError):
        wishlists.get(str(wishlist["_id"]), str(stranger["_id"]))
    with pytest.raises(ForbiddenError):
        wishlists.get(str(wishlist["_id"]))


def test_public_wishlists_are_listed(container, owner):
    wishlists = container.wishlists
    wishlists.create(str(owner["_id"]), "Secret")
    public = wishlists.create(str(owner["_id"]), "Shared", is_public=True)

    items, meta = wishlists.list_public()

    assert [w["_id"] for w in items] == [public["_id"]]
    assert meta["totalItems"] == 1
    assert wishlists.get(str(public["_id"]))["name"] == "Shared"


def test_wishlist_update_and_delete_by_owner_only(container, database, owner):
    wishlists = container.wishlists
    wishlist = wishlists.create(str(owner["_id"]), "Birthday")
    stranger = make_user(database)

    updated = wishlists.update(str(wishlist["_id"]), str(owner["_id"]), {"isPublic": True, "name": None})
    assert updated["isPublic"] is True
    assert updated["name"] == "Birthday"

    with pytest.raises(NotFoundError):
        wishlists.delete(str(wishlist["_id"]), str(stranger["_id"]))
    wishlists.delete(str(wishlist["_id"]), str(owner["_id"]))
    assert wishlists.list_for_user(str(owner["_id"]))[1]["totalItems"] == 0


def test_wishlist_items(container, database, owner, product):
    wishlists = container.wishlists
    wishlist = wishlists.create(str(owner["_id"]), "Birthday")
    wishlist_id, user_id, product_id = str(wishlist["_id"]), str(owner["_id"]), str(product["_id"])

    added = wishlists.add_item(wishlist_id, user_id, product_id, notes="size M")
    assert [item["productId"] for item in added["items"]] == [product["_id"]]

    with pytest.raises(ConflictError):
        wishlists.add_item(wishlist_id, user_id, product_id)

    noted = wishlists.update_item(wishlist_id, user_id, product_id, "size L")
    assert noted["items"][0]["notes"] == "size L"

    assert wishlists.users_watching(product_id) == [owner["_id"]]

    removed = wishlists.remove_item(wishlist_id, user_id, product_id)
    assert removed["items"] == []
    assert wishlists.users_watching(product_id) == []

    container.background.drain(timeout=5)
    assert database.user_behavior.count_documents({"eventType": "wishlist_add"}) == 1


def test_wishlist_add_unknown_product(container, owner):
    wishlist = container.wishlists.create(str(owner["_id"]), "Birthday")

    with pytest.raises(NotFoundError):
        container.wishlists.add_item(str(wishlist["_id"]), str(owner["_id"]), str(ObjectId()))


# Favorites


def test_favorites(container, database, owner, product):
    favorites = container.favorites
    user_id, product_id = str(owner["_id"]), str(product["_id"])

    favorites.add(user_id, product_id)
    with pytest.raises(ConflictError):
        favorites.add(user_id, product_id)

    assert favorites.is_favorite(user_id, product_id) is True
    assert favorites.count_for_product(product_id) == 1

    items, meta = favorites.list_for_user(user_id)
    assert items[0]["product"]["_id"] == product["_id"]
    assert meta["totalItems"] == 1

    favorites.remove(user_id, product_id)
    assert favorites.is_favorite(user_id, product_id) is False
    with pytest.raises(NotFoundError):
        favorites.remove(user_id, product_id)


def test_favorite_tracks_behavior(container, database, owner, product):
    container.favorites.add(str(owner["_id"]), str(product["_id"]))
    container.background.drain(timeout=5)

    event = database.user_behavior.find_one({"eventType": "favorite_add"})
    assert event["productId"] == product["_id"]


# Ratings


def test_summarize_ratings():
    summary = summarize_ratings([5, 4, 4, 1])

    assert summary["average"] == 3.5
    assert summary["total"] == 4
    assert summary["distribution"] == {"1": 1, "2": 0, "3": 0, "4": 2, "5": 1}
    assert summarize_ratings([])["average"] == 0


def test_rating_lifecycle(container, database, owner, product):
    ratings = container.ratings
    product_id = str(product["_id"])

    rating = ratings.create(str(owner["_id"]), product_id, 4, "Sturdy")
    assert rating["isVerifiedPurchase"] is False
    assert database.products.find_one({"_id": product["_id"]})["ratingStats"] == {
        "average": 4.0,
        "total": 1,
    }

    with pytest.raises(ConflictError):
        ratings.create(str(owner["_id"]), product_id, 5)

    ratings.update(str(rating["_id"]), str(owner["_id"]), {"rating": 2})
    assert ratings.stats(product_id)["average"] == 2.0

    assert ratings.mark_helpful(str(rating["_id"]))["helpfulCount"] == 1
    assert ratings.get_user_rating(product_id, str(owner["_id"]))["rating"] == 2

    ratings.delete(str(rating["_id"]), owner)
    assert database.products.find_one({"_id": product["_id"]})["ratingStats"]["total"] == 0


def test_rating_from_delivered_order_is_verified(container, database, owner, product):
    database.orders.insert_one(
        {"userId": owner["_id"], "status": "delivered", "items": [{"productId": product["_id"]}]}
    )

    rating = container.ratings.create(str(owner["_id"]), str(product["_id"]), 5)

    assert rating["isVerifiedPurchase"] is True


def test_rating_value_out_of_range(container, owner, product):
    with pytest.raises(BadRequestError):
        container.ratings.create(str(owner["_id"]), str(product["_id"]), 6)


def test_rating_of_unknown_product(container, owner):
    with pytest.raises(NotFoundError):
        container.ratings.create(str(owner["_id"]), str(ObjectId()), 3)


def test_only_author_or_admin_deletes_rating(container, database, owner, product):
    rating = container.ratings.create(str(owner["_id"]), str(product["_id"]), 3)

    with pytest.raises(ForbiddenError):
        container.ratings.delete(str(rating["_id"]), make_user(database))

    container.ratings.delete(str(rating["_id"]), make_user(database, role="admin"))
    assert database.ratings.count_documents({}) == 0


def test_list_ratings_with_minimum(container, database, product):
    for value in (1, 3, 5):
        container.ratings.create(str(make_user(database)["_id"]), str(product["_id"]), value)

    items, meta = container.ratings.list_for_product(str(product["_id"]), min_rating=3)

    assert sorted(item["rating"] for item in items) == [3, 5]
    assert meta["totalItems"] == 2


# Notifications


def test_price_drop_notification_is_emailed(container, owner, product):
    notification = container.notifications.notify_price_drop(
        owner["_id"], str(product["_id"]), "Oak Desk", 4200, 3900
    )

    assert notification["type"] == "price_drop"
    assert notification["message"] == "Oak Desk price dropped from $42.00 to $39.00."
    assert container.mailer.outbox[-1]["to"] == "owner@example.com"


def test_notifications_read_state(container, clock, owner):
    notifications = container.notifications
    user_id = str(owner["_id"])
    first = notifications.create(user_id, "system", "Welcome", "Hello")
    clock.advance(seconds=1)
    notifications.create(user_id, "order_update", "Shipped", "On its way")

    assert notifications.unread_count(user_id) == 2
    assert container.mailer.outbox == []

    notifications.mark_read(str(first["_id"]), user_id)
    unread, _ = notifications.list_for_user(user_id, is_read=False)
    assert [n["title"] for n in unread] == ["Shipped"]

    assert notifications.mark_all_read(user_id) == 1
    assert notifications.unread_count(user_id) == 0


def test_mark_read_of_someone_elses_notification(container, database, owner):
    notification = container.notifications.create(str(owner["_id"]), "system", "Hi", "Hello")

    with pytest.raises(NotFoundError):
        container.notifications.mark_read(str(notification["_id"]), str(make_user(database)["_id"]))
