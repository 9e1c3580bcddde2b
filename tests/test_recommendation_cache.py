"""Tests for the recommendation cache."""

from bson import ObjectId

from marketplace.recommender.cache import RecommendationCache


def test_entry_valid_until_ttl_elapses(database, clock):
    """An entry is served at t0+59min and ignored at t0+61min."""
    cache = RecommendationCache(database, clock=clock)
    user_id = str(ObjectId())
    product_id = str(ObjectId())

    cache.put("personalized", [(product_id, 4.2)], user_id=user_id)

    clock.advance(minutes=59)
    entry = cache.get("personalized", user_id=user_id)
    assert entry is not None
    assert [str(pid) for pid in entry["productIds"]] == [product_id]
    assert entry["scores"][product_id] == 4.2

    clock.advance(minutes=2)
    assert cache.get("personalized", user_id=user_id) is None


def test_newer_entry_supersedes_older_one(database, clock):
    cache = RecommendationCache(database, clock=clock)
    first, second = str(ObjectId()), str(ObjectId())

    cache.put("trending", [(first, 1.0)])
    clock.advance(minutes=5)
    cache.put("trending", [(second, 2.0)])

    entry = cache.get("trending")
    assert [str(pid) for pid in entry["productIds"]] == [second]
    assert database.recommendation_cache.count_documents({"recommendationType": "trending"}) == 1


def test_older_write_does_not_replace_newer_entry(database, clock):
    """A slow writer that computed earlier loses against a stored newer entry."""
    cache = RecommendationCache(database, clock=clock)
    product_id, stale_id = str(ObjectId()), str(ObjectId())

    clock.advance(minutes=10)
    cache.put("trending", [(product_id, 1.0)])

    clock.advance(minutes=-5)
    cache.put("trending", [(stale_id, 9.0)])

    clock.advance(minutes=5)
    entry = cache.get("trending")
    assert [str(pid) for pid in entry["productIds"]] == [product_id]


def test_empty_list_is_a_cache_hit(database, clock):
    cache = RecommendationCache(database, clock=clock)
    user_id = str(ObjectId())

    cache.put("personalized", [], user_id=user_id)

    entry = cache.get("personalized", user_id=user_id)
    assert entry is not None
    assert entry["productIds"] == []


def test_subjects_are_cached_independently(database, clock):
    cache = RecommendationCache(database, clock=clock)
    user_a, user_b = str(ObjectId()), str(ObjectId())
    product_id = str(ObjectId())

    cache.put("personalized", [(product_id, 1.0)], user_id=user_a)

    assert cache.get("personalized", user_id=user_b) is None
    assert cache.get("similar", product_id=product_id) is None
    assert cache.get("personalized", user_id=user_a) is not None


def test_invalidate_by_product(database, clock):
    cache = RecommendationCache(database, clock=clock)
    product_a, product_b = str(ObjectId()), str(ObjectId())
    cache.put("similar", [(product_b, 1.0)], product_id=product_a)
    cache.put("similar", [(product_a, 1.0)], product_id=product_b)

    deleted = cache.invalidate(recommendation_type="similar", product_id=product_a)

    assert deleted == 1
    assert cache.get("similar", product_id=product_a) is None
    assert cache.get("similar", product_id=product_b) is not None
