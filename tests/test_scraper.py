"""Tests for the price scraper."""

import pytest
import requests
from bson import ObjectId

from conftest import make_product, make_user
from marketplace.api.exceptions import NotFoundError
from marketplace.scraper.service import ScraperService, extract_product_data, parse_price

PAGE = """
<html>
  <head><title>Oak Desk | Other Shop</title></head>
  <body>
    <span class="price">$1,299.99</span>
    <span id="sale">Now only 899.50 USD</span>
  </body>
</html>
"""


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeHttp:
    """Serves canned pages by URL and records every request."""

    def __init__(self, pages):
        self.pages = pages
        self.requests = []

    def get(self, url, timeout=None, headers=None):
        self.requests.append({"url": url, "timeout": timeout, "headers": headers})
        page = self.pages.get(url)
        if page is None:
            raise requests.ConnectionError(f"Cannot reach {url}")
        if isinstance(page, FakeResponse):
            return page
        return FakeResponse(page)


@pytest.fixture
def http():
    return FakeHttp({"https://shop.example/desk": PAGE})


@pytest.fixture
def scraper(container, database, http, clock):
    return ScraperService(
        database,
        container.notifications,
        container.wishlists,
        container.recommendations.cache,
        http=http,
        timeout=3,
        clock=clock,
    )


@pytest.mark.parametrize(
    "text,cents",
    [
        ("$1,299.99", 129999),
        ("19", 1900),
        ("EUR 0.5", 50),
        ("Now only 899.50 USD", 89950),
        ("Now $19.99 was $24.99", 1999),
    ],
)
def test_parse_price(text, cents):
    assert parse_price(text) == cents


def test_parse_price_without_number():
    with pytest.raises(ValueError):
        parse_price("Sold out")


def test_extract_product_data_default_selector():
    assert extract_product_data(PAGE) == {"price": 129999, "title": "Oak Desk | Other Shop"}


def test_extract_product_data_custom_selector():
    assert extract_product_data(PAGE, "#sale")["price"] == 89950


def test_extract_product_data_missing_element():
    with pytest.raises(ValueError):
        extract_product_data(PAGE, ".nope")


def test_create_job_runs_first_scrape(scraper, http):
    job = scraper.create_job("https://shop.example/desk")

    stored = scraper.get_job(str(job["_id"]))
    assert stored["status"] == "completed"
    assert stored["scrapedData"]["price"] == 129999
    assert http.requests[0]["timeout"] == 3
    assert http.requests[0]["headers"]["User-Agent"]


def test_create_job_for_unknown_product(scraper):
    with pytest.raises(NotFoundError):
        scraper.create_job("https://shop.example/desk", product_id=str(ObjectId()))


def test_unreachable_page_marks_job_failed(scraper):
    job = scraper.create_job("https://shop.example/gone")

    stored = scraper.get_job(str(job["_id"]))
    assert stored["status"] == "failed"
    assert "Cannot reach" in stored["error"]


def test_http_error_marks_job_failed(scraper, http):
    http.pages["https://shop.example/broken"] = FakeResponse("", status_code=503)

    job = scraper.create_job("https://shop.example/broken")

    assert scraper.get_job(str(job["_id"]))["status"] == "failed"


def test_job_deleted_during_scrape_is_not_found(scraper, database, http):
    job = scraper.create_job("https://shop.example/desk")
    fetch_page = http.get

    def delete_then_fetch(url, timeout=None, headers=None):
        database.scraper_jobs.delete_one({"_id": job["_id"]})
        return fetch_page(url, timeout=timeout, headers=headers)

    http.get = delete_then_fetch

    with pytest.raises(NotFoundError):
        scraper.scrape(str(job["_id"]))


def test_price_drop_updates_product_and_notifies_watchers(
    container, database, scraper, clock
):
    product = make_product(database, title="Oak Desk", price=150000)
    watcher = make_user(database, email="watcher@example.com")
    wishlist = container.wishlists.create(str(watcher["_id"]), "Office")
    container.wishlists.add_item(str(wishlist["_id"]), str(watcher["_id"]), str(product["_id"]))
    container.recommendations.cache.put("similar", [], product_id=str(product["_id"]))

    scraper.create_job("https://shop.example/desk", product_id=str(product["_id"]))

    assert database.products.find_one({"_id": product["_id"]})["price"] == 129999
    notification = database.notifications.find_one({"userId": watcher["_id"]})
    assert notification["type"] == "price_drop"
    assert notification["data"]["oldPrice"] == 150000
    assert container.mailer.outbox[-1]["to"] == "watcher@example.com"
    assert container.recommendations.cache.get("similar", product_id=str(product["_id"])) is None


def test_price_increase_is_ignored(database, scraper):
    product = make_product(database, price=100000)

    assert scraper.handle_price_update(str(product["_id"]), 120000) is False
    assert database.products.find_one({"_id": product["_id"]})["price"] == 100000
    assert database.notifications.count_documents({}) == 0


def test_run_scheduled_scrapes_picks_due_jobs(scraper, http, clock):
    daily = scraper.create_job("https://shop.example/desk", frequency=24)
    hourly = scraper.create_job("https://shop.example/desk", frequency=1)
    http.requests.clear()

    clock.advance(hours=2)
    assert [job["_id"] for job in scraper.due_jobs()] == [hourly["_id"]]

    assert scraper.run_scheduled_scrapes() == 1
    assert len(http.requests) == 1

    clock.advance(hours=23)
    assert {job["_id"] for job in scraper.due_jobs()} == {daily["_id"], hourly["_id"]}


def test_failed_jobs_are_not_rescheduled(scraper, clock):
    scraper.create_job("https://shop.example/gone")

    clock.advance(days=2)

    assert scraper.due_jobs() == []


def test_update_list_and_delete_jobs(scraper):
    job = scraper.create_job("https://shop.example/desk")

    updated = scraper.update_job(str(job["_id"]), {"selector": "#sale", "url": None})
    assert updated["selector"] == "#sale"
    assert updated["url"] == "https://shop.example/desk"

    jobs, meta = scraper.list_jobs(status="completed")
    assert meta["totalItems"] == 1

    scraper.delete_job(str(job["_id"]))
    with pytest.raises(NotFoundError):
        scraper.get_job(str(job["_id"]))
