"""Price scraper.

A scraper job points at an external product page. Running it fetches the
page, reads the price out of the element matched by the job's CSS selector
(``.price`` by default) and, when the job is linked to one of our products
and the price went down, updates the product, notifies every user with the
product on a wishlist and drops the product's cached similar-products list.
"""

import logging
import re
from concurrent.futures import Executor
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from bs4 import BeautifulSoup
from pymongo import ReturnDocument

from marketplace.api.exceptions import NotFoundError
from marketplace.db import Database, to_object_id, utcnow
from marketplace.notifications.service import NotificationService
from marketplace.pagination import build_pagination_meta, parse_pagination
from marketplace.recommender.cache import RecommendationCache
from marketplace.wishlists.service import WishlistService

# Configure module logger
logger = logging.getLogger(__name__)

DEFAULT_SELECTOR = ".price"
DEFAULT_FREQUENCY_HOURS = 24
DEFAULT_TIMEOUT_SECONDS = 10
USER_AGENT = "marketplace-price-scraper/1.0"
JOB_STATUSES = ("pending", "running", "completed", "failed")
UPDATABLE_FIELDS = ("url", "selector", "frequency", "status")


def parse_price(text: str) -> int:
    """Parse a displayed price such as ``"$1,299.99"`` into cents.

    Raises:
        ValueError: If the text holds no number.
    """
    # First number wins; pages often show the old price after the new one
    match = re.search(r"\d[\d,]*(?:\.\d+)?", text)
    if match is None:
        raise ValueError(f"Could not parse a price from {text!r}")
    amount = Decimal(match.group().replace(",", ""))
    return int((amount * 100).to_integral_value())


def extract_product_data(html: str, selector: Optional[str] = None) -> Dict[str, Any]:
    """Pull the price (in cents) and page title out of a product page.

    Raises:
        ValueError: If nothing matches the selector or it holds no price.
    """
    soup = BeautifulSoup(html, "html.parser")
    selector = selector or DEFAULT_SELECTOR
    element = soup.select_one(selector)
    if element is None:
        raise ValueError(f"No element matches selector {selector!r}")

    title = soup.title.get_text(strip=True) if soup.title else None
    return {"price": parse_price(element.get_text(" ", strip=True)), "title": title}


class ScraperService:
    """Manages scraper jobs and runs them."""

    def __init__(
        self,
        database: Database,
        notifications: NotificationService,
        wishlists: WishlistService,
        cache: RecommendationCache,
        http: Optional[requests.Session] = None,
        executor: Optional[Executor] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the scraper.

        Args:
            executor: Where jobs run when scheduled. Without one, scheduled
                jobs run inline in the caller's thread.
        """
        self.db = database
        self.notifications = notifications
        self.wishlists = wishlists
        self.cache = cache
        self.http = http or requests.Session()
        self.executor = executor
        self.timeout = timeout
        self.clock = clock

    def _get(self, job_id: str) -> Dict[str, Any]:
        job = self.db.scraper_jobs.find_one({"_id": to_object_id(job_id, "jobId")})
        if job is None:
            raise NotFoundError("Scraper job not found")
        return job

    def create_job(
        self,
        url: str,
        product_id: Optional[str] = None,
        selector: Optional[str] = None,
        frequency: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Register a job and schedule its first run right away.

        Raises:
            NotFoundError: If ``product_id`` names an unknown product.
        """
        now = self.clock()
        job: Dict[str, Any] = {
            "url": url,
            "selector": selector,
            "frequency": frequency or DEFAULT_FREQUENCY_HOURS,
            "status": "pending",
            "createdAt": now,
            "updatedAt": now,
        }
        if product_id:
            product_oid = to_object_id(product_id, "productId")
            if self.db.products.count_documents({"_id": product_oid}, limit=1) == 0:
                raise NotFoundError("Product not found")
            job["productId"] = product_oid

        job["_id"] = self.db.scraper_jobs.insert_one(job).inserted_id
        logger.info("Scraper job created", extra={"job_id": str(job["_id"]), "url": url})

        self.schedule(str(job["_id"]))
        return job

    def update_job(self, job_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        changes = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS and v is not None}
        changes["updatedAt"] = self.clock()
        job = self.db.scraper_jobs.find_one_and_update(
            {"_id": to_object_id(job_id, "jobId")},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if job is None:
            raise NotFoundError("Scraper job not found")
        return job

    def delete_job(self, job_id: str) -> None:
        result = self.db.scraper_jobs.delete_one({"_id": to_object_id(job_id, "jobId")})
        if result.deleted_count == 0:
            raise NotFoundError("Scraper job not found")

    def list_jobs(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        status: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        params = parse_pagination(page, limit)
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status

        jobs = list(
            self.db.scraper_jobs.find(query)
            .sort("createdAt", -1)
            .skip(params.skip)
            .limit(params.limit)
        )
        total = self.db.scraper_jobs.count_documents(query)
        return jobs, build_pagination_meta(params.page, params.limit, total)

    def get_job(self, job_id: str) -> Dict[str, Any]:
        return self._get(job_id)

    def fetch(self, url: str, selector: Optional[str] = None) -> Dict[str, Any]:
        response = self.http.get(url, timeout=self.timeout, headers={"User-Agent": USER_AGENT})
        response.raise_for_status()
        return extract_product_data(response.text, selector)

    def scrape(self, job_id: str) -> Dict[str, Any]:
        """Run one job now and return it in its final state.

        Fetch and parse failures mark the job ``failed`` with the error
        message; they are not raised.

        Raises:
            NotFoundError: If the job does not exist or is deleted mid-run.
        """
        job = self._get(job_id)
        self.db.scraper_jobs.update_one(
            {"_id": job["_id"]}, {"$set": {"status": "running", "updatedAt": self.clock()}}
        )

        try:
            scraped = self.fetch(job["url"], job.get("selector"))
        except (requests.RequestException, ValueError) as e:
            logger.warning(
                "Scrape failed",
                extra={"job_id": job_id, "url": job["url"], "error": str(e)},
            )
            failed = self.db.scraper_jobs.find_one_and_update(
                {"_id": job["_id"]},
                {"$set": {"status": "failed", "error": str(e), "updatedAt": self.clock()}},
                return_document=ReturnDocument.AFTER,
            )
            if failed is None:
                raise NotFoundError("Scraper job not found")
            return failed

        now = self.clock()
        job = self.db.scraper_jobs.find_one_and_update(
            {"_id": job["_id"]},
            {
                "$set": {
                    "status": "completed",
                    "scrapedData": scraped,
                    "lastScrapedAt": now,
                    "updatedAt": now,
                },
                "$unset": {"error": ""},
            },
            return_document=ReturnDocument.AFTER,
        )
        if job is None:
            raise NotFoundError("Scraper job not found")
        logger.info(
            "Scrape completed",
            extra={"job_id": job_id, "url": job["url"], "price": scraped["price"]},
        )

        if job.get("productId"):
            self.handle_price_update(str(job["productId"]), scraped["price"])
        return job

    def handle_price_update(self, product_id: str, new_price: int) -> bool:
        """Apply a scraped price if it is lower than the current one.

        Returns:
            True if the price dropped and was applied.
        """
        product = self.db.products.find_one({"_id": to_object_id(product_id, "productId")})
        if product is None or new_price >= product["price"]:
            return False

        old_price = product["price"]
        for user_id in self.wishlists.users_watching(product_id):
            self.notifications.notify_price_drop(
                user_id, product_id, product["title"], old_price, new_price
            )

        self.db.products.update_one(
            {"_id": product["_id"]},
            {"$set": {"price": new_price, "updatedAt": self.clock()}},
        )
        self.cache.invalidate(recommendation_type="similar", product_id=product_id)

        logger.info(
            "Price drop applied",
            extra={"product_id": product_id, "old_price": old_price, "new_price": new_price},
        )
        return True

    def _run_quietly(self, job_id: str) -> None:
        try:
            self.scrape(job_id)
        except Exception as e:
            logger.error(
                "Scheduled scrape crashed",
                extra={"job_id": job_id, "error": str(e), "error_type": type(e).__name__},
                exc_info=True,
            )

    def schedule(self, job_id: str) -> None:
        """Run a job in the background (inline when no executor is configured)."""
        if self.executor is None:
            self._run_quietly(job_id)
        else:
            self.executor.submit(self._run_quietly, job_id)

    def due_jobs(self) -> List[Dict[str, Any]]:
        """Pending or completed jobs never scraped or scraped ``frequency`` hours ago."""
        now = self.clock()
        due = []
        for job in self.db.scraper_jobs.find({"status": {"$in": ["pending", "completed"]}}):
            last = job.get("lastScrapedAt")
            frequency = job.get("frequency") or DEFAULT_FREQUENCY_HOURS
            if last is None or now - last >= timedelta(hours=frequency):
                due.append(job)
        return due

    def run_scheduled_scrapes(self) -> int:
        """Schedule every due job. Returns how many were scheduled."""
        jobs = self.due_jobs()
        for job in jobs:
            self.schedule(str(job["_id"]))
        logger.info("Scheduled scrapes", extra={"num_jobs": len(jobs)})
        return len(jobs)
