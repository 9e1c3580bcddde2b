"""Service wiring.

Every service is built once per application by :meth:`ServiceContainer.build`
and shared through ``app.state.container``. Tests build their own container
over an in-memory database.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from marketplace.api.metrics import MetricsService
from marketplace.auth.mailer import Mailer
from marketplace.auth.qr import QRSessionManager
from marketplace.auth.service import AuthService
from marketplace.auth.tokens import TokenService
from marketplace.behavior.tracker import BackgroundTracker, BehaviorTracker
from marketplace.catalog.categories import CategoryService
from marketplace.catalog.products import ProductService
from marketplace.config import Settings
from marketplace.db import Database, utcnow
from marketplace.favorites.service import FavoriteService
from marketplace.notifications.service import NotificationService
from marketplace.orders.cart import CartService
from marketplace.orders.coupons import CouponService
from marketplace.orders.service import OrderService
from marketplace.ratings.service import RatingService
from marketplace.recommender.cache import RecommendationCache
from marketplace.recommender.engine import RecommendationEngine
from marketplace.scraper.service import ScraperService
from marketplace.wishlists.service import WishlistService

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    metrics: MetricsService
    tokens: TokenService
    mailer: Mailer
    auth: AuthService
    qr_sessions: QRSessionManager
    tracker: BehaviorTracker
    background: BackgroundTracker
    recommendations: RecommendationEngine
    products: ProductService
    categories: CategoryService
    cart: CartService
    orders: OrderService
    coupons: CouponService
    wishlists: WishlistService
    favorites: FavoriteService
    ratings: RatingService
    notifications: NotificationService
    scraper: ScraperService
    scraper_executor: Optional[ThreadPoolExecutor] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        database: Database,
        clock: Callable[[], datetime] = utcnow,
        scraper_executor: Optional[ThreadPoolExecutor] = None,
    ) -> "ServiceContainer":
        """Construct every service over ``database``.

        Args:
            clock: Source of "now" shared by all time-dependent services.
            scraper_executor: Thread pool for background scrapes. Scrapes run
                inline when omitted.
        """
        metrics = MetricsService()
        tokens = TokenService.from_settings(settings)
        mailer = Mailer()
        tracker = BehaviorTracker(database, clock=clock)
        background = BackgroundTracker(tracker, max_workers=settings.tracking_workers)
        cache = RecommendationCache(database, clock=clock)
        notifications = NotificationService(database, mailer=mailer, clock=clock)
        wishlists = WishlistService(database, background=background, clock=clock)
        cart = CartService(database, background=background, clock=clock)
        coupons = CouponService(database, clock=clock)

        return cls(
            settings=settings,
            database=database,
            metrics=metrics,
            tokens=tokens,
            mailer=mailer,
            auth=AuthService(database, tokens, mailer, clock=clock),
            qr_sessions=QRSessionManager(database, tokens, clock=clock),
            tracker=tracker,
            background=background,
            recommendations=RecommendationEngine(
                database, tracker, cache=cache, metrics=metrics, clock=clock
            ),
            products=ProductService(database, background=background, clock=clock),
            categories=CategoryService(database, clock=clock),
            cart=cart,
            orders=OrderService(
                database, cart, coupons=coupons, background=background, clock=clock
            ),
            coupons=coupons,
            wishlists=wishlists,
            favorites=FavoriteService(database, background=background, clock=clock),
            ratings=RatingService(database, clock=clock),
            notifications=notifications,
            scraper=ScraperService(
                database,
                notifications,
                wishlists,
                cache,
                executor=scraper_executor,
                timeout=settings.scraper_timeout_seconds,
                clock=clock,
            ),
            scraper_executor=scraper_executor,
        )

    def shutdown(self) -> None:
        """Drain background work and close the database connection."""
        self.background.shutdown(wait=True)
        if self.scraper_executor is not None:
            self.scraper_executor.shutdown(wait=True)
        self.database.close()
        logger.info("Service container shut down")
