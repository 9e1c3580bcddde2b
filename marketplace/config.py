"""Application settings.

Settings are read once from environment variables at process start and passed
to the service container; nothing reads the environment after that.
"""

import os
from dataclasses import dataclass
from typing import List

DEFAULT_MONGODB_URI = "mongodb://localhost:27017"
DEFAULT_MONGODB_DATABASE = "marketplace"
DEFAULT_ACCESS_TOKEN_EXPIRY_MINUTES = 15
DEFAULT_REFRESH_TOKEN_EXPIRY_DAYS = 7
DEFAULT_TRACKING_WORKERS = 2
DEFAULT_SCRAPER_TIMEOUT_SECONDS = 10


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Runtime configuration for the marketplace service.

    Attributes:
        mongodb_uri: Connection string for the MongoDB deployment.
        mongodb_database: Name of the database holding all collections.
        mongodb_transactions: Wrap multi-document writes in transactions.
            Requires a replica set.
        jwt_access_token_secret: HMAC secret for access tokens.
        jwt_refresh_token_secret: HMAC secret for refresh tokens.
        access_token_expiry_minutes: Access token lifetime.
        refresh_token_expiry_days: Refresh token lifetime.
        log_level: Root logging level.
        cors_origin: Comma separated list of allowed origins, or "*".
        tracking_workers: Threads used for background behavior tracking.
        scraper_timeout_seconds: HTTP timeout for scraper requests.
    """

    mongodb_uri: str = DEFAULT_MONGODB_URI
    mongodb_database: str = DEFAULT_MONGODB_DATABASE
    mongodb_transactions: bool = False
    jwt_access_token_secret: str = "change-me-access"
    jwt_refresh_token_secret: str = "change-me-refresh"
    access_token_expiry_minutes: int = DEFAULT_ACCESS_TOKEN_EXPIRY_MINUTES
    refresh_token_expiry_days: int = DEFAULT_REFRESH_TOKEN_EXPIRY_DAYS
    log_level: str = "INFO"
    cors_origin: str = "*"
    tracking_workers: int = DEFAULT_TRACKING_WORKERS
    scraper_timeout_seconds: int = DEFAULT_SCRAPER_TIMEOUT_SECONDS

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origin.split(",") if origin.strip()]

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        return cls(
            mongodb_uri=os.getenv("MONGODB_URI", DEFAULT_MONGODB_URI),
            mongodb_database=os.getenv("MONGODB_DATABASE", DEFAULT_MONGODB_DATABASE),
            mongodb_transactions=_env_bool("MONGODB_TRANSACTIONS", False),
            jwt_access_token_secret=os.getenv(
                "JWT_ACCESS_TOKEN_SECRET", cls.jwt_access_token_secret
            ),
            jwt_refresh_token_secret=os.getenv(
                "JWT_REFRESH_TOKEN_SECRET", cls.jwt_refresh_token_secret
            ),
            access_token_expiry_minutes=int(
                os.getenv(
                    "JWT_ACCESS_TOKEN_EXPIRY_MINUTES",
                    DEFAULT_ACCESS_TOKEN_EXPIRY_MINUTES,
                )
            ),
            refresh_token_expiry_days=int(
                os.getenv("JWT_REFRESH_TOKEN_EXPIRY_DAYS", DEFAULT_REFRESH_TOKEN_EXPIRY_DAYS)
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            cors_origin=os.getenv("CORS_ORIGIN", "*"),
            tracking_workers=int(os.getenv("TRACKING_WORKERS", DEFAULT_TRACKING_WORKERS)),
            scraper_timeout_seconds=int(
                os.getenv("SCRAPER_TIMEOUT_SECONDS", DEFAULT_SCRAPER_TIMEOUT_SECONDS)
            ),
        )
