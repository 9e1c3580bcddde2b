"""Shared fixtures: an in-memory MongoDB, a controllable clock, the service
container and an API client bound to it.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from marketplace.api.main import create_app
from marketplace.config import Settings
from marketplace.container import ServiceContainer
from marketplace.db import Database, utcnow


class FakeClock:
    """Callable clock that only moves when told to.

    Starts at the real current time so documents never look expired to the
    store's own TTL handling.
    """

    def __init__(self):
        self.now = utcnow().replace(microsecond=0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        mongodb_database="marketplace_test",
        jwt_access_token_secret="test-access-secret",
        jwt_refresh_token_secret="test-refresh-secret",
        tracking_workers=1,
    )


@pytest.fixture
def database() -> Database:
    db = Database(mongomock.MongoClient(), "marketplace_test")
    db.ensure_indexes()
    return db


@pytest.fixture
def container(settings, database, clock):
    services = ServiceContainer.build(settings, database, clock=clock)
    yield services
    services.background.shutdown(wait=True)


@pytest.fixture
def client(container) -> TestClient:
    return TestClient(create_app(container))


def make_user(
    database: Database,
    role: str = "customer",
    email: Optional[str] = None,
    name: str = "Test User",
) -> Dict[str, Any]:
    """Insert a user directly, skipping password hashing."""
    user = {
        "email": email or f"{ObjectId()}@example.com",
        "passwordHash": "not-a-real-hash",
        "name": name,
        "role": role,
        "createdAt": utcnow(),
        "updatedAt": utcnow(),
    }
    user["_id"] = database.users.insert_one(user).inserted_id
    return user


def make_product(database: Database, **overrides: Any) -> Dict[str, Any]:
    product = {
        "title": f"Product {ObjectId()}",
        "description": "",
        "price": 10000,
        "currency": "USD",
        "images": [],
        "stock": 10,
        "category": "electronics",
        "tags": [],
        "sellerId": ObjectId(),
        "createdAt": utcnow(),
        "updatedAt": utcnow(),
    }
    product.update(overrides)
    product["_id"] = database.products.insert_one(product).inserted_id
    return product


def auth_headers(container: ServiceContainer, user: Dict[str, Any]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {container.tokens.create_access_token(user)}"}
