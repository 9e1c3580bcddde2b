"""Seed a marketplace database with fake users, products and behavior.

Generates a synthetic catalog and a history of user interactions so the
recommendation endpoints have something to work with during development.

Example:
    Seed the database configured by the environment:
        $ python scripts/seed_data.py

    Or pick the sizes and start from empty collections:
        $ python scripts/seed_data.py --users 20 --products 50 --events 2000 --drop
"""

import argparse
import random
import sys
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pandas as pd

from marketplace.auth.service import hash_password
from marketplace.config import Settings
from marketplace.db import Database, utcnow

# Default configuration constants
DEFAULT_NUM_USERS = 50
DEFAULT_NUM_PRODUCTS = 100
DEFAULT_NUM_EVENTS = 1000
DEFAULT_DAYS_BACK = 30
SEED_PASSWORD = "password123"
SEEDED_COLLECTIONS = ("users", "categories", "products", "user_behavior", "recommendation_cache")

CATEGORIES: Dict[str, List[str]] = {
    "electronics": ["wireless", "bluetooth", "usb-c", "portable", "smart"],
    "furniture": ["oak", "walnut", "modern", "vintage", "foldable"],
    "kitchen": ["steel", "non-stick", "ceramic", "dishwasher-safe"],
    "outdoor": ["waterproof", "lightweight", "camping", "solar"],
    "books": ["fiction", "history", "science", "cooking"],
}

# Rough shape of real traffic: lots of views, few purchases
EVENT_MIX = {
    "product_view": 0.6,
    "add_to_cart": 0.15,
    "favorite_add": 0.08,
    "wishlist_add": 0.07,
    "purchase": 0.1,
}


def generate_fake_products(num_products: int = DEFAULT_NUM_PRODUCTS, rng=None) -> pd.DataFrame:
    """Generate a synthetic catalog.

    Returns:
        DataFrame with ``title``, ``category``, ``tags``, ``price`` (cents)
        and ``stock`` columns, one row per product.

    Raises:
        ValueError: If ``num_products`` is not positive.
    """
    if num_products <= 0:
        raise ValueError("num_products must be positive")
    rng = rng or random.Random()

    rows = []
    for index in range(num_products):
        category = rng.choice(sorted(CATEGORIES))
        tags = rng.sample(CATEGORIES[category], k=rng.randint(1, 3))
        rows.append(
            {
                "title": f"{tags[0].title()} {category.title()} Item {index + 1}",
                "category": category,
                "tags": tags,
                "price": rng.randrange(500, 50000, 50),
                "stock": rng.randint(0, 40),
            }
        )
    return pd.DataFrame(rows)


def generate_fake_events(
    user_ids: List[str],
    product_ids: List[str],
    num_events: int = DEFAULT_NUM_EVENTS,
    end_date: Optional[datetime] = None,
    days_back: int = DEFAULT_DAYS_BACK,
    rng=None,
) -> pd.DataFrame:
    """Generate behavior events between existing users and products.

    Returns:
        DataFrame with ``userId``, ``productId``, ``eventType`` and
        ``createdAt`` columns, sorted by ``createdAt``.
    """
    if num_events <= 0:
        raise ValueError("num_events must be positive")
    if not user_ids or not product_ids:
        raise ValueError("user_ids and product_ids must not be empty")

    rng = rng or random.Random()
    end_date = end_date or utcnow()
    event_types = list(EVENT_MIX)
    weights = list(EVENT_MIX.values())

    events = []
    for _ in range(num_events):
        offset = timedelta(seconds=rng.randrange(days_back * 24 * 3600))
        events.append(
            {
                "userId": rng.choice(user_ids),
                "productId": rng.choice(product_ids),
                "eventType": rng.choices(event_types, weights=weights)[0],
                "createdAt": end_date - offset,
            }
        )

    df = pd.DataFrame(events)
    return df.sort_values("createdAt").reset_index(drop=True)


def seed_database(
    database: Database,
    num_users: int = DEFAULT_NUM_USERS,
    num_products: int = DEFAULT_NUM_PRODUCTS,
    num_events: int = DEFAULT_NUM_EVENTS,
    seed: Optional[int] = None,
) -> Dict[str, int]:
    """Insert users, categories, products and behavior events. Returns inserted counts."""
    if num_users <= 0:
        raise ValueError("num_users must be positive")
    rng = random.Random(seed)
    now = utcnow()

    # One hash for every seeded account; bcrypt is slow on purpose
    password_hash = hash_password(SEED_PASSWORD)
    users = [
        {
            "email": f"user{index + 1}@example.com",
            "passwordHash": password_hash,
            "name": f"User {index + 1}",
            "role": "seller" if index == 0 else "customer",
            "createdAt": now,
            "updatedAt": now,
        }
        for index in range(num_users)
    ]
    user_ids = database.users.insert_many(users).inserted_ids
    seller_id = user_ids[0]

    categories = [
        {
            "name": name,
            "slug": name,
            "parentId": None,
            "isActive": True,
            "order": order,
            "createdAt": now,
            "updatedAt": now,
        }
        for order, name in enumerate(sorted(CATEGORIES))
    ]
    inserted = database.categories.insert_many(categories).inserted_ids
    category_ids = {category["name"]: oid for category, oid in zip(categories, inserted)}

    catalog = generate_fake_products(num_products, rng=rng)
    products = [
        dict(row, sellerId=seller_id, currency="USD", images=[], createdAt=now, updatedAt=now)
        for row in catalog.to_dict("records")
    ]
    for product in products:
        product["categoryId"] = category_ids[product["category"]]
    product_ids = database.products.insert_many(products).inserted_ids

    events = generate_fake_events(user_ids, product_ids, num_events, end_date=now, rng=rng)
    records = [dict(row, eventData={}) for row in events.to_dict("records")]
    for record in records:
        record["createdAt"] = record["createdAt"].to_pydatetime()
    database.user_behavior.insert_many(records)

    return {
        "users": len(user_ids),
        "categories": len(category_ids),
        "products": len(product_ids),
        "events": len(records),
    }


def main() -> None:
    """Main entry point for the seeding script."""
    parser = argparse.ArgumentParser(
        description="Seed the marketplace database with fake data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/seed_data.py
  python scripts/seed_data.py --users 20 --products 50 --events 2000
  python scripts/seed_data.py --drop --seed 42
        """,
    )
    parser.add_argument("--users", type=int, default=DEFAULT_NUM_USERS, help="Number of users (default: 50)")
    parser.add_argument("--products", type=int, default=DEFAULT_NUM_PRODUCTS, help="Number of products (default: 100)")
    parser.add_argument("--events", type=int, default=DEFAULT_NUM_EVENTS, help="Number of behavior events (default: 1000)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible data")
    parser.add_argument("--drop", action="store_true", help="Empty the seeded collections first")
    args = parser.parse_args()

    settings = Settings.from_env()
    database = Database.from_settings(settings)

    if args.drop:
        for name in SEEDED_COLLECTIONS:
            getattr(database, name).delete_many({})
    database.ensure_indexes()

    print(f"Seeding {settings.mongodb_database} at {settings.mongodb_uri}...")
    try:
        counts = seed_database(database, args.users, args.products, args.events, seed=args.seed)
    except ValueError as e:
        print(f"Error generating data: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        database.close()

    print("\nData generated successfully!")
    print(f"  Users: {counts['users']} (password: {SEED_PASSWORD})")
    print(f"  Categories: {counts['categories']}")
    print(f"  Products: {counts['products']}")
    print(f"  Behavior events: {counts['events']}")


if __name__ == "__main__":
    main()
