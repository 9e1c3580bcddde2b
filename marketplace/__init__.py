"""Marketplace: e-commerce backend with product recommendations.

This package provides the REST backend of an online marketplace: accounts and
QR-code login, catalog, cart and orders, wishlists, favorites, ratings, price
scrapers, and a cached recommendation engine built on user behavior events.

Modules:
    api: FastAPI application, routes, error envelope and logging
    recommender: Personalized, similar-product and trending recommendations
    behavior: User behavior event tracking and queries
    auth: Credentials, tokens and QR login sessions
"""

__version__ = "0.1.0"
