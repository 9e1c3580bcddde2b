"""Recommendation engine for the marketplace.

This module contains the collaborative, content-based, similar-product and
trending scorers, the recommendation cache and the engine that serves
paginated, cached recommendation lists.
"""
