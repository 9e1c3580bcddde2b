"""FastAPI application module for the marketplace.

This module contains the application factory, request dependencies, the
error envelope, request logging and one router per resource.
"""
