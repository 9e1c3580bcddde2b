"""FastAPI application main module.

Builds the marketplace application: services are created in the lifespan
hook (or passed in by tests), errors are rendered in the standard error
envelope, and every resource router is mounted.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from marketplace import __version__
from marketplace.api.deps import get_container
from marketplace.api.exceptions import MarketplaceException
from marketplace.api.logging_config import RequestLoggingMiddleware, setup_logging
from marketplace.api.responses import envelope
from marketplace.api.routes import (
    auth,
    behavior,
    cart,
    categories,
    coupons,
    favorites,
    notifications,
    orders,
    products,
    ratings,
    recommendations,
    scraper,
    wishlists,
)
from marketplace.config import Settings
from marketplace.container import ServiceContainer
from marketplace.db import Database

# Configure module logger
logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BadRequest",
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    409: "Conflict",
}


def _error_response(status_code: int, code: str, message: str, details: Any = None) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "status": status_code, "error": error},
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MarketplaceException)
    async def marketplace_exception_handler(request: Request, exc: MarketplaceException):
        logger.warning(
            "Request rejected",
            extra={
                "path": str(request.url.path),
                "status_code": exc.status_code,
                "error_code": exc.code,
                "error": exc.message,
            },
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_envelope())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error_response(
            422,
            "ValidationError",
            "Request validation failed",
            {"errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = HTTP_ERROR_CODES.get(exc.status_code, "HTTPError")
        return _error_response(exc.status_code, code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled error",
            extra={"path": str(request.url.path), "error_type": type(exc).__name__},
            exc_info=exc,
        )
        return _error_response(500, "InternalServerError", "Internal server error")


def create_app(
    container: Optional[ServiceContainer] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create the application.

    Args:
        container: Prebuilt services. When omitted, the lifespan hook connects
            to MongoDB using ``settings`` and builds them.
        settings: Configuration; read from the environment when omitted.
    """
    settings = settings or (container.settings if container else Settings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "container", None) is None
        if owned:
            setup_logging(settings.log_level)
            database = Database.from_settings(settings)
            database.ensure_indexes()
            app.state.container = ServiceContainer.build(
                settings,
                database,
                scraper_executor=ThreadPoolExecutor(max_workers=2, thread_name_prefix="scraper"),
            )
            logger.info("Marketplace API started", extra={"version": __version__})
        yield
        if owned:
            app.state.container.shutdown()

    app = FastAPI(
        title="Marketplace API",
        description="E-commerce backend with cached product recommendations",
        version=__version__,
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    for module in (
        auth,
        products,
        categories,
        cart,
        orders,
        coupons,
        wishlists,
        favorites,
        ratings,
        recommendations,
        behavior,
        scraper,
        notifications,
    ):
        app.include_router(module.router)

    @app.get("/ping")
    def ping() -> Dict[str, str]:
        """Health check endpoint.

        Example:
            >>> response = client.get("/ping")
            >>> assert response.json() == {"status": "ok"}
        """
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics(container: ServiceContainer = Depends(get_container)) -> Dict[str, Any]:
        """Request latency and recommendation cache counters."""
        return envelope(container.metrics.get_metrics())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("marketplace.api.main:app", host="0.0.0.0", port=8000, reload=True)
