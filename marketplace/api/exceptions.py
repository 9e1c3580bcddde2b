"""Custom exceptions for the Marketplace API.

Services raise these typed errors; the application-level exception handler
turns them into the standard error envelope:

    {"success": false, "status": 404, "error": {"code": "NotFound", "message": "..."}}
"""

from typing import Any, Dict, Optional


class MarketplaceException(Exception):
    """Base exception for Marketplace errors."""

    code = "InternalServerError"
    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses. Defaults to the
                class-level status code.
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_envelope(self) -> Dict[str, Any]:
        """Serialize the error as the API error envelope."""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "status": self.status_code, "error": error}


class BadRequestError(MarketplaceException):
    """Raised for malformed or stale input (expired QR session, empty cart)."""

    code = "BadRequest"
    status_code = 400


class UnauthorizedError(MarketplaceException):
    """Raised for bad credentials, invalid tokens or OTP codes."""

    code = "Unauthorized"
    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class ForbiddenError(MarketplaceException):
    """Raised when a user touches another user's resources."""

    code = "Forbidden"
    status_code = 403

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class NotFoundError(MarketplaceException):
    """Raised when a product, session, order or other document is missing."""

    code = "NotFound"
    status_code = 404

    def __init__(
        self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details=details)


class ConflictError(MarketplaceException):
    """Raised on duplicates (favorite, rating, wishlist item, email)."""

    code = "Conflict"
    status_code = 409
