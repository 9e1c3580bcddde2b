"""FastAPI dependencies: the service container and the calling user."""

from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from marketplace.api.exceptions import ForbiddenError, UnauthorizedError
from marketplace.container import ServiceContainer
from marketplace.db import to_object_id

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def _user_from_token(container: ServiceContainer, token: str) -> Dict[str, Any]:
    payload = container.tokens.verify_access_token(token)
    user = container.database.users.find_one({"_id": to_object_id(payload.get("userId"), "userId")})
    if user is None:
        raise UnauthorizedError("User no longer exists")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container),
) -> Dict[str, Any]:
    """The user owning the bearer access token.

    Raises:
        UnauthorizedError: If the token is missing, invalid or expired.
    """
    if credentials is None:
        raise UnauthorizedError("Authentication required")
    return _user_from_token(container, credentials.credentials)


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container),
) -> Optional[Dict[str, Any]]:
    """Like :func:`get_current_user`, but anonymous callers get ``None``."""
    if credentials is None:
        return None
    try:
        return _user_from_token(container, credentials.credentials)
    except UnauthorizedError:
        return None


def require_roles(*roles: str) -> Callable[..., Dict[str, Any]]:
    """Dependency factory restricting an endpoint to the given roles."""

    def dependency(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if user.get("role") not in roles:
            raise ForbiddenError(f"Requires role: {', '.join(roles)}")
        return user

    return dependency
