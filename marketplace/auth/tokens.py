"""JWT access and refresh tokens."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from marketplace.api.exceptions import UnauthorizedError
from marketplace.config import Settings

ALGORITHM = "HS256"


class TokenService:
    """Issues and verifies HS256 tokens carrying ``userId``, ``email`` and ``role``."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(
            access_secret=settings.jwt_access_token_secret,
            refresh_secret=settings.jwt_refresh_token_secret,
            access_ttl=timedelta(minutes=settings.access_token_expiry_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_expiry_days),
        )

    @staticmethod
    def _claims(user: Dict[str, Any], token_type: str, ttl: timedelta) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "userId": str(user["_id"]),
            "email": user["email"],
            "role": user.get("role", "customer"),
            "type": token_type,
            "iat": now,
            "exp": now + ttl,
        }

    def create_access_token(self, user: Dict[str, Any]) -> str:
        return jwt.encode(self._claims(user, "access", self.access_ttl), self.access_secret, ALGORITHM)

    def create_refresh_token(self, user: Dict[str, Any]) -> str:
        return jwt.encode(
            self._claims(user, "refresh", self.refresh_ttl), self.refresh_secret, ALGORITHM
        )

    def create_token_pair(self, user: Dict[str, Any]) -> Dict[str, str]:
        return {
            "accessToken": self.create_access_token(user),
            "refreshToken": self.create_refresh_token(user),
        }

    def _verify(self, token: str, secret: str, token_type: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
        except jwt.PyJWTError:
            raise UnauthorizedError(f"Invalid or expired {token_type} token")
        if payload.get("type") != token_type:
            raise UnauthorizedError(f"Invalid or expired {token_type} token")
        return payload

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self.access_secret, "access")

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        return self._verify(token, self.refresh_secret, "refresh")
