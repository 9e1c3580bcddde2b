"""Account service: registration, credentials, password reset and OTP login.

Password reset and OTP requests always report success so callers cannot
find out which email addresses have accounts.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import bcrypt
from pymongo.errors import DuplicateKeyError

from marketplace.api.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    UnauthorizedError,
)
from marketplace.auth.mailer import Mailer
from marketplace.auth.tokens import TokenService
from marketplace.db import Database, to_object_id, utcnow

# Configure module logger
logger = logging.getLogger(__name__)

ROLES = ("customer", "seller", "admin")
RESET_TOKEN_TTL = timedelta(hours=1)
OTP_TTL = timedelta(minutes=10)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """The user fields safe to return to clients."""
    return {
        "id": str(user["_id"]),
        "email": user["email"],
        "name": user["name"],
        "role": user.get("role", "customer"),
        "avatarUrl": user.get("avatarUrl"),
    }


class AuthService:
    """Credential flows over the ``users`` collection."""

    def __init__(
        self,
        database: Database,
        tokens: TokenService,
        mailer: Mailer,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = database
        self.tokens = tokens
        self.mailer = mailer
        self.clock = clock

    def _auth_response(self, user: Dict[str, Any]) -> Dict[str, Any]:
        response = {"user": public_user(user)}
        response.update(self.tokens.create_token_pair(user))
        return response

    def get_user(self, user_id: str) -> Dict[str, Any]:
        user = self.db.users.find_one({"_id": to_object_id(user_id, "userId")})
        if user is None:
            raise NotFoundError("User not found")
        return user

    def register(
        self, email: str, password: str, name: str, role: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create an account and sign the user in.

        Raises:
            ConflictError: If the email is already registered.
        """
        email = email.lower()
        role = role or "customer"
        if role not in ROLES:
            raise BadRequestError(f"Invalid role: {role}")

        if self.db.users.find_one({"email": email}):
            raise ConflictError("User with this email already exists")

        now = self.clock()
        user = {
            "email": email,
            "passwordHash": hash_password(password),
            "name": name,
            "role": role,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            user["_id"] = self.db.users.insert_one(user).inserted_id
        except DuplicateKeyError:
            raise ConflictError("User with this email already exists")

        logger.info("User registered", extra={"user_id": str(user["_id"]), "role": role})
        return self._auth_response(user)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        user = self.db.users.find_one({"email": email.lower()})
        if user is None or not check_password(password, user["passwordHash"]):
            raise UnauthorizedError("Invalid email or password")
        return self._auth_response(user)

    def refresh(self, refresh_token: str) -> Dict[str, str]:
        """Exchange a refresh token for a new access token."""
        payload = self.tokens.verify_refresh_token(refresh_token)
        user = self.db.users.find_one({"_id": to_object_id(payload.get("userId"), "userId")})
        if user is None:
            raise UnauthorizedError("Invalid or expired refresh token")
        return {"accessToken": self.tokens.create_access_token(user)}

    def logout(self) -> None:
        """Tokens are stateless; clients discard them."""

    def forget_password(self, email: str) -> None:
        user = self.db.users.find_one({"email": email.lower()})
        if user is None:
            logger.info("Password reset requested for unknown email")
            return

        reset_token = secrets.token_hex(32)
        self.db.users.update_one(
            {"_id": user["_id"]},
            {
                "$set": {
                    "passwordResetToken": _sha256(reset_token),
                    "passwordResetExpires": self.clock() + RESET_TOKEN_TTL,
                    "updatedAt": self.clock(),
                }
            },
        )
        self.mailer.send_password_reset(user["email"], reset_token)

    def reset_password(self, token: str, password: str) -> None:
        """Set a new password using a reset token.

        Raises:
            BadRequestError: If the token is unknown or expired.
        """
        user = self.db.users.find_one(
            {
                "passwordResetToken": _sha256(token),
                "passwordResetExpires": {"$gt": self.clock()},
            }
        )
        if user is None:
            raise BadRequestError("Invalid or expired reset token")

        self.db.users.update_one(
            {"_id": user["_id"]},
            {
                "$set": {"passwordHash": hash_password(password), "updatedAt": self.clock()},
                "$unset": {"passwordResetToken": "", "passwordResetExpires": ""},
            },
        )
        logger.info("Password reset", extra={"user_id": str(user["_id"])})

    def request_otp(self, email: str) -> None:
        user = self.db.users.find_one({"email": email.lower()})
        if user is None:
            logger.info("OTP requested for unknown email")
            return

        otp_code = f"{secrets.randbelow(900000) + 100000}"
        self.db.users.update_one(
            {"_id": user["_id"]},
            {"$set": {"otpCode": otp_code, "otpExpires": self.clock() + OTP_TTL}},
        )
        self.mailer.send_otp(user["email"], otp_code)

    def verify_otp(self, email: str, otp_code: str) -> Dict[str, Any]:
        """Sign in with a one-time code. The code is single use."""
        user = self.db.users.find_one({"email": email.lower()})
        if user is None:
            raise UnauthorizedError("Invalid email or OTP")

        if not user.get("otpCode") or not user.get("otpExpires"):
            raise UnauthorizedError("OTP not requested or expired")

        clear_otp = {"$unset": {"otpCode": "", "otpExpires": ""}}
        if user["otpExpires"] < self.clock():
            self.db.users.update_one({"_id": user["_id"]}, clear_otp)
            raise UnauthorizedError("OTP has expired")

        if not secrets.compare_digest(user["otpCode"], otp_code):
            raise UnauthorizedError("Invalid OTP code")

        self.db.users.update_one({"_id": user["_id"]}, clear_otp)
        return self._auth_response(user)
