"""QR code login sessions.

A desktop client asks for a session and shows its QR code. A phone that is
already signed in scans the code and approves it; meanwhile the desktop polls
the session and receives its own tokens once the session is authenticated.

States::

    pending -> scanned -> authenticated
    pending | scanned -> expired     (noticed lazily, on any access after expiresAt)
    cancelled                        (reserved, no operation leads there)

``authenticated``, ``expired`` and ``cancelled`` are terminal. Every state
change is a single-document conditional update on the expected current
status, so concurrent scans or approvals cannot both win.
"""

import base64
import json
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

import qrcode
import qrcode.image.svg

from marketplace.api.exceptions import BadRequestError, NotFoundError
from marketplace.auth.tokens import TokenService
from marketplace.db import Database, to_object_id, utcnow

# Configure module logger
logger = logging.getLogger(__name__)

SESSION_TTL = timedelta(minutes=5)
SESSION_ID_BYTES = 16  # 128 bits
QR_TOKEN_BYTES = 32  # 256 bits

PENDING = "pending"
SCANNED = "scanned"
AUTHENTICATED = "authenticated"
EXPIRED = "expired"
CANCELLED = "cancelled"

OPEN_STATUSES = [PENDING, SCANNED]


def render_qr_data_url(payload: str) -> str:
    """Render ``payload`` as an SVG QR code data URL."""
    image = qrcode.make(payload, image_factory=qrcode.image.svg.SvgPathImage)
    svg = image.to_string()
    if isinstance(svg, str):
        svg = svg.encode("utf-8")
    return "data:image/svg+xml;base64," + base64.b64encode(svg).decode("ascii")


class QRSessionManager:
    """Cross-device login handshake stored in ``qr_sessions``."""

    def __init__(
        self,
        database: Database,
        tokens: TokenService,
        clock: Callable[[], datetime] = utcnow,
        ttl: timedelta = SESSION_TTL,
    ):
        self.db = database
        self.tokens = tokens
        self.clock = clock
        self.ttl = ttl

    def generate_session(self) -> Dict[str, Any]:
        """Create a pending session and its QR code.

        Returns:
            ``sessionId``, ``qrToken``, ``qrCode`` (data URL encoding
            ``{"sessionId", "qrToken", "type": "login"}``), ``expiresAt`` and
            ``expiresInSeconds``.
        """
        session_id = secrets.token_hex(SESSION_ID_BYTES)
        qr_token = secrets.token_hex(QR_TOKEN_BYTES)
        now = self.clock()

        self.db.qr_sessions.insert_one(
            {
                "sessionId": session_id,
                "qrToken": qr_token,
                "status": PENDING,
                "expiresAt": now + self.ttl,
                "createdAt": now,
                "updatedAt": now,
            }
        )

        qr_code = render_qr_data_url(
            json.dumps({"sessionId": session_id, "qrToken": qr_token, "type": "login"})
        )
        logger.info("QR session created", extra={"session_id": session_id})

        return {
            "sessionId": session_id,
            "qrToken": qr_token,
            "qrCode": qr_code,
            "expiresAt": now + self.ttl,
            "expiresInSeconds": int(self.ttl.total_seconds()),
        }

    def _is_expired(self, session: Dict[str, Any], now: datetime) -> bool:
        return now >= session["expiresAt"]

    def _mark_expired(self, session: Dict[str, Any], now: datetime) -> None:
        self.db.qr_sessions.update_one(
            {"_id": session["_id"], "status": {"$in": OPEN_STATUSES}},
            {"$set": {"status": EXPIRED, "updatedAt": now}},
        )
        logger.info("QR session expired", extra={"session_id": session["sessionId"]})

    def _find_pair(self, session_id: str, qr_token: str) -> Dict[str, Any]:
        session = self.db.qr_sessions.find_one({"sessionId": session_id, "qrToken": qr_token})
        if session is None:
            raise BadRequestError("Invalid QR session")
        return session

    def scan(self, session_id: str, qr_token: str) -> None:
        """Mark a pending session as scanned. Repeated scans are no-ops.

        Raises:
            BadRequestError: If the pair is unknown or the session has expired.
        """
        session = self._find_pair(session_id, qr_token)
        now = self.clock()

        if self._is_expired(session, now):
            self._mark_expired(session, now)
            raise BadRequestError("QR session has expired")

        if session["status"] != PENDING:
            return

        self.db.qr_sessions.update_one(
            {"_id": session["_id"], "status": PENDING},
            {"$set": {"status": SCANNED, "scannedAt": now, "updatedAt": now}},
        )
        logger.info("QR session scanned", extra={"session_id": session_id})

    def authenticate(self, session_id: str, qr_token: str, user_id: str) -> None:
        """Approve a session on behalf of an already signed-in user.

        Raises:
            BadRequestError: If the pair is unknown, the session has expired or
                is no longer open (for example already authenticated).
            NotFoundError: If the approving user does not exist.
        """
        session = self._find_pair(session_id, qr_token)
        now = self.clock()

        if self._is_expired(session, now):
            self._mark_expired(session, now)
            raise BadRequestError("QR session has expired")

        if session["status"] == AUTHENTICATED:
            raise BadRequestError("QR session already authenticated")

        if session["status"] not in OPEN_STATUSES:
            raise BadRequestError(f"QR session is {session['status']}")

        user = self.db.users.find_one({"_id": to_object_id(user_id, "userId")})
        if user is None:
            raise NotFoundError("User not found")

        updated = self.db.qr_sessions.find_one_and_update(
            {"_id": session["_id"], "status": {"$in": OPEN_STATUSES}},
            {
                "$set": {
                    "status": AUTHENTICATED,
                    "userId": user["_id"],
                    "scannedAt": session.get("scannedAt") or now,
                    "authenticatedAt": now,
                    "updatedAt": now,
                }
            },
        )
        if updated is None:
            raise BadRequestError("QR session already authenticated")

        logger.info(
            "QR session authenticated",
            extra={"session_id": session_id, "user_id": str(user["_id"])},
        )

    def poll_status(self, session_id: str) -> Dict[str, Any]:
        """Current status; authenticated sessions also get a fresh token pair.

        Every poll of an authenticated session mints new, independently
        valid tokens.

        Raises:
            NotFoundError: If the session does not exist.
        """
        session = self.db.qr_sessions.find_one({"sessionId": session_id})
        if session is None:
            raise NotFoundError("QR session not found")

        now = self.clock()
        if session["status"] == CANCELLED:
            return {"status": CANCELLED}
        if session["status"] != AUTHENTICATED and self._is_expired(session, now):
            if session["status"] in OPEN_STATUSES:
                self._mark_expired(session, now)
            return {"status": EXPIRED}

        if session["status"] == AUTHENTICATED and session.get("userId"):
            user = self.db.users.find_one({"_id": session["userId"]})
            if user is None:
                raise NotFoundError("User not found")

            result: Dict[str, Any] = {"status": AUTHENTICATED, "userId": str(user["_id"])}
            result.update(self.tokens.create_token_pair(user))
            return result

        return {"status": session["status"]}

    def purge_expired(self) -> int:
        """Delete sessions past their expiry. Returns the number removed."""
        result = self.db.qr_sessions.delete_many({"expiresAt": {"$lte": self.clock()}})
        if result.deleted_count:
            logger.info("Purged expired QR sessions", extra={"deleted": result.deleted_count})
        return result.deleted_count
