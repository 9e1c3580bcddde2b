"""Outgoing account emails.

Delivery is handled outside this service; the mailer records what would be
sent so operators can wire a real transport behind the same interface.
"""

import logging
from typing import Dict, List

# Configure module logger
logger = logging.getLogger(__name__)


class Mailer:
    """Logs outgoing messages and keeps the most recent ones in memory."""

    def __init__(self, keep_last: int = 100):
        self.keep_last = keep_last
        self.outbox: List[Dict[str, str]] = []

    def send(self, to: str, subject: str, body: str) -> None:
        self.outbox.append({"to": to, "subject": subject, "body": body})
        del self.outbox[: -self.keep_last]
        logger.info("Email queued", extra={"to": to, "subject": subject})

    def send_password_reset(self, to: str, reset_token: str) -> None:
        self.send(
            to,
            "Reset your password",
            f"Use this token to reset your password within one hour: {reset_token}",
        )

    def send_otp(self, to: str, otp_code: str) -> None:
        self.send(to, "Your login code", f"Your one-time login code is {otp_code}. It expires in 10 minutes.")
