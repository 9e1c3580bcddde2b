"""In-app notifications, optionally mirrored to email."""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from pymongo import ReturnDocument

from marketplace.api.exceptions import NotFoundError
from marketplace.auth.mailer import Mailer
from marketplace.db import Database, to_object_id, utcnow
from marketplace.pagination import build_pagination_meta, parse_pagination

# Configure module logger
logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("price_drop", "order_update", "system")


def format_cents(amount: int) -> str:
    return f"${amount / 100:.2f}"


class NotificationService:
    def __init__(
        self,
        database: Database,
        mailer: Optional[Mailer] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = database
        self.mailer = mailer
        self.clock = clock

    def create(
        self,
        user_id: Any,
        notification_type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        channels: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Store a notification and deliver it on the requested channels."""
        channels = channels or ["in_app"]
        notification = {
            "userId": to_object_id(user_id, "userId"),
            "type": notification_type,
            "title": title,
            "message": message,
            "data": data or {},
            "channels": channels,
            "isRead": False,
            "createdAt": self.clock(),
        }
        notification["_id"] = self.db.notifications.insert_one(notification).inserted_id

        if "email" in channels and self.mailer is not None:
            user = self.db.users.find_one({"_id": notification["userId"]})
            if user is not None:
                self.mailer.send(user["email"], title, message)
        return notification

    def notify_price_drop(
        self, user_id: Any, product_id: str, product_title: str, old_price: int, new_price: int
    ) -> Dict[str, Any]:
        return self.create(
            user_id,
            "price_drop",
            "Price Drop Alert",
            f"{product_title} price dropped from {format_cents(old_price)} "
            f"to {format_cents(new_price)}.",
            data={
                "productId": product_id,
                "productTitle": product_title,
                "oldPrice": old_price,
                "newPrice": new_price,
                "url": f"/products/{product_id}",
            },
            channels=["email", "in_app"],
        )

    def list_for_user(
        self,
        user_id: str,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        is_read: Optional[bool] = None,
        notification_type: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        params = parse_pagination(page, limit)
        query: Dict[str, Any] = {"userId": to_object_id(user_id, "userId")}
        if is_read is not None:
            query["isRead"] = is_read
        if notification_type:
            query["type"] = notification_type

        notifications = list(
            self.db.notifications.find(query)
            .sort("createdAt", -1)
            .skip(params.skip)
            .limit(params.limit)
        )
        total = self.db.notifications.count_documents(query)
        return notifications, build_pagination_meta(params.page, params.limit, total)

    def unread_count(self, user_id: str) -> int:
        return self.db.notifications.count_documents(
            {"userId": to_object_id(user_id, "userId"), "isRead": False}
        )

    def mark_read(self, notification_id: str, user_id: str) -> Dict[str, Any]:
        notification = self.db.notifications.find_one_and_update(
            {
                "_id": to_object_id(notification_id, "notificationId"),
                "userId": to_object_id(user_id, "userId"),
            },
            {"$set": {"isRead": True, "readAt": self.clock()}},
            return_document=ReturnDocument.AFTER,
        )
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    def mark_all_read(self, user_id: str) -> int:
        result = self.db.notifications.update_many(
            {"userId": to_object_id(user_id, "userId"), "isRead": False},
            {"$set": {"isRead": True, "readAt": self.clock()}},
        )
        return result.modified_count
