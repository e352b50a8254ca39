from __future__ import annotations

from ..extensions import db
from samoku.time_utils import to_utc_z

CATEGORY_ORDER = "order"
CATEGORY_PAYMENT = "payment"
CATEGORY_PRODUCT = "product"
CATEGORY_STORE = "store"
CATEGORY_PAYOUT = "payout"
CATEGORY_SYSTEM = "system"

NOTIFICATION_CATEGORIES = (
    CATEGORY_ORDER,
    CATEGORY_PAYMENT,
    CATEGORY_PRODUCT,
    CATEGORY_STORE,
    CATEGORY_PAYOUT,
    CATEGORY_SYSTEM,
)


class Notification(db.Model):
    """In-app notification for a customer, vendor or admin."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    category = db.Column(db.String(16), nullable=False, index=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON, nullable=False, default=dict)
    action_url = db.Column(db.String(255), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "category": self.category,
            "title": self.title,
            "message": self.message,
            "data": self.data or {},
            "action_url": self.action_url,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
