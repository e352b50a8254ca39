# Overview: Service-layer operations for notifications; persists in-app messages for users.

"""
Notification Emitter

Two entry points:
- create_notification(): persists and raises on failure (caller decides)
- notify(): fire-and-forget variant used by workflows AFTER their own
  commit. A failed notification never undoes a committed order, status
  change or payout; it is rolled back and logged instead.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError, ServiceError
from ..extensions import db
from ..models import Notification
from ..models.notifications import (
    CATEGORY_ORDER,
    CATEGORY_PAYMENT,
    CATEGORY_PAYOUT,
    CATEGORY_PRODUCT,
    CATEGORY_STORE,
    NOTIFICATION_CATEGORIES,
)
from ..money import format_cents


class NotificationError(ServiceError):
    pass


def create_notification(
    user_id: int,
    category: str,
    title: str,
    message: str,
    data: dict | None = None,
    action_url: str | None = None,
) -> Notification:
    if category not in NOTIFICATION_CATEGORIES:
        raise NotificationError(f"Unknown notification category: {category}")
    if not title or not message:
        raise NotificationError("title and message are required")

    notification = Notification(
        user_id=user_id,
        category=category,
        title=title,
        message=message,
        data=data or {},
        action_url=action_url,
        is_read=False,
    )
    db.session.add(notification)
    db.session.commit()
    return notification


def notify(
    user_id: int,
    category: str,
    title: str,
    message: str,
    data: dict | None = None,
    action_url: str | None = None,
) -> Notification | None:
    """Best-effort create_notification(); returns None on failure."""
    try:
        return create_notification(user_id, category, title, message, data, action_url)
    except (SQLAlchemyError, NotificationError):
        db.session.rollback()
        current_app.logger.exception(
            "Failed to deliver %s notification to user %s", category, user_id
        )
        return None


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

ORDER_STATUS_MESSAGES = {
    "processing": "Your order is being processed and will ship soon.",
    "delivered": "Your order has been delivered. Thank you for shopping with us!",
    "cancelled": "Your order has been cancelled.",
}


def notify_vendor_new_order(
    vendor_user_id: int,
    order_number: str,
    product_name: str,
    quantity: int,
    amount_cents: int,
) -> Notification | None:
    return notify(
        vendor_user_id,
        CATEGORY_ORDER,
        "New Order Received",
        f"New order for {product_name} (Qty: {quantity}) - {format_cents(amount_cents)}",
        data={
            "order_number": order_number,
            "product_name": product_name,
            "quantity": quantity,
            "amount_cents": amount_cents,
        },
        action_url="/vendor",
    )


def notify_order_status_change(
    customer_id: int,
    order_number: str,
    status: str,
    tracking_number: str | None = None,
) -> Notification | None:
    if status == "shipped":
        message = (
            f"Your order has shipped! Tracking number: {tracking_number}"
            if tracking_number
            else "Your order has shipped!"
        )
    else:
        message = ORDER_STATUS_MESSAGES.get(
            status, f"Your order status has been updated to {status}."
        )

    return notify(
        customer_id,
        CATEGORY_ORDER,
        f"Order {order_number} Update",
        message,
        data={
            "order_number": order_number,
            "status": status,
            "tracking_number": tracking_number,
        },
        action_url="/orders",
    )


def notify_payment_status(customer_id: int, order_number: str, payment_status: str) -> Notification | None:
    return notify(
        customer_id,
        CATEGORY_PAYMENT,
        f"Payment {payment_status.capitalize()}",
        f"Payment for order {order_number} is now {payment_status}.",
        data={"order_number": order_number, "payment_status": payment_status},
        action_url="/orders",
    )


def notify_payout_requested(vendor_user_id: int, payout_id: int, amount_cents: int) -> Notification | None:
    return notify(
        vendor_user_id,
        CATEGORY_PAYOUT,
        "Payout Request Submitted",
        f"Your payout request for {format_cents(amount_cents)} has been submitted and is being processed.",
        data={"payout_id": payout_id, "amount_cents": amount_cents},
        action_url="/vendor",
    )


def notify_payout_settled(
    vendor_user_id: int,
    payout_id: int,
    amount_cents: int,
    paid: bool,
    reason: str | None = None,
) -> Notification | None:
    if paid:
        title = "Payout Completed"
        message = f"Your payout of {format_cents(amount_cents)} has been sent."
    else:
        title = "Payout Failed"
        message = f"Your payout of {format_cents(amount_cents)} could not be processed."
        if reason:
            message += f" Reason: {reason}"
    return notify(
        vendor_user_id,
        CATEGORY_PAYOUT,
        title,
        message,
        data={"payout_id": payout_id, "amount_cents": amount_cents, "paid": paid},
        action_url="/vendor",
    )


def notify_low_stock(vendor_user_id: int, product_name: str, current_stock: int) -> Notification | None:
    return notify(
        vendor_user_id,
        CATEGORY_PRODUCT,
        "Low Stock Alert",
        f"{product_name} is running low on stock ({current_stock} remaining)",
        data={"product_name": product_name, "current_stock": current_stock},
        action_url="/vendor",
    )


def notify_store_approval(vendor_user_id: int, store_name: str, approved: bool) -> Notification | None:
    if approved:
        title = "Store Approved!"
        message = f'Congratulations! Your store "{store_name}" has been approved and is now live.'
    else:
        title = "Store Application Update"
        message = f'Your store application for "{store_name}" requires additional review.'
    return notify(
        vendor_user_id,
        CATEGORY_STORE,
        title,
        message,
        data={"store_name": store_name, "approved": approved},
        action_url="/vendor" if approved else "/vendor/settings",
    )


def notify_review_response(customer_id: int, product_name: str, product_id: int) -> Notification | None:
    return notify(
        customer_id,
        CATEGORY_PRODUCT,
        "Vendor Responded to Your Review",
        f"The seller of {product_name} responded to your review",
        data={"product_id": product_id},
        action_url=f"/products/{product_id}",
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def list_notifications(user_id: int, limit: int = 50, unread_only: bool = False) -> list[Notification]:
    query = db.session.query(Notification).filter_by(user_id=user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def unread_count(user_id: int) -> int:
    return (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .count()
    )


def _get_owned(notification_id: int, user_id: int) -> Notification:
    notification = db.session.query(Notification).filter_by(
        id=notification_id, user_id=user_id
    ).first()
    if not notification:
        raise NotFoundError("Notification not found")
    return notification


def mark_as_read(notification_id: int, user_id: int) -> Notification:
    notification = _get_owned(notification_id, user_id)
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_as_read(user_id: int) -> int:
    updated = (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def delete_notification(notification_id: int, user_id: int) -> None:
    notification = _get_owned(notification_id, user_id)
    db.session.delete(notification)
    db.session.commit()
