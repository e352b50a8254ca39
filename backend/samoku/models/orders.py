from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from samoku.money import bps_to_percent
from samoku.time_utils import to_utc_z

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_FAILED = "failed"
PAYMENT_STATUS_REFUNDED = "refunded"

PAYMENT_STATUSES = (
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_REFUNDED,
)

LINE_STATUS_PENDING = "pending"
LINE_STATUS_PROCESSING = "processing"
LINE_STATUS_SHIPPED = "shipped"
LINE_STATUS_DELIVERED = "delivered"
LINE_STATUS_FAILED = "failed"

LINE_STATUSES = (
    LINE_STATUS_PENDING,
    LINE_STATUS_PROCESSING,
    LINE_STATUS_SHIPPED,
    LINE_STATUS_DELIVERED,
    LINE_STATUS_FAILED,
)


class Order(db.Model):
    """
    Customer order spanning one or more vendor stores.

    Created once at checkout and never deleted (audit trail). Overall status
    is derived from the per-line fulfillment statuses; payment status is
    tracked separately.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable order number (e.g., "ORD-1760000000000-K3F9Q")
    order_number = db.Column(db.String(64), nullable=False, unique=True, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    tax_cents = db.Column(db.Integer, nullable=False)
    shipping_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    shipping_address = db.Column(db.JSON, nullable=False, default=dict)
    billing_address = db.Column(db.JSON, nullable=False, default=dict)
    payment_method = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PENDING, index=True)

    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("User", backref=db.backref("orders", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @validates("status")
    def _validate_status(self, key, value):
        if value not in ORDER_STATUSES:
            raise ValueError(f"invalid order status: {value}")
        return value

    @validates("payment_status")
    def _validate_payment_status(self, key, value):
        if value not in PAYMENT_STATUSES:
            raise ValueError(f"invalid payment status: {value}")
        return value

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "shipping_cents": self.shipping_cents,
            "total_cents": self.total_cents,
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "payment_method": self.payment_method,
            "status": self.status,
            "payment_status": self.payment_status,
            "shipped_at": to_utc_z(self.shipped_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """
    One product on an order, owned by the product's store.

    Product name and image are snapshotted at checkout so historical orders
    stay stable when the catalog changes. The commission rate is a snapshot
    of the store rate at sale time.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", name="uq_order_items_order_product"),
        db.Index("ix_order_items_store_created", "store_id", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_image = db.Column(db.String(1024), nullable=True)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    is_dropshipped = db.Column(db.Boolean, nullable=False, default=False)

    fulfillment_status = db.Column(db.String(16), nullable=False, default=LINE_STATUS_PENDING, index=True)
    tracking_number = db.Column(db.String(128), nullable=True)

    commission_rate_bps = db.Column(db.Integer, nullable=False)
    commission_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship(
        "Order",
        backref=db.backref("lines", lazy=True, order_by="OrderLine.id"),
    )
    product = db.relationship("Product")
    store = db.relationship("Store")
    __mapper_args__ = {"version_id_col": version_id}

    @validates("quantity")
    def _validate_quantity(self, key, value):
        if value is None or value <= 0:
            raise ValueError("quantity must be greater than zero")
        return value

    @validates("fulfillment_status")
    def _validate_fulfillment_status(self, key, value):
        if value not in LINE_STATUSES:
            raise ValueError(f"invalid fulfillment status: {value}")
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "product_name": self.product_name,
            "product_image": self.product_image,
            "unit_price_cents": self.unit_price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
            "is_dropshipped": self.is_dropshipped,
            "fulfillment_status": self.fulfillment_status,
            "tracking_number": self.tracking_number,
            "commission_rate_bps": self.commission_rate_bps,
            "commission_rate": bps_to_percent(self.commission_rate_bps),
            "commission_cents": self.commission_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
