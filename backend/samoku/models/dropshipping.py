from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from samoku.time_utils import to_utc_z

DS_ORDER_STATUS_PENDING = "pending"
DS_ORDER_STATUS_SENT = "sent"
DS_ORDER_STATUS_PROCESSING = "processing"
DS_ORDER_STATUS_SHIPPED = "shipped"
DS_ORDER_STATUS_DELIVERED = "delivered"
DS_ORDER_STATUS_FAILED = "failed"

DS_ORDER_STATUSES = (
    DS_ORDER_STATUS_PENDING,
    DS_ORDER_STATUS_SENT,
    DS_ORDER_STATUS_PROCESSING,
    DS_ORDER_STATUS_SHIPPED,
    DS_ORDER_STATUS_DELIVERED,
    DS_ORDER_STATUS_FAILED,
)

# Provider statuses that advance the linked order line. "pending", "sent" and
# "failed" describe the provider side only and leave the line alone.
PROVIDER_LINE_STATUSES = (
    DS_ORDER_STATUS_PROCESSING,
    DS_ORDER_STATUS_SHIPPED,
    DS_ORDER_STATUS_DELIVERED,
)

SYNC_OP_PRODUCT_IMPORT = "product_import"
SYNC_OP_INVENTORY_SYNC = "inventory_sync"
SYNC_OP_ORDER_FULFILLMENT = "order_fulfillment"
SYNC_OP_WEBHOOK_RECEIVED = "webhook_received"

SYNC_STATUS_SUCCESS = "success"
SYNC_STATUS_PARTIAL = "partial"
SYNC_STATUS_ERROR = "error"


class DropshippingProduct(db.Model):
    """Provider-side product mirror, keyed by (provider, external_id)."""
    __tablename__ = "dropshipping_products"
    __table_args__ = (
        db.UniqueConstraint("provider", "external_id", name="uq_dropshipping_products_provider_external"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(128), nullable=False, index=True)
    provider = db.Column(db.String(64), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    sku = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(120), nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    images = db.Column(db.JSON, nullable=False, default=list)
    stock_level = db.Column(db.Integer, nullable=False, default=0)
    shipping_time = db.Column(db.String(64), nullable=True)

    # Raw provider payload as received
    api_data = db.Column(db.JSON, nullable=False, default=dict)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_synced = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "provider": self.provider,
            "title": self.title,
            "description": self.description,
            "price_cents": self.price_cents,
            "sku": self.sku,
            "category": self.category,
            "tags": list(self.tags or []),
            "images": list(self.images or []),
            "stock_level": self.stock_level,
            "shipping_time": self.shipping_time,
            "product_id": self.product_id,
            "is_active": self.is_active,
            "last_synced": to_utc_z(self.last_synced),
            "created_at": to_utc_z(self.created_at),
        }


class DropshippingOrder(db.Model):
    """
    Provider-side fulfillment record for one dropshipped order line.

    Status updates arrive via signed webhooks. When order_line_id is set
    and the provider status maps to a line status, the line and its parent
    order are reconciled.
    """
    __tablename__ = "dropshipping_orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=True, index=True)

    external_order_id = db.Column(db.String(128), nullable=True, unique=True, index=True)
    provider = db.Column(db.String(64), nullable=False)
    product_external_id = db.Column(db.String(128), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    status = db.Column(db.String(16), nullable=False, default=DS_ORDER_STATUS_PENDING)
    tracking_number = db.Column(db.String(128), nullable=True)
    tracking_url = db.Column(db.String(1024), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order_line = db.relationship("OrderLine")

    @validates("status")
    def _validate_status(self, key, value):
        if value not in DS_ORDER_STATUSES:
            raise ValueError(f"invalid dropshipping order status: {value}")
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "order_line_id": self.order_line_id,
            "external_order_id": self.external_order_id,
            "provider": self.provider,
            "product_external_id": self.product_external_id,
            "quantity": self.quantity,
            "status": self.status,
            "tracking_number": self.tracking_number,
            "tracking_url": self.tracking_url,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DropshippingSyncLog(db.Model):
    """
    Audit row for every import / sync / webhook run.

    APPEND-ONLY.
    """
    __tablename__ = "dropshipping_sync_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    operation_type = db.Column(db.String(32), nullable=False, index=True)
    provider = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False)

    products_processed = db.Column(db.Integer, nullable=False, default=0)
    products_updated = db.Column(db.Integer, nullable=False, default=0)
    products_failed = db.Column(db.Integer, nullable=False, default=0)
    error_details = db.Column(db.JSON, nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operation_type": self.operation_type,
            "provider": self.provider,
            "status": self.status,
            "products_processed": self.products_processed,
            "products_updated": self.products_updated,
            "products_failed": self.products_failed,
            "error_details": self.error_details,
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
        }
