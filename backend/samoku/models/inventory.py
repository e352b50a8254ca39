from __future__ import annotations

from ..extensions import db
from samoku.time_utils import to_utc_z

ALERT_LOW_STOCK = "low_stock"
ALERT_OUT_OF_STOCK = "out_of_stock"
ALERT_RESTOCK = "restock"

ALERT_TYPES = (ALERT_LOW_STOCK, ALERT_OUT_OF_STOCK, ALERT_RESTOCK)


class InventoryAlert(db.Model):
    """Stock threshold alert raised for a vendor product."""
    __tablename__ = "inventory_alerts"
    __table_args__ = (
        db.Index("ix_inventory_alerts_store_resolved", "store_id", "is_resolved"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    alert_type = db.Column(db.String(16), nullable=False)
    threshold_quantity = db.Column(db.Integer, nullable=True)
    current_quantity = db.Column(db.Integer, nullable=False)

    is_resolved = db.Column(db.Boolean, nullable=False, default=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "alert_type": self.alert_type,
            "threshold_quantity": self.threshold_quantity,
            "current_quantity": self.current_quantity,
            "is_resolved": self.is_resolved,
            "resolved_at": to_utc_z(self.resolved_at),
            "product": {
                "name": product.name,
                "sku": product.sku,
                "images": list(product.images or []),
            } if product else None,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryLog(db.Model):
    """
    Append-only stock change history.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.Index("ix_inventory_logs_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    change_quantity = db.Column(db.Integer, nullable=False)

    # set, add, subtract, sale, cancel, sync
    operation = db.Column(db.String(16), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "change_quantity": self.change_quantity,
            "operation": self.operation,
            "reason": self.reason,
            "order_id": self.order_id,
            "changed_by_user_id": self.changed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
