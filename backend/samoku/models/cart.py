from __future__ import annotations

from ..extensions import db
from samoku.time_utils import to_utc_z


class CartItem(db.Model):
    """Persisted cart line for a signed-in shopper."""
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
        db.CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "product_name": product.name if product else None,
            "store_id": product.store_id if product else None,
            "unit_price_cents": product.price_cents if product else None,
            "line_total_cents": product.price_cents * self.quantity if product else None,
            "created_at": to_utc_z(self.created_at),
        }
