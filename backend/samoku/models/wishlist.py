from __future__ import annotations

from ..extensions import db
from samoku.time_utils import to_utc_z


class WishlistItem(db.Model):
    """A product a shopper saved for later. One row per (user, product)."""
    __tablename__ = "wishlist_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_wishlist_items_user_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "product": {
                "name": product.name,
                "price_cents": product.price_cents,
                "images": list(product.images or []),
                "store_id": product.store_id,
                "store_name": product.store.name if product.store else None,
                "stock_quantity": product.stock_quantity,
                "is_active": product.is_active,
            } if product else None,
            "created_at": to_utc_z(self.created_at),
        }
