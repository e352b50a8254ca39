from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from samoku.time_utils import to_utc_z

MIN_RATING = 1
MAX_RATING = 5


class ProductReview(db.Model):
    """
    Customer review of a product.

    VERIFIED PURCHASE: set at creation when the reviewer has a delivered
    order line for the product. The product's store owner may attach one
    public response (vendor_response).
    """
    __tablename__ = "product_reviews"
    __table_args__ = (
        db.UniqueConstraint("product_id", "customer_id", name="uq_product_reviews_product_customer"),
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_product_reviews_rating_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)

    rating = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    comment = db.Column(db.Text, nullable=True)
    image_urls = db.Column(db.JSON, nullable=False, default=list)

    is_verified_purchase = db.Column(db.Boolean, nullable=False, default=False)
    is_approved = db.Column(db.Boolean, nullable=False, default=True)

    vendor_response = db.Column(db.Text, nullable=True)
    vendor_response_at = db.Column(db.DateTime(timezone=True), nullable=True)
    responded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    customer = db.relationship("User", foreign_keys=[customer_id])

    @validates("rating")
    def _validate_rating(self, key, value):
        if isinstance(value, bool) or not isinstance(value, int) or not MIN_RATING <= value <= MAX_RATING:
            raise ValueError(f"{key} must be an integer from {MIN_RATING} to {MAX_RATING}")
        return value

    def to_dict(self) -> dict:
        customer = self.customer
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "customer_name": (customer.full_name if customer else None) or "Anonymous",
            "order_id": self.order_id,
            "rating": self.rating,
            "title": self.title,
            "comment": self.comment,
            "image_urls": list(self.image_urls or []),
            "is_verified_purchase": self.is_verified_purchase,
            "is_approved": self.is_approved,
            "vendor_response": self.vendor_response,
            "vendor_response_at": to_utc_z(self.vendor_response_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
