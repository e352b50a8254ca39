from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import validates

from ..extensions import db
from samoku.money import bps_to_percent, validate_rate_bps
from samoku.time_utils import to_utc_z

DEFAULT_COMMISSION_RATE_BPS = 500


class Store(db.Model):
    """
    Vendor storefront.

    COMMISSION: commission_rate_bps is the platform's cut in basis points
    (500 = 5.0%). It is read at sale time and copied onto each order line and
    commission transaction, so changing it never rewrites history.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_stores_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    commission_rate_bps = db.Column(db.Integer, nullable=True)
    is_approved = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    owner = db.relationship("User", backref=db.backref("stores", lazy=True))

    @validates("commission_rate_bps")
    def _validate_rate(self, key, value):
        if value is None:
            return None
        try:
            return validate_rate_bps(value)
        except ValueError as exc:
            raise ValueError(f"{key}: {exc}")

    @property
    def effective_commission_rate_bps(self) -> int:
        """Explicit store rate, else the platform default from config."""
        if self.commission_rate_bps is None:
            return int(current_app.config.get("DEFAULT_COMMISSION_RATE_BPS", DEFAULT_COMMISSION_RATE_BPS))
        return self.commission_rate_bps

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "name": self.name,
            "description": self.description,
            "commission_rate_bps": self.effective_commission_rate_bps,
            "commission_rate": bps_to_percent(self.effective_commission_rate_bps),
            "is_approved": self.is_approved,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data, owned by exactly one store.

    STOCK: stock_quantity is a mutable counter. Every decrement is a
    conditional UPDATE (stock_quantity >= qty) so it can never go negative,
    even under concurrent checkouts.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sku", name="uq_products_store_sku"),
        db.Index("ix_products_store_active", "store_id", "is_active"),
        db.Index("ix_products_external", "provider", "external_id"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    sales_count = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=True)

    images = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Dropshipping mirror link
    is_dropshipped = db.Column(db.Boolean, nullable=False, default=False)
    external_id = db.Column(db.String(128), nullable=True)
    provider = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))

    @validates("price_cents")
    def _validate_price(self, key, value):
        if value is None or value < 0:
            raise ValueError("price_cents must be a non-negative integer")
        return value

    @validates("stock_quantity")
    def _validate_stock(self, key, value):
        if value is None or value < 0:
            raise ValueError("stock_quantity must be a non-negative integer")
        return value

    @property
    def primary_image(self) -> str | None:
        if self.images:
            return self.images[0]
        return None

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "stock_quantity": self.stock_quantity,
            "sales_count": self.sales_count,
            "low_stock_threshold": self.low_stock_threshold,
            "images": list(self.images or []),
            "is_active": self.is_active,
            "is_dropshipped": self.is_dropshipped,
            "external_id": self.external_id,
            "provider": self.provider,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
