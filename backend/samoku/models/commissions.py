from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from samoku.money import bps_to_percent
from samoku.time_utils import to_iso_date, to_utc_z

COMMISSION_STATUS_PENDING = "pending"
COMMISSION_STATUS_PROCESSING = "processing"
COMMISSION_STATUS_PAID = "paid"
COMMISSION_STATUS_FAILED = "failed"

COMMISSION_STATUSES = (
    COMMISSION_STATUS_PENDING,
    COMMISSION_STATUS_PROCESSING,
    COMMISSION_STATUS_PAID,
    COMMISSION_STATUS_FAILED,
)

PAYOUT_STATUS_PENDING = "pending"
PAYOUT_STATUS_PROCESSING = "processing"
PAYOUT_STATUS_PAID = "paid"
PAYOUT_STATUS_FAILED = "failed"

PAYOUT_STATUSES = (
    PAYOUT_STATUS_PENDING,
    PAYOUT_STATUS_PROCESSING,
    PAYOUT_STATUS_PAID,
    PAYOUT_STATUS_FAILED,
)


class CommissionTransaction(db.Model):
    """
    Platform commission accrued on one order line.

    IMMUTABLE AMOUNTS: sale, rate, commission and net are written once at
    checkout. Only status / payout_id / processed_at move afterwards.

    net_amount_cents = sale_amount_cents - commission_cents (vendor's take).
    """
    __tablename__ = "commission_transactions"
    __table_args__ = (
        db.UniqueConstraint("order_line_id", name="uq_commission_transactions_line"),
        db.Index("ix_commission_transactions_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    sale_amount_cents = db.Column(db.Integer, nullable=False)
    commission_rate_bps = db.Column(db.Integer, nullable=False)
    commission_cents = db.Column(db.Integer, nullable=False)
    platform_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    net_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=COMMISSION_STATUS_PENDING, index=True)
    payout_id = db.Column(db.Integer, db.ForeignKey("payouts.id"), nullable=True, index=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    order_line = db.relationship("OrderLine", backref=db.backref("commission", uselist=False, lazy=True))
    order = db.relationship("Order")
    payout = db.relationship("Payout", backref=db.backref("commission_transactions", lazy=True))

    @validates("status")
    def _validate_status(self, key, value):
        if value not in COMMISSION_STATUSES:
            raise ValueError(f"invalid commission status: {value}")
        return value

    def to_dict(self) -> dict:
        line = self.order_line
        order = self.order
        return {
            "id": self.id,
            "order_line_id": self.order_line_id,
            "store_id": self.store_id,
            "order_id": self.order_id,
            "order_number": order.order_number if order else None,
            "product_name": line.product_name if line else None,
            "quantity": line.quantity if line else None,
            "sale_amount_cents": self.sale_amount_cents,
            "commission_rate_bps": self.commission_rate_bps,
            "commission_rate": bps_to_percent(self.commission_rate_bps),
            "commission_cents": self.commission_cents,
            "platform_fee_cents": self.platform_fee_cents,
            "net_amount_cents": self.net_amount_cents,
            "status": self.status,
            "payout_id": self.payout_id,
            "processed_at": to_utc_z(self.processed_at),
            "created_at": to_utc_z(self.created_at),
        }


class Payout(db.Model):
    """
    Vendor settlement request bundling pending commission transactions.

    INVARIANT: amount_cents equals the sum of net_amount_cents over the
    transactions linked to this payout. The amount is always derived
    server-side from those transactions.
    """
    __tablename__ = "payouts"
    __table_args__ = (
        db.Index("ix_payouts_store_status", "store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=PAYOUT_STATUS_PENDING, index=True)

    bank_details = db.Column(db.JSON, nullable=False, default=dict)
    vendor_notes = db.Column(db.Text, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("payouts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @validates("status")
    def _validate_status(self, key, value):
        if value not in PAYOUT_STATUSES:
            raise ValueError(f"invalid payout status: {value}")
        return value

    def masked_bank_details(self) -> dict:
        details = dict(self.bank_details or {})
        account = details.get("account_number")
        if account:
            details["account_number"] = f"****{str(account)[-4:]}"
        return details

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "amount_cents": self.amount_cents,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "status": self.status,
            "bank_details": self.masked_bank_details(),
            "vendor_notes": self.vendor_notes,
            "admin_notes": self.admin_notes,
            "commission_transaction_ids": [t.id for t in self.commission_transactions],
            "requested_by_user_id": self.requested_by_user_id,
            "processed_by_user_id": self.processed_by_user_id,
            "processed_at": to_utc_z(self.processed_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
