# Overview: Service-layer operations for commissions and payouts; encapsulates business logic and database work.

"""
Commission & Payout Service

COMMISSION: the platform's cut of each order line, computed once at
checkout from the store's rate at that moment:

    commission = round_half_up(sale * rate_bps / 10000)
    net        = sale - commission           (vendor's take)

PAYOUT: a vendor claims every pending commission of a store at once. The
amount is always the server-side sum of the claimed net amounts; a
client-supplied figure is never trusted.

Lifecycle of a commission transaction:
    pending -> processing (claimed by a payout) -> paid
    processing -> pending  (payout failed, released for the next claim)
    pending/processing -> paid (order line delivered)
    pending -> failed (order cancelled)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time

from flask import current_app

from ..errors import ConflictError, NotFoundError, ServiceError
from ..extensions import db
from ..models import CommissionTransaction, Payout, Store, User
from ..models.commissions import (
    COMMISSION_STATUS_FAILED,
    COMMISSION_STATUS_PAID,
    COMMISSION_STATUS_PENDING,
    COMMISSION_STATUS_PROCESSING,
    COMMISSION_STATUSES,
    PAYOUT_STATUS_FAILED,
    PAYOUT_STATUS_PAID,
    PAYOUT_STATUS_PENDING,
    PAYOUT_STATUS_PROCESSING,
)
from samoku.money import BPS_DENOMINATOR, bps_to_percent, round_half_up_div, validate_rate_bps
from samoku.services.catalog_service import ensure_can_manage_store
from samoku.services.concurrency import begin_write_transaction, lock_for_update, run_with_retry
from samoku.services import notification_service
from samoku.time_utils import month_start, previous_month_start, today, utcnow

BANK_DETAIL_FIELDS = ("account_name", "account_number", "routing_number", "bank_name")


class PayoutError(ServiceError):
    pass


class NoPendingCommissionsError(ConflictError):
    """Store has nothing to claim."""
    pass


@dataclass(frozen=True)
class CommissionBreakdown:
    sale_amount_cents: int
    rate_bps: int
    commission_cents: int
    net_amount_cents: int
    platform_fee_cents: int = 0


def calculate_commission(sale_amount_cents: int, rate_bps: int) -> CommissionBreakdown:
    """
    Split a sale into platform commission and vendor net.

    Raises ValueError for a negative sale or a rate outside [0, 10000] bps.
    """
    if isinstance(sale_amount_cents, bool) or not isinstance(sale_amount_cents, int):
        raise ValueError("sale amount must be integer cents")
    if sale_amount_cents < 0:
        raise ValueError("sale amount cannot be negative")
    validate_rate_bps(rate_bps)

    commission = round_half_up_div(sale_amount_cents * rate_bps, BPS_DENOMINATOR)
    return CommissionBreakdown(
        sale_amount_cents=sale_amount_cents,
        rate_bps=rate_bps,
        commission_cents=commission,
        net_amount_cents=sale_amount_cents - commission,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def _get_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFoundError("Store not found", {"store_id": store_id})
    return store


def get_store_commissions(store_id: int, status: str | None = None) -> list[CommissionTransaction]:
    _get_store(store_id)
    query = db.session.query(CommissionTransaction).filter_by(store_id=store_id)
    if status is not None:
        if status not in COMMISSION_STATUSES:
            raise PayoutError(f"Unknown commission status: {status}")
        query = query.filter(CommissionTransaction.status == status)
    return query.order_by(CommissionTransaction.created_at.desc(), CommissionTransaction.id.desc()).all()


def get_commission_stats(store_id: int, on_date=None) -> dict:
    """
    Earnings summary for the vendor dashboard (all amounts are net cents).

    Failed transactions (cancelled orders) are excluded everywhere.
    """
    store = _get_store(store_id)
    on_date = on_date or today()

    transactions = (
        db.session.query(CommissionTransaction)
        .filter(
            CommissionTransaction.store_id == store_id,
            CommissionTransaction.status != COMMISSION_STATUS_FAILED,
        )
        .all()
    )

    this_month_start = datetime.combine(month_start(on_date), time.min)
    last_month_start = datetime.combine(previous_month_start(on_date), time.min)

    def _sum(items):
        return sum(t.net_amount_cents for t in items)

    total_sales = sum(t.sale_amount_cents for t in transactions)
    average_sale = round_half_up_div(total_sales, len(transactions)) if transactions else 0

    return {
        "store_id": store_id,
        "total_earnings_cents": _sum(transactions),
        "pending_cents": _sum(t for t in transactions if t.status == COMMISSION_STATUS_PENDING),
        "processing_cents": _sum(t for t in transactions if t.status == COMMISSION_STATUS_PROCESSING),
        "paid_cents": _sum(t for t in transactions if t.status == COMMISSION_STATUS_PAID),
        "this_month_earnings_cents": _sum(t for t in transactions if t.created_at >= this_month_start),
        "last_month_earnings_cents": _sum(
            t for t in transactions if last_month_start <= t.created_at < this_month_start
        ),
        "average_sale_cents": average_sale,
        "transaction_count": len(transactions),
        "commission_rate_bps": store.effective_commission_rate_bps,
        "commission_rate": bps_to_percent(store.effective_commission_rate_bps),
    }


def list_payouts(store_id: int) -> list[Payout]:
    _get_store(store_id)
    return (
        db.session.query(Payout)
        .filter_by(store_id=store_id)
        .order_by(Payout.created_at.desc(), Payout.id.desc())
        .all()
    )


def get_payout(payout_id: int) -> Payout:
    payout = db.session.get(Payout, payout_id)
    if not payout:
        raise NotFoundError("Payout not found", {"payout_id": payout_id})
    return payout


# ---------------------------------------------------------------------------
# Payout workflow
# ---------------------------------------------------------------------------

def validate_bank_details(bank_details) -> dict:
    if not isinstance(bank_details, dict):
        raise PayoutError("bank_details must be an object")
    missing = [f for f in BANK_DETAIL_FIELDS if not str(bank_details.get(f) or "").strip()]
    if missing:
        raise PayoutError(f"bank_details is missing: {', '.join(missing)}", {"missing": missing})
    return {f: str(bank_details[f]).strip() for f in BANK_DETAIL_FIELDS}


def request_payout(
    store_id: int,
    bank_details: dict,
    notes: str | None = None,
    requested_amount_cents: int | None = None,
    actor: User | None = None,
) -> Payout:
    """
    Claim every pending commission of a store into one payout.

    WHY one transaction: the pending rows are read and re-pointed at the new
    payout under the write lock, so two overlapping requests cannot claim
    the same commission twice.
    """
    store = _get_store(store_id)
    ensure_can_manage_store(store, actor)
    clean_bank_details = validate_bank_details(bank_details)

    def _op():
        begin_write_transaction()
        pending = lock_for_update(
            db.session.query(CommissionTransaction)
            .filter_by(store_id=store_id, status=COMMISSION_STATUS_PENDING)
            .order_by(CommissionTransaction.id.asc())
        ).all()
        if not pending:
            raise NoPendingCommissionsError(
                "No pending commissions available for payout",
                {"store_id": store_id},
            )

        amount = sum(t.net_amount_cents for t in pending)
        if requested_amount_cents is not None and requested_amount_cents != amount:
            current_app.logger.warning(
                "Payout amount mismatch for store %s: requested %s, pending net %s",
                store_id, requested_amount_cents, amount,
            )

        period_end = today()
        payout = Payout(
            store_id=store_id,
            amount_cents=amount,
            period_start=month_start(period_end),
            period_end=period_end,
            status=PAYOUT_STATUS_PENDING,
            bank_details=clean_bank_details,
            vendor_notes=notes,
            requested_by_user_id=actor.id if actor else None,
        )
        db.session.add(payout)
        db.session.flush()

        for transaction in pending:
            transaction.payout_id = payout.id
            transaction.status = COMMISSION_STATUS_PROCESSING

        db.session.commit()
        return payout

    payout = run_with_retry(_op)
    notification_service.notify_payout_requested(store.owner_user_id, payout.id, payout.amount_cents)
    return payout


def _settle(payout_id: int, paid: bool, admin: User | None, notes: str | None) -> Payout:
    def _op():
        begin_write_transaction()
        payout = lock_for_update(db.session.query(Payout).filter_by(id=payout_id)).first()
        if not payout:
            raise NotFoundError("Payout not found", {"payout_id": payout_id})
        if payout.status not in (PAYOUT_STATUS_PENDING, PAYOUT_STATUS_PROCESSING):
            raise PayoutError(
                f"Cannot settle payout with status {payout.status}",
                {"payout_id": payout_id, "status": payout.status},
            )

        now = utcnow()
        claimed = lock_for_update(
            db.session.query(CommissionTransaction).filter_by(
                payout_id=payout.id, status=COMMISSION_STATUS_PROCESSING
            )
        ).all()

        for transaction in claimed:
            if paid:
                transaction.status = COMMISSION_STATUS_PAID
                transaction.processed_at = now
            else:
                transaction.status = COMMISSION_STATUS_PENDING
                transaction.payout_id = None

        payout.status = PAYOUT_STATUS_PAID if paid else PAYOUT_STATUS_FAILED
        payout.processed_at = now
        payout.processed_by_user_id = admin.id if admin else None
        if notes:
            payout.admin_notes = notes

        db.session.commit()
        return payout

    payout = run_with_retry(_op)
    notification_service.notify_payout_settled(
        payout.store.owner_user_id, payout.id, payout.amount_cents, paid, reason=None if paid else notes
    )
    return payout


def complete_payout(payout_id: int, admin: User | None = None, notes: str | None = None) -> Payout:
    """Mark a payout sent; its claimed commissions become paid."""
    return _settle(payout_id, True, admin, notes)


def fail_payout(payout_id: int, admin: User | None = None, reason: str | None = None) -> Payout:
    """Mark a payout failed; its claimed commissions go back to pending."""
    return _settle(payout_id, False, admin, reason)
