# Overview: Service-layer operations for orders; checkout, vendor split, fulfillment reconciliation and cancellation.

"""
Order Service

CHECKOUT FLOW (place_order):
    cart lines -> merge duplicates -> resolve against catalog
    -> split by store -> price (subtotal, tax, per-vendor shipping)
    -> persist Order + OrderLines + CommissionTransactions
    -> conditional stock decrement per line
    -> commit -> notify vendors

ATOMICITY: everything between resolve and commit runs in ONE database
transaction. Any failure (unresolvable product, insufficient stock, DB
error) rolls back the whole order; nothing is partially written.

PRICING: unit prices always come from the catalog at checkout time. The
caller only supplies product ids and quantities.

STATUS: the order's overall status is derived from its lines on every
line update (see reconcile_order_status). Payment status is independent.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, ServiceError, UnauthorizedResponseError
from ..extensions import db
from ..models import CommissionTransaction, Order, OrderLine, Product, User
from ..models.commissions import (
    COMMISSION_STATUS_FAILED,
    COMMISSION_STATUS_PAID,
    COMMISSION_STATUS_PENDING,
    COMMISSION_STATUS_PROCESSING,
)
from ..models.orders import (
    LINE_STATUS_DELIVERED,
    LINE_STATUS_FAILED,
    LINE_STATUS_PENDING,
    LINE_STATUS_PROCESSING,
    LINE_STATUS_SHIPPED,
    LINE_STATUSES,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_SHIPPED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_REFUNDED,
    PAYMENT_STATUSES,
)
from samoku.money import BPS_DENOMINATOR, round_half_up_div
from samoku.services import cart_service, inventory_service, notification_service
from samoku.services.catalog_service import ensure_can_manage_store, get_store
from samoku.services.commission_service import calculate_commission
from samoku.services.concurrency import (
    RETRYABLE_ERRORS,
    begin_write_transaction,
    lock_for_update,
    run_with_retry,
)
from samoku.time_utils import to_utc_z, utcnow
from samoku.validation import parse_address

InsufficientStockError = inventory_service.InsufficientStockError

ORDER_NUMBER_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
ORDER_NUMBER_SUFFIX_LENGTH = 5
# Whole-placement attempts; a retry also covers order-number collisions
PLACE_ORDER_ATTEMPTS = 5


class OrderError(ServiceError):
    """Raised when an order operation is not allowed."""
    pass


class OrderNotFoundError(NotFoundError):
    pass


class ResolutionError(ServiceError):
    """A cart line cannot be matched to an orderable product of an approved store."""
    pass


@dataclass(frozen=True)
class ResolvedLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    store_id: int
    product: Product | None = field(default=None, compare=False, repr=False)

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


@dataclass(frozen=True)
class OrderPricing:
    subtotal_cents: int
    tax_cents: int
    shipping_cents: int
    total_cents: int


# ---------------------------------------------------------------------------
# Pure helpers (split / price / number)
# ---------------------------------------------------------------------------

def merge_cart_lines(cart_lines) -> list[tuple[int, int]]:
    """
    Collapse duplicate product ids, summing quantities.

    Keeps first-appearance order. Quantities must be positive integers.
    """
    if not cart_lines:
        raise OrderError("Order must contain at least one line")

    merged: dict[int, int] = {}
    for idx, raw in enumerate(cart_lines):
        product_id = raw.get("product_id") if isinstance(raw, dict) else None
        quantity = raw.get("quantity") if isinstance(raw, dict) else None
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise OrderError(f"lines[{idx}].product_id must be an integer")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise OrderError(f"lines[{idx}].quantity must be a positive integer")
        merged[product_id] = merged.get(product_id, 0) + quantity
    return list(merged.items())


def resolve_cart_lines(cart_lines) -> list[ResolvedLine]:
    """
    Attach catalog price and owning store to each (merged) cart line.

    Raises ResolutionError if a product is missing or inactive, or its
    store is missing or not approved. One bad line fails the whole order.
    """
    resolved = []
    for product_id, quantity in merge_cart_lines(cart_lines):
        product = db.session.get(Product, product_id)
        if not product or not product.is_active:
            raise ResolutionError("Product is not available", {"product_id": product_id})
        store = product.store
        if store is None:
            raise ResolutionError("Product has no store", {"product_id": product_id})
        if not store.is_approved:
            raise ResolutionError(
                "Store is not accepting orders",
                {"product_id": product_id, "store_id": store.id},
            )
        resolved.append(ResolvedLine(
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=product.price_cents,
            store_id=store.id,
            product=product,
        ))
    return resolved


def split_lines_by_store(lines) -> dict[int, list]:
    """
    Partition lines by store_id.

    Groups appear in first-appearance order of their store; lines keep
    their input order inside each group. Every line lands in exactly one
    group.
    """
    groups: dict[int, list] = {}
    for line in lines:
        groups.setdefault(line.store_id, []).append(line)
    return groups


def vendor_shipping_cents(group_subtotal_cents: int) -> int:
    threshold = int(current_app.config.get("FREE_SHIPPING_THRESHOLD_CENTS", 5000))
    flat = int(current_app.config.get("FLAT_SHIPPING_CENTS", 999))
    return 0 if group_subtotal_cents >= threshold else flat


def compute_shipping(groups: dict[int, list]) -> int:
    """Flat shipping for every vendor group under the free-shipping threshold."""
    return sum(
        vendor_shipping_cents(sum(line.line_total_cents for line in lines))
        for lines in groups.values()
    )


def compute_tax(subtotal_cents: int) -> int:
    rate_bps = int(current_app.config.get("TAX_RATE_BPS", 800))
    return round_half_up_div(subtotal_cents * rate_bps, BPS_DENOMINATOR)


def price_order(groups: dict[int, list]) -> OrderPricing:
    subtotal = sum(line.line_total_cents for lines in groups.values() for line in lines)
    tax = compute_tax(subtotal)
    shipping = compute_shipping(groups)
    return OrderPricing(
        subtotal_cents=subtotal,
        tax_cents=tax,
        shipping_cents=shipping,
        total_cents=subtotal + tax + shipping,
    )


def generate_order_number(now_ms: int | None = None) -> str:
    """ORD-<epoch ms>-<5 random base36 chars>, e.g. ORD-1760000000000-K3F9Q."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(ORDER_NUMBER_SUFFIX_LENGTH))
    return f"ORD-{now_ms}-{suffix}"


def reconcile_order_status(line_statuses) -> str:
    """
    Overall order status from its line statuses.

    all delivered -> delivered; else any shipped -> shipped;
    else any processing -> processing; else pending.
    """
    statuses = list(line_statuses)
    if statuses and all(s == LINE_STATUS_DELIVERED for s in statuses):
        return ORDER_STATUS_DELIVERED
    if any(s == LINE_STATUS_SHIPPED for s in statuses):
        return ORDER_STATUS_SHIPPED
    if any(s == LINE_STATUS_PROCESSING for s in statuses):
        return ORDER_STATUS_PROCESSING
    return ORDER_STATUS_PENDING


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def place_order(
    customer_id: int,
    cart_lines,
    shipping_address: dict,
    billing_address: dict | None = None,
    payment_method: str = "card",
    *,
    clear_cart: bool = False,
) -> Order:
    """
    Place a multi-vendor order in a single transaction.

    Raises:
        ResolutionError: a product/store cannot be resolved
        InsufficientStockError: a line asks for more than is in stock
        OrderError / ValidationError: malformed input
        PersistenceError: the database write failed after retries
    """
    shipping = parse_address(shipping_address, "shipping_address")
    billing = parse_address(billing_address, "billing_address") if billing_address else dict(shipping)
    if not isinstance(payment_method, str) or not payment_method.strip():
        raise OrderError("payment_method is required")
    payment_method = payment_method.strip()

    if not db.session.get(User, customer_id):
        raise NotFoundError("Customer not found", {"customer_id": customer_id})

    def _op():
        begin_write_transaction()

        resolved = resolve_cart_lines(cart_lines)
        groups = split_lines_by_store(resolved)
        pricing = price_order(groups)

        order = Order(
            order_number=generate_order_number(),
            customer_id=customer_id,
            subtotal_cents=pricing.subtotal_cents,
            tax_cents=pricing.tax_cents,
            shipping_cents=pricing.shipping_cents,
            total_cents=pricing.total_cents,
            shipping_address=shipping,
            billing_address=billing,
            payment_method=payment_method,
            status=ORDER_STATUS_PENDING,
            payment_status=PAYMENT_STATUS_PENDING,
        )
        db.session.add(order)
        db.session.flush()

        vendor_notices = []
        stock_changes = []
        for store_id, lines in groups.items():
            for line in lines:
                product = line.product
                store = product.store
                breakdown = calculate_commission(line.line_total_cents, store.effective_commission_rate_bps)

                order_line = OrderLine(
                    order_id=order.id,
                    product_id=line.product_id,
                    store_id=store_id,
                    product_name=product.name,
                    product_image=product.primary_image,
                    unit_price_cents=line.unit_price_cents,
                    quantity=line.quantity,
                    line_total_cents=line.line_total_cents,
                    is_dropshipped=product.is_dropshipped,
                    fulfillment_status=LINE_STATUS_PENDING,
                    commission_rate_bps=breakdown.rate_bps,
                    commission_cents=breakdown.commission_cents,
                )
                db.session.add(order_line)
                db.session.flush()

                db.session.add(CommissionTransaction(
                    order_line_id=order_line.id,
                    store_id=store_id,
                    order_id=order.id,
                    sale_amount_cents=breakdown.sale_amount_cents,
                    commission_rate_bps=breakdown.rate_bps,
                    commission_cents=breakdown.commission_cents,
                    platform_fee_cents=breakdown.platform_fee_cents,
                    net_amount_cents=breakdown.net_amount_cents,
                    status=COMMISSION_STATUS_PENDING,
                ))

                stock_changes.append(
                    inventory_service.decrement_stock_for_sale(line.product_id, line.quantity, order.id)
                )
                vendor_notices.append(
                    (store.owner_user_id, product.name, line.quantity, line.line_total_cents)
                )

        if clear_cart:
            cart_service.clear_cart(customer_id, commit=False)

        db.session.commit()
        return order, vendor_notices, stock_changes

    order, vendor_notices, stock_changes = run_with_retry(
        _op,
        attempts=PLACE_ORDER_ATTEMPTS,
        retry_on=RETRYABLE_ERRORS + (IntegrityError,),
    )

    for vendor_user_id, product_name, quantity, amount_cents in vendor_notices:
        notification_service.notify_vendor_new_order(
            vendor_user_id, order.order_number, product_name, quantity, amount_cents
        )
    for change in stock_changes:
        inventory_service.notify_stock_change(change)

    return order


def checkout_cart(
    customer_id: int,
    shipping_address: dict,
    billing_address: dict | None = None,
    payment_method: str = "card",
) -> Order:
    """Place an order from the persisted cart; the cart is emptied on success."""
    lines = cart_service.cart_lines(customer_id)
    if not lines:
        raise OrderError("Cart is empty")
    return place_order(
        customer_id,
        lines,
        shipping_address,
        billing_address,
        payment_method,
        clear_cart=True,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def _ensure_can_view(order: Order, actor: User | None) -> None:
    if actor is None or actor.is_admin or order.customer_id == actor.id:
        return
    owned_store_ids = {store.id for store in actor.stores}
    if any(line.store_id in owned_store_ids for line in order.lines):
        return
    raise UnauthorizedResponseError("You do not have access to this order", {"order_id": order.id})


def get_order(order_id: int, actor: User | None = None) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise OrderNotFoundError("Order not found", {"order_id": order_id})
    _ensure_can_view(order, actor)
    return order


def list_customer_orders(customer_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter_by(customer_id=customer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def get_vendor_orders(store_id: int, actor: User | None = None) -> list[dict]:
    """
    A store's slice of every order it appears in.

    Each group carries only this store's lines, with the vendor subtotal,
    the vendor's shipping share (same threshold rule as checkout) and total.
    """
    store = get_store(store_id)
    ensure_can_manage_store(store, actor)

    lines = (
        db.session.query(OrderLine)
        .filter_by(store_id=store_id)
        .order_by(OrderLine.created_at.desc(), OrderLine.id.desc())
        .all()
    )

    groups: dict[int, dict] = {}
    for line in lines:
        group = groups.get(line.order_id)
        if group is None:
            order = line.order
            group = groups[line.order_id] = {
                "order_id": order.id,
                "order_number": order.order_number,
                "customer_id": order.customer_id,
                "status": order.status,
                "payment_status": order.payment_status,
                "shipping_address": order.shipping_address,
                "created_at": to_utc_z(order.created_at),
                "store_id": store.id,
                "store_name": store.name,
                "items": [],
                "subtotal_cents": 0,
            }
        group["items"].append(line.to_dict())
        group["subtotal_cents"] += line.line_total_cents

    for group in groups.values():
        group["shipping_cents"] = vendor_shipping_cents(group["subtotal_cents"])
        group["total_cents"] = group["subtotal_cents"] + group["shipping_cents"]

    return list(groups.values())


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------

def apply_line_status(
    line: OrderLine,
    order: Order,
    new_status: str,
    tracking_number: str | None = None,
) -> tuple[bool, str | None]:
    """
    Set a locked line's status and re-derive its locked order; caller commits.

    Returns (updated, changed_to). updated is False when a delivered line is
    set to delivered again. changed_to is the new order status, if any.
    """
    if new_status not in LINE_STATUSES:
        raise OrderError(
            f"Invalid fulfillment status: {new_status}",
            {"valid_statuses": list(LINE_STATUSES)},
        )
    if order.status == ORDER_STATUS_CANCELLED:
        raise OrderError("Cannot update lines of a cancelled order", {"order_id": order.id})

    if line.fulfillment_status == LINE_STATUS_DELIVERED:
        if new_status == LINE_STATUS_DELIVERED:
            return False, None
        raise OrderError(
            "Delivered lines cannot change status",
            {"order_line_id": line.id, "status": line.fulfillment_status},
        )

    line.fulfillment_status = new_status
    if tracking_number:
        line.tracking_number = tracking_number

    now = utcnow()
    if new_status == LINE_STATUS_DELIVERED:
        commission = line.commission
        if commission is not None and commission.status in (
            COMMISSION_STATUS_PENDING,
            COMMISSION_STATUS_PROCESSING,
        ):
            commission.status = COMMISSION_STATUS_PAID
            commission.processed_at = now

    db.session.flush()

    siblings = db.session.query(OrderLine).filter_by(order_id=order.id).all()
    derived = reconcile_order_status(s.fulfillment_status for s in siblings)

    if derived == order.status:
        return True, None
    order.status = derived
    if derived == ORDER_STATUS_SHIPPED and order.shipped_at is None:
        order.shipped_at = now
    if derived == ORDER_STATUS_DELIVERED and order.delivered_at is None:
        order.delivered_at = now
    return True, derived


def notify_order_change(line: OrderLine, changed_to: str | None) -> None:
    """Tell the customer about an order status change (after commit)."""
    if changed_to is None:
        return
    order = line.order
    notification_service.notify_order_status_change(
        order.customer_id, order.order_number, changed_to, line.tracking_number
    )


def update_line_status(
    line_id: int,
    new_status: str,
    tracking_number: str | None = None,
    actor: User | None = None,
) -> OrderLine:
    """
    Advance one line's fulfillment status and reconcile the parent order.

    - A delivered line is final; setting it to delivered again is a no-op.
    - The order row is only written when its derived status changes, and
      shipped_at / delivered_at are set on the first transition only.
    - A line becoming delivered marks its commission paid.
    """
    if new_status not in LINE_STATUSES:
        raise OrderError(
            f"Invalid fulfillment status: {new_status}",
            {"valid_statuses": list(LINE_STATUSES)},
        )

    def _op():
        begin_write_transaction()
        line = lock_for_update(db.session.query(OrderLine).filter_by(id=line_id)).first()
        if not line:
            raise OrderNotFoundError("Order line not found", {"order_line_id": line_id})
        if actor is not None:
            ensure_can_manage_store(line.store, actor)

        order = lock_for_update(db.session.query(Order).filter_by(id=line.order_id)).first()
        updated, changed_to = apply_line_status(line, order, new_status, tracking_number)
        if not updated:
            db.session.rollback()
            return line, None

        db.session.commit()
        return line, changed_to

    line, changed_to = run_with_retry(_op)
    notify_order_change(line, changed_to)
    return line


def update_payment_status(order_id: int, payment_status: str, actor: User | None = None) -> Order:
    """
    Record a simulated payment outcome (no gateway involved).

    A cancelled order only accepts "refunded".
    """
    if payment_status not in PAYMENT_STATUSES:
        raise OrderError(
            f"Invalid payment status: {payment_status}",
            {"valid_statuses": list(PAYMENT_STATUSES)},
        )

    def _op():
        begin_write_transaction()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise OrderNotFoundError("Order not found", {"order_id": order_id})
        if actor is not None and not actor.is_admin and order.customer_id != actor.id:
            raise UnauthorizedResponseError("You do not have access to this order", {"order_id": order_id})
        if order.status == ORDER_STATUS_CANCELLED and payment_status != PAYMENT_STATUS_REFUNDED:
            raise OrderError("Order is cancelled", {"order_id": order_id})

        changed = order.payment_status != payment_status
        order.payment_status = payment_status
        db.session.commit()
        return order, changed

    order, changed = run_with_retry(_op)
    if changed:
        notification_service.notify_payment_status(order.customer_id, order.order_number, payment_status)
    return order


def cancel_order(order_id: int, actor: User | None = None) -> Order:
    """
    Cancel an order nobody has started fulfilling.

    Only while the order and every line are pending. Restores stock, fails
    lines and commissions, and refunds a paid order, all in one transaction.
    """
    def _op():
        begin_write_transaction()
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise OrderNotFoundError("Order not found", {"order_id": order_id})
        if actor is not None and not actor.is_admin and order.customer_id != actor.id:
            raise UnauthorizedResponseError("You do not have access to this order", {"order_id": order_id})

        if order.status != ORDER_STATUS_PENDING:
            raise OrderError(
                f"Cannot cancel order with status {order.status}",
                {"order_id": order_id, "status": order.status},
            )
        lines = lock_for_update(db.session.query(OrderLine).filter_by(order_id=order.id)).all()
        started = [line.id for line in lines if line.fulfillment_status != LINE_STATUS_PENDING]
        if started:
            raise OrderError(
                "Cannot cancel an order with lines already in fulfillment",
                {"order_id": order_id, "order_line_ids": started},
            )
        claimed = [
            line.id for line in lines
            if line.commission is not None and line.commission.status != COMMISSION_STATUS_PENDING
        ]
        if claimed:
            raise OrderError(
                "Cannot cancel an order whose commissions are already claimed by a payout",
                {"order_id": order_id, "order_line_ids": claimed},
            )

        for line in lines:
            inventory_service.restore_stock(line.product_id, line.quantity, order.id)
            line.fulfillment_status = LINE_STATUS_FAILED
            commission = line.commission
            if commission is not None:
                commission.status = COMMISSION_STATUS_FAILED

        order.status = ORDER_STATUS_CANCELLED
        order.cancelled_at = utcnow()
        if order.payment_status == PAYMENT_STATUS_PAID:
            order.payment_status = PAYMENT_STATUS_REFUNDED

        db.session.commit()
        return order

    order = run_with_retry(_op)
    notification_service.notify_order_status_change(
        order.customer_id, order.order_number, ORDER_STATUS_CANCELLED
    )
    return order
