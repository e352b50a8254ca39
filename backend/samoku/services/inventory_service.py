# Overview: Service-layer operations for inventory; stock counters, adjustment log and threshold alerts.

"""
Inventory Service

STOCK INVARIANT: products.stock_quantity never goes below zero.
- Sales decrement with a conditional UPDATE (stock_quantity >= qty); zero
  affected rows means the stock was not there and the sale is refused.
- Manual adjustments that would go negative are rejected, never clamped.

Every change appends an InventoryLog row. Threshold crossings open (or
resolve) InventoryAlert rows; vendors are told about new low/out-of-stock
alerts after the surrounding transaction commits.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import case, update

from ..errors import ConflictError, NotFoundError, ServiceError
from ..extensions import db
from ..models import InventoryAlert, InventoryLog, Product, User
from ..models.inventory import ALERT_LOW_STOCK, ALERT_OUT_OF_STOCK, ALERT_RESTOCK
from samoku.services.catalog_service import ensure_can_manage_store
from samoku.services.concurrency import begin_write_transaction, lock_for_update, run_with_retry
from samoku.services import notification_service
from samoku.time_utils import utcnow

OP_SET = "set"
OP_ADD = "add"
OP_SUBTRACT = "subtract"
OP_SALE = "sale"
OP_CANCEL = "cancel"
OP_SYNC = "sync"

MANUAL_OPERATIONS = (OP_SET, OP_ADD, OP_SUBTRACT)


class InventoryError(ServiceError):
    pass


class InsufficientStockError(ConflictError):
    """Requested quantity exceeds available stock."""
    pass


@dataclass
class StockChange:
    product: Product
    previous_quantity: int
    new_quantity: int
    alert: InventoryAlert | None = None

    @property
    def needs_low_stock_notice(self) -> bool:
        return self.alert is not None and self.alert.alert_type in (ALERT_LOW_STOCK, ALERT_OUT_OF_STOCK)


def effective_threshold(product: Product) -> int:
    if product.low_stock_threshold is not None:
        return product.low_stock_threshold
    return int(current_app.config.get("LOW_STOCK_THRESHOLD", 10))


def _evaluate_alerts(product: Product, previous: int, new: int) -> InventoryAlert | None:
    """Open or resolve alerts when stock crosses the product's threshold."""
    threshold = effective_threshold(product)
    alert_type = None

    if new == 0 and previous > 0:
        alert_type = ALERT_OUT_OF_STOCK
    elif 0 < new <= threshold < previous:
        alert_type = ALERT_LOW_STOCK
    elif new > threshold >= previous:
        db.session.query(InventoryAlert).filter(
            InventoryAlert.product_id == product.id,
            InventoryAlert.is_resolved.is_(False),
            InventoryAlert.alert_type.in_((ALERT_LOW_STOCK, ALERT_OUT_OF_STOCK)),
        ).update(
            {InventoryAlert.is_resolved: True, InventoryAlert.resolved_at: utcnow()},
            synchronize_session=False,
        )
        if previous == 0:
            alert_type = ALERT_RESTOCK

    if alert_type is None:
        return None

    alert = InventoryAlert(
        product_id=product.id,
        store_id=product.store_id,
        alert_type=alert_type,
        threshold_quantity=threshold,
        current_quantity=new,
        is_resolved=False,
    )
    db.session.add(alert)
    return alert


def _log(
    product: Product,
    previous: int,
    new: int,
    operation: str,
    reason: str | None = None,
    actor: User | None = None,
    order_id: int | None = None,
) -> InventoryLog:
    entry = InventoryLog(
        product_id=product.id,
        previous_quantity=previous,
        new_quantity=new,
        change_quantity=new - previous,
        operation=operation,
        reason=reason,
        order_id=order_id,
        changed_by_user_id=actor.id if actor else None,
    )
    db.session.add(entry)
    return entry


def _reload(product_id: int) -> Product:
    return db.session.get(Product, product_id, populate_existing=True)


def decrement_stock_for_sale(product_id: int, quantity: int, order_id: int | None = None) -> StockChange:
    """
    Atomically take quantity units of stock for a sale.

    Must run inside the caller's transaction; does not commit.
    Raises InsufficientStockError if fewer than quantity units remain.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock_quantity >= quantity)
        .values(
            stock_quantity=Product.stock_quantity - quantity,
            sales_count=Product.sales_count + quantity,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        available = db.session.query(Product.stock_quantity).filter(Product.id == product_id).scalar()
        raise InsufficientStockError(
            "Insufficient stock",
            {"product_id": product_id, "requested": quantity, "available": available},
        )

    product = _reload(product_id)
    new = product.stock_quantity
    previous = new + quantity
    _log(product, previous, new, OP_SALE, reason="Order placed", order_id=order_id)
    alert = _evaluate_alerts(product, previous, new)
    return StockChange(product, previous, new, alert)


def restore_stock(product_id: int, quantity: int, order_id: int | None = None) -> StockChange:
    """
    Atomically give back quantity units (order cancellation).

    Must run inside the caller's transaction; does not commit.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(
            stock_quantity=Product.stock_quantity + quantity,
            sales_count=case(
                (Product.sales_count >= quantity, Product.sales_count - quantity),
                else_=0,
            ),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("Product not found", {"product_id": product_id})

    product = _reload(product_id)
    new = product.stock_quantity
    previous = new - quantity
    _log(product, previous, new, OP_CANCEL, reason="Order cancelled", order_id=order_id)
    alert = _evaluate_alerts(product, previous, new)
    return StockChange(product, previous, new, alert)


def apply_stock_level(
    product: Product,
    new_quantity: int,
    operation: str,
    reason: str | None = None,
    actor: User | None = None,
) -> StockChange:
    """Set an already-locked product's stock; caller commits."""
    if new_quantity < 0:
        raise InsufficientStockError(
            "Stock cannot go below zero",
            {"product_id": product.id, "current": product.stock_quantity, "requested": new_quantity},
        )
    previous = product.stock_quantity
    product.stock_quantity = new_quantity
    _log(product, previous, new_quantity, operation, reason=reason, actor=actor)
    alert = _evaluate_alerts(product, previous, new_quantity)
    return StockChange(product, previous, new_quantity, alert)


def notify_stock_change(change: StockChange) -> None:
    if change.needs_low_stock_notice:
        notification_service.notify_low_stock(
            change.product.store.owner_user_id,
            change.product.name,
            change.new_quantity,
        )


def adjust_stock(
    product_id: int,
    quantity: int,
    operation: str,
    reason: str | None = None,
    actor: User | None = None,
) -> Product:
    """
    Manual stock update: set, add or subtract.

    Subtracting below zero is rejected with InsufficientStockError.
    """
    if operation not in MANUAL_OPERATIONS:
        raise InventoryError(
            f"Invalid operation: {operation}",
            {"valid_operations": list(MANUAL_OPERATIONS)},
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise InventoryError("quantity must be a non-negative integer", {"quantity": quantity})

    def _op():
        begin_write_transaction()
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found", {"product_id": product_id})
        ensure_can_manage_store(product.store, actor)

        if operation == OP_SET:
            new_quantity = quantity
        elif operation == OP_ADD:
            new_quantity = product.stock_quantity + quantity
        else:
            new_quantity = product.stock_quantity - quantity

        change = apply_stock_level(product, new_quantity, operation, reason or "Manual update", actor)
        db.session.commit()
        return change

    change = run_with_retry(_op)
    notify_stock_change(change)
    return change.product


def bulk_adjust_stock(updates: list, actor: User | None = None) -> dict:
    """
    Apply many adjustments independently.

    One failing update does not stop the rest.
    """
    success = 0
    failed = 0
    errors = []

    for update_item in updates or []:
        product_id = update_item.get("product_id") if isinstance(update_item, dict) else None
        try:
            if product_id is None:
                raise InventoryError("product_id is required")
            adjust_stock(
                product_id,
                update_item.get("quantity"),
                update_item.get("operation"),
                reason=update_item.get("reason"),
                actor=actor,
            )
            success += 1
        except ServiceError as exc:
            failed += 1
            errors.append({"product_id": product_id, "error": str(exc)})

    return {"success": success, "failed": failed, "errors": errors}


def get_stock_levels(store_id: int) -> list[dict]:
    products = (
        db.session.query(Product)
        .filter(Product.store_id == store_id, Product.is_active.is_(True))
        .order_by(Product.name.asc())
        .all()
    )
    levels = []
    for product in products:
        threshold = effective_threshold(product)
        stock = product.stock_quantity
        levels.append({
            "product_id": product.id,
            "name": product.name,
            "sku": product.sku,
            "current_stock": stock,
            "low_stock_threshold": threshold,
            "is_low_stock": 0 < stock <= threshold,
            "is_out_of_stock": stock == 0,
        })
    return levels


def list_alerts(store_id: int, include_resolved: bool = False) -> list[InventoryAlert]:
    query = db.session.query(InventoryAlert).filter_by(store_id=store_id)
    if not include_resolved:
        query = query.filter(InventoryAlert.is_resolved.is_(False))
    return query.order_by(InventoryAlert.created_at.desc(), InventoryAlert.id.desc()).all()


def resolve_alert(alert_id: int, actor: User | None = None) -> InventoryAlert:
    alert = db.session.get(InventoryAlert, alert_id)
    if not alert:
        raise NotFoundError("Inventory alert not found", {"alert_id": alert_id})
    ensure_can_manage_store(alert.product.store, actor)
    if not alert.is_resolved:
        alert.is_resolved = True
        alert.resolved_at = utcnow()
        db.session.commit()
    return alert


def get_inventory_history(product_id: int, limit: int = 50) -> list[InventoryLog]:
    return (
        db.session.query(InventoryLog)
        .filter_by(product_id=product_id)
        .order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
        .limit(limit)
        .all()
    )
