# Overview: Service-layer operations for dropshipping; provider webhooks, product import, stock sync and fulfillment records.

"""
Dropshipping Service

Provider payloads are supplied by the caller (admin import) or by the
provider itself (webhooks); no outbound provider API calls are made here.

WEBHOOK SECURITY: every webhook body must be signed with
HMAC-SHA256(DROPSHIP_WEBHOOK_SECRET, raw_body), hex encoded, in the
X-Webhook-Signature header. See verify_webhook_signature().

Every import, sync and webhook appends a DropshippingSyncLog row.
"""

from __future__ import annotations

import hashlib
import hmac

from flask import current_app

from ..errors import ConflictError, ServiceError
from ..extensions import db
from ..models import (
    DropshippingOrder,
    DropshippingProduct,
    DropshippingSyncLog,
    Order,
    OrderLine,
    Product,
    User,
)
from ..models.dropshipping import (
    DS_ORDER_STATUS_SENT,
    DS_ORDER_STATUSES,
    PROVIDER_LINE_STATUSES,
    SYNC_OP_INVENTORY_SYNC,
    SYNC_OP_ORDER_FULFILLMENT,
    SYNC_OP_PRODUCT_IMPORT,
    SYNC_OP_WEBHOOK_RECEIVED,
    SYNC_STATUS_ERROR,
    SYNC_STATUS_PARTIAL,
    SYNC_STATUS_SUCCESS,
)
from ..models.orders import LINE_STATUS_DELIVERED, ORDER_STATUS_CANCELLED
from samoku.money import dollars_to_cents
from samoku.services import inventory_service, order_service
from samoku.services.catalog_service import create_product, ensure_can_manage_store, get_store
from samoku.services.concurrency import begin_write_transaction, lock_for_update, run_with_retry
from samoku.time_utils import utcnow

WEBHOOK_ORDER_STATUS_CHANGED = "order.status_changed"
WEBHOOK_PRODUCT_STOCK_CHANGED = "product.stock_changed"
WEBHOOK_PRODUCT_UPDATED = "product.updated"

DEFAULT_SHIPPING_TIMES = {
    "printful": "7-14 business days",
    "spocket": "5-10 business days",
}


class DropshippingError(ServiceError):
    pass


class DropshippingNotFoundError(DropshippingError):
    status_code = 404


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
    """
    Constant-time check of a hex HMAC-SHA256 signature.

    Accepts an optional "sha256=" prefix on the header value.
    """
    if not secret or not signature:
        return False
    provided = signature.strip().lower()
    if provided.startswith("sha256="):
        provided = provided[len("sha256="):]
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, provided)


def _outcome(failed: int, total: int) -> str:
    if failed == 0:
        return SYNC_STATUS_SUCCESS
    if failed < total:
        return SYNC_STATUS_PARTIAL
    return SYNC_STATUS_ERROR


def _sync_log(
    operation_type: str,
    provider: str | None,
    status: str,
    processed: int,
    updated: int,
    failed: int,
    errors: list | None = None,
) -> DropshippingSyncLog:
    entry = DropshippingSyncLog(
        operation_type=operation_type,
        provider=provider,
        status=status,
        products_processed=processed,
        products_updated=updated,
        products_failed=failed,
        error_details={"errors": errors} if errors else None,
        completed_at=utcnow(),
    )
    db.session.add(entry)
    return entry


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

def _require(data: dict, key: str):
    value = data.get(key)
    if value is None or value == "":
        raise DropshippingError(f"Webhook data is missing {key}")
    return value


def _handle_order_status_changed(data: dict) -> tuple[str, DropshippingOrder]:
    external_order_id = str(_require(data, "external_order_id"))
    status = str(_require(data, "status")).strip().lower()
    if status not in DS_ORDER_STATUSES:
        raise DropshippingError(f"Unknown provider order status: {status}")

    mirror = lock_for_update(
        db.session.query(DropshippingOrder).filter_by(external_order_id=external_order_id)
    ).first()
    if not mirror:
        raise DropshippingNotFoundError(
            "Unknown external order", {"external_order_id": external_order_id}
        )

    mirror.status = status
    if data.get("tracking_number"):
        mirror.tracking_number = str(data["tracking_number"])
    if data.get("tracking_url"):
        mirror.tracking_url = str(data["tracking_url"])
    return mirror.provider, mirror


def _mirrors_for(external_id) -> list[DropshippingProduct]:
    mirrors = lock_for_update(
        db.session.query(DropshippingProduct).filter_by(external_id=str(external_id))
    ).all()
    if not mirrors:
        raise DropshippingNotFoundError("Unknown external product", {"product_id": external_id})
    return mirrors


def _handle_product_stock_changed(data: dict) -> str:
    stock_level = data.get("stock_level")
    if isinstance(stock_level, bool) or not isinstance(stock_level, int) or stock_level < 0:
        raise DropshippingError("stock_level must be a non-negative integer")

    mirrors = _mirrors_for(_require(data, "product_id"))
    now = utcnow()
    for mirror in mirrors:
        mirror.stock_level = stock_level
        mirror.last_synced = now
    return mirrors[0].provider


def _handle_product_updated(data: dict) -> str:
    mirrors = _mirrors_for(_require(data, "product_id"))
    price_cents = None
    if data.get("price"):
        try:
            price_cents = dollars_to_cents(data["price"])
        except ValueError as exc:
            raise DropshippingError(str(exc))

    now = utcnow()
    for mirror in mirrors:
        if data.get("title"):
            mirror.title = str(data["title"])
        if data.get("description"):
            mirror.description = str(data["description"])
        if price_cents is not None:
            mirror.price_cents = price_cents
        if data.get("images"):
            mirror.images = list(data["images"])
        mirror.last_synced = now
    return mirrors[0].provider


def _reconcile_linked_line(mirror: DropshippingOrder) -> tuple[OrderLine | None, str | None]:
    """
    Run the fulfillment reconciler for a mirror's order line, in the caller's
    transaction. Returns (line, changed_to); line is None when nothing applies.
    """
    if not mirror.order_line_id or mirror.status not in PROVIDER_LINE_STATUSES:
        return None, None

    line = lock_for_update(db.session.query(OrderLine).filter_by(id=mirror.order_line_id)).first()
    if not line:
        return None, None
    order = lock_for_update(db.session.query(Order).filter_by(id=line.order_id)).first()

    if order.status == ORDER_STATUS_CANCELLED or (
        line.fulfillment_status == LINE_STATUS_DELIVERED and mirror.status != LINE_STATUS_DELIVERED
    ):
        current_app.logger.warning(
            "Ignoring provider status %s for order line %s (%s)",
            mirror.status, line.id, line.fulfillment_status,
        )
        return line, None

    _, changed_to = order_service.apply_line_status(line, order, mirror.status, mirror.tracking_number)
    return line, changed_to


def handle_webhook(payload) -> dict:
    """
    Apply one provider callback to the local mirrors.

    order.status_changed on a mirror linked to an order line also runs the
    fulfillment reconciler for that line when the provider status is a
    fulfillment step (processing, shipped, delivered). Mirror, line, order and
    sync log commit together. Unknown types are logged and acknowledged.
    """
    if not isinstance(payload, dict):
        raise DropshippingError("Webhook payload must be an object")
    webhook_type = payload.get("type")
    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise DropshippingError("Webhook data must be an object")

    def _op():
        begin_write_transaction()
        handled = True
        line = None
        changed_to = None
        provider = None

        if webhook_type == WEBHOOK_ORDER_STATUS_CHANGED:
            provider, mirror = _handle_order_status_changed(data)
            line, changed_to = _reconcile_linked_line(mirror)
        elif webhook_type == WEBHOOK_PRODUCT_STOCK_CHANGED:
            provider = _handle_product_stock_changed(data)
        elif webhook_type == WEBHOOK_PRODUCT_UPDATED:
            provider = _handle_product_updated(data)
        else:
            handled = False
            current_app.logger.warning("Unhandled webhook type: %s", webhook_type)

        _sync_log(SYNC_OP_WEBHOOK_RECEIVED, provider, SYNC_STATUS_SUCCESS, 1, 1 if handled else 0, 0)
        db.session.commit()
        return handled, line, changed_to

    handled, line, changed_to = run_with_retry(_op)

    line_status = None
    if line is not None:
        order_service.notify_order_change(line, changed_to)
        line_status = line.fulfillment_status

    return {"type": webhook_type, "handled": handled, "order_line_status": line_status}


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def _printful_item(item: dict) -> dict:
    category = item.get("category")
    return {
        "external_id": item.get("id"),
        "title": item.get("name"),
        "description": item.get("description") or "",
        "price": item.get("price") or 0,
        "sku": item.get("sku") or "",
        "category": (category or {}).get("name") if isinstance(category, dict) else (category or "general"),
        "tags": item.get("tags") or [],
        "images": [f.get("preview_url") for f in item.get("files") or [] if f.get("preview_url")],
        "stock_level": item.get("quantity") or 0,
        "shipping_time": DEFAULT_SHIPPING_TIMES["printful"],
    }


def _spocket_item(item: dict) -> dict:
    return {
        "external_id": item.get("id"),
        "title": item.get("name"),
        "description": item.get("description") or "",
        "price": item.get("price") or 0,
        "sku": item.get("sku") or "",
        "category": item.get("category") or "general",
        "tags": item.get("tags") or [],
        "images": item.get("images") or [],
        "stock_level": item.get("inventory") or 0,
        "shipping_time": item.get("shipping_time") or DEFAULT_SHIPPING_TIMES["spocket"],
    }


def _generic_item(item: dict) -> dict:
    return {
        "external_id": item.get("id"),
        "title": item.get("title") or item.get("name"),
        "description": item.get("description") or "",
        "price": item.get("price") or 0,
        "sku": item.get("sku") or "",
        "category": item.get("category") or "general",
        "tags": item.get("tags") or [],
        "images": item.get("images") or [],
        "stock_level": item.get("stock_level") or 0,
        "shipping_time": item.get("shipping_time"),
    }


def normalize_provider_products(provider: str, payload) -> list[dict]:
    """
    Provider response -> list of uniform product dicts.

    printful: {"result": [...]}, spocket: {"products": [...]}, anything
    else: a list or {"products": [...]} already in the uniform shape.
    """
    mappers = {"printful": ("result", _printful_item), "spocket": ("products", _spocket_item)}
    key, mapper = mappers.get(provider, ("products", _generic_item))
    items = payload.get(key) if isinstance(payload, dict) else payload

    if not isinstance(items, list):
        raise DropshippingError("products must be a list")

    normalized = []
    for item in items:
        if not isinstance(item, dict):
            raise DropshippingError("each product must be an object")
        entry = mapper(item)
        entry["api_data"] = item
        normalized.append(entry)
    return normalized


def _validated(entry: dict, provider: str) -> dict:
    if entry["external_id"] in (None, ""):
        raise DropshippingError("product id is required")
    if not entry["title"]:
        raise DropshippingError("product title is required")
    try:
        price_cents = dollars_to_cents(entry["price"])
    except ValueError as exc:
        raise DropshippingError(str(exc))
    stock = entry["stock_level"]
    if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
        raise DropshippingError("stock_level must be a non-negative integer")

    external_id = str(entry["external_id"])
    return {
        **entry,
        "external_id": external_id,
        "price_cents": price_cents,
        "sku": entry["sku"] or f"{provider}-{external_id}",
    }


def import_products(store_id: int, provider: str, products, actor: User | None = None) -> dict:
    """
    Create mirrors plus local dropshipped products for a store.

    Products already mirrored for (provider, external_id) are skipped.
    Invalid products are reported individually; the rest still import.
    """
    provider = (provider or "").strip().lower()
    if not provider:
        raise DropshippingError("provider is required")
    store = get_store(store_id)
    ensure_can_manage_store(store, actor)
    normalized = normalize_provider_products(provider, products)

    def _op():
        begin_write_transaction()
        imported = []
        skipped = 0
        errors = []

        for entry in normalized:
            try:
                clean = _validated(entry, provider)
                existing = db.session.query(DropshippingProduct).filter_by(
                    provider=provider, external_id=clean["external_id"]
                ).first()
                if existing:
                    skipped += 1
                    continue

                product = create_product(
                    store.id,
                    sku=clean["sku"],
                    name=clean["title"],
                    price_cents=clean["price_cents"],
                    stock_quantity=clean["stock_level"],
                    description=clean["description"],
                    category=clean["category"],
                    images=[i for i in clean["images"] if isinstance(i, str)],
                    is_dropshipped=True,
                    external_id=clean["external_id"],
                    provider=provider,
                    actor=actor,
                    commit=False,
                )
                mirror = DropshippingProduct(
                    external_id=clean["external_id"],
                    provider=provider,
                    title=clean["title"],
                    description=clean["description"],
                    price_cents=clean["price_cents"],
                    sku=clean["sku"],
                    category=clean["category"],
                    tags=list(clean["tags"]),
                    images=list(product.images),
                    stock_level=clean["stock_level"],
                    shipping_time=clean["shipping_time"],
                    api_data=clean["api_data"],
                    product_id=product.id,
                    is_active=True,
                    last_synced=utcnow(),
                )
                db.session.add(mirror)
                db.session.flush()
                imported.append(mirror)
            except ServiceError as exc:
                errors.append({"product": entry.get("external_id"), "error": str(exc)})

        _sync_log(
            SYNC_OP_PRODUCT_IMPORT,
            provider,
            _outcome(len(errors), len(normalized)),
            len(normalized),
            len(imported),
            len(errors),
            errors,
        )
        db.session.commit()
        return imported, skipped, errors

    imported, skipped, errors = run_with_retry(_op)
    return {
        "imported": len(imported),
        "skipped": skipped,
        "total": len(normalized),
        "errors": errors,
        "products": [m.to_dict() for m in imported],
    }


# ---------------------------------------------------------------------------
# Inventory sync
# ---------------------------------------------------------------------------

def _linked_product(mirror: DropshippingProduct) -> Product | None:
    if mirror.product_id:
        return lock_for_update(db.session.query(Product).filter_by(id=mirror.product_id)).first()
    product = lock_for_update(
        db.session.query(Product).filter_by(
            provider=mirror.provider, external_id=mirror.external_id, is_dropshipped=True
        )
    ).first()
    if product:
        mirror.product_id = product.id
    return product


def sync_inventory() -> dict:
    """Copy mirror stock levels onto their linked local products."""
    def _op():
        begin_write_transaction()
        mirrors = (
            db.session.query(DropshippingProduct)
            .filter(DropshippingProduct.is_active.is_(True))
            .order_by(DropshippingProduct.id.asc())
            .all()
        )
        updated = 0
        errors = []
        changes = []
        now = utcnow()

        for mirror in mirrors:
            product = _linked_product(mirror)
            if product is None:
                errors.append({"product": mirror.external_id, "error": "No linked product"})
                continue
            if product.stock_quantity != mirror.stock_level:
                changes.append(inventory_service.apply_stock_level(
                    product,
                    mirror.stock_level,
                    inventory_service.OP_SYNC,
                    reason="Dropshipping sync",
                ))
            mirror.last_synced = now
            updated += 1

        providers = sorted({m.provider for m in mirrors})
        _sync_log(
            SYNC_OP_INVENTORY_SYNC,
            providers[0] if len(providers) == 1 else None,
            _outcome(len(errors), len(mirrors)),
            len(mirrors),
            updated,
            len(errors),
            errors,
        )
        db.session.commit()
        return len(mirrors), updated, errors, changes

    processed, updated, errors, changes = run_with_retry(_op)
    for change in changes:
        inventory_service.notify_stock_change(change)
    return {"processed": processed, "updated": updated, "failed": len(errors), "errors": errors}


# ---------------------------------------------------------------------------
# Fulfillment
# ---------------------------------------------------------------------------

def record_fulfillment(
    order_line_id: int,
    external_order_id: str,
    tracking_number: str | None = None,
    provider: str | None = None,
    actor: User | None = None,
) -> DropshippingOrder:
    """Record the provider-side order created for a dropshipped line."""
    external_order_id = (str(external_order_id) if external_order_id is not None else "").strip()
    if not external_order_id:
        raise DropshippingError("external_order_id is required")

    def _op():
        begin_write_transaction()
        line = lock_for_update(db.session.query(OrderLine).filter_by(id=order_line_id)).first()
        if not line:
            raise DropshippingNotFoundError("Order line not found", {"order_line_id": order_line_id})
        ensure_can_manage_store(line.store, actor)
        if not line.is_dropshipped:
            raise DropshippingError("Order line is not dropshipped", {"order_line_id": order_line_id})

        existing = db.session.query(DropshippingOrder).filter_by(external_order_id=external_order_id).first()
        if existing:
            raise ConflictError("External order already recorded", {"external_order_id": external_order_id})

        product = line.product
        record = DropshippingOrder(
            order_id=line.order_id,
            order_line_id=line.id,
            external_order_id=external_order_id,
            provider=provider or (product.provider if product else None) or "unknown",
            product_external_id=product.external_id if product else None,
            quantity=line.quantity,
            status=DS_ORDER_STATUS_SENT,
            tracking_number=tracking_number,
        )
        db.session.add(record)
        if tracking_number and not line.tracking_number:
            line.tracking_number = tracking_number

        _sync_log(SYNC_OP_ORDER_FULFILLMENT, record.provider, SYNC_STATUS_SUCCESS, 1, 1, 0)
        db.session.commit()
        return record

    return run_with_retry(_op)


def list_fulfillments(order_id: int | None = None) -> list[DropshippingOrder]:
    query = db.session.query(DropshippingOrder)
    if order_id is not None:
        query = query.filter_by(order_id=order_id)
    return query.order_by(DropshippingOrder.id.desc()).all()


def list_sync_logs(limit: int = 50) -> list[DropshippingSyncLog]:
    return (
        db.session.query(DropshippingSyncLog)
        .order_by(DropshippingSyncLog.id.desc())
        .limit(limit)
        .all()
    )
