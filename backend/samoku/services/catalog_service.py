# Overview: Service-layer operations for stores and products; encapsulates business logic and database work.

from __future__ import annotations

from ..errors import ConflictError, NotFoundError, ServiceError, UnauthorizedResponseError
from ..extensions import db
from ..models import Product, Store, User
from ..models.auth import ROLE_ADMIN, ROLE_VENDOR
from samoku.money import validate_rate_bps
from samoku.services.concurrency import lock_for_update, run_with_retry
from samoku.services import notification_service
from samoku.validation import MAX_PRICE_CENTS

PRODUCT_UPDATABLE_FIELDS = {
    "name",
    "description",
    "category",
    "price_cents",
    "images",
    "low_stock_threshold",
    "is_active",
}


class CatalogError(ServiceError):
    """Raised when store or product operations fail."""
    pass


def ensure_can_manage_store(store: Store, actor: User | None) -> None:
    """
    Vendors may only manage stores they own; admins manage any store.

    actor=None means a trusted internal caller (CLI, provider sync).
    """
    if actor is None or actor.is_admin:
        return
    if store.owner_user_id != actor.id:
        raise UnauthorizedResponseError(
            "You do not have access to this store",
            {"store_id": store.id},
        )


def _clean_text(value, field: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise CatalogError(f"{field} must be a string", {"field": field})
    return value.strip()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

def create_store(owner: User, name: str, description: str | None = None) -> Store:
    def _op():
        if owner.role not in (ROLE_VENDOR, ROLE_ADMIN):
            raise UnauthorizedResponseError("Only vendors can open a store")

        clean_name = _clean_text(name, "name")
        if not clean_name:
            raise CatalogError("Store name is required")

        existing = db.session.query(Store).filter_by(name=clean_name).first()
        if existing:
            raise ConflictError("Store name already taken", {"name": clean_name})

        store = Store(
            owner_user_id=owner.id,
            name=clean_name,
            description=description,
            is_approved=False,
        )
        db.session.add(store)
        db.session.commit()
        return store

    return run_with_retry(_op)


def get_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFoundError("Store not found", {"store_id": store_id})
    return store


def list_stores(approved_only: bool = False) -> list[Store]:
    query = db.session.query(Store)
    if approved_only:
        query = query.filter(Store.is_approved.is_(True))
    return query.order_by(Store.name.asc()).all()


def approve_store(store_id: int, approved: bool = True) -> Store:
    """Approve (or un-approve) a store and tell its owner."""
    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFoundError("Store not found", {"store_id": store_id})
        store.is_approved = bool(approved)
        db.session.commit()
        return store

    store = run_with_retry(_op)
    notification_service.notify_store_approval(store.owner_user_id, store.name, store.is_approved)
    return store


def set_commission_rate(store_id: int, rate_bps: int) -> Store:
    """
    Change a store's commission rate for future sales.

    Existing commission transactions keep the rate they were written with.
    """
    try:
        validate_rate_bps(rate_bps)
    except ValueError as exc:
        raise CatalogError(str(exc), {"rate_bps": rate_bps})

    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise NotFoundError("Store not found", {"store_id": store_id})
        store.commission_rate_bps = rate_bps
        db.session.commit()
        return store

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def _check_price(price_cents) -> int:
    if isinstance(price_cents, bool) or not isinstance(price_cents, int):
        raise CatalogError("price_cents must be an integer")
    if price_cents < 0 or price_cents > MAX_PRICE_CENTS:
        raise CatalogError(f"price_cents must be between 0 and {MAX_PRICE_CENTS}")
    return price_cents


def _check_images(images) -> list:
    if images is None:
        return []
    if not isinstance(images, list) or not all(isinstance(i, str) for i in images):
        raise CatalogError("images must be a list of URLs")
    return images


def create_product(
    store_id: int,
    *,
    sku: str,
    name: str,
    price_cents: int,
    stock_quantity: int = 0,
    description: str | None = None,
    category: str | None = None,
    images: list | None = None,
    low_stock_threshold: int | None = None,
    is_dropshipped: bool = False,
    external_id: str | None = None,
    provider: str | None = None,
    actor: User | None = None,
    commit: bool = True,
) -> Product:
    store = get_store(store_id)
    ensure_can_manage_store(store, actor)

    clean_sku = _clean_text(sku, "sku")
    clean_name = _clean_text(name, "name")
    if not clean_sku or not clean_name:
        raise CatalogError("sku and name are required")
    if isinstance(stock_quantity, bool) or not isinstance(stock_quantity, int) or stock_quantity < 0:
        raise CatalogError("stock_quantity must be a non-negative integer")

    existing = db.session.query(Product).filter_by(store_id=store_id, sku=clean_sku).first()
    if existing:
        raise ConflictError("SKU already exists in this store", {"sku": clean_sku})

    product = Product(
        store_id=store_id,
        sku=clean_sku,
        name=clean_name,
        description=description,
        category=category,
        price_cents=_check_price(price_cents),
        stock_quantity=stock_quantity,
        sales_count=0,
        low_stock_threshold=low_stock_threshold,
        images=_check_images(images),
        is_active=True,
        is_dropshipped=is_dropshipped,
        external_id=external_id,
        provider=provider,
    )
    db.session.add(product)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return product


def update_product(product_id: int, patch: dict, actor: User | None = None) -> Product:
    """
    Patch catalog fields of a product.

    Stock is not editable here; use inventory_service.adjust_stock so every
    change is logged.
    """
    unknown = set(patch) - PRODUCT_UPDATABLE_FIELDS
    if unknown:
        raise CatalogError(f"Field not allowed: {', '.join(sorted(unknown))}")

    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError("Product not found", {"product_id": product_id})
        ensure_can_manage_store(product.store, actor)

        for key, value in patch.items():
            if key == "price_cents":
                value = _check_price(value)
            elif key == "images":
                value = _check_images(value)
            elif key == "name":
                value = _clean_text(value, "name")
                if not value:
                    raise CatalogError("name cannot be blank")
            elif key in ("description", "category") and value is not None:
                value = _clean_text(value, key)
            elif key == "low_stock_threshold" and value is not None:
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise CatalogError("low_stock_threshold must be a non-negative integer")
            elif key == "is_active":
                value = bool(value)
            setattr(product, key, value)

        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found", {"product_id": product_id})
    return product


def list_products(store_id: int | None = None, include_inactive: bool = False) -> list[Product]:
    """
    Storefront listing. Without a store_id only approved stores are shown.
    """
    query = db.session.query(Product).join(Store, Product.store_id == Store.id)
    if store_id is not None:
        query = query.filter(Product.store_id == store_id)
    else:
        query = query.filter(Store.is_approved.is_(True))
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()
