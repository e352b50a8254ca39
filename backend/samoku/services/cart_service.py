# Overview: Service-layer operations for the shopper cart.

"""
Cart Aggregator

The cart is a per-user list of (product, quantity). Prices are never
stored here; the catalog price at checkout time is authoritative.
Stock is only enforced at checkout.
"""

from __future__ import annotations

from ..errors import NotFoundError, ServiceError
from ..extensions import db
from ..models import CartItem, Product


class CartError(ServiceError):
    pass


def _check_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise CartError("quantity must be an integer")
    return quantity


def get_cart(user_id: int) -> list[CartItem]:
    return (
        db.session.query(CartItem)
        .filter_by(user_id=user_id)
        .order_by(CartItem.id.asc())
        .all()
    )


def add_to_cart(user_id: int, product_id: int, quantity: int = 1) -> CartItem:
    """Add quantity of a product, merging into an existing line."""
    quantity = _check_quantity(quantity)
    if quantity <= 0:
        raise CartError("quantity must be greater than zero")

    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        raise NotFoundError("Product not available", {"product_id": product_id})

    item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()
    if item:
        item.quantity += quantity
    else:
        item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
        db.session.add(item)

    db.session.commit()
    return item


def update_cart_item(user_id: int, product_id: int, quantity: int) -> CartItem | None:
    """Set a line's quantity; zero or less removes it (returns None)."""
    quantity = _check_quantity(quantity)

    item = db.session.query(CartItem).filter_by(user_id=user_id, product_id=product_id).first()
    if not item:
        raise NotFoundError("Item not in cart", {"product_id": product_id})

    if quantity <= 0:
        db.session.delete(item)
        db.session.commit()
        return None

    item.quantity = quantity
    db.session.commit()
    return item


def remove_from_cart(user_id: int, product_id: int) -> bool:
    deleted = (
        db.session.query(CartItem)
        .filter_by(user_id=user_id, product_id=product_id)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted > 0


def clear_cart(user_id: int, commit: bool = True) -> int:
    deleted = (
        db.session.query(CartItem)
        .filter_by(user_id=user_id)
        .delete(synchronize_session=False)
    )
    if commit:
        db.session.commit()
    return deleted


def cart_lines(user_id: int) -> list[dict]:
    """Cart contents as checkout input: [{product_id, quantity}, ...]."""
    return [
        {"product_id": item.product_id, "quantity": item.quantity}
        for item in get_cart(user_id)
    ]


def cart_summary(user_id: int) -> dict:
    items = get_cart(user_id)
    subtotal = 0
    total_items = 0
    for item in items:
        if item.product is not None:
            subtotal += item.product.price_cents * item.quantity
        total_items += item.quantity
    return {
        "items": [item.to_dict() for item in items],
        "total_items": total_items,
        "subtotal_cents": subtotal,
    }
