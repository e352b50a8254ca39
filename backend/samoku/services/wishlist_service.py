# Overview: Service-layer operations for shopper wishlists.

"""
Wishlist

Saved products per user. Adding a product that is already saved returns
the existing entry. Inactive products can be removed but not added.
"""

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import Product, WishlistItem


def get_wishlist(user_id: int) -> list[WishlistItem]:
    return (
        db.session.query(WishlistItem)
        .filter_by(user_id=user_id)
        .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
        .all()
    )


def add_to_wishlist(user_id: int, product_id: int) -> WishlistItem:
    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        raise NotFoundError("Product not available", {"product_id": product_id})

    item = db.session.query(WishlistItem).filter_by(user_id=user_id, product_id=product_id).first()
    if item:
        return item

    item = WishlistItem(user_id=user_id, product_id=product_id)
    db.session.add(item)
    db.session.commit()
    return item


def remove_from_wishlist(user_id: int, product_id: int) -> bool:
    deleted = (
        db.session.query(WishlistItem)
        .filter_by(user_id=user_id, product_id=product_id)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted > 0


def is_in_wishlist(user_id: int, product_id: int) -> bool:
    return (
        db.session.query(WishlistItem.id)
        .filter_by(user_id=user_id, product_id=product_id)
        .first()
    ) is not None


def wishlist_count(user_id: int) -> int:
    return db.session.query(WishlistItem).filter_by(user_id=user_id).count()


def clear_wishlist(user_id: int) -> int:
    deleted = (
        db.session.query(WishlistItem)
        .filter_by(user_id=user_id)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
