"""
Wishlist tests.

Verifies:
- One entry per (user, product); re-adding is a no-op
- Unavailable products cannot be saved
- Count, membership, removal and clearing are per user
"""

import pytest

from samoku.errors import NotFoundError
from samoku.models import WishlistItem
from samoku.services import catalog_service, wishlist_service


class TestWishlist:

    def test_add_and_list(self, db_session, customer, product_a, product_b):
        wishlist_service.add_to_wishlist(customer.id, product_a.id)
        wishlist_service.add_to_wishlist(customer.id, product_b.id)

        items = wishlist_service.get_wishlist(customer.id)
        assert {item.product_id for item in items} == {product_a.id, product_b.id}
        assert wishlist_service.wishlist_count(customer.id) == 2

        payload = items[0].to_dict()
        assert payload["product"]["store_name"] in ("Alpha Outfitters", "Beta Home")

    def test_add_twice_keeps_one_entry(self, db_session, customer, product_a):
        first = wishlist_service.add_to_wishlist(customer.id, product_a.id)
        second = wishlist_service.add_to_wishlist(customer.id, product_a.id)

        assert first.id == second.id
        assert db_session.query(WishlistItem).count() == 1

    def test_unknown_product(self, db_session, customer):
        with pytest.raises(NotFoundError):
            wishlist_service.add_to_wishlist(customer.id, 9999)

    def test_inactive_product(self, db_session, customer, vendor_a, product_a):
        catalog_service.update_product(product_a.id, {"is_active": False}, actor=vendor_a)

        with pytest.raises(NotFoundError):
            wishlist_service.add_to_wishlist(customer.id, product_a.id)

    def test_membership_and_remove(self, db_session, customer, product_a):
        assert wishlist_service.is_in_wishlist(customer.id, product_a.id) is False
        wishlist_service.add_to_wishlist(customer.id, product_a.id)
        assert wishlist_service.is_in_wishlist(customer.id, product_a.id) is True

        assert wishlist_service.remove_from_wishlist(customer.id, product_a.id) is True
        assert wishlist_service.remove_from_wishlist(customer.id, product_a.id) is False
        assert wishlist_service.is_in_wishlist(customer.id, product_a.id) is False

    def test_clear_only_touches_own_list(self, db_session, customer, make_user, product_a, product_b):
        other = make_user("other@samoku.test")
        wishlist_service.add_to_wishlist(customer.id, product_a.id)
        wishlist_service.add_to_wishlist(customer.id, product_b.id)
        wishlist_service.add_to_wishlist(other.id, product_a.id)

        assert wishlist_service.clear_wishlist(customer.id) == 2
        assert wishlist_service.wishlist_count(customer.id) == 0
        assert wishlist_service.wishlist_count(other.id) == 1
