"""
Commission ledger and payout workflow tests.

Verifies:
- Payout amount is the server-side sum of pending net amounts
- Claimed commissions move pending -> processing -> paid / back to pending
- Commissions created after a claim are not swept into it
"""

import pytest

from conftest import ADDRESS
from samoku.errors import UnauthorizedResponseError
from samoku.models import CommissionTransaction, Notification
from samoku.services import commission_service, order_service
from samoku.services.commission_service import NoPendingCommissionsError, PayoutError
from samoku.services.order_service import OrderError

BANK = {
    "account_name": "Alpha Outfitters LLC",
    "bank_name": "First Bank",
    "account_number": "000123456789",
    "routing_number": "110000000",
}


@pytest.fixture
def earning_store(db_session, customer, store_a, make_product):
    """
    Store A (5%) with two pending commissions whose nets sum to $123.45.

    $100.00 -> 500 commission, 9500 net
    $29.95  -> 150 commission (149.75 rounded), 2845 net
    """
    big = make_product(store_a, "A-BIG", 10000)
    small = make_product(store_a, "A-SMALL", 2995)
    order_service.place_order(customer.id, [{"product_id": big.id, "quantity": 1}], ADDRESS)
    order_service.place_order(customer.id, [{"product_id": small.id, "quantity": 1}], ADDRESS)
    return store_a


def _commissions(db_session, store):
    return db_session.query(CommissionTransaction).filter_by(store_id=store.id).all()


class TestRequestPayout:

    def test_amount_is_sum_of_pending_net(self, db_session, earning_store, vendor_a):
        payout = commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)

        assert payout.amount_cents == 12345
        assert payout.status == "pending"
        assert payout.requested_by_user_id == vendor_a.id
        for commission in _commissions(db_session, earning_store):
            assert commission.status == "processing"
            assert commission.payout_id == payout.id

    def test_client_amount_is_not_trusted(self, db_session, earning_store, vendor_a):
        payout = commission_service.request_payout(
            earning_store.id, BANK, requested_amount_cents=999999, actor=vendor_a
        )
        assert payout.amount_cents == 12345

    def test_vendor_notified(self, db_session, earning_store, vendor_a):
        commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)

        note = (
            db_session.query(Notification)
            .filter_by(user_id=vendor_a.id, title="Payout Request Submitted")
            .one()
        )
        assert "$123.45" in note.message

    def test_bank_details_are_masked_in_output(self, db_session, earning_store, vendor_a):
        payout = commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)
        assert payout.to_dict()["bank_details"]["account_number"] == "****6789"

    def test_nothing_pending(self, db_session, earning_store, vendor_a):
        commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)

        with pytest.raises(NoPendingCommissionsError) as exc_info:
            commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)
        assert exc_info.value.status_code == 409

    def test_later_sales_are_not_swept_in(self, db_session, earning_store, vendor_a, customer, product_a):
        payout = commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)
        order_service.place_order(customer.id, [{"product_id": product_a.id, "quantity": 1}], ADDRESS)

        assert payout.amount_cents == 12345
        pending = commission_service.get_store_commissions(earning_store.id, "pending")
        assert [c.sale_amount_cents for c in pending] == [1500]

    def test_missing_bank_details(self, db_session, earning_store, vendor_a):
        with pytest.raises(PayoutError):
            commission_service.request_payout(earning_store.id, {"bank_name": "First Bank"}, actor=vendor_a)

    def test_other_vendor_refused(self, db_session, earning_store, vendor_b):
        with pytest.raises(UnauthorizedResponseError):
            commission_service.request_payout(earning_store.id, BANK, actor=vendor_b)


class TestSettlePayout:

    def test_complete(self, db_session, earning_store, vendor_a, admin):
        payout = commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)

        settled = commission_service.complete_payout(payout.id, admin=admin, notes="Sent via ACH")

        assert settled.status == "paid"
        assert settled.processed_by_user_id == admin.id
        assert settled.admin_notes == "Sent via ACH"
        assert {c.status for c in _commissions(db_session, earning_store)} == {"paid"}

    def test_fail_releases_commissions(self, db_session, earning_store, vendor_a, admin):
        payout = commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)

        failed = commission_service.fail_payout(payout.id, admin=admin, reason="Invalid routing number")

        assert failed.status == "failed"
        for commission in _commissions(db_session, earning_store):
            assert commission.status == "pending"
            assert commission.payout_id is None

        retry = commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)
        assert retry.amount_cents == 12345

        note = (
            db_session.query(Notification)
            .filter_by(user_id=vendor_a.id, title="Payout Failed")
            .one()
        )
        assert "Invalid routing number" in note.message

    def test_cannot_settle_twice(self, db_session, earning_store, vendor_a, admin):
        payout = commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)
        commission_service.complete_payout(payout.id, admin=admin)

        with pytest.raises(PayoutError):
            commission_service.fail_payout(payout.id, admin=admin)

    def test_claimed_order_cannot_be_cancelled(self, db_session, earning_store, vendor_a, customer):
        payout = commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)
        order_id = _commissions(db_session, earning_store)[0].order_id

        with pytest.raises(OrderError):
            order_service.cancel_order(order_id, actor=customer)
        assert payout.amount_cents == 12345


class TestCommissionStats:

    def test_stats_track_lifecycle(self, db_session, earning_store, vendor_a, admin):
        stats = commission_service.get_commission_stats(earning_store.id)
        assert stats["total_earnings_cents"] == 12345
        assert stats["pending_cents"] == 12345
        assert stats["this_month_earnings_cents"] == 12345
        assert stats["transaction_count"] == 2
        assert stats["average_sale_cents"] == 6498   # (10000 + 2995) / 2 rounded half up
        assert stats["commission_rate"] == 5.0

        payout = commission_service.request_payout(earning_store.id, BANK, actor=vendor_a)
        stats = commission_service.get_commission_stats(earning_store.id)
        assert stats["pending_cents"] == 0
        assert stats["processing_cents"] == 12345

        commission_service.complete_payout(payout.id, admin=admin)
        stats = commission_service.get_commission_stats(earning_store.id)
        assert stats["paid_cents"] == 12345

    def test_cancelled_sales_are_excluded(self, db_session, customer, store_a, product_a):
        order = order_service.place_order(customer.id, [{"product_id": product_a.id, "quantity": 1}], ADDRESS)
        order_service.cancel_order(order.id, actor=customer)

        stats = commission_service.get_commission_stats(store_a.id)
        assert stats["total_earnings_cents"] == 0
        assert stats["transaction_count"] == 0

    def test_unknown_status_filter(self, db_session, store_a):
        with pytest.raises(PayoutError):
            commission_service.get_store_commissions(store_a.id, "bogus")
