"""
Per-line fulfillment and order status reconciliation.
"""

import pytest

from conftest import ADDRESS
from samoku.errors import UnauthorizedResponseError
from samoku.models import CommissionTransaction, Notification
from samoku.services import order_service
from samoku.services.order_service import OrderError


@pytest.fixture
def order(db_session, customer, product_a, product_b):
    return order_service.place_order(
        customer.id,
        [{"product_id": product_a.id, "quantity": 2}, {"product_id": product_b.id, "quantity": 1}],
        ADDRESS,
    )


def _lines(order, product_a, product_b):
    by_product = {line.product_id: line for line in order.lines}
    return by_product[product_a.id], by_product[product_b.id]


def _customer_notes(db_session, customer):
    return (
        db_session.query(Notification)
        .filter_by(user_id=customer.id)
        .order_by(Notification.id.asc())
        .all()
    )


class TestUpdateLineStatus:

    def test_full_lifecycle(self, db_session, order, customer, vendor_a, vendor_b, product_a, product_b):
        line_a, line_b = _lines(order, product_a, product_b)

        order_service.update_line_status(line_a.id, "processing", actor=vendor_a)
        assert order.status == "processing"

        order_service.update_line_status(line_a.id, "shipped", tracking_number="1Z999", actor=vendor_a)
        assert order.status == "shipped"
        assert order.shipped_at is not None
        assert line_a.tracking_number == "1Z999"

        order_service.update_line_status(line_a.id, "delivered", actor=vendor_a)
        order_service.update_line_status(line_b.id, "shipped", actor=vendor_b)
        assert order.status == "shipped"

        order_service.update_line_status(line_b.id, "delivered", actor=vendor_b)
        assert order.status == "delivered"
        assert order.delivered_at is not None

    def test_customer_notified_only_on_order_status_change(self, db_session, order, customer, vendor_a, vendor_b, product_a, product_b):
        line_a, line_b = _lines(order, product_a, product_b)

        order_service.update_line_status(line_a.id, "shipped", tracking_number="1Z999", actor=vendor_a)
        order_service.update_line_status(line_b.id, "shipped", actor=vendor_b)
        order_service.update_line_status(line_a.id, "delivered", actor=vendor_a)

        notes = _customer_notes(db_session, customer)
        assert len(notes) == 1
        assert notes[0].title == f"Order {order.order_number} Update"
        assert notes[0].message == "Your order has shipped! Tracking number: 1Z999"

    def test_shipped_at_set_once(self, db_session, order, vendor_a, vendor_b, product_a, product_b):
        line_a, line_b = _lines(order, product_a, product_b)

        order_service.update_line_status(line_a.id, "shipped", actor=vendor_a)
        first_shipped_at = order.shipped_at
        order_service.update_line_status(line_b.id, "shipped", actor=vendor_b)

        assert order.shipped_at == first_shipped_at

    def test_delivery_marks_commission_paid(self, db_session, order, vendor_a, product_a, product_b):
        line_a, line_b = _lines(order, product_a, product_b)
        order_service.update_line_status(line_a.id, "delivered", actor=vendor_a)

        statuses = {
            c.order_line_id: c.status
            for c in db_session.query(CommissionTransaction).filter_by(order_id=order.id)
        }
        assert statuses == {line_a.id: "paid", line_b.id: "pending"}

    def test_redelivering_is_a_noop(self, db_session, order, customer, vendor_a, vendor_b, product_a, product_b):
        line_a, line_b = _lines(order, product_a, product_b)
        order_service.update_line_status(line_a.id, "delivered", actor=vendor_a)
        order_service.update_line_status(line_b.id, "delivered", actor=vendor_b)
        delivered_at = order.delivered_at
        before = len(_customer_notes(db_session, customer))

        order_service.update_line_status(line_b.id, "delivered", actor=vendor_b)

        assert order.status == "delivered"
        assert order.delivered_at == delivered_at
        assert len(_customer_notes(db_session, customer)) == before

    def test_delivered_line_cannot_regress(self, db_session, order, vendor_a, product_a, product_b):
        line_a, _ = _lines(order, product_a, product_b)
        order_service.update_line_status(line_a.id, "delivered", actor=vendor_a)

        with pytest.raises(OrderError):
            order_service.update_line_status(line_a.id, "shipped", actor=vendor_a)

    def test_invalid_status(self, db_session, order, vendor_a, product_a, product_b):
        line_a, _ = _lines(order, product_a, product_b)
        with pytest.raises(OrderError):
            order_service.update_line_status(line_a.id, "lost", actor=vendor_a)

    def test_vendor_cannot_update_other_vendors_line(self, db_session, order, vendor_b, product_a, product_b):
        line_a, _ = _lines(order, product_a, product_b)
        with pytest.raises(UnauthorizedResponseError):
            order_service.update_line_status(line_a.id, "shipped", actor=vendor_b)

    def test_admin_can_update_any_line(self, db_session, order, admin, product_a, product_b):
        line_a, _ = _lines(order, product_a, product_b)
        line = order_service.update_line_status(line_a.id, "processing", actor=admin)
        assert line.fulfillment_status == "processing"


class TestVendorOrders:

    def test_vendor_sees_only_own_lines_with_shipping_share(self, db_session, order, vendor_a, store_a, product_a, product_b):
        groups = order_service.get_vendor_orders(store_a.id, actor=vendor_a)

        assert len(groups) == 1
        group = groups[0]
        assert group["order_number"] == order.order_number
        assert [item["product_id"] for item in group["items"]] == [product_a.id]
        assert group["subtotal_cents"] == 3000
        assert group["shipping_cents"] == 999
        assert group["total_cents"] == 3999

    def test_other_vendor_is_refused(self, db_session, order, vendor_b, store_a):
        with pytest.raises(UnauthorizedResponseError):
            order_service.get_vendor_orders(store_a.id, actor=vendor_b)

    def test_order_visibility(self, db_session, order, customer, vendor_a, make_user):
        assert order_service.get_order(order.id, actor=customer).id == order.id
        assert order_service.get_order(order.id, actor=vendor_a).id == order.id

        stranger = make_user("stranger@samoku.test")
        with pytest.raises(UnauthorizedResponseError):
            order_service.get_order(order.id, actor=stranger)
