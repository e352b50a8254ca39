"""
Inventory tests.

Verifies:
- Manual set/add/subtract with audit log
- Stock can never go negative (rejected, not clamped)
- Low-stock / out-of-stock / restock alerts on threshold crossings
"""

import pytest

from conftest import ADDRESS
from samoku.errors import UnauthorizedResponseError
from samoku.models import InventoryAlert, Notification
from samoku.services import inventory_service, order_service
from samoku.services.inventory_service import InsufficientStockError, InventoryError


@pytest.fixture
def widget(make_product, store_a):
    return make_product(store_a, "A-WIDGET", 1000, stock_quantity=10, name="Widget", low_stock_threshold=5)


def _alerts(db_session, product, **filters):
    return (
        db_session.query(InventoryAlert)
        .filter_by(product_id=product.id, **filters)
        .order_by(InventoryAlert.id.asc())
        .all()
    )


class TestAdjustStock:

    @pytest.mark.parametrize("operation,quantity,expected", [
        ("set", 42, 42),
        ("add", 5, 15),
        ("subtract", 4, 6),
        ("subtract", 10, 0),
    ])
    def test_operations(self, db_session, widget, vendor_a, operation, quantity, expected):
        product = inventory_service.adjust_stock(widget.id, quantity, operation, actor=vendor_a)
        assert product.stock_quantity == expected

    def test_every_change_is_logged(self, db_session, widget, vendor_a):
        inventory_service.adjust_stock(widget.id, 3, "add", reason="Supplier delivery", actor=vendor_a)
        inventory_service.adjust_stock(widget.id, 2, "subtract", actor=vendor_a)

        history = inventory_service.get_inventory_history(widget.id)
        assert [(h.previous_quantity, h.new_quantity, h.change_quantity) for h in history] == [
            (13, 11, -2),
            (10, 13, 3),
        ]
        assert history[1].reason == "Supplier delivery"
        assert history[1].changed_by_user_id == vendor_a.id

    def test_subtract_below_zero_is_rejected(self, db_session, widget, vendor_a):
        with pytest.raises(InsufficientStockError) as exc_info:
            inventory_service.adjust_stock(widget.id, 11, "subtract", actor=vendor_a)

        assert exc_info.value.status_code == 409
        assert db_session.get(type(widget), widget.id).stock_quantity == 10
        assert inventory_service.get_inventory_history(widget.id) == []

    @pytest.mark.parametrize("operation,quantity", [
        ("remove", 1),
        ("add", -1),
        ("add", 1.5),
    ])
    def test_invalid_input(self, db_session, widget, vendor_a, operation, quantity):
        with pytest.raises(InventoryError):
            inventory_service.adjust_stock(widget.id, quantity, operation, actor=vendor_a)

    def test_other_vendor_refused(self, db_session, widget, vendor_b):
        with pytest.raises(UnauthorizedResponseError):
            inventory_service.adjust_stock(widget.id, 1, "add", actor=vendor_b)

    def test_bulk_adjust_continues_past_failures(self, db_session, widget, make_product, store_a, vendor_a):
        other = make_product(store_a, "A-OTHER", 500, stock_quantity=1)

        result = inventory_service.bulk_adjust_stock([
            {"product_id": widget.id, "quantity": 2, "operation": "add"},
            {"product_id": other.id, "quantity": 5, "operation": "subtract"},
            {"quantity": 1, "operation": "add"},
            {"product_id": other.id, "quantity": 9, "operation": "set"},
        ], actor=vendor_a)

        assert result["success"] == 2
        assert result["failed"] == 2
        assert len(result["errors"]) == 2
        assert db_session.get(type(other), other.id).stock_quantity == 9


class TestAlerts:

    def test_low_then_out_then_restock(self, db_session, widget, vendor_a):
        inventory_service.adjust_stock(widget.id, 6, "subtract", actor=vendor_a)
        assert [a.alert_type for a in _alerts(db_session, widget)] == ["low_stock"]

        inventory_service.adjust_stock(widget.id, 4, "subtract", actor=vendor_a)
        assert [a.alert_type for a in _alerts(db_session, widget, is_resolved=False)] == [
            "low_stock",
            "out_of_stock",
        ]

        inventory_service.adjust_stock(widget.id, 20, "add", actor=vendor_a)
        open_alerts = _alerts(db_session, widget, is_resolved=False)
        assert [a.alert_type for a in open_alerts] == ["restock"]
        assert all(a.resolved_at is not None for a in _alerts(db_session, widget, is_resolved=True))

    def test_no_alert_while_staying_below_threshold(self, db_session, widget, vendor_a):
        inventory_service.adjust_stock(widget.id, 6, "subtract", actor=vendor_a)
        inventory_service.adjust_stock(widget.id, 1, "subtract", actor=vendor_a)
        assert len(_alerts(db_session, widget)) == 1

    def test_vendor_notified_on_low_stock(self, db_session, widget, vendor_a):
        inventory_service.adjust_stock(widget.id, 7, "subtract", actor=vendor_a)

        note = db_session.query(Notification).filter_by(user_id=vendor_a.id, title="Low Stock Alert").one()
        assert note.message == "Widget is running low on stock (3 remaining)"

    def test_sale_can_trigger_alert(self, db_session, widget, customer, vendor_a):
        order_service.place_order(customer.id, [{"product_id": widget.id, "quantity": 6}], ADDRESS)

        assert [a.alert_type for a in _alerts(db_session, widget)] == ["low_stock"]
        titles = {n.title for n in db_session.query(Notification).filter_by(user_id=vendor_a.id)}
        assert titles == {"New Order Received", "Low Stock Alert"}

    def test_config_threshold_applies_without_product_threshold(self, db_session, make_product, store_a, vendor_a):
        product = make_product(store_a, "A-DEFAULT", 100, stock_quantity=11)
        inventory_service.adjust_stock(product.id, 1, "subtract", actor=vendor_a)
        assert [a.alert_type for a in _alerts(db_session, product)] == ["low_stock"]

    def test_resolve_alert(self, db_session, widget, vendor_a):
        inventory_service.adjust_stock(widget.id, 6, "subtract", actor=vendor_a)
        alert = _alerts(db_session, widget)[0]

        resolved = inventory_service.resolve_alert(alert.id, actor=vendor_a)

        assert resolved.is_resolved
        assert inventory_service.list_alerts(widget.store_id) == []
        assert len(inventory_service.list_alerts(widget.store_id, include_resolved=True)) == 1


class TestStockLevels:

    def test_flags(self, db_session, store_a, make_product):
        make_product(store_a, "A-1", 100, stock_quantity=0, name="Empty")
        make_product(store_a, "A-2", 100, stock_quantity=3, name="Low", low_stock_threshold=5)
        make_product(store_a, "A-3", 100, stock_quantity=50, name="Plenty")

        levels = {row["name"]: row for row in inventory_service.get_stock_levels(store_a.id)}

        assert levels["Empty"]["is_out_of_stock"] and not levels["Empty"]["is_low_stock"]
        assert levels["Low"]["is_low_stock"]
        assert not levels["Plenty"]["is_low_stock"] and not levels["Plenty"]["is_out_of_stock"]
        assert levels["Plenty"]["low_stock_threshold"] == 10
