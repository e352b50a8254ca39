"""
Dropshipping tests.

Verifies:
- Webhook signatures (HMAC-SHA256 over the raw body)
- Provider import normalization, dedupe and per-item errors
- Mirror -> product stock sync
- Provider order status driving line fulfillment
"""

import hashlib
import hmac

import pytest

from conftest import ADDRESS, WEBHOOK_SECRET
from samoku.errors import ConflictError, UnauthorizedResponseError
from samoku.models import DropshippingProduct, DropshippingSyncLog, InventoryLog, Order, OrderLine, Product
from samoku.services import dropshipping_service, order_service
from samoku.services.dropshipping_service import DropshippingError, DropshippingNotFoundError
from samoku.services.concurrency import PersistenceError


GENERIC_CATALOG = {
    "products": [
        {"id": "ext-1", "title": "Canvas Tote", "price": "19.99", "stock_level": 12, "images": ["https://img/1.png"]},
        {"id": "ext-2", "title": "Enamel Mug", "price": 9.5, "stock_level": 4},
    ]
}


def _sign(body: bytes) -> str:
    return hmac.new(WEBHOOK_SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()


@pytest.fixture
def imported(db_session, store_a, vendor_a):
    dropshipping_service.import_products(store_a.id, "acme", GENERIC_CATALOG, actor=vendor_a)
    return {p.external_id: p for p in db_session.query(Product).filter_by(is_dropshipped=True)}


@pytest.fixture
def shipped_line(db_session, imported, customer, vendor_a):
    """A placed order for one dropshipped product, already sent to the provider."""
    tote = imported["ext-1"]
    order = order_service.place_order(customer.id, [{"product_id": tote.id, "quantity": 2}], ADDRESS)
    line = order.lines[0]
    dropshipping_service.record_fulfillment(line.id, "PO-1001", provider="acme", actor=vendor_a)
    return line


class TestSignature:

    def test_valid(self):
        body = b'{"type": "product.updated"}'
        assert dropshipping_service.verify_webhook_signature(body, _sign(body), WEBHOOK_SECRET)

    def test_prefixed(self):
        body = b'{}'
        assert dropshipping_service.verify_webhook_signature(body, "sha256=" + _sign(body), WEBHOOK_SECRET)

    @pytest.mark.parametrize("signature,secret", [
        (None, WEBHOOK_SECRET),
        ("deadbeef", WEBHOOK_SECRET),
        ("anything", None),
    ])
    def test_rejected(self, signature, secret):
        assert not dropshipping_service.verify_webhook_signature(b'{}', signature, secret)

    def test_body_tampering_detected(self):
        signature = _sign(b'{"stock_level": 1}')
        assert not dropshipping_service.verify_webhook_signature(b'{"stock_level": 100}', signature, WEBHOOK_SECRET)


class TestImport:

    def test_generic_import(self, db_session, store_a, imported):
        tote = imported["ext-1"]
        assert tote.store_id == store_a.id
        assert tote.price_cents == 1999
        assert tote.stock_quantity == 12
        assert tote.sku == "acme-ext-1"
        assert tote.provider == "acme"
        assert imported["ext-2"].price_cents == 950

        mirror = db_session.query(DropshippingProduct).filter_by(external_id="ext-1").one()
        assert mirror.product_id == tote.id
        assert mirror.api_data["title"] == "Canvas Tote"

    def test_reimport_skips_existing(self, db_session, store_a, vendor_a, imported):
        result = dropshipping_service.import_products(store_a.id, "acme", GENERIC_CATALOG, actor=vendor_a)

        assert result["imported"] == 0
        assert result["skipped"] == 2
        assert db_session.query(Product).filter_by(is_dropshipped=True).count() == 2

    def test_printful_shape(self, db_session, store_a):
        payload = {"result": [{
            "id": 77,
            "name": "Poster",
            "price": "12.00",
            "quantity": 3,
            "category": {"name": "Prints"},
            "files": [{"preview_url": "https://cdn/poster.png"}, {"type": "default"}],
        }]}

        result = dropshipping_service.import_products(store_a.id, "printful", payload)

        assert result["imported"] == 1
        product = result["products"][0]
        assert product["external_id"] == "77"
        assert product["category"] == "Prints"
        assert product["images"] == ["https://cdn/poster.png"]
        assert product["shipping_time"] == dropshipping_service.DEFAULT_SHIPPING_TIMES["printful"]

    def test_spocket_shape(self, db_session, store_a):
        payload = {"products": [{"id": "sp-9", "name": "Scarf", "price": 25, "inventory": 8}]}

        result = dropshipping_service.import_products(store_a.id, "spocket", payload)

        assert result["products"][0]["stock_level"] == 8
        assert result["products"][0]["price_cents"] == 2500

    def test_invalid_items_reported_individually(self, db_session, store_a):
        payload = {"products": [
            {"id": "ok-1", "title": "Fine", "price": "5.00", "stock_level": 1},
            {"id": "bad-1", "title": "No price", "price": "abc", "stock_level": 1},
            {"title": "No id", "price": "5.00"},
        ]}

        result = dropshipping_service.import_products(store_a.id, "acme", payload)

        assert result["imported"] == 1
        assert result["total"] == 3
        assert len(result["errors"]) == 2
        log = db_session.query(DropshippingSyncLog).filter_by(operation_type="product_import").one()
        assert log.status == "partial"
        assert log.products_failed == 2

    def test_other_vendor_refused(self, db_session, store_a, vendor_b):
        with pytest.raises(UnauthorizedResponseError):
            dropshipping_service.import_products(store_a.id, "acme", GENERIC_CATALOG, actor=vendor_b)

    def test_malformed_payload(self, db_session, store_a):
        with pytest.raises(DropshippingError):
            dropshipping_service.import_products(store_a.id, "acme", {"products": "nope"})


class TestInventorySync:

    def test_mirror_stock_copied_to_products(self, db_session, imported):
        mirror = db_session.query(DropshippingProduct).filter_by(external_id="ext-2").one()
        mirror.stock_level = 40
        db_session.commit()

        result = dropshipping_service.sync_inventory()

        assert result == {"processed": 2, "updated": 2, "failed": 0, "errors": []}
        assert db_session.get(Product, imported["ext-2"].id).stock_quantity == 40
        log = db_session.query(InventoryLog).filter_by(product_id=imported["ext-2"].id, operation="sync").one()
        assert (log.previous_quantity, log.new_quantity) == (4, 40)

    def test_unlinked_mirror_counts_as_failure(self, db_session, imported):
        db_session.add(DropshippingProduct(external_id="ghost", provider="acme", title="Ghost", stock_level=1))
        db_session.commit()

        result = dropshipping_service.sync_inventory()

        assert result["failed"] == 1
        assert result["updated"] == 2


class TestFulfillment:

    def test_record_requires_dropshipped_line(self, db_session, customer, product_a, vendor_a):
        order = order_service.place_order(customer.id, [{"product_id": product_a.id, "quantity": 1}], ADDRESS)

        with pytest.raises(DropshippingError):
            dropshipping_service.record_fulfillment(order.lines[0].id, "PO-9", actor=vendor_a)

    def test_duplicate_external_order(self, db_session, shipped_line, vendor_a):
        with pytest.raises(ConflictError):
            dropshipping_service.record_fulfillment(shipped_line.id, "PO-1001", actor=vendor_a)

    def test_record_fields(self, db_session, shipped_line):
        record = dropshipping_service.list_fulfillments(shipped_line.order_id)[0]
        assert record.status == "sent"
        assert record.quantity == 2
        assert record.product_external_id == "ext-1"


class TestWebhooks:

    def test_order_status_reconciles_line(self, db_session, shipped_line):
        result = dropshipping_service.handle_webhook({
            "type": "order.status_changed",
            "data": {"external_order_id": "PO-1001", "status": "shipped", "tracking_number": "TRK-1"},
        })

        assert result["handled"] is True
        assert result["order_line_status"] == "shipped"
        order = db_session.get(Order, shipped_line.order_id)
        assert order.status == "shipped"
        assert order.lines[0].tracking_number == "TRK-1"

        dropshipping_service.handle_webhook({
            "type": "order.status_changed",
            "data": {"external_order_id": "PO-1001", "status": "delivered"},
        })
        assert db_session.get(Order, shipped_line.order_id).status == "delivered"

    @pytest.mark.parametrize("status", ["failed", "pending"])
    def test_provider_only_status_leaves_line_alone(self, db_session, shipped_line, status):
        result = dropshipping_service.handle_webhook({
            "type": "order.status_changed",
            "data": {"external_order_id": "PO-1001", "status": status},
        })

        assert result["order_line_status"] is None
        assert dropshipping_service.list_fulfillments()[0].status == status
        assert db_session.get(OrderLine, shipped_line.id).fulfillment_status == "pending"
        assert db_session.get(Order, shipped_line.order_id).status == "pending"

    def test_processing_status_moves_line(self, db_session, shipped_line):
        result = dropshipping_service.handle_webhook({
            "type": "order.status_changed",
            "data": {"external_order_id": "PO-1001", "status": "processing"},
        })

        assert result["order_line_status"] == "processing"
        assert db_session.get(Order, shipped_line.order_id).status == "processing"

    def test_failed_reconcile_discards_mirror_update(self, db_session, shipped_line, monkeypatch):
        def broken_apply(*args, **kwargs):
            raise PersistenceError("Database write failed")

        monkeypatch.setattr(order_service, "apply_line_status", broken_apply)

        with pytest.raises(PersistenceError):
            dropshipping_service.handle_webhook({
                "type": "order.status_changed",
                "data": {"external_order_id": "PO-1001", "status": "shipped", "tracking_number": "TRK-9"},
            })

        mirror = dropshipping_service.list_fulfillments()[0]
        assert mirror.status == "sent"
        assert mirror.tracking_number is None
        assert db_session.get(OrderLine, shipped_line.id).fulfillment_status == "pending"
        assert db_session.query(DropshippingSyncLog).filter_by(operation_type="webhook_received").count() == 0

    def test_unknown_external_order(self, db_session):
        with pytest.raises(DropshippingNotFoundError) as exc_info:
            dropshipping_service.handle_webhook({
                "type": "order.status_changed",
                "data": {"external_order_id": "nope", "status": "shipped"},
            })
        assert exc_info.value.status_code == 404

    def test_stock_changed(self, db_session, imported):
        dropshipping_service.handle_webhook({
            "type": "product.stock_changed",
            "data": {"product_id": "ext-1", "stock_level": 0},
        })

        mirror = db_session.query(DropshippingProduct).filter_by(external_id="ext-1").one()
        assert mirror.stock_level == 0
        # Local stock only moves on the next sync
        assert db_session.get(Product, imported["ext-1"].id).stock_quantity == 12

    def test_stock_changed_rejects_negative(self, db_session, imported):
        with pytest.raises(DropshippingError):
            dropshipping_service.handle_webhook({
                "type": "product.stock_changed",
                "data": {"product_id": "ext-1", "stock_level": -3},
            })

    def test_product_updated(self, db_session, imported):
        dropshipping_service.handle_webhook({
            "type": "product.updated",
            "data": {"product_id": "ext-2", "title": "Big Mug", "price": "11.25"},
        })

        mirror = db_session.query(DropshippingProduct).filter_by(external_id="ext-2").one()
        assert mirror.title == "Big Mug"
        assert mirror.price_cents == 1125

    def test_unknown_type_acknowledged(self, db_session):
        result = dropshipping_service.handle_webhook({"type": "shop.closed", "data": {}})

        assert result["handled"] is False
        assert db_session.query(DropshippingSyncLog).filter_by(operation_type="webhook_received").count() == 1
