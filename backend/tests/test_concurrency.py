# Overview: Threaded checkout and payout races against a file-backed SQLite database.

"""
Concurrency tests.

Each worker thread gets its own app context and session, so the writers
really do race through BEGIN IMMEDIATE on a shared database file.
"""
import os
import tempfile
import threading
import unittest

from samoku import create_app
from samoku.extensions import db
from samoku.models import CommissionTransaction, Order, Product, Store, User
from samoku.models.auth import ROLE_CUSTOMER, ROLE_VENDOR
from samoku.services import commission_service, order_service
from samoku.services.commission_service import NoPendingCommissionsError
from samoku.services.inventory_service import InsufficientStockError

ADDRESS = {
    "full_name": "Race Shopper",
    "street": "9 Thread Ln",
    "city": "Lockport",
    "state": "NY",
    "zip_code": "14094",
    "country": "US",
}

BANK = {
    "account_name": "Race Vendor",
    "account_number": "99887766",
    "routing_number": "011000015",
    "bank_name": "Mutex Savings",
}


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "BCRYPT_ROUNDS": 4,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            vendor = User(email="race-vendor@example.com", role=ROLE_VENDOR, password_hash="dummy", is_active=True)
            db.session.add(vendor)
            db.session.commit()
            self.vendor_id = vendor.id

            self.customer_ids = []
            for i in range(5):
                customer = User(
                    email=f"racer{i}@example.com",
                    role=ROLE_CUSTOMER,
                    password_hash="dummy",
                    is_active=True,
                )
                db.session.add(customer)
                db.session.commit()
                self.customer_ids.append(customer.id)

            store = Store(owner_user_id=self.vendor_id, name="Race Store", commission_rate_bps=500, is_approved=True)
            db.session.add(store)
            db.session.commit()
            self.store_id = store.id

            product = Product(
                store_id=self.store_id,
                sku="RACE-1",
                name="Last Unit",
                price_cents=2000,
                stock_quantity=1,
                sales_count=0,
                images=[],
                is_active=True,
            )
            db.session.add(product)
            db.session.commit()
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run(self, target, args_list):
        threads = [threading.Thread(target=target, args=args) for args in args_list]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    def test_last_unit_sold_once(self):
        placed = []
        rejected = []
        errors = []
        lock = threading.Lock()

        def worker(customer_id):
            with self.app.app_context():
                try:
                    order = order_service.place_order(
                        customer_id, [{"product_id": self.product_id, "quantity": 1}], ADDRESS
                    )
                    with lock:
                        placed.append(order.id)
                except InsufficientStockError:
                    with lock:
                        rejected.append(customer_id)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run(worker, [(cid,) for cid in self.customer_ids])

        self.assertFalse(errors)
        self.assertEqual(len(placed), 1)
        self.assertEqual(len(rejected), len(self.customer_ids) - 1)

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.stock_quantity, 0)
            self.assertEqual(product.sales_count, 1)
            self.assertEqual(db.session.query(Order).count(), 1)
            self.assertEqual(db.session.query(CommissionTransaction).count(), 1)

    def test_pending_commissions_claimed_once(self):
        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            product.stock_quantity = 10
            db.session.commit()
            for customer_id in self.customer_ids[:3]:
                order_service.place_order(customer_id, [{"product_id": self.product_id, "quantity": 1}], ADDRESS)

        payouts = []
        refused = []
        errors = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    payout = commission_service.request_payout(self.store_id, BANK)
                    with lock:
                        payouts.append(payout.amount_cents)
                except NoPendingCommissionsError:
                    with lock:
                        refused.append(True)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        self._run(worker, [() for _ in range(4)])

        self.assertFalse(errors)
        # 3 sales x (2000 - 100 commission)
        self.assertEqual(payouts, [5700])
        self.assertEqual(len(refused), 3)


if __name__ == "__main__":
    unittest.main()
