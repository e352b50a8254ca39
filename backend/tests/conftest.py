"""
Pytest fixtures for Samoku backend tests.

Provides test database setup, user/store/product factories and test client.
"""

import pytest

from samoku import create_app
from samoku.extensions import db
from samoku.models import Product, Store, User
from samoku.models.auth import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_VENDOR
from samoku.services import session_service
from samoku.services.auth_service import hash_password

WEBHOOK_SECRET = "test-webhook-secret"
PASSWORD = "Password123!"

ADDRESS = {
    "full_name": "Ada Shopper",
    "street": "1 Market St",
    "city": "Springfield",
    "state": "IL",
    "zip_code": "62701",
    "country": "US",
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
        'DROPSHIP_WEBHOOK_SECRET': WEBHOOK_SECRET,
        'DROPSHIP_WEBHOOK_ALLOW_UNSIGNED': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# FACTORIES
# =============================================================================


@pytest.fixture(scope='function')
def make_user(db_session):
    def _make(email, role=ROLE_CUSTOMER, full_name=None):
        user = User(
            email=email,
            full_name=full_name,
            role=role,
            password_hash=hash_password(PASSWORD),
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def make_store(db_session):
    def _make(owner, name, commission_rate_bps=500, approved=True):
        store = Store(
            owner_user_id=owner.id,
            name=name,
            commission_rate_bps=commission_rate_bps,
            is_approved=approved,
        )
        db_session.add(store)
        db_session.commit()
        return store
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    def _make(store, sku, price_cents, stock_quantity=100, name=None, low_stock_threshold=None):
        product = Product(
            store_id=store.id,
            sku=sku,
            name=name or sku,
            price_cents=price_cents,
            stock_quantity=stock_quantity,
            sales_count=0,
            low_stock_threshold=low_stock_threshold,
            images=[],
            is_active=True,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin@samoku.test", ROLE_ADMIN, "Admin")


@pytest.fixture(scope='function')
def customer(make_user):
    return make_user("customer@samoku.test", ROLE_CUSTOMER, "Ada Shopper")


@pytest.fixture(scope='function')
def vendor_a(make_user):
    return make_user("vendor.a@samoku.test", ROLE_VENDOR, "Vendor A")


@pytest.fixture(scope='function')
def vendor_b(make_user):
    return make_user("vendor.b@samoku.test", ROLE_VENDOR, "Vendor B")


@pytest.fixture(scope='function')
def store_a(make_store, vendor_a):
    """Approved store at 5% commission."""
    return make_store(vendor_a, "Alpha Outfitters", commission_rate_bps=500)


@pytest.fixture(scope='function')
def store_b(make_store, vendor_b):
    """Approved store at 10% commission."""
    return make_store(vendor_b, "Beta Home", commission_rate_bps=1000)


@pytest.fixture(scope='function')
def product_a(make_product, store_a):
    """$15.00 tee in store A."""
    return make_product(store_a, "A-TEE", 1500, stock_quantity=20, name="Organic Tee")


@pytest.fixture(scope='function')
def product_b(make_product, store_b):
    """$80.00 lamp in store B."""
    return make_product(store_b, "B-LAMP", 8000, stock_quantity=20, name="Desk Lamp")


# =============================================================================
# AUTH HELPERS
# =============================================================================


def token_for(user) -> str:
    _, token = session_service.create_session(user.id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    return auth_headers(token_for(user))
