"""
Pytest fixtures for sale engine tests.

Provides the in-memory database, operators with and without void/refund
authority, a small catalog, customers and the default discount configuration.
"""

from datetime import datetime

import pytest

from pos_engine import create_app
from pos_engine.extensions import db
from pos_engine.models import Category, Customer, MembershipTier, Product, User
from pos_engine.models.customers import LOYALTY_BONUS
from pos_engine.services.authorization_service import hash_pin
from pos_engine.services.loyalty_ledger import adjust_points
from pos_engine.services.seed_service import seed_defaults


# Fixed instant used wherever a test needs a deterministic clock (a Monday)
NOW = datetime(2026, 10, 19, 14, 30)

MANAGER_PIN = "2468"
SUPERVISOR_PIN = "1357"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'REVERSAL_POLICY': 'delta',
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
        db.session.rollback()
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def defaults(db_session):
    """Default government discounts, discount reasons, tiers and groups."""
    return seed_defaults()


def _user(db_session, username, role="cashier", pin=None, **flags):
    user = User(
        username=username,
        first_name=username.title(),
        last_name="Tester",
        role=role,
        supervisor_pin_hash=hash_pin(pin) if pin else None,
        **flags,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cashier(db_session):
    """Cashier with no void/refund authority."""
    return _user(db_session, "cashier")


@pytest.fixture(scope='function')
def manager(db_session):
    """Manager: elevated role, authorizes on their own and via PIN."""
    return _user(db_session, "manager", role="manager", pin=MANAGER_PIN)


@pytest.fixture(scope='function')
def supervisor(db_session):
    """Cashier-role user holding both capability flags and a PIN."""
    return _user(
        db_session, "supervisor", pin=SUPERVISOR_PIN,
        can_authorize_void=True, can_authorize_refund=True,
    )


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Beverages")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def widget(db_session, category):
    """Taxable product: 100.00 at 12% VAT, 10 on hand."""
    product = Product(
        sku="WID-001",
        name="Widget",
        category_id=category.id,
        selling_price_cents=10000,
        cost_price_cents=6000,
        tax_rate_bps=1200,
        current_stock=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def gadget(db_session):
    """Low-stock product: 50.00, 2 on hand, no backorder."""
    product = Product(
        sku="GAD-001",
        name="Gadget",
        selling_price_cents=5000,
        cost_price_cents=3000,
        tax_rate_bps=1200,
        current_stock=2,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def service_item(db_session):
    """Untracked, non-taxable product (gift wrapping)."""
    product = Product(
        sku="SVC-WRAP",
        name="Gift Wrapping",
        selling_price_cents=2500,
        is_taxable=False,
        track_inventory=False,
        current_stock=0,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session):
    """Regular customer with 50 loyalty points earned through the ledger."""
    customer = Customer(customer_code="C-0001", first_name="Maria", last_name="Santos")
    db_session.add(customer)
    db_session.commit()
    adjust_points(customer.id, 50, LOYALTY_BONUS, description="Welcome bonus")
    return customer


@pytest.fixture(scope='function')
def senior(db_session):
    customer = Customer(
        customer_code="C-0002",
        first_name="Jose",
        last_name="Reyes",
        is_senior_citizen=True,
        senior_citizen_id="OSCA-12345",
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def gold_customer(db_session, defaults):
    """Gold tier: 8% member discount, 1.5x points."""
    tier = db_session.query(MembershipTier).filter_by(name="Gold").one()
    customer = Customer(
        customer_code="C-0003",
        first_name="Ana",
        last_name="Cruz",
        membership_tier_id=tier.id,
    )
    db_session.add(customer)
    db_session.commit()
    return customer


def cash_sale(*lines, tendered=None, **extra) -> dict:
    """Build a create_sale payload from (product, quantity) pairs."""
    payload = {
        "items": [{"product_id": product.id, "quantity": quantity} for product, quantity in lines],
        "payment_method": "CASH",
        "amount_tendered_cents": tendered if tendered is not None else 10_000_000,
    }
    payload.update(extra)
    return payload


def operator_headers(user) -> dict:
    """Helper to create operator identity headers."""
    return {'X-Operator-Id': str(user.id)}
