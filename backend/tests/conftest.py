"""
Pytest fixtures for marketplace backend tests.

Provides the test app and database, two sellers with their customers and
catalogue, an order factory, and authenticated request headers.
"""

from datetime import datetime

import pytest

from marketplace import create_app
from marketplace.extensions import db
from marketplace.models import Order, Product, ROLE_ADMIN, ROLE_SELLER
from marketplace.services import auth_service, customer_service, session_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    """bcrypt at the minimum cost factor keeps user fixtures quick."""
    monkeypatch.setattr(auth_service, 'BCRYPT_ROUNDS', 4)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    # Cleanup after test
    db.session.rollback()


# =============================================================================
# USERS
# =============================================================================

@pytest.fixture(scope='function')
def admin(db_session):
    return auth_service.create_user("admin@test.local", PASSWORD, ROLE_ADMIN, display_name="Admin")


@pytest.fixture(scope='function')
def seller(db_session):
    return auth_service.create_user(
        "seller@test.local", PASSWORD, ROLE_SELLER,
        display_name="Sam Seller", business_name="Prime Meats",
    )


@pytest.fixture(scope='function')
def other_seller(db_session):
    return auth_service.create_user(
        "rival@test.local", PASSWORD, ROLE_SELLER,
        display_name="Rita Rival", business_name="Rival Butchers",
    )


@pytest.fixture(scope='function')
def products(db_session, seller):
    """Seller catalogue: the customer has a price for beef only."""
    beef = Product(seller_id=seller.id, name="Beef mince", unit="kg", category="beef")
    chicken = Product(seller_id=seller.id, name="Chicken thighs", unit="kg", category="chicken")
    db_session.add_all([beef, chicken])
    db_session.commit()
    return {"beef": beef, "chicken": chicken}


@pytest.fixture(scope='function')
def customer(db_session, seller, products):
    """Customer of `seller` with a login and a beef price of 12.50."""
    return customer_service.create_customer(principal_for(seller), {
        "business_name": "Corner Bistro",
        "contact_person": "Carla Cook",
        "email": "bistro@test.local",
        "phone": "555-0100",
        "address": "1 Market Street",
        "password": PASSWORD,
        "prices": {products["beef"].id: 1250},
    })


@pytest.fixture(scope='function')
def other_customer(db_session, other_seller):
    """Customer of `other_seller`."""
    return customer_service.create_customer(principal_for(other_seller), {
        "business_name": "Harbour Grill",
        "contact_person": "Hugo Grant",
        "email": "grill@test.local",
        "phone": "555-0200",
        "address": "9 Quay Road",
        "password": PASSWORD,
    })


# =============================================================================
# ORDERS
# =============================================================================

@pytest.fixture(scope='function')
def make_order(db_session, customer):
    """
    Insert an order with consistent aggregates and a fixed creation time.
    Amounts in cents.
    """
    def _make(total_cents, *, created_at=None, for_customer=None, status="pending"):
        target = for_customer or customer
        order = Order(
            customer_id=target.id,
            seller_id=target.seller_id,
            status=status,
            payment_status="pending",
            payment_method="credit",
            subtotal_cents=total_cents,
            delivery_fee_cents=0,
            total_cents=total_cents,
            original_total_cents=total_cents,
            total_credit_notes_cents=0,
            total_paid_cents=0,
            remaining_amount_cents=total_cents,
            created_at=created_at or datetime(2026, 3, 2, 9, 0),
        )
        db_session.add(order)
        db_session.commit()
        return order

    return _make


# =============================================================================
# AUTH HELPERS
# =============================================================================

def principal_for(user):
    return session_service.build_principal(user)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture(scope='function')
def seller_headers(seller):
    return headers_for(seller)


@pytest.fixture(scope='function')
def other_seller_headers(other_seller):
    return headers_for(other_seller)


@pytest.fixture(scope='function')
def customer_headers(customer):
    return headers_for(customer.user)
