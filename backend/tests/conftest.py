"""
Pytest fixtures for back-office tests.

Provides the app on an in-memory database, per-test table wipe, users,
clients, catalog services, packages and auth headers.
"""

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Client, PriceRange, Sale, Service, User
from backoffice.services import package_service
from backoffice.services.auth_service import hash_password
from backoffice.services.session_service import create_session, identity_for
from backoffice.time_utils import utcnow


TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_ROUNDS': 4,
        'COMMISSION_RATE_BPS': 1000,
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


def make_user(db_session, email: str, first_name: str, is_admin: bool = False) -> User:
    user = User(
        first_name=first_name,
        last_name="Test",
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        is_admin=is_admin,
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return make_user(db_session, "admin@backoffice.test", "Admin", is_admin=True)


@pytest.fixture(scope='function')
def attendant(db_session):
    return make_user(db_session, "ana@backoffice.test", "Ana")


@pytest.fixture(scope='function')
def other_attendant(db_session):
    return make_user(db_session, "bruno@backoffice.test", "Bruno")


@pytest.fixture(scope='function')
def admin_identity(admin_user):
    return identity_for(admin_user)


@pytest.fixture(scope='function')
def attendant_identity(attendant):
    return identity_for(attendant)


@pytest.fixture(scope='function')
def other_identity(other_attendant):
    return identity_for(other_attendant)


@pytest.fixture(scope='function')
def customer(db_session):
    """Active client (named customer to avoid clashing with the test client fixture)."""
    row = Client(name="Maria Souza", email="maria@example.com", is_active=True)
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def other_customer(db_session):
    row = Client(name="Joao Lima", is_active=True)
    db_session.add(row)
    db_session.commit()
    return row


def make_service(db_session, name: str, pricing_mode: str, ranges: list[tuple], commission_rate_bps=None) -> Service:
    """ranges: (sale_type, min, max, unit_price_cents)"""
    service = Service(
        name=name,
        pricing_mode=pricing_mode,
        base_price_cents=0,
        commission_rate_bps=commission_rate_bps,
        is_active=True,
    )
    service.price_ranges = [
        PriceRange(sale_type=st, min_quantity=lo, max_quantity=hi, unit_price_cents=price)
        for st, lo, hi, price in ranges
    ]
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def complaint_service(db_session):
    """Progressive: [1-10]@40, [11-inf]@15."""
    return make_service(
        db_session,
        "Complaint",
        "progressive",
        [("common", 1, 10, 40), ("common", 11, None, 15)],
    )


@pytest.fixture(scope='function')
def delay_service(db_session):
    """Tiered, with a dedicated package_sale rate."""
    return make_service(
        db_session,
        "Atraso",
        "tiered",
        [
            ("common", 1, 5, 100),
            ("common", 6, None, 80),
            ("package_sale", 1, None, 50),
        ],
    )


def make_package(db_session, *, client_row, service, attendant_user, initial_quantity=10, total_paid_cents=500):
    """Package backed by an open package_sale row, created through the ledger."""
    sale = Sale(
        client_id=client_row.id,
        attendant_id=attendant_user.id,
        sale_date=utcnow(),
        sale_type="package_sale",
        status="open",
        payment_method="pix",
        service_id=service.id,
        subtotal_cents=total_paid_cents,
        total_discount_cents=0,
        total_cents=total_paid_cents,
    )
    db_session.add(sale)
    db_session.commit()
    return package_service.create_package(
        client_id=client_row.id,
        service_id=service.id,
        sale_id=sale.id,
        initial_quantity=initial_quantity,
        total_paid_cents=total_paid_cents,
    )


@pytest.fixture(scope='function')
def package(db_session, customer, delay_service, attendant):
    """10 credits paid 500 cents: unit price 50."""
    return make_package(db_session, client_row=customer, service=delay_service, attendant_user=attendant)


def auth_headers(user: User) -> dict:
    """Helper to create Authorization headers for a fresh session."""
    _, token = create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture(scope='function')
def attendant_headers(attendant):
    return auth_headers(attendant)


@pytest.fixture(scope='function')
def other_headers(other_attendant):
    return auth_headers(other_attendant)
