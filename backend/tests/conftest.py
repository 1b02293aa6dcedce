"""
Pytest fixtures for back-office backend tests.

Provides test database setup, model fixtures, and authenticated test-client headers.
"""

from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Category, Customer, Inventory, Product, Supplier, User
from backoffice.services import session_service
from backoffice.services.auth_service import hash_password
from backoffice.time_utils import utcnow

TEST_PASSWORD = "Password123!"


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


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


def _make_user(db_session, password_hash, *, name, email, role):
    user = User(name=name, email=email, password_hash=password_hash, role=role, is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, password_hash):
    return _make_user(db_session, password_hash, name="Admin", email="admin@test.local", role="ADMIN")


@pytest.fixture(scope='function')
def manager_user(db_session, password_hash):
    return _make_user(db_session, password_hash, name="Manager", email="manager@test.local", role="MANAGER")


@pytest.fixture(scope='function')
def salesperson_user(db_session, password_hash):
    return _make_user(db_session, password_hash, name="Seller", email="seller@test.local", role="SALESPERSON")


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Hardware", description="Tools and parts", is_active=True)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Acme Distribuidora", cnpj="12.345.678/0001-90", is_active=True)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def product(db_session, category, supplier):
    """Active product priced 19.90."""
    product = Product(
        code="PROD-001",
        barcode="7891234567895",
        name="Hammer",
        price=Decimal("19.90"),
        category_id=category.id,
        supplier_id=supplier.id,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def other_product(db_session, category):
    product = Product(
        code="PROD-002",
        name="Screwdriver",
        price=Decimal("7.35"),
        category_id=category.id,
        is_active=True,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def inventory(db_session, product):
    """quantity=10, min_stock=5."""
    inventory = Inventory(
        product_id=product.id,
        quantity=10,
        min_stock=5,
        reserved_quantity=0,
        location="A-01",
        last_update=utcnow(),
    )
    db_session.add(inventory)
    db_session.commit()
    return inventory


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Maria Silva", document="123.456.789-09", type="RETAIL", is_active=True)
    db_session.add(customer)
    db_session.commit()
    return customer


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user: User) -> dict:
    """Issue a session for user directly (skips the bcrypt check of /login)."""
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return headers_for(admin_user)


@pytest.fixture(scope='function')
def salesperson_headers(salesperson_user):
    return headers_for(salesperson_user)
