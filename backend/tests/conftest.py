"""
Pytest fixtures for the stock ledger backend tests.

Provides an in-memory database, per-test table wipe, users for every role,
a small catalog and bearer-token headers.
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import User, Product, Category, Supplier
from stockledger.services import inventory_service, session_service
from stockledger.services.auth_service import hash_password


TEST_PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'REPORT_TIMEZONE': 'UTC',
        'REPORT_DEFAULT_DAYS': 30,
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


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt at cost 12 is slow; hash the shared test password once."""
    return hash_password(TEST_PASSWORD)


def _make_user(db_session, password_hash, role, first_name):
    user = User(
        email=f"{role}@stockledger.test",
        password_hash=password_hash,
        first_name=first_name,
        last_name="Tester",
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, password_hash):
    return _make_user(db_session, password_hash, "admin", "Ada")


@pytest.fixture(scope='function')
def manager_user(db_session, password_hash):
    return _make_user(db_session, password_hash, "manager", "Max")


@pytest.fixture(scope='function')
def staff_user(db_session, password_hash):
    return _make_user(db_session, password_hash, "staff", "Sam")


@pytest.fixture(scope='function')
def cashier_user(db_session, password_hash):
    return _make_user(db_session, password_hash, "cashier", "Cora")


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Factory: bearer headers for a user."""
    def _headers(user):
        _, token = session_service.create_session(user.id)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture(scope='function')
def admin_headers(admin_user, auth_headers):
    return auth_headers(admin_user)


@pytest.fixture(scope='function')
def manager_headers(manager_user, auth_headers):
    return auth_headers(manager_user)


@pytest.fixture(scope='function')
def staff_headers(staff_user, auth_headers):
    return auth_headers(staff_user)


@pytest.fixture(scope='function')
def cashier_headers(cashier_user, auth_headers):
    return auth_headers(cashier_user)


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Beverages", description="Drinks")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Fresh Foods Ltd", contact_person="Mary")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def water(db_session, category, supplier):
    product = Product(
        sku="BEV-001",
        name="Mineral Water",
        category_id=category.id,
        supplier_id=supplier.id,
        price_cents=1000,
        unit_of_measure="bottle",
        reorder_level=10,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def juice(db_session, category):
    product = Product(
        sku="BEV-002",
        name="Orange Juice",
        category_id=category.id,
        price_cents=2500,
        unit_of_measure="carton",
        reorder_level=5,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def stocked(water, juice, admin_user):
    """water: 100 in stock, juice: 50 in stock."""
    inventory_service.append_transaction(water.id, "in", 100, admin_user.id, "Opening stock")
    inventory_service.append_transaction(juice.id, "in", 50, admin_user.id, "Opening stock")
    return water, juice


@pytest.fixture(scope='session')
def cart_line():
    """Factory: a cart line built from the product as the till sees it now."""
    def _line(product, quantity, unit_price_cents=None):
        return {
            "product_id": product.id,
            "product_name": product.name,
            "unit_of_measure": product.unit_of_measure,
            "unit_price_cents": product.price_cents if unit_price_cents is None else unit_price_cents,
            "quantity": quantity,
        }
    return _line
