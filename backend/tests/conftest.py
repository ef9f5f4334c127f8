"""
Pytest fixtures for Tienda backend tests.

Provides test database setup, catalog fixtures, and test client.
"""

import pytest
from tienda import create_app
from tienda.extensions import db
from tienda.models import User, Category, Product, Customer
from tienda.services.auth_service import hash_password

TEST_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp("uploads")),
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


@pytest.fixture(scope='function')
def user(db_session):
    """Cashier account (low bcrypt cost keeps the suite fast)."""
    user = User(
        username="cajero",
        email="cajero@tienda.local",
        password_hash=hash_password(TEST_PASSWORD, rounds=4),
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Bebidas", description="Refrescos y jugos")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def products(db_session, category):
    """
    Three products:
    - cola: 10.00, stock 10
    - agua: 2.50, stock 3 (low stock, min 5)
    - jugo: 5.00, stock 20
    """
    cola = Product(category_id=category.id, code="BEB-001", name="Cola", price_cents=1000, stock=10, min_stock=2)
    agua = Product(category_id=category.id, code="BEB-002", name="Agua", price_cents=250, stock=3, min_stock=5)
    jugo = Product(category_id=category.id, code="BEB-003", name="Jugo", price_cents=500, stock=20, min_stock=5)
    db_session.add_all([cola, agua, jugo])
    db_session.commit()
    return {"cola": cola, "agua": agua, "jugo": jugo}


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Maria Lopez", email="maria@example.com", document="0102030405")
    db_session.add(customer)
    db_session.commit()
    return customer


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def headers(client, user):
    """Authorization headers for the cashier."""
    return auth_headers(get_auth_token(client, user.username, TEST_PASSWORD))
