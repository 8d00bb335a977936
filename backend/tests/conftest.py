"""
Pytest fixtures for retailcore backend tests.

Provides a fresh in-memory database per test, two branches, a stocked
product and one user per role of interest.
"""

import pytest

from retailcore import create_app
from retailcore.extensions import db
from retailcore.principal import Principal
from retailcore.services import auth_service, branch_service, inventory_service, products_service

PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'BCRYPT_ROUNDS': 4,
    'JWT_SECRET_KEY': 'test-secret-key',
}


@pytest.fixture(scope='function')
def app():
    """Create application with an empty schema."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def branch_a(app):
    """Branch B1, 18% inclusive tax."""
    return branch_service.create_branch("Branch One", "B1", tax_rate_bps=1800)


@pytest.fixture(scope='function')
def branch_b(app):
    """Branch B2, 18% inclusive tax."""
    return branch_service.create_branch("Branch Two", "B2", tax_rate_bps=1800)


@pytest.fixture(scope='function')
def product(app, branch_a):
    """Product priced at 100.00 with 10 units (reorder level 2) at branch A."""
    item = products_service.create_product("WIDGET-1", "Widget", 10000, cost_price_cents=6000)
    inventory_service.receive_stock(item.id, branch_a.id, 10, reorder_level=2)
    return item


@pytest.fixture(scope='function')
def product_at_b(app, branch_b):
    item = products_service.create_product("GADGET-1", "Gadget", 5000, cost_price_cents=2000)
    inventory_service.receive_stock(item.id, branch_b.id, 5)
    return item


@pytest.fixture(scope='function')
def admin_user(app):
    return auth_service.create_user("admin@retail.test", PASSWORD, "Admin", "admin")


@pytest.fixture(scope='function')
def cashier_a(app, branch_a):
    return auth_service.create_user("cashier.a@retail.test", PASSWORD, "Cashier A", "cashier", branch_id=branch_a.id)


@pytest.fixture(scope='function')
def cashier_b(app, branch_b):
    return auth_service.create_user("cashier.b@retail.test", PASSWORD, "Cashier B", "cashier", branch_id=branch_b.id)


@pytest.fixture(scope='function')
def manager_a(app, branch_a):
    return auth_service.create_user("manager.a@retail.test", PASSWORD, "Manager A", "store_manager", branch_id=branch_a.id)


@pytest.fixture(scope='function')
def viewer(app):
    return auth_service.create_user("viewer@retail.test", PASSWORD, "Viewer", "viewer")


def principal_for(user) -> Principal:
    """Principal as the request layer would build it."""
    db.session.refresh(user)
    return Principal.from_user(user)


def login(client, email: str, password: str = PASSWORD):
    """Helper to log in; returns the response."""
    return client.post('/api/auth/login', json={
        'email': email,
        'password': password,
    })


def get_auth_token(client, email: str, password: str = PASSWORD) -> str:
    """Helper to get an access token for a user."""
    response = login(client, email, password)
    if response.status_code == 200:
        return response.json.get('access_token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
