"""
Pytest fixtures for merchant dashboard API tests.

Provides an app wired to an in-memory SQLite database, a signed-in
merchant and an authenticated test client.
"""

import pytest

from merchant_dash import create_app
from merchant_dash.extensions import db
from merchant_dash.models import InventoryItem, Merchant, Notification, Order, OrderItem


PASSWORD = "correct-horse-9"


@pytest.fixture(scope='function')
def app():
    """Create application for testing; the sync runtime is stopped on teardown."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
        'CONFIRMATION_TIMEOUT_SECONDS': 0.2,
        'RUNTIME_CALL_TIMEOUT_SECONDS': 10,
    })

    with app.app_context():
        db.create_all()
        yield app
        runtime = app.extensions['merchant_dash']
        runtime.stop()
        runtime.remote.shutdown()
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def runtime(app):
    return app.extensions['merchant_dash']


@pytest.fixture(scope='function')
def merchant(app):
    """Merchant m-1, operated by user u-1, with one pending order and one unread notification."""
    row = Merchant(user_id="u-1", merchant_id="m-1", merchant_name="Mama Lishe", merchant_phone="+255712345678")
    db.session.add(row)
    db.session.add(Order(id="o1", order_id="ORD-1", merchant_id="m-1", customer_name="Asha", status="pending", total_amount=5000))
    db.session.add(OrderItem(order_id="o1", merchant_id="m-1", product_id="p1", product_name="Chips", quantity=2))
    db.session.add(Notification(id="n1", merchant_id="m-1", title="Welcome", message="Karibu", type="update"))
    db.session.add(InventoryItem(
        id="i1", merchant_id="m-1", product_id="p1", product_name="Chips",
        current_stock=50, minimum_stock=10, maximum_stock=100, status="warning",
    ))
    db.session.commit()
    return row.to_dict()


@pytest.fixture(scope='function')
def user(runtime):
    return runtime.auth.register("owner@example.com", PASSWORD, user_id="u-1")


@pytest.fixture(scope='function')
def token(client, user, merchant):
    """Bearer token for the signed-in merchant owner."""
    response = client.post('/api/auth/login', json={"email": "owner@example.com", "password": PASSWORD})
    assert response.status_code == 200
    return response.get_json()["token"]


@pytest.fixture(scope='function')
def auth_client(client, token):
    """Test client that sends the bearer token with every request."""
    client.environ_base["HTTP_AUTHORIZATION"] = f"Bearer {token}"
    return client
