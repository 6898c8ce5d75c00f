"""
Pytest fixtures for OrderHub backend tests.

Provides an in-memory database, a wiped store per test, the shared result
cache, and payload builders for orders and menu snapshots.
"""

from unittest.mock import Mock

import pytest
from orderhub import create_app
from orderhub.extensions import db, result_cache
from orderhub.services.entity_store import EntityStore

API_TOKEN = "test-api-token"
MASTER_KEY = "test-master-key"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'API_AUTH_TOKEN': API_TOKEN,
        'GLORIAFOOD_MASTER_KEY': MASTER_KEY,
        'GLORIAFOOD_SECRET_KEY': 'test-secret',
        'GLORIAFOOD_API_URL': 'https://pos.example.test',
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
        result_cache.clear()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    return EntityStore(db_session)


@pytest.fixture(scope='function')
def cache(db_session):
    return result_cache


@pytest.fixture(scope='function')
def remote():
    """Stand-in for GloriaFoodClient; tests set fetch_menu / poll_orders."""
    return Mock(name="GloriaFoodClient")


@pytest.fixture(scope='function')
def auth_headers():
    return {"Authorization": f"Bearer {API_TOKEN}"}


@pytest.fixture
def make_order():
    def _make(order_id=555, pos_system_id=0, **overrides):
        order = {
            "id": order_id,
            "pos_system_id": pos_system_id,
            "type": "pickup",
            "total_price": 12.5,
            "items": [{"type": "item", "name": "Burger", "price": 12.5, "quantity": 1}],
        }
        order.update(overrides)
        return order
    return _make


@pytest.fixture
def make_snapshot():
    def _group(group_id=9, name="Toppings", options=None, **extra):
        group = {
            "id": group_id,
            "name": name,
            "required": False,
            "allow_quantity": True,
            "force_min": 0,
            "force_max": 3,
            "options": options if options is not None else [
                {"id": 901, "name": "Cheese", "price": 0.5, "default": False},
                {"id": 902, "name": "Bacon", "price": 1.25, "default": False},
            ],
        }
        group.update(extra)
        return group

    def _make(menu_id=77, categories=None):
        if categories is None:
            categories = [{
                "id": 10,
                "name": "Burgers",
                "active": True,
                "items": [
                    {"id": 100, "name": "Classic", "price": 9.0, "active": True, "groups": [_group()]},
                    {"id": 101, "name": "Double", "price": 12.0, "active": True, "groups": [_group()]},
                ],
            }]
        return {
            "id": menu_id,
            "restaurant_id": 5,
            "currency": "EUR",
            "active": True,
            "categories": categories,
        }

    _make.group = _group
    return _make


@pytest.fixture(scope='function')
def master_key():
    return MASTER_KEY
