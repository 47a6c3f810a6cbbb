"""
Pytest fixtures for the commerce ledger tests.

Provides an in-memory application, a per-test table wipe, and small
factories for products and funded users.
"""

import pytest

from commerce_ledger import create_app
from commerce_ledger.extensions import db
from commerce_ledger.services import app_config_service
from commerce_ledger.services import products_service
from commerce_ledger.services import token_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_RETRY_BACKOFF': 0.0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables and config cache for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        app_config_service.clear_cache()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name=..., valuation_method=..., base_price=...)."""
    def _make(**overrides):
        patch = {
            "name": "Test Product",
            "base_price": "1000",
            "valuation_method": "WEIGHTED_AVERAGE",
        }
        patch.update(overrides)
        return products_service.create_product(patch)
    return _make


@pytest.fixture(scope='function')
def funded_user(db_session):
    """Factory: funded_user("u1", 15) credits the user and returns the id."""
    def _fund(user_id, amount):
        if amount:
            token_service.admin_adjust_tokens(user_id, amount, "Test funding")
        return user_id
    return _fund
