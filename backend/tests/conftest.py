"""
Pytest fixtures for BizDesk backend tests.

Provides test database setup, account scopes, a seeded product, and a test client.
"""

from datetime import timedelta

import pytest
from bizdesk import create_app
from bizdesk.extensions import db
from bizdesk.scope import Scope
from bizdesk.services import catalog_service
from bizdesk.services.reporting_service import ReportWindow
from bizdesk.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'REQUIRE_SECOND_PARTY_APPROVAL': True,
        'LOG_LEVEL': 'DEBUG',
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


@pytest.fixture
def clerk():
    """Account 'acme', acting user who records and requests."""
    return Scope(account_id="acme", actor="clerk")


@pytest.fixture
def manager():
    """Account 'acme', a second user who approves."""
    return Scope(account_id="acme", actor="manager")


@pytest.fixture
def outsider():
    """A different business account."""
    return Scope(account_id="globex", actor="eve")


@pytest.fixture
def product(db_session, clerk):
    """
    10 boxes, ratio 20 (200 kg), cost/box 50, price/box 70.

    Derived: cost/kg 2.5, price/kg 3.5, profit/box 20, profit/kg 1.
    """
    return catalog_service.create_product(
        clerk,
        name="Frozen Tilapia",
        box_to_kg_ratio=20,
        cost_per_box=50,
        price_per_box=70,
        quantity_box=10,
    )


@pytest.fixture
def window():
    """A window around now that contains everything a test records."""
    now = utcnow()
    return ReportWindow(start=now - timedelta(days=1), end=now + timedelta(days=1))


@pytest.fixture
def headers():
    """Factory for the identity gateway headers."""
    def _headers(account: str = "acme", actor: str | None = "clerk") -> dict:
        result = {"X-Account-Id": account}
        if actor:
            result["X-Actor"] = actor
        return result
    return _headers
