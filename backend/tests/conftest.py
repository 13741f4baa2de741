"""
Pytest fixtures for the agency backend tests.

Provides test database setup, a per-test table wipe, and a few parties
with opening balances.
"""

import pytest
from agency import create_app
from agency.extensions import db
from agency.services import party_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def customer(db_session):
    """Walk-in customer with 500.00 on deposit."""
    return party_service.create_customer(
        name="Ahmed Ali",
        phone="0501111111",
        email="ahmed@example.com",
        opening_deposit="500.00",
    )


@pytest.fixture(scope='function')
def agent(db_session):
    """Sub-agent with a 1000.00 credit line and 300.00 deposit."""
    return party_service.create_agent(
        name="Gulf Travels",
        phone="0502222222",
        company="Gulf Travels LLC",
        opening_credit="1000.00",
        opening_deposit="300.00",
    )


@pytest.fixture(scope='function')
def vendor(db_session):
    """Consolidator holding 1000.00 credit and 500.00 of our deposit."""
    return party_service.create_vendor(
        name="SkyLink Consolidators",
        phone="0503333333",
        airlines=[{"name": "Emirates", "code": "EK"}, {"name": "Qatar Airways", "code": "QR"}],
        opening_credit="1000.00",
        opening_deposit="500.00",
    )


@pytest.fixture(scope='function')
def empty_vendor(db_session):
    """Vendor with no balances."""
    return party_service.create_vendor(name="Desert Wings", phone="0504444444")
