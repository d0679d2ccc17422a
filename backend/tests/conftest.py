"""
Pytest fixtures for cash custody backend tests.

Provides test database setup, a station with its staff hierarchy, reading
helpers and a test client that identifies the caller via X-User-Id.
"""

from datetime import date

import pytest

from fuelcash import create_app
from fuelcash.extensions import db
from fuelcash.models import Station, User
from fuelcash.models.users import ROLE_EMPLOYEE, ROLE_MANAGER, ROLE_OWNER
from fuelcash.services import reading_service


BUSINESS_DATE = date(2025, 1, 10)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'AUDIT_SINK': 'database',
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


def _make_user(db_session, name, role, **kwargs):
    user = User(name=name, role=role, **kwargs)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def owner(db_session):
    """Station owner (top of the custody chain)."""
    return _make_user(db_session, "Olivia Owner", ROLE_OWNER, email="owner@station-a.test")


@pytest.fixture(scope='function')
def manager(db_session):
    """Station manager receiving shift collections."""
    return _make_user(db_session, "Manny Manager", ROLE_MANAGER, email="manager@station-a.test")


@pytest.fixture(scope='function')
def station(db_session, owner, manager):
    """Station A with an assigned manager and owner."""
    station = Station(
        name="Station A",
        code="STA",
        manager_user_id=manager.id,
        owner_user_id=owner.id,
    )
    db_session.add(station)
    db_session.commit()

    manager.station_id = station.id
    owner.station_id = station.id
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def other_station(db_session, owner):
    """Station B: same owner, no manager assigned."""
    station = Station(name="Station B", code="STB", owner_user_id=owner.id)
    db_session.add(station)
    db_session.commit()
    return station


@pytest.fixture(scope='function')
def employee(db_session, station, manager):
    """Pump attendant reporting to the station manager."""
    return _make_user(
        db_session,
        "Eddie Employee",
        ROLE_EMPLOYEE,
        email="eddie@station-a.test",
        station_id=station.id,
        manager_user_id=manager.id,
    )


@pytest.fixture(scope='function')
def second_employee(db_session, station, manager):
    return _make_user(
        db_session,
        "Erin Employee",
        ROLE_EMPLOYEE,
        email="erin@station-a.test",
        station_id=station.id,
        manager_user_id=manager.id,
    )


@pytest.fixture(scope='function')
def make_reading(db_session):
    """Factory for nozzle readings (defaults to the station's business date)."""
    def _make(station_id, cash_cents, *, online_cents=0, credit_cents=0, reading_date=BUSINESS_DATE, **kwargs):
        return reading_service.record_reading(
            station_id,
            reading_date,
            cash_cents=cash_cents,
            online_cents=online_cents,
            credit_cents=credit_cents,
            **kwargs,
        )
    return _make


def actor_headers(user) -> dict:
    """Helper to identify the caller of an API request."""
    return {'X-User-Id': str(user.id)}
