"""
Pytest fixtures for worktime backend tests.

Provides the in-memory app, a fresh database per test, a fixed clock, and
the standard employee/time model setup used across the service tests.
"""

from datetime import datetime

import pytest
from worktime import create_app
from worktime.extensions import db
from worktime.models import Employee, TimeEntry, TimeModel


class FixedClock:
    """Callable clock for app.config["CLOCK"]; tests move it by assigning .now."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_TIMEZONE': 'UTC',
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
def clock(app):
    """Fixed 'now' for code paths that read the clock themselves (routes, sweeps)."""
    fixed = FixedClock(datetime(2026, 3, 10, 12, 0))
    app.config['CLOCK'] = fixed
    yield fixed
    app.config['CLOCK'] = None


@pytest.fixture(scope='function')
def time_model(db_session):
    """Default 40h model: Mon-Fri 480 min, 30 min break from 6h gross."""
    model = TimeModel(
        name="Full time 40h",
        monday_minutes=480,
        tuesday_minutes=480,
        wednesday_minutes=480,
        thursday_minutes=480,
        friday_minutes=480,
        default_break_minutes=30,
        min_break_minutes=30,
        break_threshold_minutes=360,
        break_tolerance_minutes=5,
        break_threshold_buffer_minutes=30,
        is_default=True,
        is_active=True,
    )
    db_session.add(model)
    db_session.commit()
    return model


@pytest.fixture(scope='function')
def employee(db_session, time_model):
    """Tracked employee on the default model, in UTC so local days equal UTC days."""
    emp = Employee(
        name="Erika Muster",
        email="erika@example.test",
        timezone="UTC",
        time_model_id=time_model.id,
        time_tracking_enabled=True,
        is_active=True,
    )
    db_session.add(emp)
    db_session.commit()
    return emp


@pytest.fixture(scope='function')
def supervisor(db_session):
    """Active employee without time tracking, used as the acting supervisor."""
    emp = Employee(
        name="Sam Supervisor",
        email="sam@example.test",
        timezone="UTC",
        time_tracking_enabled=False,
        is_active=True,
    )
    db_session.add(emp)
    db_session.commit()
    return emp


@pytest.fixture(scope='function')
def add_entries(db_session):
    """
    Write raw entries without going through the pipeline.

    Usage: add_entries(employee, ("clock_in", datetime(...)), ...)
    """
    def _add(emp, *pairs, source="web"):
        rows = []
        for entry_type, ts in pairs:
            row = TimeEntry(employee_id=emp.id, entry_type=entry_type, timestamp=ts, source=source)
            db_session.add(row)
            rows.append(row)
        db_session.commit()
        return rows

    return _add
