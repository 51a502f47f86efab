"""
Pytest configuration and fixtures for Device Booking tests.

Fixtures are reusable test data/objects that tests can use.
Think of them as "test helpers" that set up common scenarios.
"""
import pytest
import os
import tempfile
from datetime import date

# The engine is created when app.py is imported, so point it at a
# throwaway SQLite file and switch rate limiting off before the import.
_db_fd, _db_path = tempfile.mkstemp(suffix='.db')
os.environ['DATABASE_URL'] = f'sqlite:///{_db_path}'
os.environ['RATELIMIT_ENABLED'] = 'False'

from app import app, db, limiter
from models import User, Device, Booking
from werkzeug.security import generate_password_hash


def pytest_sessionfinish(session, exitstatus):
    """Remove the temporary database file once all tests ran."""
    os.close(_db_fd)
    if os.path.exists(_db_path):
        os.unlink(_db_path)


@pytest.fixture(scope='function')
def client():
    """
    Create a test client for the application.

    This fixture:
    - Sets up test configuration
    - Creates all database tables in the temporary SQLite file
    - Yields a test client you can use to make requests
    - Drops all tables after the test

    Use this in any test that needs to make HTTP requests.
    """
    app.config['TESTING'] = True
    app.config['WTF_CSRF_ENABLED'] = False  # Disable CSRF for easier testing
    app.config['SECRET_KEY'] = 'test-secret-key'
    app.config['SERVER_NAME'] = 'localhost'  # Needed for URL building in tests
    limiter.enabled = False

    with app.test_client() as client:
        with app.app_context():
            db.create_all()
            yield client
            db.session.remove()
            db.drop_all()


@pytest.fixture
def test_user(client):
    """
    Create a regular (non-admin) user.

    Username: tester
    Password: testpass123
    """
    with app.app_context():
        user = User(
            username='tester',
            password_hash=generate_password_hash('testpass123'),
            is_admin=False
        )
        db.session.add(user)
        db.session.commit()
        # Load attributes before the session closes (avoids DetachedInstanceError)
        _ = user.id, user.username, user.is_admin
        return user


@pytest.fixture
def test_admin_user(client):
    """
    Create an admin user.

    Username: admin
    Password: adminpass123
    """
    with app.app_context():
        admin = User(
            username='admin',
            password_hash=generate_password_hash('adminpass123'),
            is_admin=True
        )
        db.session.add(admin)
        db.session.commit()
        _ = admin.id, admin.username, admin.is_admin
        return admin


@pytest.fixture
def test_device(client):
    """A device with an asset tag."""
    with app.app_context():
        device = Device(name='Pixel 8', internal_id='23A-002')
        db.session.add(device)
        db.session.commit()
        _ = device.id, device.name, device.internal_id
        return device


@pytest.fixture
def other_device(client):
    """A second device, for checking that devices are booked independently."""
    with app.app_context():
        device = Device(name='iPhone 15', internal_id='23A-001')
        db.session.add(device)
        db.session.commit()
        _ = device.id, device.name, device.internal_id
        return device


@pytest.fixture
def test_booking(client, test_device, test_admin_user):
    """
    Device booked by the admin for [2024-05-01, 2024-05-10).

    The device is free again on 2024-05-10.
    """
    with app.app_context():
        booking = Booking(
            device_id=test_device.id,
            user_id=test_admin_user.id,
            start_date=date(2024, 5, 1),
            end_date=date(2024, 5, 10)
        )
        db.session.add(booking)
        db.session.commit()
        _ = booking.id, booking.device_id, booking.user_id, booking.start_date, booking.end_date
        return booking


def _log_in(client, user):
    # Sets the Flask-Login session directly, no form post needed
    with client.session_transaction() as sess:
        sess['_user_id'] = str(user.id)
        sess['_fresh'] = True
    return client


@pytest.fixture
def authenticated_client(client, test_user):
    """
    Client logged in as a regular user.

    Use this when testing that a route needs admin rights, not just a login.
    """
    return _log_in(client, test_user)


@pytest.fixture
def admin_client(client, test_admin_user):
    """
    Client logged in as an admin.

    Use this when testing admin routes.
    """
    return _log_in(client, test_admin_user)
