import pytest
import jwt
from datetime import timedelta
from app import create_app, db
from app.models import User, Room
from app.config import TestingConfig
from app.services.clock import BusinessClock

@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

@pytest.fixture
def client(app):
    return app.test_client()

@pytest.fixture
def clock(app):
    return BusinessClock.from_config(app.config)

@pytest.fixture
def tomorrow(clock):
    return clock.today() + timedelta(days=1)

@pytest.fixture
def at(clock, tomorrow):
    """at(10) -> tomorrow 10:00 business-local, as an aware UTC instant."""
    def _at(hour, minute=0, day=None):
        return clock.to_instant(day or tomorrow, hour, minute)
    return _at

@pytest.fixture
def init_data(app):
    organizer = User(username='olivia', name='Olivia', email='olivia@test.com', role='user')
    u1 = User(username='umar', name='Umar', email='umar@test.com', role='user')
    u2 = User(username='una', name='Una', email='una@test.com', role='user')
    admin = User(username='admin', name='Admin', email='admin@test.com', role='admin')
    r1 = Room(name='R1', capacity=10, location='Floor 1')
    r2 = Room(name='R2', capacity=4, location='Floor 2')
    closed = Room(name='Closed', capacity=6, is_active=False)
    db.session.add_all([organizer, u1, u2, admin, r1, r2, closed])
    db.session.commit()
    return {
        'organizer': organizer, 'u1': u1, 'u2': u2, 'admin': admin,
        'r1': r1, 'r2': r2, 'closed': closed
    }

@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = jwt.encode({'user_id': user.id}, app.config['SECRET_KEY'], algorithm="HS256")
        return {'Authorization': f'Bearer {token}'}
    return _headers
