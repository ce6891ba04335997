"""
Pytest fixtures for DealerDesk backend tests.

Provides test database setup, one user per role, VN order fixtures, and
the test client with login helpers.
"""

import pytest

from dealerdesk import create_app
from dealerdesk.extensions import db
from dealerdesk.models import User, UserRole
from dealerdesk.services import order_service, workflow_service
from dealerdesk.services.auth_service import hash_password
from dealerdesk.workflow.roles import ActingUser, Role


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
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


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def users(db_session, password_hash):
    """One active user per role, keyed by role value (username == role value)."""
    created = {}
    for role in Role:
        user = User(
            username=role.value,
            email=f"{role.value}@dealerdesk.test",
            full_name=role.label,
            password_hash=password_hash,
        )
        user.role_assignment = UserRole(role=role.value)
        db_session.add(user)
        created[role.value] = user
    db_session.commit()
    return created


@pytest.fixture(scope='function')
def acting(users):
    """Build the ActingUser of the seeded user holding a role."""
    def _acting(role) -> ActingUser:
        role = Role(role)
        return ActingUser(user_id=users[role.value].id, role=role)
    return _acting


@pytest.fixture(scope='function')
def order(db_session, acting):
    """A fresh VN order at INSCRIPTION, created by the CDV."""
    return order_service.create_order({
        "customer_name": "Karim Benali",
        "customer_phone": "0550 12 34 56",
        "vehicle_brand": "Renault",
        "vehicle_model": "Clio",
        "total_price": "2500000",
        "advance_payment": "500000",
    }, acting_user=acting(Role.CDV))


@pytest.fixture(scope='function')
def advance(acting):
    """Jump an order to a stage through the administrative override."""
    def _advance(order_id: int, stage: str):
        order, _ = workflow_service.override_status(
            order_id, stage, acting_user=acting(Role.SYS_ADMIN), reason="test setup"
        )
        return order
    return _advance


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def login(client, users):
    """Log in as the seeded user of a role and return Authorization headers."""
    def _login(role) -> dict:
        token = get_auth_token(client, Role(role).value)
        assert token, f"login failed for {role}"
        return auth_headers(token)
    return _login
