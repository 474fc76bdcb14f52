"""Shared test fixtures for the site hosting test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, stub DNS)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- sites_root: per-test SITES_ROOT under tmp_path
- seed_data: admin, a free user and a pro user, each with an API token
"""

import pytest
from werkzeug.security import generate_password_hash

from sitehost import create_app
from sitehost.extensions import db as _db
from sitehost.models.api_token import ApiToken
from sitehost.models.user import User


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture(autouse=True)
def sites_root(app, tmp_path):
    """Point SITES_ROOT at a fresh directory for every test."""
    original = app.config["SITES_ROOT"]
    root = tmp_path / "hosted-sites"
    app.config["SITES_ROOT"] = str(root)
    yield root
    app.config["SITES_ROOT"] = original


@pytest.fixture
def client(app):
    """Flask test client.

    Each request runs in its own app context (as in production) so that
    per-request state on ``g`` (e.g. flask-login's cached user) is not
    shared with the long-lived context held by ``db_session``.
    """
    test_client = app.test_client()
    original_open = test_client.open

    def open_in_fresh_context(*args, **kwargs):
        with app.app_context():
            return original_open(*args, **kwargs)

    test_client.open = open_in_fresh_context
    return test_client


def make_user(username, email, password="secret123", plan="free", role="user"):
    """Create a user plus one API token. Returns (user, token_string)."""
    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(password),
        plan=plan,
        role=role,
    )
    _db.session.add(user)
    _db.session.flush()

    api_token = ApiToken(user_id=user.id, name="test")
    _db.session.add(api_token)
    _db.session.commit()
    return user, api_token.token


def auth(token):
    """Authorization header for a bearer token."""
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def seed_data(app, db_session):
    """Seed an admin, a free-plan user and a pro-plan user.

    Returns a dict with the objects, their ids and bearer tokens.
    """
    admin, admin_token = make_user(
        "admin", "admin@sitehost.local", password="admin123", plan="enterprise", role="admin"
    )
    alice, alice_token = make_user("alice", "alice@example.com")
    bob, bob_token = make_user("bob", "bob@example.com", plan="pro")

    # Store plain IDs so tests can use them even when objects
    # are detached from the session (cross-context access).
    return {
        "admin": admin,
        "admin_id": admin.id,
        "admin_token": admin_token,
        "alice": alice,
        "alice_id": alice.id,
        "alice_token": alice_token,
        "bob": bob,
        "bob_id": bob.id,
        "bob_token": bob_token,
    }
