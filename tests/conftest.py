"""
Shared fixtures.

Each test gets a fresh application built from an explicit ``Settings`` on an
in-memory SQLite database, with a cheap PBKDF2 work factor.  The Socket.IO
``emit`` is replaced by an ``AsyncMock`` so tests can assert on
notifications without a connected client.
"""

import os
import tempfile

# Keep test log files out of the project tree; must run before core.logger
os.environ.setdefault("USERHUB_LOG_DIR", os.path.join(tempfile.gettempdir(), "userhub-test-logs"))

from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from core.approval import ApprovalStatus, Role  # noqa: E402
from core.config import Settings  # noqa: E402
from database import Base  # noqa: E402
from main import create_app  # noqa: E402
from models.user import User  # noqa: E402
from users import service  # noqa: E402

TEST_SECRET = "test-signing-key-0123456789-abcdefghijklmnop"


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite://",
        "secret_key": TEST_SECRET,
        "environment": "test",
        "password_hash_rounds": 1000,
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def app_factory():
    def build(**overrides):
        app = create_app(make_settings(**overrides))
        Base.metadata.create_all(app.state.engine)
        app.state.realtime.sio.emit = AsyncMock()
        return app

    return build


@pytest.fixture
def app(app_factory):
    return app_factory()


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(app):
    session = app.state.session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(app):
    """
    Insert a credential directly in the store and return its id.  *target*
    selects another app built with ``app_factory``.
    """

    def create(
        email="user@example.com",
        password="secret1",
        name="Test User",
        role=Role.USER,
        status=ApprovalStatus.APPROVED,
        target=None,
    ) -> str:
        target = target or app
        session = target.state.session_factory()
        try:
            user = service.create_user(
                session,
                target.state.hasher,
                name=name,
                email=email,
                password=password,
                role=role,
            )
            user.approval_status = status
            session.commit()
            return user.id
        finally:
            session.close()

    return create


@pytest.fixture
def fetch_user(app):
    """Read the current row for *user_id* through a fresh session."""

    def fetch(user_id, target=None):
        session = (target or app).state.session_factory()
        try:
            user = session.get(User, user_id)
            if user is not None:
                session.expunge(user)
            return user
        finally:
            session.close()

    return fetch


@pytest.fixture
def auth_header(app, fetch_user):
    """Build an ``Authorization`` header carrying a fresh token for *user_id*."""

    def header(user_id, target=None, **issue_kwargs):
        target = target or app
        user = fetch_user(user_id, target)
        token = target.state.tokens.issue(
            user_id=user.id,
            role=Role(user.role).value,
            name=user.name,
            email=user.email,
            **issue_kwargs,
        )
        return {"Authorization": f"Bearer {token}"}

    return header


@pytest.fixture
def admin_id(make_user):
    return make_user(email="admin@example.com", name="Admin", role=Role.ADMIN)


@pytest.fixture
def admin_headers(admin_id, auth_header):
    return auth_header(admin_id)
