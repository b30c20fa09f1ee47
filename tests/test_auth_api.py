"""
API tests for /auth: registration, login, profile, admin listing and
password recovery.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from core.approval import ApprovalStatus, Role
from core.security import digest_reset_token
from models.audit_log import AuditLog
from models.user import User

REGISTRATION = {"name": "Alice", "email": "alice@example.com", "password": "secret1"}


def register(client, **overrides):
    payload = dict(REGISTRATION)
    payload.update(overrides)
    return client.post("/auth/register", json=payload)


def login(client, email="alice@example.com", password="secret1"):
    return client.post("/auth/login", json={"email": email, "password": password})


def as_utc(value):
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ============================================================
# POST /auth/register
# ============================================================

def test_register_creates_pending_account(client, app, db):
    response = register(client)
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["email"] == "alice@example.com"
    assert data["role"] == "user"
    assert data["requires_approval"] is True
    assert data["approval_status"] == "pending"

    user = db.get(User, data["user_id"])
    assert user.approval_status == ApprovalStatus.PENDING
    assert user.password_hash != "secret1"
    assert app.state.hasher.verify("secret1", user.password_hash)


def test_register_notifies_admins(client, app):
    response = register(client)
    emit = app.state.realtime.sio.emit
    emit.assert_awaited_once()
    event, payload = emit.await_args.args
    assert event == "users:pending"
    assert payload["id"] == response.json()["data"]["user_id"]
    assert emit.await_args.kwargs["room"] == "admin_room"


def test_register_normalizes_email(client):
    response = register(client, email="  Alice@Example.COM ")
    assert response.status_code == 201
    assert response.json()["data"]["email"] == "alice@example.com"


def test_register_duplicate_email_is_case_insensitive(client):
    assert register(client).status_code == 201
    response = register(client, email="ALICE@example.com")
    assert response.status_code == 409
    assert response.json()["code"] == "EMAIL_EXISTS"


def test_register_admin_forbidden_when_public_signup_disabled(app_factory):
    app = app_factory(allow_public_admin_signup=False)
    with TestClient(app) as client:
        response = register(client, role="admin")
        assert response.status_code == 403
        assert response.json()["code"] == "ADMIN_SIGNUP_FORBIDDEN"
        assert login(client).status_code == 401
        assert register(client, role="user").status_code == 201


def test_register_admin_allowed_when_public_signup_enabled(client):
    response = register(client, role="ADMIN")
    assert response.status_code == 201
    assert response.json()["data"]["role"] == "admin"


def test_register_rejects_unknown_role(client, db):
    response = register(client, role="technicien")
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INVALID_ROLE"
    assert body["valid_roles"] == ["admin", "user"]
    assert db.query(User).count() == 0


@pytest.mark.parametrize("overrides, code", [
    ({"email": "not-an-email"}, "INVALID_EMAIL"),
    ({"password": "12345"}, "PASSWORD_TOO_SHORT"),
    ({"name": "   "}, "NAME_REQUIRED"),
])
def test_register_validation(client, overrides, code):
    response = register(client, **overrides)
    assert response.status_code == 400
    assert response.json()["code"] == code


def test_register_missing_fields(client):
    response = client.post("/auth/register", json={"email": "alice@example.com"})
    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert {e["field"] for e in body["errors"]} >= {"name", "password"}


def test_register_writes_audit_row(client, db):
    user_id = register(client).json()["data"]["user_id"]
    row = db.query(AuditLog).filter(AuditLog.action == "register").one()
    assert row.target_user_id == user_id


# ============================================================
# POST /auth/login
# ============================================================

def test_login_unknown_email(client):
    response = login(client, email="nobody@example.com")
    assert response.status_code == 401
    assert response.json()["code"] == "USER_NOT_FOUND"


@pytest.mark.parametrize("email, password", [("", "secret1"), ("alice@example.com", "")])
def test_login_blank_credentials(client, make_user, email, password):
    make_user(email="alice@example.com")
    response = login(client, email=email, password=password)
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_CREDENTIALS"


def test_login_wrong_password(client, make_user):
    make_user(email="alice@example.com")
    response = login(client, password="wrong-pass")
    assert response.status_code == 401
    assert response.json()["code"] == "INVALID_PASSWORD"


def test_login_pending_account_gets_no_token(client):
    register(client)
    response = login(client)
    assert response.status_code == 403
    body = response.json()
    assert body["code"] == "ACCOUNT_PENDING"
    assert "token" not in body


def test_login_rejected_account(client, make_user):
    make_user(email="alice@example.com", status=ApprovalStatus.REJECTED)
    response = login(client)
    assert response.status_code == 403
    assert response.json()["code"] == "ACCOUNT_PENDING"
    assert "rejected" in response.json()["message"].lower()


def test_login_approved_account(client, app, make_user, fetch_user):
    user_id = make_user(email="alice@example.com", name="Alice")
    before = datetime.now(timezone.utc)

    response = login(client, email="ALICE@example.com")
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["id"] == user_id
    assert "password_hash" not in body["user"]

    claims = app.state.tokens.verify(body["token"])
    assert claims.user_id == user_id
    assert claims.role == "user"
    assert claims.email == "alice@example.com"
    assert timedelta(minutes=119) < claims.expires_at - before <= timedelta(minutes=121)

    assert as_utc(fetch_user(user_id).last_login) >= before - timedelta(seconds=1)


def test_unapproved_admin_can_still_log_in(client, make_user):
    make_user(email="root@example.com", role=Role.ADMIN, status=ApprovalStatus.PENDING)
    response = login(client, email="root@example.com")
    assert response.status_code == 200


# ============================================================
# GET /auth/profile and GET /auth/
# ============================================================

def test_profile_returns_caller_without_secrets(client, make_user, auth_header):
    user_id = make_user(email="alice@example.com", name="Alice")
    response = client.get("/auth/profile", headers=auth_header(user_id))
    assert response.status_code == 200
    user = response.json()["user"]
    assert user["email"] == "alice@example.com"
    assert user["approved"] is True
    assert user["pending"] is False
    assert "password_hash" not in user
    assert "reset_token_hash" not in user


def test_admin_lists_all_users(client, make_user, admin_headers):
    make_user(email="alice@example.com")
    make_user(email="bob@example.com", status=ApprovalStatus.PENDING)
    response = client.get("/auth/", headers=admin_headers)
    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 3
    assert {u["email"] for u in body["data"]} == {"admin@example.com", "alice@example.com", "bob@example.com"}


def test_user_cannot_list_users(client, make_user, auth_header):
    user_id = make_user()
    response = client.get("/auth/", headers=auth_header(user_id))
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"


# ============================================================
# End to end
# ============================================================

def test_register_approve_login_flow(client, admin_headers):
    user_id = register(client).json()["data"]["user_id"]
    assert login(client).status_code == 403

    assert client.patch(f"/users/{user_id}/approve", headers=admin_headers).status_code == 200

    response = login(client)
    assert response.status_code == 200
    token = response.json()["token"]
    profile = client.get("/auth/profile", headers={"Authorization": f"Bearer {token}"})
    assert profile.status_code == 200
    assert profile.json()["user"]["approval_status"] == "approved"

    # A decided account cannot be flipped by the reject action
    response = client.patch(f"/users/{user_id}/reject", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"
    assert login(client).status_code == 200


# ============================================================
# Password recovery
# ============================================================

def test_verify_email(client, make_user):
    make_user(email="alice@example.com")
    assert client.post("/auth/verify-email", json={"email": "alice@example.com"}).status_code == 200
    response = client.post("/auth/verify-email", json={"email": "nobody@example.com"})
    assert response.status_code == 404
    assert response.json()["code"] == "USER_NOT_FOUND"


def test_reset_token_is_not_echoed_outside_development(client, make_user, fetch_user):
    user_id = make_user(email="alice@example.com")
    response = client.post("/auth/reset-password", json={"email": "alice@example.com"})
    assert response.status_code == 200
    assert response.json()["reset_token"] is None
    assert len(fetch_user(user_id).reset_token_hash) == 64


@pytest.fixture
def dev_client(app_factory):
    app = app_factory(environment="development")
    with TestClient(app) as c:
        yield app, c


def test_password_reset_flow(dev_client):
    app, client = dev_client
    client.post("/users/", json={"name": "Root", "email": "root@example.com", "password": "secret1", "role": "admin"})

    token = client.post("/auth/reset-password", json={"email": "root@example.com"}).json()["reset_token"]
    assert token

    response = client.post(
        "/auth/verify-and-reset-password",
        json={"email": "root@example.com", "token": token, "new_password": "brand-new"},
    )
    assert response.status_code == 200, response.text

    assert login(client, email="root@example.com", password="secret1").status_code == 401
    assert login(client, email="root@example.com", password="brand-new").status_code == 200

    # Single use
    response = client.post(
        "/auth/verify-and-reset-password",
        json={"email": "root@example.com", "token": token, "new_password": "another1"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_RESET_TOKEN"


def test_reset_with_wrong_token(client, make_user):
    make_user(email="alice@example.com")
    client.post("/auth/reset-password", json={"email": "alice@example.com"})
    response = client.post(
        "/auth/verify-and-reset-password",
        json={"email": "alice@example.com", "token": "guess", "new_password": "brand-new"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_RESET_TOKEN"


def test_reset_with_expired_token(client, app, make_user):
    user_id = make_user(email="alice@example.com")
    with app.state.session_factory() as session:
        user = session.get(User, user_id)
        user.reset_token_hash = digest_reset_token("known-token")
        user.reset_token_expires = datetime.now(timezone.utc) - timedelta(minutes=1)
        session.commit()

    response = client.post(
        "/auth/verify-and-reset-password",
        json={"email": "alice@example.com", "token": "known-token", "new_password": "brand-new"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "RESET_TOKEN_EXPIRED"


def test_reset_rejects_short_password(client, app, make_user):
    user_id = make_user(email="alice@example.com")
    with app.state.session_factory() as session:
        user = session.get(User, user_id)
        user.reset_token_hash = digest_reset_token("known-token")
        user.reset_token_expires = datetime.now(timezone.utc) + timedelta(minutes=30)
        session.commit()

    response = client.post(
        "/auth/verify-and-reset-password",
        json={"email": "alice@example.com", "token": "known-token", "new_password": "123"},
    )
    assert response.status_code == 400
    assert response.json()["code"] == "PASSWORD_TOO_SHORT"
