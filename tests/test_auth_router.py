import logging

import pytest
from fastapi.testclient import TestClient

from auth_gateway.application.ports.user_repo import UserStatus
from auth_gateway.config import Settings
from auth_gateway.database import build_engine, create_db_and_tables
from auth_gateway.dependencies import build_container
from auth_gateway.infrastructure.otp.console_provider import ConsoleOTPProvider
from auth_gateway.main import create_app

PASSWORD = "s3cret-pass"


@pytest.fixture
def api():
    settings = Settings(
        DATABASE_URL="sqlite://",
        JWT_SECRET_KEY="test-secret-key-that-is-long-enough-for-hs256",
        OTP_PROVIDER="console",
        ATTEMPT_STORE="memory",
        ALLOWED_ORIGINS="*",
    )
    engine = build_engine(settings.DATABASE_URL)
    create_db_and_tables(engine)
    container = build_container(settings, engine, provider=ConsoleOTPProvider())
    app = create_app(settings=settings, container=container)
    with TestClient(app) as client:
        yield client, container


def register(client, email="ana@example.com", contact_number="09123456789"):
    return client.post("/api/auth/register", json={
        "email": email,
        "password": PASSWORD,
        "first_name": "Ana",
        "last_name": "Santos",
        "contact_number": contact_number,
    })


def active_user(client, container, otp=False):
    user_id = register(client).json()["data"]["user"]["id"]
    container.user_repo.update_status(user_id, UserStatus.ACTIVE)
    if otp:
        container.user_repo.set_otp_enabled(user_id, True)
    return user_id


def login(client):
    return client.post("/api/auth/login", json={"email": "ana@example.com", "password": PASSWORD})


def test_health(api):
    client, _ = api
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["sweeper_running"] is True


def test_register_creates_pending_visitor(api):
    client, _ = api
    resp = register(client)

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    user = body["data"]["user"]
    assert user["status"] == "PENDING"
    assert user["roles"] == ["VISITOR"]
    assert user["phone_number"] == "+639123456789"


def test_register_duplicate_email(api):
    client, _ = api
    register(client)
    resp = register(client)

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["data"]["error"] == "EMAIL_ALREADY_REGISTERED"


def test_register_invalid_phone(api):
    client, _ = api
    resp = register(client, contact_number="12345")
    assert resp.status_code == 400
    assert resp.json()["data"]["error"] == "INVALID_PHONE_FORMAT"


@pytest.mark.parametrize("email", ["a@b..c", "ana.example.com", "ana@", "\"x\"@-d.e"])
def test_register_rejects_malformed_email(api, email):
    client, _ = api
    resp = register(client, email=email)
    assert resp.status_code == 422


def test_login_rejects_malformed_email(api):
    client, _ = api
    resp = client.post("/api/auth/login", json={"email": "a@b..c", "password": PASSWORD})
    assert resp.status_code == 422


def test_email_is_lowercased(api):
    client, container = api
    resp = register(client, email="Ana@Example.COM")
    assert resp.status_code == 201
    assert resp.json()["data"]["user"]["email"] == "ana@example.com"

    container.user_repo.update_status(resp.json()["data"]["user"]["id"], UserStatus.ACTIVE)
    assert login(client).status_code == 200


def test_login_pending_account(api):
    client, _ = api
    register(client)
    resp = login(client)

    assert resp.status_code == 403
    body = resp.json()
    assert body["message"] == "Account is not active"
    assert body["data"] == {"error": "ACCOUNT_NOT_ACTIVE", "status": "PENDING"}


def test_login_bad_password(api):
    client, container = api
    active_user(client, container)
    resp = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "nope"})

    assert resp.status_code == 401
    assert resp.json()["data"]["error"] == "INVALID_CREDENTIALS"


def test_login_issues_session_and_profile(api):
    client, container = api
    user_id = active_user(client, container)

    resp = login(client)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["token_type"] == "bearer"
    assert data["role"] == "VISITOR"
    assert data["roles"] == ["VISITOR"]
    assert resp.headers["X-Content-Type-Options"] == "nosniff"

    profile = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert profile.status_code == 200
    assert profile.json()["data"]["user"]["id"] == user_id


def test_profile_requires_token(api):
    client, _ = api
    resp = client.get("/api/auth/profile")

    assert resp.status_code == 401
    assert resp.json()["data"]["error"] == "INVALID_OR_EXPIRED_TOKEN"


def test_profile_rejects_bad_token(api):
    client, _ = api
    resp = client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-token"})
    assert resp.status_code == 401


def test_otp_login_flow(api):
    client, container = api
    active_user(client, container, otp=True)

    resp = login(client)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["otp_required"] is True
    assert data["phone"] == "+639****6789"
    challenge = data["challenge_token"]

    wrong = client.post("/api/auth/verify-otp", json={"challenge_token": challenge, "code": "000000"})
    assert wrong.status_code == 400
    assert wrong.json()["data"]["error"] == "INVALID_OR_EXPIRED_CODE"

    ok = client.post("/api/auth/verify-otp", json={"challenge_token": challenge, "code": "123456"})
    assert ok.status_code == 200
    assert ok.json()["data"]["access_token"]


def test_verify_otp_validates_code_shape(api):
    client, _ = api
    resp = client.post("/api/auth/verify-otp", json={"challenge_token": "x", "code": "12ab"})
    assert resp.status_code == 422


def test_resend_otp_rate_limited(api):
    client, container = api
    active_user(client, container, otp=True)
    challenge = login(client).json()["data"]["challenge_token"]

    assert client.post("/api/auth/resend-otp", json={"challenge_token": challenge}).status_code == 200
    assert client.post("/api/auth/resend-otp", json={"challenge_token": challenge}).status_code == 200

    resp = client.post("/api/auth/resend-otp", json={"challenge_token": challenge})
    assert resp.status_code == 429
    body = resp.json()
    assert body["data"]["error"] == "RATE_LIMITED"
    assert body["data"]["wait_minutes"] == 60
    assert resp.headers["Retry-After"] == "3600"


def test_logout(api):
    client, container = api
    active_user(client, container)
    token = login(client).json()["data"]["access_token"]

    resp = client.post("/api/auth/logout", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["success"] is True


def test_responses_are_not_cached(api):
    client, container = api
    active_user(client, container)

    ok = login(client)
    denied = client.get("/api/auth/profile")

    for resp in (ok, denied):
        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.headers["X-Frame-Options"] == "DENY"


def test_request_log_omits_query_string(api, caplog):
    client, _ = api
    with caplog.at_level(logging.INFO, logger="auth_gateway.middleware"):
        client.get("/health?token=abc123")

    lines = [r.getMessage() for r in caplog.records if r.name == "auth_gateway.middleware"]
    assert any(line.startswith("GET /health -> 200") for line in lines)
    assert not any("abc123" in line for line in lines)
