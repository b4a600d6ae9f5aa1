from __future__ import annotations

import logging

import jwt
import pytest
from sqlalchemy import select

from models import db
from models.audit_log import AuditLog
from models.group import GroupMembership
from models.user import User
from security import login as login_gate
from security.telemetry import Capability, TelemetryCapability, EXTENSION_KEY
from utils import accounts
from utils.errors import InvalidCredentials, ValidationError

from conftest import DEFAULT_PASSWORD

LOGIN_URL = "/api/auth/login"


def _login(client, email, password=DEFAULT_PASSWORD):
    return client.post(LOGIN_URL, json={"email": email, "password": password})


def _telemetry_row(app, user_id):
    with app.app_context():
        return db.session.execute(
            select(User.last_login_at, User.login_count, User.failed_login_attempts).where(User.id == user_id)
        ).one()


def _audit_actions(app, user_id=None):
    with app.app_context():
        q = AuditLog.query.order_by(AuditLog.id.asc())
        if user_id is not None:
            q = q.filter_by(actor_user_id=user_id)
        return [row.action for row in q.all()]


def _capability(app):
    return app.extensions[EXTENSION_KEY]


def test_successful_login_returns_token_and_profile(app, client, make_user, make_group):
    user_id = make_user("alice@example.com", name="Alice", user_type="Teacher")
    make_group("Central Campus", members=[(user_id, "Lead")])

    resp = _login(client, "alice@example.com")

    assert resp.status_code == 200
    body = resp.get_json()
    claims = jwt.decode(body["token"], "test-jwt-secret", algorithms=["HS256"])
    assert claims["sub"] == str(user_id)
    assert claims["role"] == "Teacher"

    profile = body["user"]
    assert profile["id"] == user_id
    assert profile["email"] == "alice@example.com"
    assert profile["type"] == "Teacher"
    assert profile["loginCount"] == 1
    assert profile["failedLoginAttempts"] == 0
    assert profile["lastLoginAt"] is not None
    assert profile["groups"] == [
        {"id": profile["groups"][0]["id"], "name": "Central Campus", "color": "#2563eb", "role": "Lead"}
    ]
    assert "password_hash" not in profile
    assert _capability(app).state is Capability.SUPPORTED


def test_email_is_trimmed_and_lowercased(client, make_user):
    make_user("alice@example.com")

    resp = _login(client, "  ALICE@Example.COM  ")

    assert resp.status_code == 200
    assert resp.get_json()["user"]["email"] == "alice@example.com"


def test_wrong_password_increments_failed_attempts_once(app, client, make_user):
    user_id = make_user("alice@example.com")

    resp = _login(client, "alice@example.com", "wrong-password")

    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid credentials"}
    last_login_at, login_count, failed = _telemetry_row(app, user_id)
    assert failed == 1
    assert login_count == 0
    assert last_login_at is None
    assert _audit_actions(app, user_id) == ["login_failed"]


def test_failed_attempts_reset_after_success(app, client, make_user):
    user_id = make_user("alice@example.com")

    for _ in range(2):
        assert _login(client, "alice@example.com", "nope").status_code == 401
    assert _telemetry_row(app, user_id).failed_login_attempts == 2

    resp = _login(client, "alice@example.com")

    assert resp.status_code == 200
    profile = resp.get_json()["user"]
    assert profile["failedLoginAttempts"] == 0
    assert profile["loginCount"] == 1
    assert _audit_actions(app, user_id) == ["login_failed", "login_failed", "login"]


def test_login_count_accumulates(client, make_user):
    make_user("alice@example.com")

    _login(client, "alice@example.com")
    resp = _login(client, "alice@example.com")

    assert resp.get_json()["user"]["loginCount"] == 2


def test_login_audit_records_origin(app, client, make_user):
    user_id = make_user("alice@example.com")

    resp = client.post(
        LOGIN_URL,
        json={"email": "alice@example.com", "password": DEFAULT_PASSWORD},
        headers={"X-Forwarded-For": "203.0.113.7"},
    )

    assert resp.status_code == 200
    with app.app_context():
        entry = AuditLog.query.filter_by(action="login").one()
        assert entry.actor_user_id == user_id
        assert entry.entity == "User"
        assert entry.entity_id == str(user_id)
        assert entry.changes == {"ip": "203.0.113.7"}


def test_unknown_email_is_indistinguishable_from_wrong_password(app, client, make_user):
    make_user("alice@example.com")

    unknown = _login(client, "nobody@example.com", "whatever")
    wrong = _login(client, "alice@example.com", "whatever")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.get_json() == wrong.get_json()
    assert _audit_actions(app) == ["login_failed"]


def test_deleted_account_cannot_log_in(client, make_user):
    make_user("gone@example.com", deleted=True)

    resp = _login(client, "gone@example.com")

    assert resp.status_code == 401


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"email": "alice@example.com"},
        {"password": "pw"},
        {"email": "   ", "password": "pw"},
        {"email": "alice@example.com", "password": ""},
        {"email": 42, "password": "pw"},
        {"email": "alice@example.com", "password": ["pw"]},
    ],
)
def test_missing_fields_are_rejected_before_storage(app, client, payload):
    resp = client.post(LOGIN_URL, json=payload)

    assert resp.status_code == 422
    assert resp.get_json() == {"error": "email and password required"}
    assert _audit_actions(app) == []
    assert _capability(app).state is Capability.UNKNOWN


def test_legacy_schema_login_skips_telemetry(app, client, legacy_schema, make_user):
    user_id = make_user("legacy@example.com")

    resp = _login(client, "legacy@example.com")

    assert resp.status_code == 200
    profile = resp.get_json()["user"]
    assert profile["id"] == user_id
    assert profile["lastLoginAt"] is None
    assert profile["loginCount"] is None
    assert profile["failedLoginAttempts"] is None
    assert _capability(app).state is Capability.UNSUPPORTED
    assert _audit_actions(app, user_id) == ["login"]


def test_legacy_schema_failed_login_still_audited(app, client, legacy_schema, make_user):
    user_id = make_user("legacy@example.com")

    resp = _login(client, "legacy@example.com", "wrong")

    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Invalid credentials"}
    assert _audit_actions(app, user_id) == ["login_failed"]


def test_columns_dropped_mid_session_fall_back_to_legacy(app, client, make_user, drop_telemetry_columns, caplog):
    make_user("alice@example.com")
    assert _login(client, "alice@example.com").status_code == 200
    assert _capability(app).state is Capability.SUPPORTED

    drop_telemetry_columns()
    with caplog.at_level(logging.WARNING, logger="security.telemetry"):
        resp = _login(client, "alice@example.com")

    assert resp.status_code == 200
    profile = resp.get_json()["user"]
    assert profile["loginCount"] is None
    assert profile["lastLoginAt"] is None
    assert _capability(app).state is Capability.UNSUPPORTED
    assert any("downgrading" in rec.getMessage() for rec in caplog.records)


def test_columns_dropped_before_failed_attempt_still_401(app, client, make_user, drop_telemetry_columns):
    user_id = make_user("alice@example.com")
    assert _login(client, "alice@example.com").status_code == 200

    drop_telemetry_columns()
    resp = _login(client, "alice@example.com", "wrong")

    assert resp.status_code == 401
    assert _capability(app).state is Capability.UNSUPPORTED
    assert _audit_actions(app, user_id) == ["login", "login_failed"]


def test_detection_failure_resolves_to_legacy(app, client, make_user, caplog):
    make_user("alice@example.com")

    def _broken_probe():
        raise RuntimeError("inspector unavailable")

    app.extensions[EXTENSION_KEY] = TelemetryCapability(probe=_broken_probe)

    with caplog.at_level(logging.WARNING, logger="security.telemetry"):
        resp = _login(client, "alice@example.com")

    assert resp.status_code == 200
    assert resp.get_json()["user"]["loginCount"] is None
    assert _capability(app).state is Capability.UNSUPPORTED
    assert any("Unable to detect login telemetry support" in rec.getMessage() for rec in caplog.records)


def test_group_lookup_failure_yields_empty_groups(app, client, make_user, make_group, monkeypatch):
    user_id = make_user("alice@example.com")
    make_group("Central Campus", members=[(user_id, "Member")])

    class _FailingQuery:
        def filter(self, *args, **kwargs):
            raise RuntimeError("group store unavailable")

    with app.app_context():
        monkeypatch.setattr(GroupMembership, "query", _FailingQuery())

    resp = _login(client, "alice@example.com")

    assert resp.status_code == 200
    assert resp.get_json()["user"]["groups"] == []


def test_audit_failure_does_not_block_login(app, client, make_user, monkeypatch):
    user_id = make_user("alice@example.com")

    def _broken_log_event(*args, **kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr(login_gate, "log_event", _broken_log_event)

    ok = _login(client, "alice@example.com")
    bad = _login(client, "alice@example.com", "wrong")

    assert ok.status_code == 200
    assert bad.status_code == 401
    # the failed-attempt counter is independent of the audit write
    assert _telemetry_row(app, user_id).failed_login_attempts == 1
    assert _audit_actions(app) == []


def test_vanished_row_during_finalize_is_internal_error(client, make_user, monkeypatch):
    make_user("alice@example.com")
    monkeypatch.setattr(accounts, "record_successful_login", lambda account_id, now=None: None)

    resp = _login(client, "alice@example.com")

    assert resp.status_code == 500
    assert resp.get_json() == {"error": "Unable to finalize login"}


def test_login_function_raises_typed_errors(app, make_user):
    make_user("alice@example.com")

    with app.app_context():
        with pytest.raises(ValidationError):
            login_gate.login(None, "pw")
        with pytest.raises(InvalidCredentials):
            login_gate.login("alice@example.com", "wrong")

        result = login_gate.login("alice@example.com", DEFAULT_PASSWORD, origin="10.0.0.1")

    payload = result.to_payload()
    assert set(payload) == {"token", "user"}
    assert payload["user"]["loginCount"] == 1
