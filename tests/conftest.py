from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlalchemy import text

from app import create_app
from models import db
from models.group import Group, GroupMembership
from models.user import User, TELEMETRY_COLUMNS
from security.password import hash_password
from security.tokens import sign_token

DEFAULT_PASSWORD = "s3cret-pass"


@pytest.fixture()
def app(tmp_path: Path):
    app = create_app(
        {
            "TESTING": True,
            "APP_ENV": "development",
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
            "JWT_SECRET": "test-jwt-secret",
            "BCRYPT_ROUNDS": 4,
            "SMTP_HOST": None,
            "S3_BUCKET": None,
        }
    )
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    """Creates an account and returns its id."""

    def _make_user(
        email: str,
        *,
        name: str = "Test User",
        user_type: str = "Student",
        password: str = DEFAULT_PASSWORD,
        student_id: int | None = None,
        deleted: bool = False,
    ) -> int:
        with app.app_context():
            user = User(
                name=name,
                email=email,
                password_hash=hash_password(password),
                type=user_type,
                student_id=student_id,
            )
            if deleted:
                user.deleted_at = datetime.utcnow()
            db.session.add(user)
            db.session.commit()
            return user.id

    return _make_user


@pytest.fixture()
def make_group(app):
    def _make_group(name: str, color: str = "#2563eb", members=()) -> int:
        with app.app_context():
            group = Group(name=name, color=color)
            db.session.add(group)
            db.session.flush()
            for user_id, role in members:
                db.session.add(GroupMembership(group_id=group.id, user_id=user_id, role=role))
            db.session.commit()
            return group.id

    return _make_group


@pytest.fixture()
def auth_header(app):
    def _auth_header(user_id: int, role: str) -> dict:
        with app.app_context():
            token = sign_token(user_id, role)
        return {"Authorization": f"Bearer {token}"}

    return _auth_header


@pytest.fixture()
def drop_telemetry_columns(app):
    """Strips the telemetry columns from ``users`` to mimic a pre-migration database."""

    def _drop() -> None:
        with app.app_context():
            db.session.remove()
            with db.engine.begin() as conn:
                for column in TELEMETRY_COLUMNS:
                    conn.execute(text(f"ALTER TABLE users DROP COLUMN {column}"))

    return _drop


@pytest.fixture()
def legacy_schema(drop_telemetry_columns):
    drop_telemetry_columns()
