"""
Account storage helpers.

Login reads accounts as plain ``AccountRecord`` values built from explicit
column selects, so the telemetry columns are only ever named when the caller
asks for them. Missing-column failures surface as SchemaCompatibilityError.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import undefer_group

from models import db
from models.user import User, TELEMETRY_GROUP
from security.telemetry import get_capability, is_missing_column_error
from utils.errors import SchemaCompatibilityError

_BASE_COLUMNS = (
    User.id,
    User.name,
    User.email,
    User.phone,
    User.type,
    User.student_id,
    User.password_hash,
)
_TELEMETRY_COLUMNS = (
    User.last_login_at,
    User.login_count,
    User.failed_login_attempts,
)


def normalize_email(value) -> str:
    return str(value or "").strip().lower()


@dataclass
class AccountRecord:
    id: int
    name: str
    email: str
    phone: Optional[str]
    type: str
    student_id: Optional[int]
    password_hash: str
    # None when the schema has no telemetry columns
    last_login_at: Optional[datetime] = None
    login_count: Optional[int] = None
    failed_login_attempts: Optional[int] = None

    @classmethod
    def from_row(cls, row) -> "AccountRecord":
        return cls(**dict(row._mapping))


@contextmanager
def schema_guard():
    try:
        yield
    except DBAPIError as exc:
        if is_missing_column_error(exc):
            db.session.rollback()
            raise SchemaCompatibilityError(str(exc.orig)) from exc
        raise


def run_with_telemetry(fn):
    """
    Calls ``fn(telemetry)`` with telemetry on when the capability allows it.
    A missing telemetry column downgrades the capability and ``fn`` runs again
    with telemetry off.
    """
    capability = get_capability()
    if capability.resolve():
        try:
            with schema_guard():
                return fn(True)
        except SchemaCompatibilityError:
            capability.downgrade()
    return fn(False)


def _columns(telemetry: bool):
    return _BASE_COLUMNS + _TELEMETRY_COLUMNS if telemetry else _BASE_COLUMNS


def find_active_by_email(email: str, telemetry: bool = False) -> Optional[AccountRecord]:
    stmt = select(*_columns(telemetry)).where(
        User.email == normalize_email(email),
        User.deleted_at.is_(None),
    )
    with schema_guard():
        row = db.session.execute(stmt).first()
    return AccountRecord.from_row(row) if row is not None else None


def record_successful_login(account_id: int, now: Optional[datetime] = None) -> Optional[AccountRecord]:
    """
    Stamps last_login_at, bumps login_count and clears failed_login_attempts,
    then re-reads the row, all in one transaction. Returns None if the row is
    gone by the time it is re-read.
    """
    stmt = (
        update(User)
        .where(User.id == account_id)
        .values(
            last_login_at=now or datetime.utcnow(),
            login_count=User.login_count + 1,
            failed_login_attempts=0,
        )
        .execution_options(synchronize_session=False)
    )
    with schema_guard():
        db.session.execute(stmt)
        row = db.session.execute(
            select(*_columns(True)).where(User.id == account_id)
        ).first()
        db.session.commit()
    return AccountRecord.from_row(row) if row is not None else None


def increment_failed_attempts(account_id: int) -> None:
    stmt = (
        update(User)
        .where(User.id == account_id)
        .values(failed_login_attempts=User.failed_login_attempts + 1)
        .execution_options(synchronize_session=False)
    )
    with schema_guard():
        db.session.execute(stmt)
        db.session.commit()


def profile_payload(account: AccountRecord, groups) -> dict:
    return {
        "id": account.id,
        "name": account.name,
        "email": account.email,
        "phone": account.phone,
        "type": account.type,
        "studentId": account.student_id,
        "lastLoginAt": account.last_login_at.isoformat() if account.last_login_at else None,
        "loginCount": account.login_count,
        "failedLoginAttempts": account.failed_login_attempts,
        "groups": groups,
    }


def with_telemetry(query, telemetry: bool):
    """Adds the deferred telemetry columns to an ORM User query when available."""
    if telemetry:
        return query.options(undefer_group(TELEMETRY_GROUP))
    return query


def serialize_user(user: User, groups_by_user=None, telemetry: bool = False) -> dict:
    groups_by_user = groups_by_user or {}
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "type": user.type,
        "studentId": user.student_id,
        "lastLoginAt": user.last_login_at.isoformat() if telemetry and user.last_login_at else None,
        "loginCount": (user.login_count or 0) if telemetry else 0,
        "failedLoginAttempts": (user.failed_login_attempts or 0) if telemetry else 0,
        "groups": groups_by_user.get(user.id, []),
    }
