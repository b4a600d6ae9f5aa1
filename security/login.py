"""
Password login with optional login telemetry.

Two paths share one shape: look the account up, check the password, write
an audit entry, issue a token. The telemetry path also keeps the counters on
the ``users`` row; the legacy path never names those columns. A missing
column on the telemetry path downgrades the capability and the attempt is
replayed through the legacy path.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from security.password import verify_password
from security.telemetry import get_capability
from security.tokens import sign_token
from utils import accounts
from utils.accounts import AccountRecord, normalize_email, profile_payload
from utils.audit import log_event
from utils.errors import (
    InternalError,
    InvalidCredentials,
    SchemaCompatibilityError,
    ValidationError,
)
from utils.groups import groups_for_user
from utils.side_effects import best_effort

logger = logging.getLogger(__name__)

ACTION_LOGIN = "login"
ACTION_LOGIN_FAILED = "login_failed"
ENTITY_USER = "User"


@dataclass
class LoginResult:
    token: str
    profile: dict

    def to_payload(self) -> dict:
        return {"token": self.token, "user": self.profile}


def login(email, password, origin: Optional[str] = None) -> LoginResult:
    if not isinstance(email, str) or not isinstance(password, str) or not password:
        raise ValidationError("email and password required")
    normalized = normalize_email(email)
    if not normalized:
        raise ValidationError("email and password required")

    capability = get_capability()
    if capability.resolve():
        try:
            return _login_with_telemetry(normalized, password, origin)
        except SchemaCompatibilityError:
            capability.downgrade()
    return _login_legacy(normalized, password, origin)


def _login_with_telemetry(email: str, password: str, origin: Optional[str]) -> LoginResult:
    account = accounts.find_active_by_email(email, telemetry=True)
    if account is None:
        raise InvalidCredentials()

    if not verify_password(password, account.password_hash):
        # independent side writes; neither changes the 401
        best_effort("failed-attempt counter", _bump_failed_attempts, account.id)
        best_effort("login_failed audit", _audit, ACTION_LOGIN_FAILED, account.id)
        raise InvalidCredentials()

    updated = accounts.record_successful_login(account.id)
    if updated is None:
        logger.error("Account %s vanished while finalizing login", account.id)
        raise InternalError("Unable to finalize login")

    return _finish(updated, origin)


def _login_legacy(email: str, password: str, origin: Optional[str]) -> LoginResult:
    account = accounts.find_active_by_email(email, telemetry=False)
    if account is None:
        raise InvalidCredentials()

    if not verify_password(password, account.password_hash):
        best_effort("login_failed audit", _audit, ACTION_LOGIN_FAILED, account.id)
        raise InvalidCredentials()

    return _finish(account, origin)


def _finish(account: AccountRecord, origin: Optional[str]) -> LoginResult:
    best_effort("login audit", _audit, ACTION_LOGIN, account.id, {"ip": origin})
    groups = groups_for_user(account.id)
    token = sign_token(account.id, account.type)
    return LoginResult(token=token, profile=profile_payload(account, groups))


def _bump_failed_attempts(account_id: int):
    try:
        accounts.increment_failed_attempts(account_id)
    except SchemaCompatibilityError:
        # the 401 stands either way, so no replay
        get_capability().downgrade()


def _audit(action: str, account_id: int, changes=None):
    log_event(action, actor_id=account_id, entity=ENTITY_USER, entity_id=account_id, changes=changes)
