"""
Login telemetry capability.

The ``users`` table only carries the telemetry columns (last login time,
login counter, failed-attempt counter) once the telemetry migration has run.
Whether they exist is probed once per application and then remembered. The
answer can only move from SUPPORTED to UNSUPPORTED, when a query trips over
a missing column.
"""
import enum
import logging

from flask import current_app
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import DBAPIError

from models import db
from models.user import User, TELEMETRY_COLUMNS

logger = logging.getLogger(__name__)

EXTENSION_KEY = "login_telemetry"

# SQLSTATE undefined_column (PostgreSQL) / ER_BAD_FIELD_ERROR (MySQL)
_PG_UNDEFINED_COLUMN = "42703"
_MYSQL_BAD_FIELD = 1054


class Capability(enum.Enum):
    UNKNOWN = "unknown"
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"


def probe_telemetry_columns() -> bool:
    columns = {col["name"] for col in sa_inspect(db.engine).get_columns(User.__tablename__)}
    return set(TELEMETRY_COLUMNS).issubset(columns)


class TelemetryCapability:
    """Memoized answer to "does the users table have telemetry columns".

    Concurrent first callers may each run the probe; it is a read-only query
    and every caller stores the same answer, so no lock is taken.
    """

    def __init__(self, probe=probe_telemetry_columns):
        self._probe = probe
        self.state = Capability.UNKNOWN

    def resolve(self) -> bool:
        if self.state is Capability.UNKNOWN:
            try:
                supported = bool(self._probe())
            except Exception:
                logger.warning(
                    "Unable to detect login telemetry support; falling back to legacy login flow",
                    exc_info=True,
                )
                supported = False
            # a downgrade that raced the probe wins
            if self.state is Capability.UNKNOWN:
                self.state = Capability.SUPPORTED if supported else Capability.UNSUPPORTED
                logger.info("Login telemetry capability resolved: %s", self.state.value)
        return self.state is Capability.SUPPORTED

    def downgrade(self):
        if self.state is not Capability.UNSUPPORTED:
            logger.warning("Detected missing telemetry columns; downgrading to legacy login flow")
        self.state = Capability.UNSUPPORTED


def init_app(app):
    app.extensions[EXTENSION_KEY] = TelemetryCapability()


def get_capability() -> TelemetryCapability:
    return current_app.extensions[EXTENSION_KEY]


def is_missing_column_error(exc: BaseException) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig

    # psycopg2 exposes pgcode, psycopg 3 exposes sqlstate
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == _PG_UNDEFINED_COLUMN:
        return True

    args = getattr(orig, "args", ())
    if args and args[0] == _MYSQL_BAD_FIELD:
        return True

    message = str(orig).lower()
    return "no such column" in message or "has no column named" in message
