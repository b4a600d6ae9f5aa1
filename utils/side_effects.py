import logging

from models import db

logger = logging.getLogger(__name__)


def best_effort(label: str, fn, *args, **kwargs):
    """Run a side effect whose failure must not change the response.

    The session is rolled back so the request can keep using it; the error is
    logged and the call returns None.
    """
    try:
        return fn(*args, **kwargs)
    except Exception:
        db.session.rollback()
        logger.warning("%s failed; continuing without it", label, exc_info=True)
        return None
