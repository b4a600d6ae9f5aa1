from datetime import datetime


def parse_iso(value):
    """Parses an ISO date or datetime string; returns None when absent or malformed."""
    if not value or not isinstance(value, str):
        return None
    try:
        # accept the trailing "Z" browsers send
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.replace(tzinfo=None) - parsed.utcoffset()
    return parsed
