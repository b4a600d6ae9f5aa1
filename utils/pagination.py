from sqlalchemy import and_, or_

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def parse_pagination(args, default_limit: int = DEFAULT_LIMIT, max_limit: int = MAX_LIMIT):
    """Returns (limit, cursor) from query args; limit is clamped to 1..max_limit."""
    try:
        limit = int(args.get("limit") or default_limit)
    except (TypeError, ValueError):
        limit = default_limit
    limit = min(max(limit, 1), max_limit)

    cursor = args.get("cursor") or None
    try:
        cursor = int(cursor) if cursor is not None else None
    except (TypeError, ValueError):
        cursor = None
    return limit, cursor


def paginate_newest_first(query, model, limit: int, cursor, ts_attr: str = "created_at"):
    """
    Keyset page ordered by (timestamp desc, id desc). The cursor is the id of
    the last row of the previous page. Returns (items, next_cursor); a cursor
    whose row no longer exists yields an empty page.
    """
    ts_col = getattr(model, ts_attr)

    if cursor is not None:
        anchor = model.query.with_entities(ts_col).filter(model.id == cursor).first()
        if anchor is None:
            return [], None
        anchor_ts = anchor[0]
        query = query.filter(or_(ts_col < anchor_ts, and_(ts_col == anchor_ts, model.id < cursor)))

    rows = query.order_by(ts_col.desc(), model.id.desc()).limit(limit + 1).all()
    has_more = len(rows) > limit
    items = rows[:limit]
    next_cursor = str(items[-1].id) if has_more else None
    return items, next_cursor
