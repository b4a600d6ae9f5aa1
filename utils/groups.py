import logging
from typing import Dict, Iterable, List

from models import db
from models.group import GroupMembership, DEFAULT_GROUP_COLOR, DEFAULT_MEMBER_ROLE

logger = logging.getLogger(__name__)


def _summary(membership: GroupMembership) -> dict:
    group = membership.group
    return {
        "id": group.id,
        "name": group.name,
        "color": group.color or DEFAULT_GROUP_COLOR,
        "role": membership.role or DEFAULT_MEMBER_ROLE,
    }


def groups_for_users(user_ids: Iterable[int]) -> Dict[int, List[dict]]:
    """Group summaries keyed by user id. Lookup failures yield an empty mapping."""
    ids = list(dict.fromkeys(user_ids))
    if not ids:
        return {}
    try:
        rows = (
            GroupMembership.query
            .filter(GroupMembership.user_id.in_(ids))
            .order_by(GroupMembership.id.asc())
            .all()
        )
        result: Dict[int, List[dict]] = {}
        for row in rows:
            if row.group is None:
                continue
            result.setdefault(row.user_id, []).append(_summary(row))
        return result
    except Exception:
        db.session.rollback()
        logger.warning("Failed to fetch group memberships for users %s", ids, exc_info=True)
        return {}


def groups_for_user(user_id: int) -> List[dict]:
    return groups_for_users([user_id]).get(user_id, [])


def group_ids_for_user(user_id: int) -> List[int]:
    rows = GroupMembership.query.with_entities(GroupMembership.group_id).filter_by(user_id=user_id).all()
    return [r[0] for r in rows]
