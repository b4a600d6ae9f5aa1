from collections import Counter
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request
from sqlalchemy import func, or_

from models import db
from models.audit_log import AuditLog
from models.user import User
from security.rbac import require_roles
from utils.accounts import run_with_telemetry
from utils.dates import parse_iso
from utils.pagination import parse_pagination, paginate_newest_first

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

AUDIT_DEFAULT_LIMIT = 50
MONITOR_LIST_SIZE = 15
HIGH_RISK_FAILED_ATTEMPTS = 3


def _actor_payload(actor):
    if actor is None:
        return None
    return {"id": actor.id, "name": actor.name, "email": actor.email, "type": actor.type}


def _snapshot(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "email": row.email,
        "type": row.type,
        "lastLoginAt": row.last_login_at.isoformat() if row.last_login_at else None,
        "loginCount": row.login_count or 0,
        "failedLoginAttempts": row.failed_login_attempts or 0,
    }


@admin_bp.get("/audit-logs")
@require_roles("Admin")
def list_audit_logs():
    limit, cursor = parse_pagination(request.args, default_limit=AUDIT_DEFAULT_LIMIT)

    q = AuditLog.query
    actor_id = request.args.get("actorId", type=int)
    if actor_id is not None:
        q = q.filter(AuditLog.actor_user_id == actor_id)
    for arg, column in (("entity", AuditLog.entity), ("action", AuditLog.action), ("entityId", AuditLog.entity_id)):
        value = request.args.get(arg)
        if value:
            q = q.filter(column == value)

    from_date = parse_iso(request.args.get("from"))
    to_date = parse_iso(request.args.get("to"))
    if from_date:
        q = q.filter(AuditLog.created_at >= from_date)
    if to_date:
        q = q.filter(AuditLog.created_at <= to_date)

    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        q = q.filter(or_(
            AuditLog.action.ilike(pattern),
            AuditLog.entity.ilike(pattern),
            AuditLog.entity_id.like(pattern),
        ))

    rows, next_cursor = paginate_newest_first(q, AuditLog, limit, cursor)
    return jsonify(
        items=[
            {
                "id": r.id,
                "action": r.action,
                "entity": r.entity,
                "entityId": r.entity_id,
                "changes": r.changes,
                "ip": r.ip,
                "createdAt": r.created_at.isoformat(),
                "actor": _actor_payload(r.actor) if r.actor_user_id else None,
            }
            for r in rows
        ],
        nextCursor=next_cursor,
    ), 200


def _login_telemetry(day_ago, telemetry: bool) -> dict:
    if not telemetry:
        return {"supported": False, "loginsLast24h": 0, "avgLogins": 0.0, "recentLogins": [], "highRisk": []}

    snapshot_cols = (
        User.id, User.name, User.email, User.type,
        User.last_login_at, User.login_count, User.failed_login_attempts,
    )
    active = User.query.filter(User.deleted_at.is_(None))
    recent_logins = (
        db.session.query(*snapshot_cols)
        .filter(User.deleted_at.is_(None), User.last_login_at.isnot(None))
        .order_by(User.last_login_at.desc())
        .limit(MONITOR_LIST_SIZE)
        .all()
    )
    high_risk = (
        db.session.query(*snapshot_cols)
        .filter(User.deleted_at.is_(None), User.failed_login_attempts >= HIGH_RISK_FAILED_ATTEMPTS)
        .order_by(User.failed_login_attempts.desc())
        .limit(MONITOR_LIST_SIZE)
        .all()
    )
    return {
        "supported": True,
        "loginsLast24h": active.filter(User.last_login_at >= day_ago).count(),
        "avgLogins": float(
            db.session.query(func.avg(User.login_count)).filter(User.deleted_at.is_(None)).scalar() or 0
        ),
        "recentLogins": [_snapshot(r) for r in recent_logins],
        "highRisk": [_snapshot(r) for r in high_risk],
    }


@admin_bp.get("/monitor/users")
@require_roles("Admin")
def user_monitor_overview():
    now = datetime.utcnow()
    day_ago = now - timedelta(hours=24)

    role_counts = (
        db.session.query(User.type, func.count(User.id))
        .filter(User.deleted_at.is_(None))
        .group_by(User.type)
        .all()
    )

    recent_actions = Counter(
        action or "unknown"
        for (action,) in db.session.query(AuditLog.action).filter(AuditLog.created_at >= day_ago).all()
    )

    logins = run_with_telemetry(lambda telemetry: _login_telemetry(day_ago, telemetry))

    return jsonify(
        stats={
            "totalUsers": User.query.count(),
            "activeUsers": User.query.filter(User.deleted_at.is_(None)).count(),
            "loginsLast24h": logins["loginsLast24h"],
            "auditLogsLast24h": sum(recent_actions.values()),
            "avgLoginsPerUser": logins["avgLogins"],
            "roleBreakdown": {user_type: count for user_type, count in role_counts},
        },
        recentLogins=logins["recentLogins"],
        highRiskUsers=logins["highRisk"],
        auditActionsLast24h=dict(recent_actions.most_common()),
        telemetrySupported=logins["supported"],
    ), 200
