import json
from flask import has_request_context, request
from models import db
from models.audit_log import AuditLog


def client_ip():
    if not has_request_context():
        return None
    return request.headers.get("X-Forwarded-For", request.remote_addr)


def log_event(action: str, actor_id=None, entity=None, entity_id=None, changes=None):
    ip = client_ip()
    user_agent = request.headers.get("User-Agent", "") if has_request_context() else ""

    row = AuditLog(
        actor_user_id=actor_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        changes_json=json.dumps(changes, default=str) if changes else None
    )
    db.session.add(row)
    db.session.commit()
    return row
