from datetime import datetime

from flask import Blueprint, request, jsonify, g

from models import db
from models.chapter import Chapter, CHAPTER_STATUSES, normalize_chapter_status
from security.rbac import require_roles
from utils.audit import log_event
from utils.auth_context import login_required

chapters_bp = Blueprint("chapters", __name__, url_prefix="/api/chapters")


def serialize_chapter(c: Chapter) -> dict:
    return {
        "id": c.id,
        "title": c.title,
        "description": c.description,
        "status": c.status,
        "orderIndex": c.order_index,
        "createdAt": c.created_at.isoformat(),
        "updatedAt": c.updated_at.isoformat() if c.updated_at else None,
    }


def active_chapters():
    return (
        Chapter.query
        .filter(Chapter.deleted_at.is_(None))
        .order_by(Chapter.order_index.asc(), Chapter.id.asc())
        .all()
    )


@chapters_bp.get("")
@login_required
def list_chapters():
    return jsonify([serialize_chapter(c) for c in active_chapters()]), 200


@chapters_bp.post("")
@require_roles("Admin")
def create_chapter():
    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip() if isinstance(data.get("title"), str) else ""
    if not title:
        return jsonify(error="title required"), 422

    status = normalize_chapter_status(data.get("status")) or "pending"
    if status not in CHAPTER_STATUSES:
        return jsonify(error="Invalid status"), 422

    try:
        order_index = int(data.get("orderIndex") or 0)
    except (TypeError, ValueError):
        return jsonify(error="orderIndex must be an integer"), 422

    ch = Chapter(
        title=title,
        description=data.get("description") or "",
        status=status,
        order_index=order_index,
    )
    db.session.add(ch)
    db.session.commit()
    log_event("create", actor_id=g.user.id, entity="Chapter", entity_id=ch.id)
    return jsonify(serialize_chapter(ch)), 201


@chapters_bp.put("/<int:chapter_id>")
@require_roles("Admin")
def update_chapter(chapter_id: int):
    data = request.get_json(silent=True) or {}
    ch = Chapter.query.filter_by(id=chapter_id, deleted_at=None).first()
    if not ch:
        return jsonify(error="Chapter not found"), 404

    if "title" in data:
        title = (data.get("title") or "").strip() if isinstance(data.get("title"), str) else ""
        if not title:
            return jsonify(error="title required"), 422
        ch.title = title
    if "description" in data:
        ch.description = data.get("description") or ""
    if "status" in data:
        status = normalize_chapter_status(data.get("status"))
        if status not in CHAPTER_STATUSES:
            return jsonify(error="Invalid status"), 422
        ch.status = status
    if "orderIndex" in data:
        try:
            ch.order_index = int(data.get("orderIndex") or 0)
        except (TypeError, ValueError):
            return jsonify(error="orderIndex must be an integer"), 422

    db.session.commit()
    log_event("update", actor_id=g.user.id, entity="Chapter", entity_id=ch.id)
    return jsonify(serialize_chapter(ch)), 200


@chapters_bp.delete("/<int:chapter_id>")
@require_roles("Admin")
def delete_chapter(chapter_id: int):
    ch = Chapter.query.filter_by(id=chapter_id, deleted_at=None).first()
    if not ch:
        return jsonify(error="Chapter not found"), 404
    ch.deleted_at = datetime.utcnow()
    db.session.commit()
    log_event("soft_delete", actor_id=g.user.id, entity="Chapter", entity_id=ch.id)
    return "", 204
