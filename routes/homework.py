from datetime import datetime

from flask import Blueprint, request, jsonify, g

from models import db
from models.homework import Homework
from models.report import REPORT_TYPES
from security.rbac import require_roles
from utils.audit import log_event
from utils.dates import parse_iso

homework_bp = Blueprint("homework", __name__, url_prefix="/api/homework")


def serialize_homework(h: Homework) -> dict:
    comment = None
    if h.comment_content:
        comment = {
            "teacherId": h.comment_teacher_id,
            "type": h.comment_type,
            "content": h.comment_content,
        }
    return {
        "id": h.id,
        "studentId": h.student_id,
        "chapter": h.chapter,
        "content": h.content,
        "submissionDate": h.submission_date.isoformat(),
        "comment": comment,
    }


@homework_bp.post("")
@require_roles("Student")
def submit_homework():
    data = request.get_json(silent=True) or {}
    chapter = data.get("chapter")
    content = data.get("content")
    if not chapter or not content:
        return jsonify(error="chapter and content required"), 422

    submitted = data.get("submissionDate")
    submission_date = parse_iso(submitted) if submitted else datetime.utcnow()
    if submission_date is None:
        return jsonify(error="Invalid submissionDate"), 422

    hw = Homework(
        student_id=g.user.id,
        chapter=str(chapter),
        content=str(content),
        submission_date=submission_date,
    )
    db.session.add(hw)
    db.session.commit()
    log_event("create", actor_id=g.user.id, entity="Homework", entity_id=hw.id)
    return jsonify(serialize_homework(hw)), 201


@homework_bp.put("/<int:homework_id>/comment")
@require_roles("Teacher")
def comment_homework(homework_id: int):
    data = request.get_json(silent=True) or {}
    comment_type = data.get("comment_type") or "text"
    comment_content = data.get("comment_content")
    if not comment_content:
        return jsonify(error="comment_content required"), 422
    if comment_type not in REPORT_TYPES:
        return jsonify(error="comment_type must be text or voice"), 422

    hw = Homework.query.filter_by(id=homework_id, deleted_at=None).first()
    if not hw:
        return jsonify(error="Homework not found"), 404

    hw.comment_type = comment_type
    hw.comment_content = str(comment_content)
    hw.comment_teacher_id = g.user.id
    db.session.commit()
    log_event("comment", actor_id=g.user.id, entity="Homework", entity_id=hw.id)
    return jsonify(serialize_homework(hw)), 200


@homework_bp.delete("/<int:homework_id>")
@require_roles("Teacher")
def delete_homework(homework_id: int):
    hw = Homework.query.filter_by(id=homework_id, deleted_at=None).first()
    if not hw:
        return jsonify(error="Homework not found"), 404
    hw.deleted_at = datetime.utcnow()
    db.session.commit()
    log_event("soft_delete", actor_id=g.user.id, entity="Homework", entity_id=homework_id)
    return "", 204
