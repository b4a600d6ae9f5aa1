from datetime import datetime

from flask import Blueprint, request, jsonify, g

from models import db
from models.report import Report, REPORT_TYPES
from models.school_class import Enrollment, TeacherClass
from security.rbac import require_roles
from utils.audit import log_event
from utils.dates import parse_iso

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def serialize_report(r: Report) -> dict:
    return {
        "id": r.id,
        "studentId": r.student_id,
        "teacherId": r.teacher_id,
        "date": r.date.isoformat(),
        "type": r.type,
        "content": r.content,
    }


def _teaches_student(teacher_id: int, student_id: int) -> bool:
    class_ids = [
        row[0]
        for row in TeacherClass.query.with_entities(TeacherClass.class_id).filter_by(teacher_id=teacher_id).all()
    ]
    if not class_ids:
        return False
    return (
        Enrollment.query
        .filter(Enrollment.class_id.in_(class_ids), Enrollment.student_id == student_id)
        .first()
        is not None
    )


@reports_bp.post("")
@require_roles("Teacher")
def create_report():
    data = request.get_json(silent=True) or {}
    student_id = data.get("studentId")
    report_type = data.get("type")
    content = data.get("content")
    if not student_id or not report_type or not content:
        return jsonify(error="studentId, type, content required"), 422
    if report_type not in REPORT_TYPES:
        return jsonify(error="type must be text or voice"), 422
    try:
        student_id = int(student_id)
    except (TypeError, ValueError):
        return jsonify(error="Invalid studentId"), 422

    report_date = parse_iso(data.get("date")) if data.get("date") else datetime.utcnow()
    if report_date is None:
        return jsonify(error="Invalid date"), 422

    if not _teaches_student(g.user.id, student_id):
        return jsonify(error="Student not in your classes"), 403

    rep = Report(
        student_id=student_id,
        teacher_id=g.user.id,
        date=report_date,
        type=report_type,
        content=str(content),
    )
    db.session.add(rep)
    db.session.commit()
    log_event("create", actor_id=g.user.id, entity="Report", entity_id=rep.id)
    return jsonify(serialize_report(rep)), 201


@reports_bp.delete("/<int:report_id>")
@require_roles("Teacher")
def delete_report(report_id: int):
    # only the author can delete
    rep = Report.query.filter_by(id=report_id, deleted_at=None).first()
    if not rep or rep.teacher_id != g.user.id:
        return jsonify(error="Forbidden"), 403
    rep.deleted_at = datetime.utcnow()
    db.session.commit()
    log_event("soft_delete", actor_id=g.user.id, entity="Report", entity_id=report_id)
    return "", 204
