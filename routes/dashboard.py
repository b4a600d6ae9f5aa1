from datetime import datetime

from flask import Blueprint, jsonify, g

from models.group import GroupMembership
from models.homework import Homework
from models.report import Report
from models.user import User, ADMIN, TEACHER, PARENT, STUDENT
from routes.chapters import active_chapters, serialize_chapter
from routes.homework import serialize_homework
from routes.reports import serialize_report
from utils.auth_context import login_required
from utils.groups import groups_for_user

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


def _reports_for_student(student_id: int):
    rows = (
        Report.query
        .filter_by(student_id=student_id, deleted_at=None)
        .order_by(Report.date.desc())
        .all()
    )
    return [serialize_report(r) for r in rows]


def _homework_for_students(student_ids, limit=None):
    if not student_ids:
        return []
    q = (
        Homework.query
        .filter(Homework.student_id.in_(student_ids), Homework.deleted_at.is_(None))
        .order_by(Homework.submission_date.desc())
    )
    if limit:
        q = q.limit(limit)
    return [serialize_homework(h) for h in q.all()]


def _student_view(base_user, student_id, meta):
    if not student_id:
        return {"user": base_user, "chapters": [], "reports": [], "homework": [], "meta": meta}
    return {
        "user": base_user,
        "chapters": [serialize_chapter(c) for c in active_chapters()],
        "reports": _reports_for_student(student_id),
        "homework": _homework_for_students([student_id]),
        "meta": meta,
    }


@dashboard_bp.get("")
@login_required
def get_dashboard():
    user = User.query.filter_by(id=g.user.id, deleted_at=None).first()
    if not user:
        return jsonify(error="User not found"), 404

    base_user = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "type": user.type,
        "studentId": user.student_id,
        "groups": groups_for_user(user.id),
    }
    meta = {"generatedAt": datetime.utcnow().isoformat()}

    if g.user.role == STUDENT:
        return jsonify(_student_view(base_user, user.id, meta)), 200

    if g.user.role == PARENT:
        return jsonify(_student_view(base_user, user.student_id, meta)), 200

    if g.user.role == TEACHER:
        group_ids = [grp["id"] for grp in base_user["groups"]]
        student_ids = []
        if group_ids:
            rows = (
                GroupMembership.query
                .join(User, GroupMembership.user_id == User.id)
                .with_entities(User.id)
                .filter(GroupMembership.group_id.in_(group_ids), User.type == STUDENT)
                .all()
            )
            student_ids = list({r[0] for r in rows})
        authored = (
            Report.query
            .filter_by(teacher_id=user.id, deleted_at=None)
            .order_by(Report.date.desc())
            .all()
        )
        return jsonify(
            user=base_user,
            reportsAuthored=[serialize_report(r) for r in authored],
            recentHomework=_homework_for_students(student_ids, limit=50),
            meta=meta,
        ), 200

    if g.user.role == ADMIN:
        return jsonify(
            user=base_user,
            stats={
                "users": User.query.filter_by(deleted_at=None).count(),
                "homework": Homework.query.filter_by(deleted_at=None).count(),
                "reports": Report.query.filter_by(deleted_at=None).count(),
            },
            chapters=[serialize_chapter(c) for c in active_chapters()],
            meta=meta,
        ), 200

    return jsonify(error="Forbidden"), 403
