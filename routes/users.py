from datetime import datetime

from flask import Blueprint, request, jsonify, g
from sqlalchemy import or_

from models import db
from models.group import Group, GroupMembership
from models.user import User, ADMIN, TEACHER, PARENT, STUDENT, USER_TYPES
from security.password import hash_password
from security.rbac import require_roles
from utils.accounts import normalize_email, run_with_telemetry, serialize_user, with_telemetry
from utils.audit import log_event
from utils.auth_context import login_required
from utils.groups import groups_for_users, group_ids_for_user
from utils.pagination import parse_pagination, paginate_newest_first

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

MUTABLE_FIELDS = {
    "name": "name",
    "email": "email",
    "phone": "phone",
    "type": "type",
    "studentId": "student_id",
}


def _active_users(telemetry: bool):
    return with_telemetry(User.query, telemetry).filter(User.deleted_at.is_(None))


def _serialize_many(users, telemetry: bool):
    groups = groups_for_users([u.id for u in users])
    return [serialize_user(u, groups, telemetry=telemetry) for u in users]


def _serialize_one(user_id: int, telemetry: bool) -> dict:
    user = with_telemetry(User.query, telemetry).filter_by(id=user_id).first()
    return serialize_user(user, groups_for_users([user_id]), telemetry=telemetry)


def _user_payload(user_id: int) -> dict:
    return run_with_telemetry(lambda telemetry: _serialize_one(user_id, telemetry))


def _student_id_for_email(student_email):
    student = User.query.filter_by(
        email=normalize_email(student_email), type=STUDENT, deleted_at=None
    ).first()
    return student.id if student else None


@users_bp.get("")
@login_required
def list_users():
    return run_with_telemetry(lambda telemetry: _list_for(g.user, telemetry))


def _list_for(viewer, telemetry: bool):
    if viewer.role == ADMIN:
        limit, cursor = parse_pagination(request.args)
        q = _active_users(telemetry)
        role = request.args.get("role")
        if role:
            q = q.filter(User.type == role)
        term = (request.args.get("q") or "").strip()
        if term:
            pattern = f"%{term}%"
            q = q.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

        items, next_cursor = paginate_newest_first(q, User, limit, cursor)
        return jsonify(items=_serialize_many(items, telemetry), nextCursor=next_cursor), 200

    if viewer.role == TEACHER:
        group_ids = group_ids_for_user(viewer.id)
        if group_ids:
            rows = (
                GroupMembership.query
                .with_entities(GroupMembership.user_id)
                .filter(GroupMembership.group_id.in_(group_ids))
                .all()
            )
            allowed_ids = list({r[0] for r in rows})
        else:
            allowed_ids = [viewer.id]
        users = _active_users(telemetry).filter(User.id.in_(allowed_ids)).order_by(User.id.asc()).all()
        return jsonify(items=_serialize_many(users, telemetry)), 200

    if viewer.role == PARENT:
        parent = _active_users(telemetry).filter(User.id == viewer.id).first()
        if not parent:
            return jsonify(items=[]), 200
        items = [parent]
        if parent.student_id:
            student = _active_users(telemetry).filter(User.id == parent.student_id).first()
            if student:
                items.append(student)
        return jsonify(items=_serialize_many(items, telemetry)), 200

    if viewer.role == STUDENT:
        student = _active_users(telemetry).filter(User.id == viewer.id).first()
        if not student:
            return jsonify(items=[]), 200
        return jsonify(items=_serialize_many([student], telemetry)), 200

    return jsonify(error="Forbidden"), 403


@users_bp.post("")
@require_roles("Admin")
def create_user():
    data = request.get_json(silent=True) or {}
    name = data.get("name")
    email = data.get("email")
    password = data.get("password")
    user_type = data.get("type")
    if not name or not email or not password or not user_type:
        return jsonify(error="name, email, password, type required"), 422
    if user_type not in USER_TYPES:
        return jsonify(error="Invalid user type"), 422

    student_id = data.get("studentId")
    if user_type == PARENT and not student_id:
        student_email = data.get("studentEmail")
        if not student_email:
            return jsonify(error="Parent users require associated student email"), 422
        student_id = _student_id_for_email(student_email)
        if student_id is None:
            return jsonify(error="Student not found for parent"), 404

    email = normalize_email(email)
    if User.query.filter_by(email=email, deleted_at=None).first():
        return jsonify(error="User already exists"), 409

    user = User(
        name=name,
        email=email,
        phone=str(data["phone"]) if data.get("phone") else None,
        password_hash=hash_password(str(password)),
        type=user_type,
        student_id=student_id,
    )
    db.session.add(user)
    db.session.flush()

    group_ids = data.get("groupIds")
    if isinstance(group_ids, list) and group_ids:
        try:
            unique_ids = list(dict.fromkeys(int(gid) for gid in group_ids))
        except (TypeError, ValueError):
            db.session.rollback()
            return jsonify(error="groupIds must be a list of group ids"), 422
        if Group.query.filter(Group.id.in_(unique_ids)).count() != len(unique_ids):
            db.session.rollback()
            return jsonify(error="One or more groups not found"), 404
        for gid in unique_ids:
            db.session.add(GroupMembership(group_id=gid, user_id=user.id))

    db.session.commit()
    log_event("create", actor_id=g.user.id, entity="User", entity_id=user.id)

    return jsonify(_user_payload(user.id)), 201


@users_bp.put("/<int:user_id>")
@require_roles("Admin")
def update_user(user_id: int):
    data = request.get_json(silent=True) or {}
    user = db.session.get(User, user_id)
    if not user:
        return jsonify(error="User not found"), 404

    changed = []
    for field, attr in MUTABLE_FIELDS.items():
        if field not in data:
            continue
        value = data[field]
        if field == "name" and not (isinstance(value, str) and value.strip()):
            return jsonify(error="name required"), 422
        if field == "email":
            value = normalize_email(value)
            if not value:
                return jsonify(error="Invalid email"), 422
            clash = User.query.filter(
                User.email == value, User.deleted_at.is_(None), User.id != user.id
            ).first()
            if clash:
                return jsonify(error="User already exists"), 409
        if field == "type" and value not in USER_TYPES:
            return jsonify(error="Invalid user type"), 422
        setattr(user, attr, value if value != "" else None)
        changed.append(field)

    if user.type == PARENT and user.student_id is None and data.get("studentEmail"):
        student_id = _student_id_for_email(data["studentEmail"])
        if student_id is None:
            return jsonify(error="Student not found for parent"), 404
        user.student_id = student_id
        changed.append("studentId")

    if data.get("password"):
        user.password_hash = hash_password(str(data["password"]))
        changed.append("password")

    db.session.commit()
    log_event("update", actor_id=g.user.id, entity="User", entity_id=user.id, changes={"fields": changed})

    return jsonify(_user_payload(user.id)), 200


@users_bp.delete("/<int:user_id>")
@require_roles("Admin")
def delete_user(user_id: int):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify(error="User not found"), 404
    if user.deleted_at is None:
        user.deleted_at = datetime.utcnow()
        db.session.commit()
        log_event("soft_delete", actor_id=g.user.id, entity="User", entity_id=user.id)
    return "", 204
