from flask import Blueprint, request, jsonify, g

from models import db
from models.group import Group, GroupMembership, DEFAULT_MEMBER_ROLE
from models.user import User
from security.rbac import require_roles
from utils.audit import log_event

groups_bp = Blueprint("groups", __name__, url_prefix="/api/groups")


def serialize_group(group: Group, with_members: bool = False) -> dict:
    out = {
        "id": group.id,
        "name": group.name,
        "color": group.color,
        "createdAt": group.created_at.isoformat(),
        "updatedAt": group.updated_at.isoformat() if group.updated_at else None,
    }
    if with_members:
        out["members"] = [
            {
                "id": m.user.id,
                "name": m.user.name,
                "email": m.user.email,
                "type": m.user.type,
                "role": m.role,
            }
            for m in group.members
            if m.user is not None and m.user.deleted_at is None
        ]
    return out


def _membership_payload(m: GroupMembership) -> dict:
    return {"id": m.id, "groupId": m.group_id, "userId": m.user_id, "role": m.role}


def _user_id_from(data):
    try:
        return int(data.get("userId"))
    except (TypeError, ValueError):
        return None


@groups_bp.get("")
@require_roles("Admin")
def list_groups():
    groups = Group.query.order_by(Group.created_at.desc(), Group.id.desc()).all()
    return jsonify(items=[serialize_group(gr, with_members=True) for gr in groups]), 200


@groups_bp.post("")
@require_roles("Admin")
def create_group():
    data = request.get_json(silent=True) or {}
    name = data.get("name")
    color = data.get("color")
    if not name or not color:
        return jsonify(error="name and color required"), 422

    group = Group(name=str(name), color=str(color))
    db.session.add(group)
    db.session.commit()
    log_event("create", actor_id=g.user.id, entity="Group", entity_id=group.id)
    return jsonify(serialize_group(group)), 201


@groups_bp.put("/<int:group_id>")
@require_roles("Admin")
def update_group(group_id: int):
    data = request.get_json(silent=True) or {}
    group = db.session.get(Group, group_id)
    if not group:
        return jsonify(error="Group not found"), 404
    if data.get("name"):
        group.name = str(data["name"])
    if data.get("color"):
        group.color = str(data["color"])
    db.session.commit()
    log_event("update", actor_id=g.user.id, entity="Group", entity_id=group.id)
    return jsonify(serialize_group(group)), 200


@groups_bp.delete("/<int:group_id>")
@require_roles("Admin")
def delete_group(group_id: int):
    group = db.session.get(Group, group_id)
    if not group:
        return jsonify(error="Group not found"), 404
    db.session.delete(group)
    db.session.commit()
    log_event("delete", actor_id=g.user.id, entity="Group", entity_id=group_id)
    return "", 204


@groups_bp.post("/<int:group_id>/members")
@require_roles("Admin")
def assign_member(group_id: int):
    data = request.get_json(silent=True) or {}
    user_id = _user_id_from(data)
    if user_id is None:
        return jsonify(error="userId required"), 422

    if not db.session.get(Group, group_id):
        return jsonify(error="Group not found"), 404
    if not User.query.filter_by(id=user_id, deleted_at=None).first():
        return jsonify(error="User not found"), 404

    role = data.get("role") or DEFAULT_MEMBER_ROLE
    membership = GroupMembership.query.filter_by(group_id=group_id, user_id=user_id).first()
    if membership is None:
        membership = GroupMembership(group_id=group_id, user_id=user_id)
        db.session.add(membership)
    membership.role = role
    db.session.commit()
    log_event("assign", actor_id=g.user.id, entity="Group", entity_id=group_id, changes={"userId": user_id, "role": role})
    return jsonify(_membership_payload(membership)), 201


@groups_bp.delete("/<int:group_id>/members")
@require_roles("Admin")
def remove_member(group_id: int):
    data = request.get_json(silent=True) or {}
    user_id = _user_id_from(data)
    if user_id is None:
        return jsonify(error="userId required"), 422

    membership = GroupMembership.query.filter_by(group_id=group_id, user_id=user_id).first()
    if membership is None:
        return jsonify(error="Membership not found"), 404
    db.session.delete(membership)
    db.session.commit()
    log_event("unassign", actor_id=g.user.id, entity="Group", entity_id=group_id, changes={"userId": user_id})
    return "", 204
