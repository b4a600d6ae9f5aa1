import hmac
import json
from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.group import Group, GroupMembership
from models.invite import Invite
from models.password_reset_token import PasswordResetToken
from models.user import User, PARENT, STUDENT, USER_TYPES, SELF_SERVICE_TYPES
from models.verification_token import VerificationToken
from security import login as login_gate
from security.password import hash_password
from security.rbac import require_roles
from security.tokens import sign_token, new_raw_token, hash_token, generate_otp
from utils.accounts import normalize_email, run_with_telemetry, serialize_user, with_telemetry
from utils.audit import log_event, client_ip
from utils.auth_context import login_required
from utils.emailer import deliver_secret
from utils.groups import groups_for_user


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _active_user_by_email(email: str):
    return User.query.filter_by(email=email, deleted_at=None).first()


def _account_summary(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "type": user.type,
        "studentId": user.student_id,
        "groups": groups_for_user(user.id),
    }


def _parse_group_ids(raw):
    """Returns a de-duplicated list of ints, or None if the input is malformed."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        return None
    try:
        return list(dict.fromkeys(int(v) for v in raw))
    except (TypeError, ValueError):
        return None


def _resolve_student_id(student_email):
    lookup = normalize_email(student_email)
    if not lookup:
        return None
    student = User.query.filter_by(email=lookup, type=STUDENT, deleted_at=None).first()
    return student.id if student else None


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    result = login_gate.login(data.get("email"), data.get("password"), origin=client_ip())
    return jsonify(result.to_payload()), 200


@auth_bp.post("/register/request")
def register_request():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    name = data.get("name")
    password = data.get("password")
    user_type = data.get("type")
    if not email or not name or not password or not user_type:
        return jsonify(error="email, name, password, type required"), 422

    email = normalize_email(email)
    if _active_user_by_email(email):
        return jsonify(error="User already exists"), 409

    user_type = str(user_type)
    if user_type not in SELF_SERVICE_TYPES:
        return jsonify(error="Invalid user type"), 422

    group_ids = _parse_group_ids(data.get("groupIds"))
    if group_ids is None:
        return jsonify(error="groupIds must be a list of group ids"), 422
    if group_ids:
        found = Group.query.filter(Group.id.in_(group_ids)).count()
        if found != len(group_ids):
            return jsonify(error="One or more groups not found"), 404

    otp = generate_otp()
    expires_at = datetime.utcnow() + timedelta(
        minutes=current_app.config.get("REGISTER_OTP_EXPIRY_MINUTES", 10)
    )

    # Remove existing pending tokens for this email
    VerificationToken.query.filter_by(email=email, consumed_at=None).delete()

    token = VerificationToken(
        email=email,
        otp_hash=hash_token(otp),
        expires_at=expires_at,
        payload_json=json.dumps({
            "name": name,
            "phone": data.get("phone"),
            "type": user_type,
            "hashedPassword": hash_password(str(password)),
            "groupIds": group_ids,
            "studentEmail": data.get("studentEmail"),
        }),
    )
    db.session.add(token)
    db.session.commit()

    extra = deliver_secret(
        email,
        "Your verification code",
        f"Your verification code is {otp}. It expires at {expires_at.isoformat()} UTC.",
        otp,
        "devOtp",
    )
    return jsonify(tokenId=token.id, expiresAt=token.expires_at.isoformat(), **extra), 201


@auth_bp.post("/register/verify")
def register_verify():
    data = request.get_json(silent=True) or {}
    token_id = data.get("tokenId")
    otp = data.get("otp")
    if not token_id or not otp:
        return jsonify(error="tokenId and otp required"), 422

    try:
        token = db.session.get(VerificationToken, int(token_id))
    except (TypeError, ValueError):
        token = None
    if not token or token.consumed_at or token.expires_at <= datetime.utcnow():
        return jsonify(error="Invalid or expired verification token"), 400

    if not hmac.compare_digest(token.otp_hash, hash_token(str(otp))):
        return jsonify(error="Invalid OTP"), 400

    payload = token.payload
    if _active_user_by_email(token.email):
        return jsonify(error="User already exists"), 409

    student_id = None
    if payload.get("type") == PARENT:
        if not normalize_email(payload.get("studentEmail")):
            return jsonify(error="Parent accounts require a student email"), 422
        student_id = _resolve_student_id(payload.get("studentEmail"))
        if student_id is None:
            return jsonify(error="Student not found for parent"), 404

    user = User(
        name=payload.get("name"),
        email=token.email,
        phone=payload.get("phone"),
        password_hash=payload.get("hashedPassword"),
        type=payload.get("type"),
        student_id=student_id,
    )
    db.session.add(user)
    db.session.flush()

    for group_id in payload.get("groupIds") or []:
        db.session.add(GroupMembership(group_id=group_id, user_id=user.id))

    token.consumed_at = datetime.utcnow()
    db.session.commit()
    log_event("register", actor_id=user.id, entity="User", entity_id=user.id)

    return jsonify(token=sign_token(user.id, user.type), user=_account_summary(user)), 201


# Password reset request: in dev the raw token comes back in the response
@auth_bp.post("/request-reset")
def request_reset():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    if not email:
        return jsonify(error="email required"), 422

    user = _active_user_by_email(email)
    if not user:
        return jsonify(ok=True), 200  # avoid user enumeration

    raw = new_raw_token()
    ttl = current_app.config.get("PASSWORD_RESET_TTL_MINUTES", 30)
    db.session.add(PasswordResetToken(
        user_id=user.id,
        token_hash=hash_token(raw),
        expires_at=datetime.utcnow() + timedelta(minutes=ttl),
    ))
    db.session.commit()
    log_event("password_reset_requested", actor_id=user.id, entity="User", entity_id=user.id)

    extra = deliver_secret(
        user.email,
        "Reset your password",
        f"Use this token to reset your password within {ttl} minutes: {raw}",
        raw,
        "devToken",
    )
    return jsonify(ok=True, **extra), 200


@auth_bp.post("/reset")
def reset_password():
    data = request.get_json(silent=True) or {}
    raw = data.get("token")
    password = data.get("password")
    if not raw or not password:
        return jsonify(error="token and password required"), 422

    rec = PasswordResetToken.query.filter(
        PasswordResetToken.token_hash == hash_token(str(raw)),
        PasswordResetToken.used_at.is_(None),
        PasswordResetToken.expires_at > datetime.utcnow(),
    ).first()
    if not rec:
        return jsonify(error="Invalid or expired token"), 400

    user = db.session.get(User, rec.user_id)
    if not user or user.deleted_at is not None:
        return jsonify(error="Invalid or expired token"), 400

    user.password_hash = hash_password(str(password))
    rec.used_at = datetime.utcnow()
    db.session.commit()
    log_event("password_reset", actor_id=user.id, entity="User", entity_id=user.id)
    return jsonify(ok=True), 200


# Admin invite flow
@auth_bp.post("/invite")
@require_roles("Admin")
def invite_user():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    role = data.get("role")
    if not email or not role:
        return jsonify(error="email and role required"), 422
    if role not in USER_TYPES:
        return jsonify(error="Invalid role"), 422

    raw = new_raw_token()
    ttl_days = current_app.config.get("INVITE_TTL_DAYS", 7)
    inv = Invite(
        email=email,
        role=role,
        token_hash=hash_token(raw),
        expires_at=datetime.utcnow() + timedelta(days=ttl_days),
        inviter_user_id=g.user.id,
    )
    db.session.add(inv)
    db.session.commit()
    log_event("invite", actor_id=g.user.id, entity="Invite", entity_id=inv.id, changes={"email": email, "role": role})

    extra = deliver_secret(
        email,
        "You have been invited",
        f"You have been invited as {role}. Accept within {ttl_days} days using this token: {raw}",
        raw,
        "devToken",
    )
    return jsonify(id=inv.id, email=inv.email, role=inv.role, **extra), 201


@auth_bp.post("/accept-invite")
def accept_invite():
    data = request.get_json(silent=True) or {}
    raw = data.get("token")
    name = data.get("name")
    password = data.get("password")
    if not raw or not name or not password:
        return jsonify(error="token, name, password required"), 422

    inv = Invite.query.filter(
        Invite.token_hash == hash_token(str(raw)),
        Invite.accepted_at.is_(None),
        Invite.expires_at > datetime.utcnow(),
    ).first()
    if not inv:
        return jsonify(error="Invalid or expired token"), 400

    if _active_user_by_email(inv.email):
        return jsonify(error="User already exists"), 409

    user = User(name=name, email=inv.email, password_hash=hash_password(str(password)), type=inv.role)
    db.session.add(user)
    inv.accepted_at = datetime.utcnow()
    db.session.commit()
    log_event("invite_accepted", actor_id=user.id, entity="Invite", entity_id=inv.id)

    return jsonify(token=sign_token(user.id, user.type), user=_account_summary(user)), 201


@auth_bp.get("/me")
@login_required
def me():
    profile = run_with_telemetry(lambda telemetry: _current_profile(g.user.id, telemetry))
    if profile is None:
        return jsonify(error="User not found"), 404
    return jsonify(profile), 200


def _current_profile(user_id: int, telemetry: bool):
    user = with_telemetry(User.query, telemetry).filter_by(id=user_id, deleted_at=None).first()
    if not user:
        return None
    return serialize_user(user, {user.id: groups_for_user(user.id)}, telemetry=telemetry)
