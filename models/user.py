from datetime import datetime

from sqlalchemy import text
from sqlalchemy.orm import deferred

from models.db import db

# Roles double as account types
STUDENT = "Student"
TEACHER = "Teacher"
PARENT = "Parent"
ADMIN = "Admin"
USER_TYPES = (STUDENT, TEACHER, PARENT, ADMIN)
SELF_SERVICE_TYPES = (STUDENT, TEACHER, PARENT)

TELEMETRY_GROUP = "telemetry"
TELEMETRY_COLUMNS = ("last_login_at", "login_count", "failed_login_attempts")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(30), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(20), nullable=False, default=STUDENT)

    # parents point at the student they follow
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)

    # Login telemetry. Older databases do not have these columns, so they are
    # never loaded or inserted unless asked for explicitly. Every column carries
    # a server default; the ORM leaves such columns out of INSERTs.
    last_login_at = deferred(
        db.Column(db.DateTime, nullable=True, server_default=db.FetchedValue()), group=TELEMETRY_GROUP
    )
    login_count = deferred(
        db.Column(db.Integer, nullable=False, server_default="0"), group=TELEMETRY_GROUP
    )
    failed_login_attempts = deferred(
        db.Column(db.Integer, nullable=False, server_default="0"), group=TELEMETRY_GROUP
    )

    student = db.relationship("User", remote_side=[id], foreign_keys=[student_id])
    memberships = db.relationship(
        "GroupMembership", back_populates="user", cascade="all, delete-orphan"
    )

    # server defaults are never fetched back, so inserts work on the legacy schema too
    __mapper_args__ = {"eager_defaults": False}

    __table_args__ = (
        db.Index(
            "uq_users_email_active",
            "email",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )
