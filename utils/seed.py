from datetime import datetime

from models import db
from models.chapter import Chapter
from models.group import Group, GroupMembership, DEFAULT_GROUP_COLOR
from models.homework import Homework
from models.report import Report
from models.school_class import SchoolClass, Enrollment, TeacherClass
from models.user import User, ADMIN, TEACHER, STUDENT
from security.password import hash_password

DEMO_GROUPS = [
    {"name": "Central Campus", "color": "#2563eb"},
    {"name": "North Campus", "color": "#f97316"},
]

DEMO_USERS = [
    {"name": "Admin", "email": "admin@example.com", "phone": "+1-555-1000", "type": ADMIN, "groups": ["Central Campus"]},
    {"name": "Alice Teacher", "email": "alice.teacher@example.com", "phone": "+1-555-2000", "type": TEACHER, "groups": ["Central Campus"]},
    {"name": "Bob Student", "email": "bob.student@example.com", "phone": "+1-555-3000", "type": STUDENT, "groups": ["Central Campus"]},
]

DEMO_CHAPTERS = [
    {"title": "Algebra I", "description": "Basics of Algebra", "status": "pending"},
    {"title": "Geometry", "description": "Triangles & Circles", "status": "in_progress"},
]

DEMO_CLASS = "IGCSE Mathematics"


def _upsert_group(entry):
    group = Group.query.filter_by(name=entry["name"]).first()
    if group is None:
        group = Group(name=entry["name"])
        db.session.add(group)
    group.color = entry.get("color") or DEFAULT_GROUP_COLOR
    db.session.flush()
    return group


def _upsert_user(entry, password_hash):
    user = User.query.filter_by(email=entry["email"], deleted_at=None).first()
    if user is None:
        user = User(email=entry["email"])
        db.session.add(user)
    # keep a known password for dev
    user.name = entry["name"]
    user.phone = entry.get("phone")
    user.type = entry["type"]
    user.password_hash = password_hash
    db.session.flush()
    return user


def seed_demo_data(password: str = "password123") -> dict:
    """Idempotent for groups, users and chapters; adds a report and homework once."""
    password_hash = hash_password(password)

    groups = {entry["name"]: _upsert_group(entry) for entry in DEMO_GROUPS}

    users = {}
    for entry in DEMO_USERS:
        user = _upsert_user(entry, password_hash)
        users[entry["type"]] = user
        for group_name in entry.get("groups", []):
            group = groups.get(group_name)
            if group is None:
                continue
            if not GroupMembership.query.filter_by(group_id=group.id, user_id=user.id).first():
                db.session.add(GroupMembership(group_id=group.id, user_id=user.id))

    teacher = users[TEACHER]
    student = users[STUDENT]

    klass = SchoolClass.query.filter_by(name=DEMO_CLASS).first()
    if klass is None:
        klass = SchoolClass(name=DEMO_CLASS)
        db.session.add(klass)
        db.session.flush()
    if not Enrollment.query.filter_by(class_id=klass.id, student_id=student.id).first():
        db.session.add(Enrollment(class_id=klass.id, student_id=student.id))
    if not TeacherClass.query.filter_by(class_id=klass.id, teacher_id=teacher.id).first():
        db.session.add(TeacherClass(class_id=klass.id, teacher_id=teacher.id))

    for index, entry in enumerate(DEMO_CHAPTERS):
        if not Chapter.query.filter_by(title=entry["title"], deleted_at=None).first():
            db.session.add(Chapter(order_index=index, **entry))

    if not Report.query.filter_by(student_id=student.id, teacher_id=teacher.id).first():
        db.session.add(Report(
            student_id=student.id,
            teacher_id=teacher.id,
            date=datetime(2025, 10, 1),
            type="text",
            content="Doing great!",
        ))

    if not Homework.query.filter_by(student_id=student.id).first():
        db.session.add(Homework(
            student_id=student.id,
            chapter="Algebra I",
            content="x+2=5 => x=3",
            submission_date=datetime(2025, 10, 2),
        ))

    db.session.commit()
    return {
        "groups": len(groups),
        "users": len(users),
        "chapters": Chapter.query.filter_by(deleted_at=None).count(),
    }
