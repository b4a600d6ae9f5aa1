from __future__ import annotations

from datetime import datetime

import pytest

from models import db
from models.chapter import Chapter
from models.homework import Homework
from models.report import Report


@pytest.fixture()
def school(app, make_user, make_group):
    teacher_id = make_user("teacher@example.com", user_type="Teacher")
    student_id = make_user("student@example.com")
    parent_id = make_user("parent@example.com", user_type="Parent", student_id=student_id)
    admin_id = make_user("admin@example.com", user_type="Admin")
    make_group("Central Campus", members=[(teacher_id, "Lead"), (student_id, "Member")])

    with app.app_context():
        db.session.add(Chapter(title="Algebra I", order_index=0))
        db.session.add(Chapter(title="Retired", order_index=1, deleted_at=datetime.utcnow()))
        db.session.add(Report(
            student_id=student_id, teacher_id=teacher_id, date=datetime(2025, 10, 1), type="text", content="Doing great!"
        ))
        db.session.add(Homework(
            student_id=student_id, chapter="Algebra I", content="x=3", submission_date=datetime(2025, 10, 2)
        ))
        db.session.commit()

    return {"teacher": teacher_id, "student": student_id, "parent": parent_id, "admin": admin_id}


def _dashboard(client, auth_header, user_id, role):
    resp = client.get("/api/dashboard", headers=auth_header(user_id, role))
    assert resp.status_code == 200
    return resp.get_json()


def test_student_dashboard(client, school, auth_header):
    body = _dashboard(client, auth_header, school["student"], "Student")

    assert body["user"]["id"] == school["student"]
    assert body["user"]["groups"][0]["name"] == "Central Campus"
    assert [c["title"] for c in body["chapters"]] == ["Algebra I"]
    assert [r["content"] for r in body["reports"]] == ["Doing great!"]
    assert [h["content"] for h in body["homework"]] == ["x=3"]
    assert "generatedAt" in body["meta"]


def test_parent_dashboard_follows_linked_student(client, school, auth_header):
    body = _dashboard(client, auth_header, school["parent"], "Parent")

    assert body["user"]["studentId"] == school["student"]
    assert len(body["reports"]) == 1
    assert len(body["homework"]) == 1


def test_parent_without_student_gets_empty_lists(client, make_user, auth_header):
    parent_id = make_user("lonely.parent@example.com", user_type="Parent")

    body = _dashboard(client, auth_header, parent_id, "Parent")

    assert body["chapters"] == body["reports"] == body["homework"] == []


def test_teacher_dashboard(client, school, auth_header):
    body = _dashboard(client, auth_header, school["teacher"], "Teacher")

    assert [r["studentId"] for r in body["reportsAuthored"]] == [school["student"]]
    assert [h["studentId"] for h in body["recentHomework"]] == [school["student"]]


def test_admin_dashboard(client, school, auth_header):
    body = _dashboard(client, auth_header, school["admin"], "Admin")

    assert body["stats"] == {"users": 4, "homework": 1, "reports": 1}
    assert [c["title"] for c in body["chapters"]] == ["Algebra I"]


def test_dashboard_for_deleted_account(client, make_user, auth_header):
    user_id = make_user("gone@example.com", deleted=True)

    resp = client.get("/api/dashboard", headers=auth_header(user_id, "Student"))

    assert resp.status_code == 404
