from __future__ import annotations

import pytest

from models import db
from models.audit_log import AuditLog
from models.homework import Homework
from models.report import Report
from models.school_class import SchoolClass, Enrollment, TeacherClass


@pytest.fixture()
def classroom(app, make_user):
    """A teacher and a student sharing one class, plus a student from elsewhere."""
    teacher_id = make_user("teacher@example.com", user_type="Teacher")
    student_id = make_user("student@example.com")
    outsider_id = make_user("outsider@example.com")
    with app.app_context():
        klass = SchoolClass(name="IGCSE Mathematics")
        db.session.add(klass)
        db.session.flush()
        db.session.add(Enrollment(class_id=klass.id, student_id=student_id))
        db.session.add(TeacherClass(class_id=klass.id, teacher_id=teacher_id))
        db.session.commit()
    return {"teacher": teacher_id, "student": student_id, "outsider": outsider_id}


# Chapters

def test_chapter_crud(app, client, make_user, auth_header):
    admin_id = make_user("admin@example.com", user_type="Admin")
    headers = auth_header(admin_id, "Admin")

    second = client.post("/api/chapters", json={"title": "Geometry", "orderIndex": 2}, headers=headers)
    first = client.post(
        "/api/chapters",
        json={"title": "Algebra I", "description": "Basics", "status": "in-progress", "orderIndex": 1},
        headers=headers,
    )
    assert first.status_code == second.status_code == 201
    assert first.get_json()["status"] == "in_progress"

    listing = client.get("/api/chapters", headers=headers).get_json()
    assert [c["title"] for c in listing] == ["Algebra I", "Geometry"]

    chapter_id = second.get_json()["id"]
    updated = client.put(f"/api/chapters/{chapter_id}", json={"status": "completed"}, headers=headers)
    assert updated.status_code == 200
    assert updated.get_json()["status"] == "completed"

    assert client.delete(f"/api/chapters/{chapter_id}", headers=headers).status_code == 204
    assert [c["title"] for c in client.get("/api/chapters", headers=headers).get_json()] == ["Algebra I"]
    assert client.delete(f"/api/chapters/{chapter_id}", headers=headers).status_code == 404

    with app.app_context():
        assert AuditLog.query.filter_by(entity="Chapter").count() == 4


def test_chapter_validation(client, make_user, auth_header):
    admin_id = make_user("admin@example.com", user_type="Admin")
    headers = auth_header(admin_id, "Admin")

    assert client.post("/api/chapters", json={"title": "  "}, headers=headers).status_code == 422
    assert client.post("/api/chapters", json={"title": "X", "status": "someday"}, headers=headers).status_code == 422
    assert client.post("/api/chapters", json={"title": "X", "orderIndex": "first"}, headers=headers).status_code == 422


def test_chapters_need_login_and_admin_to_write(client, make_user, auth_header):
    student_id = make_user("student@example.com")

    assert client.get("/api/chapters").status_code == 401
    assert client.get("/api/chapters", headers=auth_header(student_id, "Student")).status_code == 200
    assert client.post(
        "/api/chapters", json={"title": "X"}, headers=auth_header(student_id, "Student")
    ).status_code == 403


# Homework

def test_homework_submit_comment_delete(app, client, classroom, auth_header):
    student_headers = auth_header(classroom["student"], "Student")
    teacher_headers = auth_header(classroom["teacher"], "Teacher")

    submitted = client.post(
        "/api/homework",
        json={"chapter": "Algebra I", "content": "x+2=5 => x=3", "submissionDate": "2025-10-02T09:00:00Z"},
        headers=student_headers,
    )
    assert submitted.status_code == 201
    hw = submitted.get_json()
    assert hw["studentId"] == classroom["student"]
    assert hw["submissionDate"] == "2025-10-02T09:00:00"
    assert hw["comment"] is None

    commented = client.put(
        f"/api/homework/{hw['id']}/comment",
        json={"comment_content": "Well done"},
        headers=teacher_headers,
    )
    assert commented.status_code == 200
    assert commented.get_json()["comment"] == {
        "teacherId": classroom["teacher"],
        "type": "text",
        "content": "Well done",
    }

    assert client.delete(f"/api/homework/{hw['id']}", headers=teacher_headers).status_code == 204
    with app.app_context():
        assert db.session.get(Homework, hw["id"]).deleted_at is not None
        actions = [row.action for row in AuditLog.query.filter_by(entity="Homework").order_by(AuditLog.id).all()]
        assert actions == ["create", "comment", "soft_delete"]


def test_homework_validation_and_roles(client, classroom, auth_header):
    student_headers = auth_header(classroom["student"], "Student")
    teacher_headers = auth_header(classroom["teacher"], "Teacher")

    assert client.post("/api/homework", json={"chapter": "A"}, headers=student_headers).status_code == 422
    assert client.post(
        "/api/homework", json={"chapter": "A", "content": "B", "submissionDate": "yesterday"}, headers=student_headers
    ).status_code == 422
    assert client.post("/api/homework", json={"chapter": "A", "content": "B"}, headers=teacher_headers).status_code == 403
    assert client.put("/api/homework/999/comment", json={"comment_content": "x"}, headers=teacher_headers).status_code == 404
    assert client.put(
        "/api/homework/999/comment", json={"comment_content": "x", "comment_type": "video"}, headers=teacher_headers
    ).status_code == 422


# Reports

def test_teacher_reports_on_own_student(app, client, classroom, auth_header):
    headers = auth_header(classroom["teacher"], "Teacher")

    resp = client.post(
        "/api/reports",
        json={"studentId": classroom["student"], "type": "text", "content": "Doing great!", "date": "2025-10-01"},
        headers=headers,
    )

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["teacherId"] == classroom["teacher"]
    assert body["date"] == "2025-10-01T00:00:00"


def test_teacher_cannot_report_on_other_students(client, classroom, auth_header):
    resp = client.post(
        "/api/reports",
        json={"studentId": classroom["outsider"], "type": "text", "content": "Hi"},
        headers=auth_header(classroom["teacher"], "Teacher"),
    )

    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Student not in your classes"}


def test_report_validation(client, classroom, auth_header):
    headers = auth_header(classroom["teacher"], "Teacher")

    assert client.post("/api/reports", json={"studentId": classroom["student"]}, headers=headers).status_code == 422
    assert client.post(
        "/api/reports", json={"studentId": classroom["student"], "type": "video", "content": "x"}, headers=headers
    ).status_code == 422


def test_only_author_deletes_report(app, client, classroom, make_user, auth_header):
    other_teacher = make_user("other.teacher@example.com", user_type="Teacher")
    created = client.post(
        "/api/reports",
        json={"studentId": classroom["student"], "type": "voice", "content": "https://cdn.example.com/a.webm"},
        headers=auth_header(classroom["teacher"], "Teacher"),
    ).get_json()

    denied = client.delete(f"/api/reports/{created['id']}", headers=auth_header(other_teacher, "Teacher"))
    allowed = client.delete(f"/api/reports/{created['id']}", headers=auth_header(classroom["teacher"], "Teacher"))

    assert denied.status_code == 403
    assert allowed.status_code == 204
    with app.app_context():
        assert db.session.get(Report, created["id"]).deleted_at is not None
