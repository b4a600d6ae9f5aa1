from models import db
from models.chapter import Chapter
from models.group import GroupMembership
from models.homework import Homework
from models.report import Report
from models.user import User


def test_seed_demo_is_idempotent(app):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["seed-demo", "--password", "demo-pass"])
    second = runner.invoke(args=["seed-demo", "--password", "demo-pass"])

    assert first.exit_code == 0, first.output
    assert "Seed completed" in first.output
    assert second.exit_code == 0, second.output
    with app.app_context():
        assert User.query.count() == 3
        assert Chapter.query.count() == 2
        assert Report.query.count() == 1
        assert Homework.query.count() == 1
        assert GroupMembership.query.count() == 3


def test_seeded_accounts_can_log_in(app, client):
    app.test_cli_runner().invoke(args=["seed-demo", "--password", "demo-pass"])

    resp = client.post("/api/auth/login", json={"email": "alice.teacher@example.com", "password": "demo-pass"})

    assert resp.status_code == 200
    assert resp.get_json()["user"]["type"] == "Teacher"


def test_seeded_teacher_can_report_on_seeded_student(app, client):
    app.test_cli_runner().invoke(args=["seed-demo"])
    token = client.post(
        "/api/auth/login", json={"email": "alice.teacher@example.com", "password": "password123"}
    ).get_json()["token"]
    with app.app_context():
        student_id = User.query.filter_by(email="bob.student@example.com").one().id

    resp = client.post(
        "/api/reports",
        json={"studentId": student_id, "type": "text", "content": "Keep going"},
        headers={"Authorization": f"Bearer {token}"},
    )

    assert resp.status_code == 201


def test_make_admin(app, make_user):
    user_id = make_user("teacher@example.com", user_type="Teacher")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["make-admin", "Teacher@Example.com"])

    assert "promoted to Admin" in result.output
    with app.app_context():
        assert db.session.get(User, user_id).type == "Admin"


def test_make_admin_unknown_email(app):
    result = app.test_cli_runner().invoke(args=["make-admin", "nobody@example.com"])

    assert "User not found" in result.output
