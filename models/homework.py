from datetime import datetime

from models.db import db


class Homework(db.Model):
    __tablename__ = "homework"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    chapter = db.Column(db.String(200), nullable=False)
    content = db.Column(db.Text, nullable=False)
    submission_date = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # teacher feedback: text or a voice note URL
    comment_type = db.Column(db.String(10), nullable=True)
    comment_content = db.Column(db.Text, nullable=True)
    comment_teacher_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)
