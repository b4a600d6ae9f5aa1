from datetime import datetime

from models.db import db

CHAPTER_STATUSES = ("pending", "in_progress", "completed")


def normalize_chapter_status(value):
    """Accept the dashboard's "in-progress" spelling."""
    if not isinstance(value, str):
        return None
    return value.strip().replace("-", "_")


class Chapter(db.Model):
    __tablename__ = "chapters"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default="pending")
    order_index = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)
