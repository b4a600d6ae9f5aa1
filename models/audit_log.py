import json
from datetime import datetime

from models.db import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # nullable for unauth events
    action = db.Column(db.String(80), nullable=False, index=True)  # e.g. login, login_failed, soft_delete
    entity = db.Column(db.String(80), nullable=True)   # e.g. User, Homework
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    changes_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    actor = db.relationship("User", foreign_keys=[actor_user_id])

    @property
    def changes(self):
        if not self.changes_json:
            return None
        try:
            return json.loads(self.changes_json)
        except ValueError:
            return self.changes_json
