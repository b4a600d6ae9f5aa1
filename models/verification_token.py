import json
from datetime import datetime

from models.db import db


class VerificationToken(db.Model):
    """Pending self-service registration, confirmed with an emailed OTP."""

    __tablename__ = "verification_tokens"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    otp_hash = db.Column(db.String(128), nullable=False)

    # name, phone, type, hashed password, group ids, student email
    payload_json = db.Column(db.Text, nullable=False, default="{}")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    consumed_at = db.Column(db.DateTime, nullable=True)

    @property
    def payload(self) -> dict:
        try:
            return json.loads(self.payload_json or "{}")
        except ValueError:
            return {}
