import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

logger = logging.getLogger(__name__)


def email_configured() -> bool:
    return bool(current_app.config.get("SMTP_HOST") and (
        current_app.config.get("SMTP_FROM_EMAIL") or current_app.config.get("SMTP_USERNAME")
    ))


def send_email(to_email: str, subject: str, body: str):
    host = current_app.config.get("SMTP_HOST")
    port = current_app.config.get("SMTP_PORT", 587)
    username = current_app.config.get("SMTP_USERNAME")
    password = current_app.config.get("SMTP_PASSWORD")
    from_email = current_app.config.get("SMTP_FROM_EMAIL") or username
    use_tls = current_app.config.get("SMTP_USE_TLS", True)

    if not host or not from_email:
        return False, "Email not configured"

    msg = EmailMessage()
    msg["From"] = from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, port, timeout=10) as server:
            if use_tls:
                server.starttls()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
        return True, None
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Sending '%s' to %s failed: %s", subject, to_email, exc)
        return False, str(exc)


def is_production() -> bool:
    return (current_app.config.get("APP_ENV") or "").lower() == "production"


def deliver_secret(to_email: str, subject: str, body: str, secret: str, dev_key: str) -> dict:
    """
    Emails a one-time secret when SMTP is configured. Outside production the
    secret is also handed back under ``dev_key`` so the flow works without a
    mail server.
    """
    extra = {}
    if email_configured():
        send_email(to_email, subject, body)
    if not is_production():
        extra[dev_key] = secret
    return extra
