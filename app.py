import logging

import click
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from config import Config
from models import db
from models.user import User, ADMIN
from routes import (
    health_bp,
    auth_bp,
    users_bp,
    chapters_bp,
    homework_bp,
    reports_bp,
    groups_bp,
    dashboard_bp,
    admin_bp,
    upload_bp,
)
from security import telemetry
from utils.accounts import normalize_email
from utils.auth_context import load_current_user
from utils.errors import ApiError
from utils.logging_setup import configure_logging
from utils.seed import seed_demo_data

logger = logging.getLogger(__name__)


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(chapters_bp)
    app.register_blueprint(homework_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(groups_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(upload_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Telemetry capability is probed lazily on first login
    telemetry.init_app(app)

    CORS(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(ApiError)
    def _api_error(exc):
        return exc.to_response()

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        return jsonify(error=exc.description or exc.name), exc.code

    @app.errorhandler(Exception)
    def _unhandled(exc):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        db.session.rollback()
        return jsonify(error="Internal server error"), 500

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(self), camera=()"
        # API only; the dashboard is served separately
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        logger.debug("%s %s -> %s", request.method, request.path, resp.status_code)
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to Admin by email (bootstrap)."""
        user = User.query.filter_by(email=normalize_email(email), deleted_at=None).first()
        if not user:
            click.echo("User not found")
            return

        if user.type != ADMIN:
            user.type = ADMIN
            db.session.commit()

        click.echo(f"{user.email} promoted to Admin")

    @app.cli.command("seed-demo")
    @click.option("--password", default="password123", show_default=True, help="Password for every demo account.")
    def seed_demo(password):
        """Load demo groups, users, chapters, a report and a homework entry."""
        counts = seed_demo_data(password=password)
        click.echo(
            "Seed completed: "
            + ", ".join(f"{count} {name}" for name, count in counts.items())
        )

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=4000)
