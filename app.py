import logging

import click
from flask import Flask, request, g, jsonify
from flask_migrate import Migrate
from sqlalchemy import inspect

from config import Config
from routes import health_bp, booking_bp

from models import db
from reservations.errors import ReservationError
from utils.seed import seed_roles
from utils.auth_context import load_current_user
from security.csrf import require_csrf

logger = logging.getLogger(__name__)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(booking_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    with app.app_context():
        if app.config.get("CREATE_TABLES_ON_STARTUP"):
            db.create_all()
        # Seed default roles once the schema exists (safe & idempotent)
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    CSRF_EXEMPT_PATHS = {
    "/health",
    "/bookings/cancel",
    }

    @app.before_request
    def _csrf_protect():
        # Only protect state-changing requests
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # The cancel link carries its own secret
            if request.path in CSRF_EXEMPT_PATHS:
                return None

            # Only enforce CSRF if user is already authenticated (cookie session)
            if getattr(g, "user", None) is not None:
                failure = require_csrf()
                if failure:
                    return failure

    @app.errorhandler(ReservationError)
    def _reservation_error(exc):
        if exc.status_code >= 500:
            logger.error("Reservation request failed on %s %s: %s", request.method, request.path, exc.message)
        return jsonify(error=exc.message), exc.status_code

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
from models.user import User, Role
from security.session import create_session
from utils.roles import ROLE_PRECEDENCE

def register_cli(app):
    @app.cli.command("seed-roles")
    def seed_roles_command():
        """Create the CLIENT, PROVIDER and ADMIN roles."""
        seed_roles()
        click.echo("Roles seeded")

    @app.cli.command("grant-role")
    @click.argument("email")
    @click.argument("role", type=click.Choice(ROLE_PRECEDENCE, case_sensitive=False))
    def grant_role(email, role):
        """Give a user a role by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException("User not found")

        role = role.upper()
        row = Role.query.filter_by(name=role).first()
        if not row:
            row = Role(name=role)
            db.session.add(row)

        if row not in user.roles:
            user.roles.append(row)
        db.session.commit()

        click.echo(f"{user.email} granted {role}")

    @app.cli.command("issue-session")
    @click.argument("email")
    def issue_session(email):
        """Print a session cookie value for a user (local testing)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException("User not found")
        click.echo(create_session(user.id))

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
