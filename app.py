from decimal import Decimal

import click
from flask import Flask, jsonify
from flask_migrate import Migrate

from config import Config
from integrations.notifications import NotificationRelay, SessionRegistry
from integrations.payments import StripeGateway
from integrations.video import AgoraProvisioner
from models import db
from models.developer_profile import DeveloperProfile
from models.user import User
from routes import (
    health_bp, auth_bp, booking_bp, developers_bp, payments_bp, reviews_bp, webhook_bp,
)
from routes.realtime import socketio, socket_emitter
from services.errors import DomainError
from services.wallet import ensure_wallet
from utils.auth_context import load_current_user


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(booking_bp)
    app.register_blueprint(developers_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(reviews_bp)
    app.register_blueprint(webhook_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # External collaborators; tests swap these for fakes
    app.extensions["payment_gateway"] = StripeGateway(
        api_key=app.config.get("STRIPE_SECRET_KEY"),
        timeout_seconds=app.config.get("PROVIDER_TIMEOUT_SECONDS", 10),
    )
    app.extensions["video_provisioner"] = AgoraProvisioner(
        app_id=app.config.get("AGORA_APP_ID"),
        app_certificate=app.config.get("AGORA_APP_CERTIFICATE"),
        token_ttl_seconds=app.config.get("AGORA_TOKEN_TTL_SECONDS", 3600),
    )
    app.extensions["notification_relay"] = NotificationRelay(SessionRegistry(), emit=socket_emitter)

    socketio.init_app(app, cors_allowed_origins=app.config.get("FRONTEND_URL"), async_mode="threading")

    @app.before_request
    def _load_user():
        load_current_user()

    @app.errorhandler(DomainError)
    def _domain_error(exc):
        if exc.status_code >= 500:
            app.logger.warning("%s: %s", exc.kind, exc.message)
        return jsonify(error=exc.message, kind=exc.kind), exc.status_code

    @app.errorhandler(404)
    def _not_found(_exc):
        return jsonify(error="Route not found"), 404

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------

def register_cli(app):
    @app.cli.command("make-developer")
    @click.argument("email")
    @click.option("--rate", default=None, help="Hourly rate, defaults to DEFAULT_HOURLY_RATE.")
    def make_developer(email, rate):
        """Turn an existing user into a developer with a profile (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        user.user_type = "developer"
        if not user.developer_profile:
            hourly_rate = Decimal(str(rate or app.config.get("DEFAULT_HOURLY_RATE", "50")))
            db.session.add(DeveloperProfile(user_id=user.id, hourly_rate=hourly_rate))
        ensure_wallet(user.id)
        db.session.commit()

        click.echo(f"{user.email} is now a developer (profile #{user.developer_profile.id})")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    socketio.run(app, host="127.0.0.1", port=5000)
