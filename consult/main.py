import logging
import os

import click
from flask import Flask
from flask.cli import AppGroup
from sqlalchemy.exc import SQLAlchemyError

from .config import DevelopmentConfig, ProductionConfig
from .container import Container
from .extensions import db, migrate, jwt, ma, cors


def _configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("consult").setLevel(level)
    app.logger.setLevel(level)


def _register_models():
    # imported for their side effect of registering tables on db.metadata
    from consult.models import (  # noqa: F401
        consultation_session,
        ledger_entry,
        payment_method,
        provider_profile,
        rate_limit,
        session_note,
        user,
        wallet,
        withdrawal_request,
    )


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=False)
    if config_object is None:
        env = os.getenv("FLASK_ENV", "development")
        config_object = ProductionConfig if env == "production" else DevelopmentConfig
    app.config.from_object(config_object)
    _configure_logging(app)
    _register_models()

    # initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    ma.init_app(app)
    origins = [o.strip() for o in app.config["CORS_ORIGINS"].split(",")]
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": origins}},
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    )

    app.container = Container(store=db.session, config=app.config)

    # register blueprints
    from consult.routes.session_routes import bp as session_bp
    from consult.routes.wallet_routes import bp as wallet_bp
    from consult.routes.payout_routes import bp as payout_bp
    from consult.routes.admin_payments_routes import bp as admin_payment_bp

    app.register_blueprint(session_bp)
    app.register_blueprint(wallet_bp)
    app.register_blueprint(payout_bp)
    app.register_blueprint(admin_payment_bp)

    _register_error_handlers(app)
    _register_jwt_handlers()
    _register_cli(app)

    return app


def _register_error_handlers(app):
    from consult.utils.exceptions import ServiceError
    from consult.utils.response_formatter import error_response, service_error_response

    @app.errorhandler(ServiceError)
    def service_error(e):
        db.session.rollback()
        if e.status >= 500:
            app.logger.error("%s: %s", e.code, e.message)
        return service_error_response(e)

    @app.errorhandler(SQLAlchemyError)
    def database_error(e):
        db.session.rollback()
        app.logger.exception("Database error")
        return error_response("SERVER_ERROR", "Internal server error", status=500)

    @app.errorhandler(400)
    def bad_request(e):
        return error_response("BAD_REQUEST", "Malformed request", status=400)

    @app.errorhandler(404)
    def not_found(e):
        return error_response("NOT_FOUND", "Resource not found", status=404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return error_response("METHOD_NOT_ALLOWED", "Method not allowed", status=405)

    @app.errorhandler(500)
    def server_error(e):
        return error_response("SERVER_ERROR", "Internal server error", status=500)


def _register_jwt_handlers():
    from consult.utils.response_formatter import error_response

    @jwt.unauthorized_loader
    def missing_token(reason):
        return error_response("AUTHENTICATION_REQUIRED", "Valid authentication token is required", status=401)

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return error_response("AUTHENTICATION_REQUIRED", "Authentication token is invalid", status=401)

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return error_response("AUTHENTICATION_REQUIRED", "Authentication token has expired", status=401)


def _register_cli(app):
    sessions_cli = AppGroup("sessions", help="Consultation session maintenance.")
    ratelimits_cli = AppGroup("ratelimits", help="Rate limiter maintenance.")

    @sessions_cli.command("expire")
    def expire_sessions():
        """Cancel pending sessions and unanswered calls past their timeout."""
        count = app.container.sessions.expire_stale()
        click.echo(f"Expired {count} session(s)")

    @ratelimits_cli.command("cleanup")
    @click.option("--max-age", default=24 * 60 * 60, show_default=True,
                  help="Drop counters whose window started more than this many seconds ago.")
    def cleanup_rate_limits(max_age):
        count = app.container.limiter.cleanup(max_age)
        click.echo(f"Removed {count} rate limit record(s)")

    app.cli.add_command(sessions_cli)
    app.cli.add_command(ratelimits_cli)
