# app.py
from __future__ import annotations

import os
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_cors import CORS

from config import Config, DevelopmentConfig, ProductionConfig, TestingConfig
from csrf import init_csrf
from db import db, migrate
from errors import TrustBoundaryError
from limiter import limiter
from services.audit import DbAuditSink
from services.payments import build_payment_backend

# Ensure models are imported so Flask-Migrate sees them
from models.user import User
from models.product import Product
from models.order import Order, OrderItem
from models.mfa_challenge import MfaChallenge
from models.captcha_challenge import CaptchaChallenge
from models.activity_log import ActivityLog

# Blueprints
from routes.auth import auth_bp
from routes.payment import payment_bp

_CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)

    # Respect reverse proxy headers (scheme / host / client ip)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore[arg-type]

    # Load config + init extensions
    if config_object is None:
        config_object = _CONFIGS.get(os.environ.get("APP_ENV", "development"), DevelopmentConfig)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    CORS(
        app,
        resources={r"/*": {"origins": app.config["CLIENT_URL"]}},
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization", app.config["CSRF_HEADER_NAME"]],
        methods=["GET", "POST", "PUT", "DELETE"],
    )
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    init_csrf(app)

    # Pluggable collaborators (tests swap these)
    app.extensions["payment_backend"] = build_payment_backend(app.config)
    app.extensions["audit_sink"] = DbAuditSink()

    with app.app_context():
        # Touch models so Alembic/Flask-Migrate registers them
        _ = (User, Product, Order, OrderItem, MfaChallenge, CaptchaChallenge, ActivityLog)

    app.logger.info(
        "[app] started env=%s payments=%s",
        app.config.get("ENV_NAME"),
        "simulation" if app.extensions["payment_backend"].is_simulation else "live",
    )

    @app.after_request
    def security_headers(resp):
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        return resp

    # Health check
    @app.route("/")
    def health_check():
        return jsonify(status="ok"), 200

    @app.errorhandler(TrustBoundaryError)
    def handle_trust_error(e: TrustBoundaryError):
        return jsonify(e.to_dict()), e.status_code

    # Global error handler
    @app.errorhandler(Exception)
    def handle_any_error(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify(success=False, error=e.description, path=request.path), e.code
        app.logger.exception("[app] unhandled error on %s %s", request.method, request.path)
        message = "Server Error" if app.config.get("ENV_NAME") == "production" else str(e)
        return jsonify(success=False, error=message), 500

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(payment_bp)

    # CLI: local demo data
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        from seed import seed_demo
        seed_demo()
        print("Demo data seeded.")

    return app


# Optional local entrypoint (useful for quick dev runs)
if __name__ == "__main__":
    app = create_app()
    app.run(
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        debug=bool(os.environ.get("FLASK_DEBUG", "")),
    )
