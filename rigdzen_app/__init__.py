# rigdzen_app/__init__.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import os

from flask import Flask, flash, jsonify, redirect, request, url_for
from werkzeug.exceptions import HTTPException

from config import Config, DevelopmentConfig, TestingConfig, StagingConfig, ProductionConfig
from .errors import AppError, AuthenticationMissing, AuthorizationDenied
from .extensions import db, init_extensions, register_cli
from .services.sessions import slide_session, is_impersonating, get_admin_session
from .blueprints.admin import admin_bp
from .blueprints.core import bp as core_bp
from .blueprints.auth import bp as auth_bp
from .blueprints.retreats import bp as retreats_bp
from .blueprints.payments import bp as payments_bp

CONFIGS = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "staging": StagingConfig,
    "production": ProductionConfig,
}


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AppError)
    def handle_app_error(err: AppError):
        if request.path.startswith("/api/"):
            return jsonify({"error": err.message}), err.status_code
        if err.status_code >= 500:
            app.logger.warning("%s on %s: %s", type(err).__name__, request.path, err.message)
        flash(err.message, "danger" if err.status_code >= 500 else "warning")
        if isinstance(err, AuthenticationMissing):
            return redirect(url_for("core.index"))
        if isinstance(err, AuthorizationDenied):
            return redirect(url_for("core.dashboard"))
        return redirect(request.referrer or url_for("core.dashboard"))

    @app.errorhandler(Exception)
    def handle_unexpected(err: Exception):
        if isinstance(err, HTTPException):
            return err
        app.logger.exception("Unhandled error on %s", request.path)
        db.session.rollback()
        if request.path.startswith("/api/"):
            return jsonify({"error": "Internal server error"}), 500
        return "Internal server error", 500


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__, template_folder="../templates", static_folder="../static")
    app_env = os.getenv("APP_ENV", "development").lower()
    app.config.from_object(config_object or CONFIGS.get(app_env, Config))

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # DB/Migrate
    init_extensions(app)

    # Blueprints
    app.register_blueprint(core_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(retreats_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(admin_bp)

    _register_error_handlers(app)

    # sliding session expiry + clearing of cookies that no longer verify
    app.after_request(slide_session)

    @app.context_processor
    def inject_session_state():
        from .decorators import current_user
        return {
            "current_user": current_user(),
            "is_impersonating": is_impersonating(),
            "real_admin": get_admin_session(),
        }

    @app.template_filter("money")
    def money(value, currency=None):
        return f"${float(value or 0):,.2f}" + (f" {currency}" if currency else "")

    # CLI (flask init-db, ensure-admin, upsert-users)
    register_cli(app)
    return app
