"""
Traveler Lifecycle Service
Flask Application Factory.

Usage:
    from travelers import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_migrate import Migrate

from travelers.config import config
from travelers.models import db
from travelers.middleware.logging_config import configure_logging

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

migrate = Migrate()


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    try:
        os.makedirs(app.instance_path, exist_ok=True)
    except OSError:
        logger.warning("Could not create instance folder %s", app.instance_path)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Import all models so create_all() sees them ──────────────────────
    from travelers.models import form as _form_models          # noqa: F401
    from travelers.models import traveler as _traveler_models  # noqa: F401
    from travelers.models import binder as _binder_models      # noqa: F401

    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from travelers.blueprints import register_error_handlers
    from travelers.blueprints.binder_bp import binder_bp
    from travelers.blueprints.form_bp import form_bp
    from travelers.blueprints.health_bp import health_bp
    from travelers.blueprints.traveler_bp import traveler_bp

    app.register_blueprint(traveler_bp)
    app.register_blueprint(form_bp)
    app.register_blueprint(binder_bp)
    app.register_blueprint(health_bp)

    register_error_handlers(app)

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Not found", "path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return jsonify({"error": "Internal server error"}), 500

    return app
