"""
DealDesk — M&A checklist & progress engine
Flask Application Factory.

Usage:
    from dealdesk import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_migrate import Migrate

from dealdesk.config import get_config
from dealdesk.middleware.logging_config import configure_logging
from dealdesk.middleware.timing import init_request_timing
from dealdesk.models import db

logger = logging.getLogger(__name__)

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
    app.config.from_object(get_config(config_name))

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from dealdesk.models import checklist as _checklist_models  # noqa: F401

    db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if db_uri.startswith("sqlite:///") and db_uri != "sqlite:///:memory:":
        os.makedirs(os.path.dirname(db_uri[len("sqlite:///"):]) or ".", exist_ok=True)

    if app.config.get("SEED_CATALOG_ON_STARTUP"):
        with app.app_context():
            from dealdesk.services.template_catalog import seed_default_catalog
            db.create_all()
            seed_default_catalog()

    # ── Blueprints ───────────────────────────────────────────────────────
    from dealdesk.blueprints.checklist_bp import checklist_bp

    app.register_blueprint(checklist_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-checklist-catalog")
    def seed_checklist_catalog_cmd():
        """Seed the default buy-side and sell-side checklist catalog."""
        from dealdesk.services.template_catalog import seed_default_catalog
        count = seed_default_catalog()
        logger.info("Seeded %s checklist catalog rows.", count)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "DealDesk checklist engine"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    return app
