"""
Sitetrack — Chantier Management Platform
Flask Application Factory.

Usage:
    from sitetrack import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from sitetrack.config import config
from sitetrack.models import db
from sitetrack.middleware.logging_config import configure_logging
from sitetrack.middleware.rate_limiter import init_rate_limits

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


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

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from sitetrack.models import document as _document_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ─────────────────────
    if app.config.get("DOCUMENT_STORE", "sql") == "sql":
        if (app.config.get("SQLALCHEMY_DATABASE_URI") or "").startswith("sqlite:///") and not app.testing:
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            try:
                db.create_all()
                app.logger.info("db.create_all() completed successfully")
            except Exception as e:
                app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from sitetrack.blueprints.migration_bp import migration_bp

    app.register_blueprint(migration_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("migrate-chantier-phases")
    @click.option("--dry-run", is_flag=True, help="Run the pipeline without writing.")
    @click.option("--chantier-id", default=None, help="Migrate a single chantier.")
    def migrate_chantier_phases_cmd(dry_run, chantier_id):
        """Migrate chantiers from legacy phases to the canonical phase catalog."""
        from sitetrack.services.chantier_migration_service import ChantierMigrationService

        service = ChantierMigrationService.from_app(app)
        if chantier_id:
            ok = service.migrate_chantier(chantier_id)
            click.echo(f"chantier={chantier_id} success={ok}")
            if not ok:
                raise SystemExit(1)
            return
        result = service.migrate_all_chantiers(dry_run=dry_run)
        click.echo(result.to_dict())
        if result.failed:
            raise SystemExit(1)

    # ── Health check ─────────────────────────────────────────────────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Sitetrack"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
