"""
Admissions Workflow Service
Flask Application Factory.

Usage:
    from admissions import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from admissions.config import config
from admissions.models import db
from admissions.middleware.logging_config import configure_logging
from admissions.middleware.timing import init_request_timing
from admissions.middleware.diagnostics import run_startup_diagnostics
from admissions.middleware.rate_limiter import init_rate_limits
from admissions.services.workflow_service import ApplicationWorkflow

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
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per-blueprint
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
    app.config.from_object(config[config_name]())

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

    # ── Workflow engine (app.extensions["admissions_workflow"]) ──────────
    workflow = ApplicationWorkflow.init_app(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from admissions.models import application as _application_models  # noqa: F401
    from admissions.models import workflow as _workflow_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
        if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
            os.makedirs(os.path.dirname(db_uri[len("sqlite:///"):]), exist_ok=True)
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from admissions.blueprints.health_bp import health_bp
    from admissions.blueprints.admissions_bp import admissions_bp
    from admissions.blueprints.workflow_bp import workflow_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(admissions_bp)
    app.register_blueprint(workflow_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("workflow-templates")
    def workflow_templates_cmd():
        """Print the admissions stage catalogue in sequence order."""
        for template in workflow.get_stage_templates():
            due = template.due_in_business_days
            click.echo(
                f"{template.sequence}. {template.stage_key:<24} "
                f"{template.assigned_role:<10} "
                f"{f'{due} business days' if due else 'no deadline'}"
            )

    @app.cli.command("backfill-workflows")
    @click.option("--dry-run", is_flag=True, help="List applications without creating stages.")
    def backfill_workflows_cmd(dry_run):
        """Initialise workflows for applications that have none."""
        from admissions.services.application_service import backfill_missing_workflows
        ids = backfill_missing_workflows(workflow, dry_run=dry_run)
        verb = "Would initialise" if dry_run else "Initialised"
        click.echo(f"{verb} {len(ids)} workflow(s): {', '.join(map(str, ids)) or '-'}")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
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

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
