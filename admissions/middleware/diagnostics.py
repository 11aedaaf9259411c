"""
Startup diagnostics — runs once when the Flask app starts.

Checks the database and the stage catalogue and logs a summary banner.
"""

import logging
import sys

from flask import Flask

from admissions.models import db
from admissions.services.stage_templates import get_stage_templates

logger = logging.getLogger(__name__)


def check_stage_catalogue() -> list[str]:
    """Return problems with the stage catalogue (empty list when sound).

    Sequences must be exactly 1..N, strictly increasing, with unique keys.
    """
    templates = get_stage_templates()
    problems: list[str] = []
    sequences = [t.sequence for t in templates]
    if sequences != list(range(1, len(templates) + 1)):
        problems.append(f"Stage sequences are not contiguous from 1: {sequences}")
    keys = [t.stage_key for t in templates]
    if len(set(keys)) != len(keys):
        problems.append(f"Duplicate stage keys: {keys}")
    return problems


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except Exception as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        try:
            from sqlalchemy import inspect as sa_inspect
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found — run 'flask db upgrade'")
        except Exception:
            table_count = "?"

        catalogue_problems = check_stage_catalogue()
        issues.extend(catalogue_problems)
        stage_status = "FAILED" if catalogue_problems else f"{len(get_stage_templates())} stages"

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  Admissions Workflow Service — Startup Diagnostics           ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Tables      : {str(table_count):<46s}║
║  Workflow    : {stage_status:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
