"""
Workplan
Flask Application Factory.

Usage:
    from workplan import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import importlib
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from workplan.config import config
from workplan.models import db
from workplan.middleware.logging_config import configure_logging
from workplan.middleware.rate_limiter import init_rate_limits
from workplan.middleware.timing import init_request_timing
from workplan.utils.helpers import parse_date_input

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
    default_limits=[],                     # no global limit, applied per blueprint
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
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from workplan.blueprints import all_blueprints

    for bp in all_blueprints():
        app.register_blueprint(bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    def _today_option(value):
        try:
            return parse_date_input(value)
        except ValueError as exc:
            raise click.BadParameter(str(exc)) from exc

    @app.cli.command("deadline-sweep")
    @click.option("--today", default=None, help="Override today's date (YYYY-MM-DD).")
    def deadline_sweep_cmd(today):
        """Run the daily deadline notifier once."""
        from workplan.services.deadline_notifier import run_deadline_sweep
        result = run_deadline_sweep(_today_option(today))
        click.echo(result)

    @app.cli.command("recompute-statuses")
    @click.option("--today", default=None, help="Override today's date (YYYY-MM-DD).")
    def recompute_statuses_cmd(today):
        """Re-resolve every Initiative, SubProgram and Program status."""
        from workplan.services.hierarchy_service import recompute_statuses
        result = recompute_statuses(_today_option(today))
        click.echo(result)

    @app.cli.command("run-job")
    @click.argument("job_name")
    def run_job_cmd(job_name):
        """Run a registered scheduled job (entry point for cron)."""
        from workplan.services.scheduler_service import SchedulerService
        result = SchedulerService.run_job(job_name)
        click.echo(result)
        if result["status"] == "failed":
            raise SystemExit(1)

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

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    importlib.import_module("workplan.services.scheduled_jobs")  # registers @register_job handlers
    from workplan.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    return app
