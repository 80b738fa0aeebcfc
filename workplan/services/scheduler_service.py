"""
Workplan
Scheduler service.

Job registry plus a persisted run history. Jobs are plain functions taking
the Flask app; they are triggered by an external cron (``flask run-job``),
the CLI shortcuts or the manual trigger API, always inside an app context.

Architecture:
    - SchedulerService: manages job records and execution
    - Jobs are stored in the ScheduledJob model for persistence
    - Pluggable job functions registered via decorator
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from flask import Flask

from workplan.core.exceptions import NotFoundError
from workplan.models import db
from workplan.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("deadline_sweep")
        def deadline_sweep(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


def _job_record(job_name: str) -> ScheduledJob | None:
    return ScheduledJob.query.filter_by(job_name=job_name).first()


class SchedulerService:
    """
    Job registration, persistence and execution.

    Jobs are executed within a Flask app context.
    """

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Bind the scheduler to the Flask app."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with default config.
        """
        created = []
        for name, fn in _job_registry.items():
            if _job_record(name) is None:
                job = ScheduledJob(
                    job_name=name,
                    description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                    schedule_config=_get_default_schedule(name),
                    status="active",
                    is_enabled=True,
                )
                db.session.add(job)
                created.append(job)
        if created:
            db.session.commit()
            logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str, *, force: bool = False) -> dict:
        """
        Execute a single job by name.

        A disabled job is skipped unless ``force`` is set (manual trigger).

        Returns:
            Dict with job_name, status, duration_ms, result and error.

        Raises:
            NotFoundError: no job registered under that name.
        """
        fn = _job_registry.get(job_name)
        if fn is None:
            raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
        if cls._app is None:
            raise RuntimeError("Scheduler not initialized")

        cls.ensure_jobs_registered()
        record = _job_record(job_name)
        if record is not None and not record.is_enabled and not force:
            logger.info("Job %s is disabled, skipping", job_name, extra={"job_name": job_name})
            return {"job_name": job_name, "status": "skipped", "duration_ms": 0,
                    "result": None, "error": None}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)

        record = _job_record(job_name)
        if record is not None:
            record.record_run(
                status=status,
                duration_ms=duration_ms,
                result=result if isinstance(result, dict) else {"output": str(result)},
                error=error,
            )
            record.status = "failed" if status == "failed" else (
                "active" if record.is_enabled else "paused")
            db.session.commit()

        logger.info("Job %s finished: %s in %dms", job_name, status, duration_ms,
                    extra={"job_name": job_name})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            record = _job_record(name)
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": record.to_dict() if record else None,
            })
        return jobs

    @classmethod
    def get_job_status(cls, job_name: str) -> dict:
        record = _job_record(job_name)
        if record is None:
            raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
        return record.to_dict()

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict:
        """Enable or disable a scheduled job."""
        if job_name in _job_registry:
            cls.ensure_jobs_registered()
        record = _job_record(job_name)
        if record is None:
            raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
        record.is_enabled = enabled
        record.status = "active" if enabled else "paused"
        db.session.commit()
        return record.to_dict()


def _get_default_schedule(job_name: str) -> dict:
    """Return default schedule config for known job types."""
    defaults = {
        "deadline_sweep": {"hour": "0", "minute": "5", "description": "Daily at 00:05"},
        "status_recompute": {"hour": "0", "minute": "15", "description": "Daily at 00:15"},
        "request_archive_sweep": {"hour": "2", "minute": "0",
                                  "description": "Daily at 02:00"},
    }
    return defaults.get(job_name, {"hour": "0", "minute": "0",
                                    "description": "Daily at midnight"})
