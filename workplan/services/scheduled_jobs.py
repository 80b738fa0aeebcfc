"""
Workplan
Scheduled jobs.

Concrete job implementations that run on a schedule.

Jobs:
    - deadline_sweep: approaching/overdue notices, flips past-due Tasks
    - status_recompute: re-resolves Initiative, SubProgram and Program statuses
    - request_archive_sweep: removes Requests soft-deleted long ago
"""

from __future__ import annotations

import logging
from typing import Any

from workplan.services import deadline_notifier, hierarchy_service
from workplan.services.notification import NotificationService
from workplan.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Deadline Sweep
# ═══════════════════════════════════════════════════════════════════════════

@register_job("deadline_sweep")
def deadline_sweep(app) -> dict[str, Any]:
    """Daily deadline notices and overdue flagging for Tasks."""
    return deadline_notifier.run_deadline_sweep()


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Status Recompute
# ═══════════════════════════════════════════════════════════════════════════

@register_job("status_recompute")
def status_recompute(app) -> dict[str, Any]:
    """Re-resolve stored statuses so deadline-driven transitions happen without edits."""
    return hierarchy_service.recompute_statuses()


# ═══════════════════════════════════════════════════════════════════════════
#  Job 3: Request Archive Sweep
# ═══════════════════════════════════════════════════════════════════════════

@register_job("request_archive_sweep")
def request_archive_sweep(app) -> dict[str, Any]:
    """Physically remove Requests soft-deleted before the archive window."""
    days = app.config.get("REQUEST_ARCHIVE_AFTER_DAYS", 30)
    removed, cutoff = NotificationService.archive_deleted(days)
    if removed:
        logger.info("Archived %d deleted requests older than %s", removed, cutoff.isoformat())
    return {"removed": removed, "cutoff": cutoff.isoformat()}
