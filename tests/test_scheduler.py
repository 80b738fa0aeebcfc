"""
Scheduler: job registry, persisted job records, execution and the
management API.
"""

from datetime import datetime, timedelta, timezone

import pytest

from workplan.core.exceptions import NotFoundError
from workplan.models import db
from workplan.models.request import Request
from workplan.models.scheduling import ScheduledJob
from workplan.services import scheduler_service
from workplan.services.notification import NotificationService
from workplan.services.scheduler_service import SchedulerService, get_registered_jobs

JOB_NAMES = {"deadline_sweep", "status_recompute", "request_archive_sweep"}


@pytest.fixture()
def broken_job(monkeypatch):
    def _explode(app):
        raise RuntimeError("mail relay refused connection")

    monkeypatch.setitem(scheduler_service._job_registry, "broken_job", _explode)
    return "broken_job"


class TestRegistry:
    def test_registered_jobs(self):
        assert JOB_NAMES <= set(get_registered_jobs())

    def test_ensure_jobs_registered_is_idempotent(self):
        created = SchedulerService.ensure_jobs_registered()
        assert {j.job_name for j in created} >= JOB_NAMES
        assert SchedulerService.ensure_jobs_registered() == []

        job = ScheduledJob.query.filter_by(job_name="deadline_sweep").first()
        assert job.status == "active"
        assert job.schedule_config["minute"] == "5"
        assert job.description == "Daily deadline notices and overdue flagging for Tasks."

    def test_list_jobs(self):
        SchedulerService.ensure_jobs_registered()
        jobs = {j["job_name"]: j for j in SchedulerService.list_jobs()}
        assert JOB_NAMES <= set(jobs)
        assert all(j["registered"] is True for j in jobs.values())


class TestExecution:
    def test_run_records_success(self):
        result = SchedulerService.run_job("status_recompute")
        assert result["status"] == "success"
        assert set(result["result"]) >= {"initiatives_changed", "programs_changed"}

        db.session.expire_all()
        status = SchedulerService.get_job_status("status_recompute")
        assert status["run_count"] == 1
        assert status["last_run_status"] == "success"

    def test_archive_job_removes_old_deleted_requests(self, task):
        req = Request.query.filter_by(kind="assignee_added").first()
        NotificationService.mark_deleted([req.id])
        req.deleted_at = datetime.now(timezone.utc) - timedelta(days=90)
        db.session.commit()
        req_id = req.id

        result = SchedulerService.run_job("request_archive_sweep")

        assert result["status"] == "success"
        assert result["result"]["removed"] == 1
        db.session.expire_all()
        assert db.session.get(Request, req_id) is None

    def test_failure_is_recorded_not_raised(self, broken_job):
        result = SchedulerService.run_job(broken_job)
        assert result["status"] == "failed"
        assert "mail relay" in result["error"]

        db.session.expire_all()
        status = SchedulerService.get_job_status(broken_job)
        assert status["status"] == "failed"
        assert status["error_count"] == 1

    def test_disabled_job_is_skipped_unless_forced(self):
        SchedulerService.toggle_job("status_recompute", False)
        assert SchedulerService.run_job("status_recompute")["status"] == "skipped"
        assert SchedulerService.run_job("status_recompute", force=True)["status"] == "success"

    def test_unknown_job(self):
        with pytest.raises(NotFoundError):
            SchedulerService.run_job("nonexistent_job_xyz")
        with pytest.raises(NotFoundError):
            SchedulerService.toggle_job("nonexistent_job_xyz", True)
        with pytest.raises(NotFoundError):
            SchedulerService.get_job_status("nonexistent_job_xyz")

    def test_toggle(self):
        paused = SchedulerService.toggle_job("deadline_sweep", False)
        assert paused["status"] == "paused"
        assert paused["is_enabled"] is False
        active = SchedulerService.toggle_job("deadline_sweep", True)
        assert active["status"] == "active"


class TestSchedulerAPI:
    def test_list_jobs(self, client):
        res = client.get("/api/v1/scheduler/jobs")
        assert res.status_code == 200
        names = {j["job_name"] for j in res.get_json()["items"]}
        assert JOB_NAMES <= names

    def test_get_job(self, client):
        res = client.get("/api/v1/scheduler/jobs/status_recompute")
        assert res.status_code == 200
        assert res.get_json()["job_name"] == "status_recompute"

    def test_get_job_not_found(self, client):
        res = client.get("/api/v1/scheduler/jobs/nonexistent")
        assert res.status_code == 404

    def test_manual_run_ignores_disabled_flag(self, client):
        client.patch("/api/v1/scheduler/jobs/status_recompute", json={"is_enabled": False})
        res = client.post("/api/v1/scheduler/jobs/status_recompute/run")
        assert res.status_code == 200
        data = res.get_json()
        assert data["status"] == "success"
        assert "duration_ms" in data

    def test_failed_run_is_500(self, client, broken_job):
        res = client.post(f"/api/v1/scheduler/jobs/{broken_job}/run")
        assert res.status_code == 500
        assert res.get_json()["status"] == "failed"

    def test_run_unknown_job(self, client):
        res = client.post("/api/v1/scheduler/jobs/nonexistent_job_xyz/run")
        assert res.status_code == 404

    def test_toggle_requires_boolean(self, client):
        res = client.patch("/api/v1/scheduler/jobs/deadline_sweep", json={"is_enabled": "no"})
        assert res.status_code == 400
        res = client.patch("/api/v1/scheduler/jobs/deadline_sweep", json={"is_enabled": False})
        assert res.status_code == 200
        assert res.get_json()["status"] == "paused"
