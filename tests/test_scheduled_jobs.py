"""
Scheduled job tests: registry, ScheduledJob bookkeeping and the two
checklist sweeps run through SchedulerService.run_job.

Jobs run in their own app context (and therefore their own session), so
fixtures commit before running a job and tests re-read afterwards.
"""

from datetime import datetime, timezone

from checklist_hub.models import db
from checklist_hub.models.checklist import ChecklistRun, RunStatus
from checklist_hub.models.scheduling import ScheduledJob
from checklist_hub.services import run_lifecycle, scheduler_service
from checklist_hub.services.scheduler_service import SchedulerService, get_registered_jobs

LONG_AGO = datetime(2025, 1, 6, 7, 0, tzinfo=timezone.utc)


def _stale_run(make_checklist, cook):
    checklist = make_checklist()
    return run_lifecycle.start_run(checklist.id, cook, now=LONG_AGO).run.id


def _reload(run_id):
    db.session.expire_all()
    return db.session.get(ChecklistRun, run_id)


class TestScheduledJobModel:
    def test_record_run_success(self):
        job = ScheduledJob(job_name="x", run_count=0, error_count=0)
        job.record_run(status="success", duration_ms=12, result={"checked": 1})
        assert job.run_count == 1
        assert job.error_count == 0
        assert job.last_run_result == {"checked": 1}

    def test_record_run_failure(self):
        job = ScheduledJob(job_name="x")
        job.record_run(status="failed", error=RuntimeError("boom"))
        assert job.run_count == 1
        assert job.error_count == 1
        assert job.last_error == "boom"

    def test_to_dict(self):
        d = ScheduledJob(job_name="x", is_enabled=True).to_dict()
        assert d["job_name"] == "x"
        assert d["last_run_at"] is None


class TestRegistry:
    def test_checklist_jobs_registered(self):
        jobs = get_registered_jobs()
        assert "checklist_overdue_sweep" in jobs
        assert "checklist_period_close" in jobs

    def test_records_created_on_demand(self):
        SchedulerService.ensure_jobs_registered()
        status = SchedulerService.get_job_status("checklist_overdue_sweep")
        assert status["is_enabled"] is True
        assert status["schedule_config"]["minutes"] == 5

    def test_unknown_job(self):
        assert SchedulerService.run_job("nope")["status"] == "error"


class TestRunJob:
    def test_overdue_sweep(self, make_checklist, cook):
        run_id = _stale_run(make_checklist, cook)

        outcome = SchedulerService.run_job("checklist_overdue_sweep")

        assert outcome["status"] == "success"
        assert outcome["result"] == {"checked": 1, "marked_overdue": 1}
        assert _reload(run_id).status == RunStatus.OVERDUE.value
        job = SchedulerService.get_job_status("checklist_overdue_sweep")
        assert job["run_count"] == 1
        assert job["last_run_status"] == "success"

    def test_period_close(self, make_checklist, cook):
        run_id = _stale_run(make_checklist, cook)

        outcome = SchedulerService.run_job("checklist_period_close")

        assert outcome["result"]["marked_failed"] == 1
        run = _reload(run_id)
        assert run.status == RunStatus.FAILED.value
        assert run.failure_reason == "period_closed"

    def test_disabled_job_skipped(self, make_checklist, cook):
        run_id = _stale_run(make_checklist, cook)
        SchedulerService.ensure_jobs_registered()
        SchedulerService.toggle_job("checklist_overdue_sweep", False)

        assert SchedulerService.run_job("checklist_overdue_sweep")["status"] == "skipped"
        assert _reload(run_id).status == RunStatus.IN_PROGRESS.value

    def test_failure_recorded(self, monkeypatch):
        def explode(app):
            raise RuntimeError("sweep exploded")

        monkeypatch.setitem(scheduler_service._job_registry, "exploding_job", explode)

        outcome = SchedulerService.run_job("exploding_job")

        assert outcome["status"] == "failed"
        assert "sweep exploded" in outcome["error"]
        db.session.expire_all()
        job = SchedulerService.get_job_status("exploding_job")
        assert job["error_count"] == 1
        assert job["last_error"] == "sweep exploded"
