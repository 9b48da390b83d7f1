"""
History store tests: run creation guard, compare-and-set, the analytics
read model and malformed-row tolerance.
"""

from datetime import datetime, timedelta, timezone

import pytest

from checklist_hub.core.exceptions import AlreadyActiveRunError
from checklist_hub.models import db
from checklist_hub.models.checklist import ChecklistRun, RunStatus
from checklist_hub.services import history_store
from checklist_hub.services.history_store import RunRecord

T0 = datetime(2025, 1, 6, 7, 0, tzinfo=timezone.utc)


def _record(status="completed", started=T0, minutes=None, total=4, checked=4, user="u1", checklist_id=1):
    completed = started + timedelta(minutes=minutes) if minutes is not None else None
    return RunRecord(
        run_id=1, checklist_id=checklist_id, checklist_name="C", user_id=user,
        status=RunStatus(status), started_at=started, completed_at=completed,
        total_items=total, checked_items=checked,
    )


class TestCreateRun:
    def test_one_in_progress_run_per_user_and_checklist(self, make_checklist):
        checklist = make_checklist()
        history_store.create_run(checklist, "cook-1", T0)
        db.session.commit()

        with pytest.raises(AlreadyActiveRunError):
            history_store.create_run(checklist, "cook-1", T0)
        assert ChecklistRun.query.count() == 1

    def test_completed_run_does_not_block(self, make_checklist):
        checklist = make_checklist()
        run = history_store.create_run(checklist, "cook-1", T0)
        run.status = RunStatus.COMPLETED.value
        db.session.commit()

        history_store.create_run(checklist, "cook-1", T0 + timedelta(hours=1))
        db.session.commit()
        assert ChecklistRun.query.count() == 2

    def test_evidence_snapshot(self, make_checklist):
        checklist = make_checklist()
        run = history_store.create_run(checklist, "cook-1", T0)
        db.session.commit()

        rows = history_store.list_evidence(run.id)
        assert [r.item_position for r in rows] == [1, 2, 3]
        assert [r.is_required for r in rows] == [True, True, False]
        assert rows[0].item_title == "Check fridge temperature"


class TestCompareAndSet:
    def test_transition_only_from_expected(self, make_checklist):
        run = history_store.create_run(make_checklist(), "cook-1", T0)
        db.session.commit()

        assert history_store.compare_and_set_status(run.id, {RunStatus.IN_PROGRESS}, RunStatus.OVERDUE)
        assert not history_store.compare_and_set_status(run.id, {RunStatus.IN_PROGRESS}, RunStatus.OVERDUE)
        db.session.commit()
        assert history_store.get_run(run.id).status == "overdue"

    def test_append_event_rejects_unknown_type(self, make_checklist):
        run = history_store.create_run(make_checklist(), "cook-1", T0)
        with pytest.raises(ValueError):
            history_store.append_event(run, "exploded", actor_id="x", at=T0)


class TestRunRecord:
    def test_progress_rounds_half_up(self):
        assert _record(total=3, checked=2).progress == 67
        assert _record(total=8, checked=1).progress == 13
        assert _record(total=0, checked=0).progress == 0

    def test_duration_only_for_completed(self):
        assert _record(minutes=30).duration_minutes == 30
        assert _record(status="failed", minutes=30).duration_minutes is None
        assert _record(status="in_progress").duration_minutes is None

    def test_duration_half_minutes_round_up(self):
        record = RunRecord(
            run_id=1, checklist_id=1, checklist_name="C", user_id="u",
            status=RunStatus.COMPLETED, started_at=T0,
            completed_at=T0 + timedelta(minutes=2, seconds=30),
            total_items=1, checked_items=1,
        )
        assert record.duration_minutes == 3

    def test_to_dict_keys(self):
        d = _record(minutes=10).to_dict()
        assert d["status"] == "completed"
        assert d["durationMinutes"] == 10
        assert d["progress"] == 100


class TestLoadRecords:
    def test_counts_evidence_per_run(self, make_checklist):
        checklist = make_checklist()
        run = history_store.create_run(checklist, "cook-1", T0)
        run.evidence[0].checked = True
        db.session.commit()

        records = history_store.load_records()
        assert len(records) == 1
        assert (records[0].total_items, records[0].checked_items) == (3, 1)
        assert records[0].progress == 33
        assert records[0].started_at.tzinfo is not None

    def test_filters_by_range_and_user(self, make_checklist):
        checklist = make_checklist()
        a = history_store.create_run(checklist, "cook-1", T0)
        a.status = "completed"
        history_store.create_run(checklist, "cook-2", T0 + timedelta(days=2))
        db.session.commit()

        assert len(history_store.load_records(user_id="cook-1")) == 1
        window = history_store.load_records(start=T0 + timedelta(days=1), end=T0 + timedelta(days=3))
        assert [r.user_id for r in window] == ["cook-2"]
        assert [r.user_id for r in history_store.load_records(status="COMPLETED")] == ["cook-1"]

    def test_malformed_rows_are_skipped(self, make_checklist, caplog):
        checklist = make_checklist()
        history_store.create_run(checklist, "cook-1", T0)
        bad = ChecklistRun(
            checklist_id=checklist.id, user_id="cook-2", status="exploded",
            started_at=T0, checklist_name="C", checklist_roles=[],
        )
        db.session.add(bad)
        db.session.commit()

        records = history_store.load_records()
        assert [r.user_id for r in records] == ["cook-1"]
        assert "Skipping malformed run row" in caplog.text
