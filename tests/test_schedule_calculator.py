"""
Unit tests for the schedule calculator.

All functions are pure; holders are plain namespaces carrying the schedule
fields a Checklist or ChecklistRun exposes.
"""

from datetime import date, datetime, time, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from checklist_hub.services import schedule_calculator as sc
from checklist_hub.services.schedule_calculator import ScheduleSettings

UTC = ScheduleSettings()
BERLIN = ScheduleSettings(tz=ZoneInfo("Europe/Berlin"))

MONDAY = date(2025, 1, 6)


def _holder(frequency="daily", due_time=time(9, 0), escalation_minutes=60,
            schedule_day=None, **extra):
    return SimpleNamespace(frequency=frequency, due_time=due_time,
                           escalation_minutes=escalation_minutes,
                           schedule_day=schedule_day, **extra)


def _run(started_at, status="in_progress", **kwargs):
    return _holder(started_at=started_at, status=status, **kwargs)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestOccursOn:
    def test_daily_every_day(self):
        holder = _holder("daily")
        assert all(sc.occurs_on(holder, date(2025, 1, d), UTC) for d in range(1, 32))

    def test_weekly_on_designated_weekday(self):
        holder = _holder("weekly", schedule_day=2)
        assert sc.occurs_on(holder, date(2025, 1, 8), UTC)
        assert not sc.occurs_on(holder, MONDAY, UTC)

    def test_weekly_defaults_to_configured_weekday(self):
        holder = _holder("weekly")
        assert sc.occurs_on(holder, MONDAY, UTC)
        assert not sc.occurs_on(holder, date(2025, 1, 7), UTC)

    def test_monthly_day_clamped_to_month_end(self):
        holder = _holder("monthly", schedule_day=31)
        assert sc.occurs_on(holder, date(2025, 2, 28), UTC)
        assert not sc.occurs_on(holder, date(2025, 2, 27), UTC)
        assert sc.occurs_on(holder, date(2025, 1, 31), UTC)

    def test_monthly_defaults_to_first(self):
        holder = _holder("monthly")
        assert sc.occurs_on(holder, date(2025, 3, 1), UTC)
        assert not sc.occurs_on(holder, date(2025, 3, 2), UTC)

    def test_quarterly_label_folds_into_monthly(self):
        holder = _holder("Quarterly")
        assert sc.occurs_on(holder, date(2025, 4, 1), UTC)


class TestDueInstant:
    def test_due_time_in_org_zone(self):
        due = sc.due_instant(_holder(due_time=time(9, 0)), MONDAY, BERLIN)
        assert due == _utc(2025, 1, 6, 8, 0)

    def test_missing_due_time_is_end_of_day(self):
        due = sc.due_instant(_holder(due_time=None), MONDAY, UTC)
        assert due == _utc(2025, 1, 6, 23, 59, 59)

    def test_escalation_deadline_adds_minutes(self):
        holder = _holder(escalation_minutes=90)
        due = sc.due_instant(holder, MONDAY, UTC)
        assert sc.escalation_deadline(holder, due, UTC) == _utc(2025, 1, 6, 10, 30)

    def test_escalation_defaults_by_frequency(self):
        assert sc.default_escalation_minutes("daily", UTC) == 60
        assert sc.default_escalation_minutes("weekly", UTC) == 1440
        assert sc.default_escalation_minutes("monthly", UTC) == 1440


class TestIsOverdue:
    def test_not_overdue_at_deadline(self):
        run = _run(_utc(2025, 1, 6, 7, 0))
        assert not sc.is_overdue(run, _utc(2025, 1, 6, 10, 0), UTC)

    def test_overdue_after_deadline(self):
        run = _run(_utc(2025, 1, 6, 7, 0))
        assert sc.is_overdue(run, _utc(2025, 1, 6, 10, 0, 1), UTC)

    @pytest.mark.parametrize("status", ["overdue", "completed", "failed"])
    def test_only_in_progress_runs_are_reported(self, status):
        run = _run(_utc(2025, 1, 6, 7, 0), status=status)
        assert not sc.is_overdue(run, _utc(2025, 1, 7), UTC)

    def test_naive_started_at_treated_as_utc(self):
        run = _run(datetime(2025, 1, 6, 7, 0))
        assert sc.is_overdue(run, _utc(2025, 1, 6, 11, 0), UTC)


class TestWindows:
    def test_daily_window(self):
        assert sc.occurrence_window(_holder("daily"), MONDAY, UTC) == (MONDAY, MONDAY)

    def test_weekly_window_is_iso_week(self):
        window = sc.occurrence_window(_holder("weekly"), date(2025, 1, 8), UTC)
        assert window == (date(2025, 1, 6), date(2025, 1, 12))

    def test_monthly_window(self):
        window = sc.occurrence_window(_holder("monthly"), date(2025, 2, 14), UTC)
        assert window == (date(2025, 2, 1), date(2025, 2, 28))

    def test_window_bounds_in_org_zone(self):
        start, end = sc.window_bounds((MONDAY, MONDAY), BERLIN)
        assert start == _utc(2025, 1, 5, 23, 0)
        assert end == _utc(2025, 1, 6, 23, 0)

    def test_local_date_crosses_midnight(self):
        assert sc.local_date(_utc(2025, 1, 5, 23, 30), BERLIN) == MONDAY
        assert sc.local_date(_utc(2025, 1, 5, 23, 30), UTC) == date(2025, 1, 5)

    def test_period_closed_next_day_for_daily(self):
        run = _run(_utc(2025, 1, 6, 7, 0))
        assert not sc.period_closed(run, _utc(2025, 1, 6, 23, 0), UTC)
        assert sc.period_closed(run, _utc(2025, 1, 7, 0, 0, 1), UTC)

    def test_period_closed_after_week_for_weekly(self):
        run = _run(_utc(2025, 1, 7, 7, 0), frequency="weekly")
        assert not sc.period_closed(run, _utc(2025, 1, 12, 12, 0), UTC)
        assert sc.period_closed(run, _utc(2025, 1, 13, 0, 1), UTC)


class TestSettings:
    def test_from_config(self):
        settings = ScheduleSettings.from_config({
            "ORG_TIMEZONE": "Asia/Kolkata",
            "CHECKLIST_WEEKLY_DAY": 4,
            "CHECKLIST_MONTHLY_DAY": 15,
        })
        assert settings.tz == ZoneInfo("Asia/Kolkata")
        assert settings.weekly_day == 4
        assert settings.monthly_day == 15
        assert settings.escalation_daily_minutes == 60
