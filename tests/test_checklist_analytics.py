"""
Checklist analytics tests.

Pure layer (compute functions over RunRecord lists) plus the DB-backed
loaders with an explicit ``now``.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

import checklist_hub.services.checklist_analytics as analytics
from checklist_hub.models import db
from checklist_hub.models.checklist import RunStatus
from checklist_hub.services import history_store
from checklist_hub.services.history_store import RunRecord
from checklist_hub.services.schedule_calculator import ScheduleSettings

UTC = ScheduleSettings()
# Wednesday
NOW = datetime(2025, 1, 8, 15, 0, tzinfo=timezone.utc)


def _rec(run_id, *, status="completed", progress=100, started=NOW, minutes=None,
         user="u1", checklist_id=1, name="Opening"):
    total = 10
    completed_at = None
    if status == "completed":
        completed_at = started + timedelta(minutes=minutes if minutes is not None else 10)
    return RunRecord(
        run_id=run_id, checklist_id=checklist_id, checklist_name=name, user_id=user,
        status=RunStatus(status), started_at=started, completed_at=completed_at,
        total_items=total, checked_items=progress // 10,
    )


def _week_scenario():
    monday = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
    return [
        _rec(1, progress=100, started=monday),
        _rec(2, progress=100, started=monday + timedelta(days=1)),
        _rec(3, progress=80, started=monday + timedelta(days=1)),
        _rec(4, status="in_progress", progress=50, started=monday + timedelta(days=2)),
        _rec(5, status="in_progress", progress=0, started=monday + timedelta(days=2)),
    ]


# ═════════════════════════════════════════════════════════════════════════════
# Pure computations
# ═════════════════════════════════════════════════════════════════════════════


class TestPeriodMetrics:
    def test_week_rollup_average_completion(self):
        periods = analytics.compute_periods(_week_scenario(), NOW, UTC)
        week = periods["week"]
        assert week["totalRuns"] == 5
        assert week["completedRuns"] == 3
        assert week["averageCompletionRate"] == 66
        assert (week["start"], week["end"]) == ("2025-01-06", "2025-01-12")

    def test_today_bucket(self):
        periods = analytics.compute_periods(_week_scenario(), NOW, UTC)
        assert periods["today"]["totalRuns"] == 2
        assert periods["today"]["averageCompletionRate"] == 25

    def test_empty_bucket_is_zero(self):
        metrics = analytics.period_metrics([])
        assert metrics == {
            "totalRuns": 0, "completedRuns": 0,
            "averageCompletionRate": 0, "averageDurationMinutes": 0,
        }

    def test_average_duration_over_completed_only(self):
        records = [
            _rec(1, minutes=10), _rec(2, minutes=21),
            _rec(3, status="in_progress", progress=50),
        ]
        assert analytics.period_metrics(records)["averageDurationMinutes"] == 16

    def test_quarter_and_year_bounds(self):
        bounds = analytics.period_bounds(date(2025, 11, 5))
        assert bounds["quarter"] == (date(2025, 10, 1), date(2025, 12, 31))
        assert bounds["month"] == (date(2025, 11, 1), date(2025, 11, 30))
        assert analytics.period_bounds(date(2025, 5, 20))["quarter"] == (date(2025, 4, 1), date(2025, 6, 30))
        assert bounds["year"] == (date(2025, 1, 1), date(2025, 12, 31))


class TestOverview:
    def test_counters(self):
        records = _week_scenario() + [
            _rec(6, status="failed", progress=20, started=datetime(2024, 12, 2, tzinfo=timezone.utc)),
        ]
        overview = analytics.compute_overview(records, NOW, UTC, overdue_now=2, active_checklists=4)

        assert overview["runsToday"] == 2
        assert overview["runsThisWeek"] == 5
        assert overview["runsThisMonth"] == 5
        assert overview["totalRuns"] == 6
        assert overview["completedRuns"] == 3
        assert overview["failedRuns"] == 1
        assert overview["completionRate"] == 50
        assert overview["overdueRuns"] == 2
        assert overview["activeChecklists"] == 4
        assert overview["avgCompletionTimeMinutes"] == 10

    def test_top_performers(self):
        records = [
            _rec(1, user="anna"), _rec(2, user="anna"), _rec(3, user="ben"),
            _rec(4, user="carl", status="in_progress", progress=0),
        ]
        overview = analytics.compute_overview(records, NOW, UTC, overdue_now=0, active_checklists=1)
        assert overview["topPerformers"] == [
            {"userId": "anna", "completedCount": 2},
            {"userId": "ben", "completedCount": 1},
        ]


class TestPerformance:
    def test_employee_rows_ranked(self):
        records = [
            _rec(1, user="anna", progress=100), _rec(2, user="anna", status="overdue", progress=60),
            _rec(3, user="ben", progress=100),
        ]
        rows = analytics.employee_performance(records)
        assert [r["userId"] for r in rows] == ["ben", "anna"]
        anna = rows[1]
        assert anna["totalRuns"] == 2
        assert anna["overdueRuns"] == 1
        assert anna["averageCompletionRate"] == 80
        assert anna["completionRate"] == 50

    def test_checklist_rows_use_latest_name(self):
        records = [
            _rec(1, checklist_id=7, name="Old name", started=NOW - timedelta(days=3)),
            _rec(2, checklist_id=7, name="New name", started=NOW),
        ]
        rows = analytics.checklist_performance(records)
        assert rows == [{
            "checklistId": 7, "checklistName": "New name",
            "totalRuns": 2, "completedRuns": 2, "inProgressRuns": 0, "overdueRuns": 0,
            "failedRuns": 0, "averageCompletionRate": 100, "completionRate": 100,
            "averageDurationMinutes": 10,
        }]


class TestTrendSeries:
    def test_one_point_per_day_including_empty_days(self):
        records = [
            _rec(1, started=datetime(2025, 1, 3, 10, tzinfo=timezone.utc)),
            _rec(2, status="overdue", progress=40, started=datetime(2025, 1, 3, 11, tzinfo=timezone.utc)),
        ]
        points = analytics.trend_series(records, date(2025, 1, 1), date(2025, 1, 7), UTC)

        assert len(points) == 7
        assert [p["date"] for p in points][:3] == ["2025-01-01", "2025-01-02", "2025-01-03"]
        assert points[0] == {"date": "2025-01-01", "runCount": 0, "completedRuns": 0,
                             "overdueRuns": 0, "completionRate": 0}
        assert points[2]["runCount"] == 2
        assert points[2]["completionRate"] == 50
        assert points[2]["overdueRuns"] == 1

    def test_inverted_range_is_empty(self):
        assert analytics.trend_series([], date(2025, 1, 7), date(2025, 1, 1), UTC) == []


class TestDistributionAndHistory:
    def test_status_distribution_zero_filled(self):
        result = analytics.status_distribution([_rec(1), _rec(2), _rec(3, status="failed", progress=0)])
        assert result["total"] == 3
        by_status = {s["status"]: s for s in result["statuses"]}
        assert set(by_status) == {"in_progress", "completed", "overdue", "failed"}
        assert by_status["completed"]["percentage"] == 67
        assert by_status["overdue"] == {"status": "overdue", "count": 0, "percentage": 0}

    def test_history_pagination(self):
        records = [_rec(i, started=NOW - timedelta(hours=i)) for i in range(1, 6)]
        page = analytics.run_history(records, page=3, limit=2)
        assert page["meta"] == {"total": 5, "page": 3, "limit": 2, "totalPages": 3}
        assert [r["runId"] for r in page["data"]] == [5]

        first = analytics.run_history(records, page=1, limit=2)
        assert [r["runId"] for r in first["data"]] == [1, 2]


# ═════════════════════════════════════════════════════════════════════════════
# Loaders
# ═════════════════════════════════════════════════════════════════════════════


def _stored_run(checklist, user_id, started, status="completed", checked=3, minutes=20):
    run = history_store.create_run(checklist, user_id, started)
    for e in run.evidence[:checked]:
        e.checked = True
    run.status = status
    if status == "completed":
        run.completed_at = started + timedelta(minutes=minutes)
    db.session.commit()
    return run


class TestLoaders:
    def test_trends_cover_requested_range(self, make_checklist):
        checklist = make_checklist()
        _stored_run(checklist, "cook-1", datetime(2025, 1, 3, 8, tzinfo=timezone.utc))

        result = analytics.get_trends(start=date(2025, 1, 1), end=date(2025, 1, 10), now=NOW)
        assert result["range"] == {"start": "2025-01-01", "end": "2025-01-10"}
        assert len(result["trends"]) == 10
        assert sum(p["runCount"] for p in result["trends"]) == 1

    def test_trends_default_window(self, app, make_checklist):
        result = analytics.get_trends(now=NOW)
        assert len(result["trends"]) == app.config["ANALYTICS_TREND_POINTS"]
        assert result["trends"][-1]["date"] == "2025-01-08"

    def test_range_longer_than_max_span_rejected(self, app):
        with pytest.raises(ValueError, match="must not exceed"):
            analytics.get_status_distribution(start=date(2020, 1, 1), end=date(2025, 1, 8), now=NOW)

    def test_range_of_exactly_max_span_accepted(self, app):
        max_days = app.config["ANALYTICS_MAX_RANGE_DAYS"]
        end = date(2025, 1, 8)
        result = analytics.get_status_distribution(
            start=end - timedelta(days=max_days - 1), end=end, now=NOW,
        )
        assert result["range"]["end"] == "2025-01-08"

    def test_week_spanning_new_year(self, make_checklist):
        checklist = make_checklist()
        # Monday of ISO week 1 of 2025
        _stored_run(checklist, "cook-1", datetime(2024, 12, 30, 8, tzinfo=timezone.utc))
        _stored_run(checklist, "cook-1", datetime(2025, 1, 1, 8, tzinfo=timezone.utc))

        periods = analytics.get_periods(now=datetime(2025, 1, 1, 12, tzinfo=timezone.utc))
        assert (periods["week"]["start"], periods["week"]["end"]) == ("2024-12-30", "2025-01-05")
        assert periods["week"]["totalRuns"] == 2
        assert periods["year"]["totalRuns"] == 1
        assert periods["today"]["totalRuns"] == 1

    def test_inverted_range_rejected(self):
        with pytest.raises(ValueError):
            analytics.get_history(start=date(2025, 2, 1), end=date(2025, 1, 1), now=NOW)

    def test_overview_from_database(self, make_checklist):
        checklist = make_checklist()
        _stored_run(checklist, "cook-1", datetime(2025, 1, 8, 7, tzinfo=timezone.utc))
        _stored_run(checklist, "cook-2", datetime(2025, 1, 6, 7, tzinfo=timezone.utc), status="overdue", checked=1)

        overview = analytics.get_overview(now=NOW)
        assert overview["totalRuns"] == 2
        assert overview["runsToday"] == 1
        assert overview["runsThisWeek"] == 2
        assert overview["overdueRuns"] == 1
        assert overview["activeChecklists"] == 1
        assert overview["avgCompletionTimeMinutes"] == 20

    def test_employee_performance_filtered_by_checklist(self, make_checklist):
        a = make_checklist("A")
        b = make_checklist("B")
        _stored_run(a, "cook-1", datetime(2025, 1, 7, 7, tzinfo=timezone.utc))
        _stored_run(b, "cook-2", datetime(2025, 1, 7, 7, tzinfo=timezone.utc))

        result = analytics.get_employee_performance(
            start=date(2025, 1, 1), end=date(2025, 1, 8), now=NOW, checklist_id=a.id,
        )
        assert [r["userId"] for r in result["data"]] == ["cook-1"]
        assert result["data"][0]["averageCompletionRate"] == 100

    def test_periods_from_database(self, make_checklist):
        checklist = make_checklist()
        _stored_run(checklist, "cook-1", datetime(2025, 1, 8, 7, tzinfo=timezone.utc), checked=2, status="in_progress")

        periods = analytics.get_periods(now=NOW)
        assert periods["today"]["totalRuns"] == 1
        assert periods["today"]["averageCompletionRate"] == 67
        assert periods["year"]["totalRuns"] == 1
