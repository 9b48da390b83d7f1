"""
Checklist Hub
Checklist Analytics — read-only rollups over run history.

Two layers:
  - Pure ``compute_*`` functions take a list of ``RunRecord`` and return
    plain dicts. They never touch the database and never raise on bad
    rows (those are dropped by the history store before they get here).
  - ``get_*`` wrappers resolve the org time zone and "now", load records
    through ``history_store.load_records`` and call the pure layer.

Numeric conventions:
  - Rates are integer percentages 0-100, halves rounded up.
  - ``averageCompletionRate`` is the mean of per-run progress.
  - ``completionRate`` is completed runs / total runs.
  - Durations are whole minutes over completed runs only.

Buckets (org local time): today, ISO week (Monday start), month, quarter, year.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, timezone
from math import ceil
from typing import Iterable

from flask import current_app

from checklist_hub.models.checklist import RunStatus
from checklist_hub.services import history_store
from checklist_hub.services.history_store import RunRecord
from checklist_hub.services.schedule_calculator import (
    ScheduleSettings,
    local_date,
    local_midnight,
)
from checklist_hub.utils.helpers import as_utc, percent, round_half_up

logger = logging.getLogger(__name__)

PERIODS = ("today", "week", "month", "quarter", "year")


# ═════════════════════════════════════════════════════════════════════════════
# Pure computations
# ═════════════════════════════════════════════════════════════════════════════


def _mean(values: list) -> int:
    if not values:
        return 0
    return round_half_up(sum(values) / len(values))


def period_metrics(records: Iterable[RunRecord]) -> dict:
    """Counters and averages for one bucket of runs."""
    records = list(records)
    completed = [r for r in records if r.status is RunStatus.COMPLETED]
    durations = [r.duration_minutes for r in completed if r.duration_minutes is not None]
    return {
        "totalRuns": len(records),
        "completedRuns": len(completed),
        "averageCompletionRate": _mean([r.progress for r in records]),
        "averageDurationMinutes": _mean(durations),
    }


def period_bounds(today: date) -> dict[str, tuple[date, date]]:
    """Inclusive local date ranges for each named bucket containing ``today``."""
    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)
    quarter_start = date(today.year, 3 * ((today.month - 1) // 3) + 1, 1)
    quarter_end_month = quarter_start.month + 2
    if quarter_end_month == 12:
        quarter_end = date(today.year, 12, 31)
    else:
        quarter_end = date(today.year, quarter_end_month + 1, 1) - timedelta(days=1)
    next_month = (month_start + timedelta(days=32)).replace(day=1)
    return {
        "today": (today, today),
        "week": (week_start, week_start + timedelta(days=6)),
        "month": (month_start, next_month - timedelta(days=1)),
        "quarter": (quarter_start, quarter_end),
        "year": (date(today.year, 1, 1), date(today.year, 12, 31)),
    }


def _in_window(record: RunRecord, window: tuple[date, date], settings: ScheduleSettings) -> bool:
    d = local_date(record.started_at, settings)
    return window[0] <= d <= window[1]


def compute_periods(records: Iterable[RunRecord], now: datetime,
                    settings: ScheduleSettings) -> dict:
    records = list(records)
    bounds = period_bounds(local_date(now, settings))
    result = {}
    for name in PERIODS:
        window = bounds[name]
        bucket = [r for r in records if _in_window(r, window, settings)]
        result[name] = {
            "start": window[0].isoformat(),
            "end": window[1].isoformat(),
            **period_metrics(bucket),
        }
    return result


def compute_overview(
    records: Iterable[RunRecord],
    now: datetime,
    settings: ScheduleSettings,
    *,
    overdue_now: int,
    active_checklists: int,
    top_n: int = 10,
) -> dict:
    """Headline counters.

    ``overdue_now``/``active_checklists`` are live counts independent of ``records``.
    """
    records = list(records)
    bounds = period_bounds(local_date(now, settings))
    statuses = Counter(r.status for r in records)
    total = len(records)
    completed = statuses[RunStatus.COMPLETED]
    durations = [r.duration_minutes for r in records if r.duration_minutes is not None]

    top = Counter(r.user_id for r in records if r.status is RunStatus.COMPLETED)
    top_performers = [
        {"userId": user_id, "completedCount": count}
        for user_id, count in sorted(top.items(), key=lambda kv: (-kv[1], kv[0]))[:top_n]
    ]
    by_checklist: dict[int, dict] = {}
    for r in records:
        row = by_checklist.setdefault(
            r.checklist_id, {"checklistId": r.checklist_id, "name": r.checklist_name, "runCount": 0}
        )
        row["runCount"] += 1
    breakdown = sorted(by_checklist.values(), key=lambda row: (-row["runCount"], row["checklistId"]))

    return {
        "runsToday": sum(1 for r in records if _in_window(r, bounds["today"], settings)),
        "runsThisWeek": sum(1 for r in records if _in_window(r, bounds["week"], settings)),
        "runsThisMonth": sum(1 for r in records if _in_window(r, bounds["month"], settings)),
        "overdueRuns": overdue_now,
        "activeChecklists": active_checklists,
        "totalRuns": total,
        "completedRuns": completed,
        "failedRuns": statuses[RunStatus.FAILED],
        "completionRate": percent(completed, total),
        "avgCompletionTimeMinutes": _mean(durations),
        "topPerformers": top_performers,
        "checklistBreakdown": breakdown,
    }


def _performance_row(records: list[RunRecord]) -> dict:
    statuses = Counter(r.status for r in records)
    metrics = period_metrics(records)
    return {
        "totalRuns": metrics["totalRuns"],
        "completedRuns": metrics["completedRuns"],
        "inProgressRuns": statuses[RunStatus.IN_PROGRESS],
        "overdueRuns": statuses[RunStatus.OVERDUE],
        "failedRuns": statuses[RunStatus.FAILED],
        "averageCompletionRate": metrics["averageCompletionRate"],
        "completionRate": percent(metrics["completedRuns"], metrics["totalRuns"]),
        "averageDurationMinutes": metrics["averageDurationMinutes"],
    }


def _ranked(rows: list[dict], id_key: str) -> list[dict]:
    return sorted(rows, key=lambda row: (-row["averageCompletionRate"], -row["totalRuns"], row[id_key]))


def employee_performance(records: Iterable[RunRecord]) -> list[dict]:
    """One row per user, best average completion first."""
    groups: dict[str, list[RunRecord]] = defaultdict(list)
    for r in records:
        groups[r.user_id].append(r)
    rows = [{"userId": user_id, **_performance_row(runs)} for user_id, runs in groups.items()]
    return _ranked(rows, "userId")


def checklist_performance(records: Iterable[RunRecord]) -> list[dict]:
    """One row per checklist, best average completion first."""
    groups: dict[int, list[RunRecord]] = defaultdict(list)
    for r in records:
        groups[r.checklist_id].append(r)
    rows = []
    for checklist_id, runs in groups.items():
        # Newest snapshot name wins when a checklist was renamed
        name = max(runs, key=lambda r: r.started_at).checklist_name
        rows.append({"checklistId": checklist_id, "checklistName": name, **_performance_row(runs)})
    return _ranked(rows, "checklistId")


def trend_series(records: Iterable[RunRecord], start: date, end: date,
                 settings: ScheduleSettings) -> list[dict]:
    """One point per local calendar day in [start, end]; empty days are zero points."""
    if end < start:
        return []
    per_day: dict[date, list[RunRecord]] = defaultdict(list)
    for r in records:
        per_day[local_date(r.started_at, settings)].append(r)

    points = []
    day = start
    while day <= end:
        runs = per_day.get(day, [])
        completed = sum(1 for r in runs if r.status is RunStatus.COMPLETED)
        points.append({
            "date": day.isoformat(),
            "runCount": len(runs),
            "completedRuns": completed,
            "overdueRuns": sum(1 for r in runs if r.status is RunStatus.OVERDUE),
            "completionRate": percent(completed, len(runs)),
        })
        day += timedelta(days=1)
    return points


def status_distribution(records: Iterable[RunRecord]) -> dict:
    """Run count and share per status; every status present, zero-filled."""
    counts = Counter(r.status for r in records)
    total = sum(counts.values())
    return {
        "total": total,
        "statuses": [
            {"status": s.value, "count": counts[s], "percentage": percent(counts[s], total)}
            for s in RunStatus
        ],
    }


def run_history(records: list[RunRecord], *, page: int = 1, limit: int = 50) -> dict:
    """Newest-first page of run rows with progress and duration."""
    ordered = sorted(records, key=lambda r: (r.started_at, r.run_id), reverse=True)
    total = len(ordered)
    page = max(page, 1)
    offset = (page - 1) * limit
    return {
        "data": [r.to_dict() for r in ordered[offset:offset + limit]],
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": ceil(total / limit) if limit else 0,
        },
    }


# ═════════════════════════════════════════════════════════════════════════════
# Loaders
# ═════════════════════════════════════════════════════════════════════════════


class AnalyticsRange:
    """Resolved query range: inclusive local dates plus UTC instants for SQL."""

    def __init__(self, start: date, end: date, settings: ScheduleSettings):
        self.start = start
        self.end = end
        self.start_at = local_midnight(start, settings)
        self.end_at = local_midnight(end + timedelta(days=1), settings)

    def to_dict(self):
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def _settings() -> ScheduleSettings:
    return ScheduleSettings.from_config(current_app.config)


def _now(now: datetime | None) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def resolve_range(start: date | None, end: date | None, now: datetime,
                  settings: ScheduleSettings, *, default_days: int | None = None) -> AnalyticsRange:
    """Fill missing bounds; reject spans longer than ANALYTICS_MAX_RANGE_DAYS.

    Missing end → today. Missing start → ``default_days`` before end
    (trend default) or the start of the current month.
    """
    max_days = int(current_app.config.get("ANALYTICS_MAX_RANGE_DAYS", 366))
    end = end or local_date(now, settings)
    if start is None:
        if default_days:
            start = end - timedelta(days=default_days - 1)
        else:
            start = end.replace(day=1)
    if start > end:
        raise ValueError("start must not be after end")
    if (end - start).days + 1 > max_days:
        raise ValueError(f"Range must not exceed {max_days} days")
    return AnalyticsRange(start, end, settings)


def _load(rng: AnalyticsRange, filters: dict) -> list[RunRecord]:
    return history_store.load_records(start=rng.start_at, end=rng.end_at, **filters)


def get_overview(now: datetime | None = None, **filters) -> dict:
    """All-time totals plus today/week/month counters."""
    now = _now(now)
    settings = _settings()
    records = history_store.load_records(**filters)
    logger.debug("Overview over %d run records", len(records))
    return compute_overview(
        records, now, settings,
        overdue_now=history_store.count_runs_with_status(RunStatus.OVERDUE),
        active_checklists=history_store.count_active_checklists(),
    )


def get_periods(now: datetime | None = None, **filters) -> dict:
    now = _now(now)
    settings = _settings()
    bounds = period_bounds(local_date(now, settings))
    # ISO weeks can straddle the year boundary
    rng = AnalyticsRange(min(b[0] for b in bounds.values()),
                         max(b[1] for b in bounds.values()), settings)
    return compute_periods(_load(rng, filters), now, settings)


def get_employee_performance(start=None, end=None, now=None, **filters) -> dict:
    now = _now(now)
    settings = _settings()
    rng = resolve_range(start, end, now, settings)
    return {"range": rng.to_dict(), "data": employee_performance(_load(rng, filters))}


def get_checklist_performance(start=None, end=None, now=None, **filters) -> dict:
    now = _now(now)
    settings = _settings()
    rng = resolve_range(start, end, now, settings)
    return {"range": rng.to_dict(), "data": checklist_performance(_load(rng, filters))}


def get_trends(start=None, end=None, now=None, **filters) -> dict:
    now = _now(now)
    settings = _settings()
    days = int(current_app.config.get("ANALYTICS_TREND_POINTS", 30))
    rng = resolve_range(start, end, now, settings, default_days=days)
    return {"range": rng.to_dict(),
            "trends": trend_series(_load(rng, filters), rng.start, rng.end, settings)}


def get_status_distribution(start=None, end=None, now=None, **filters) -> dict:
    now = _now(now)
    settings = _settings()
    rng = resolve_range(start, end, now, settings)
    return {"range": rng.to_dict(), **status_distribution(_load(rng, filters))}


def get_history(start=None, end=None, now=None, page=1, limit=50, **filters) -> dict:
    now = _now(now)
    settings = _settings()
    rng = resolve_range(start, end, now, settings)
    result = run_history(_load(rng, filters), page=page, limit=limit)
    result["range"] = rng.to_dict()
    return result
