"""
Schedule Calculator — occurrence days, due instants and escalation deadlines.

All calendar reasoning happens in the organization's local time zone
(``ORG_TIMEZONE``); instants going in and out are timezone-aware and
normalized to UTC.

Functions take the schedule holder duck-typed: anything exposing
``frequency``, ``due_time``, ``escalation_minutes`` and ``schedule_day``.
A live ``Checklist`` and a ``ChecklistRun`` (which snapshots those fields
at start) both qualify.

    occurs_on(c, date)            daily: every day, weekly: designated weekday,
                                  monthly: designated day (clamped to month end)
    due_instant(c, date)          date + due_time, or end of day when unset
    escalation_deadline(c, due)   due + escalation_minutes
    is_overdue(run, now)          in_progress and now > deadline of the start date
    occurrence_window(c, date)    day / ISO week / calendar month containing date
    period_closed(run, now)       the run's occurrence window ended before today
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from checklist_hub.models.checklist import Frequency, RunStatus
from checklist_hub.utils.helpers import as_utc

END_OF_DAY = time(23, 59, 59)


@dataclass(frozen=True)
class ScheduleSettings:
    """Organization-wide scheduling parameters (built from app config)."""

    tz: ZoneInfo = ZoneInfo("UTC")
    weekly_day: int = 0
    monthly_day: int = 1
    escalation_daily_minutes: int = 60
    escalation_default_minutes: int = 1440

    @classmethod
    def from_config(cls, config) -> "ScheduleSettings":
        return cls(
            tz=ZoneInfo(config.get("ORG_TIMEZONE") or "UTC"),
            weekly_day=int(config.get("CHECKLIST_WEEKLY_DAY", 0)),
            monthly_day=int(config.get("CHECKLIST_MONTHLY_DAY", 1)),
            escalation_daily_minutes=int(config.get("CHECKLIST_ESCALATION_DAILY_MINUTES", 60)),
            escalation_default_minutes=int(config.get("CHECKLIST_ESCALATION_DEFAULT_MINUTES", 1440)),
        )


DEFAULT_SETTINGS = ScheduleSettings()


def default_escalation_minutes(frequency, settings: ScheduleSettings = DEFAULT_SETTINGS) -> int:
    if Frequency.parse(frequency) is Frequency.DAILY:
        return settings.escalation_daily_minutes
    return settings.escalation_default_minutes


def local_date(instant: datetime, settings: ScheduleSettings = DEFAULT_SETTINGS) -> date:
    """Calendar date of ``instant`` in the organization's zone."""
    return as_utc(instant).astimezone(settings.tz).date()


def local_midnight(d: date, settings: ScheduleSettings = DEFAULT_SETTINGS) -> datetime:
    """UTC instant of local midnight starting ``d``."""
    return datetime.combine(d, time.min, tzinfo=settings.tz).astimezone(timezone.utc)


def _designated_day(holder, frequency: Frequency, settings: ScheduleSettings) -> int:
    day = getattr(holder, "schedule_day", None)
    if day is not None:
        return int(day)
    if frequency is Frequency.WEEKLY:
        return settings.weekly_day
    return settings.monthly_day


def occurs_on(holder, d: date, settings: ScheduleSettings = DEFAULT_SETTINGS) -> bool:
    frequency = Frequency.parse(holder.frequency)
    if frequency is Frequency.DAILY:
        return True
    day = _designated_day(holder, frequency, settings)
    if frequency is Frequency.WEEKLY:
        return d.weekday() == day % 7
    last = calendar.monthrange(d.year, d.month)[1]
    return d.day == min(max(day, 1), last)


def due_instant(holder, d: date, settings: ScheduleSettings = DEFAULT_SETTINGS) -> datetime:
    """Due instant (UTC) of the occurrence on local date ``d``."""
    at = getattr(holder, "due_time", None) or END_OF_DAY
    return datetime.combine(d, at, tzinfo=settings.tz).astimezone(timezone.utc)


def escalation_deadline(holder, due: datetime, settings: ScheduleSettings = DEFAULT_SETTINGS) -> datetime:
    minutes = getattr(holder, "escalation_minutes", None)
    if minutes is None:
        minutes = default_escalation_minutes(holder.frequency, settings)
    return as_utc(due) + timedelta(minutes=int(minutes))


def run_deadline(run, settings: ScheduleSettings = DEFAULT_SETTINGS) -> datetime:
    """Escalation deadline for the occurrence on the run's local start date."""
    started = local_date(run.started_at, settings)
    return escalation_deadline(run, due_instant(run, started, settings), settings)


def is_overdue(run, now: datetime, settings: ScheduleSettings = DEFAULT_SETTINGS) -> bool:
    """True if the run is still in progress past its escalation deadline.

    Runs already marked overdue, completed or failed are not reported again.
    """
    if RunStatus.parse(run.status) is not RunStatus.IN_PROGRESS:
        return False
    return as_utc(now) > run_deadline(run, settings)


def occurrence_window(holder, d: date, settings: ScheduleSettings = DEFAULT_SETTINGS) -> tuple[date, date]:
    """Inclusive (first, last) local dates of the occurrence period containing ``d``."""
    frequency = Frequency.parse(holder.frequency)
    if frequency is Frequency.DAILY:
        return d, d
    if frequency is Frequency.WEEKLY:
        monday = d - timedelta(days=d.weekday())
        return monday, monday + timedelta(days=6)
    last = calendar.monthrange(d.year, d.month)[1]
    return d.replace(day=1), d.replace(day=last)


def window_bounds(window: tuple[date, date], settings: ScheduleSettings = DEFAULT_SETTINGS) -> tuple[datetime, datetime]:
    """UTC [start, end) instants covering an inclusive local date window."""
    first, last = window
    return local_midnight(first, settings), local_midnight(last + timedelta(days=1), settings)


def period_closed(run, now: datetime, settings: ScheduleSettings = DEFAULT_SETTINGS) -> bool:
    """True when the occurrence window the run was started in lies wholly before today."""
    started = local_date(run.started_at, settings)
    _first, last = occurrence_window(run, started, settings)
    return local_date(now, settings) > last
