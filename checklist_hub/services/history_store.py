"""
Checklist Hub
History Store — persistence boundary for runs, evidence and the run ledger.

Owns every SQL statement touching ``checklist_runs``, ``checklist_evidence``
and ``checklist_run_events``. The lifecycle manager calls the write side;
the analytics aggregator reads through ``load_records`` only.

Architecture:
  - Writes never commit; the calling service owns the transaction.
  - Run creation is guarded by the partial unique index
    ``uq_checklist_run_in_progress``. A losing concurrent insert surfaces as
    ``AlreadyActiveRunError``, never as a raw ``IntegrityError``.
  - Status transitions issued by sweeps use compare-and-set UPDATEs so they
    never overwrite a concurrent user transition.
  - ``load_records`` produces an immutable read model; malformed rows are
    skipped with a warning so reporting degrades instead of failing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError

from checklist_hub.core.exceptions import AlreadyActiveRunError
from checklist_hub.models import db
from checklist_hub.models.checklist import (
    Checklist,
    ChecklistEvidence,
    ChecklistRun,
    RunEvent,
    RunStatus,
    RUN_EVENT_TYPES,
)
from checklist_hub.utils.helpers import as_utc, percent, round_half_up

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Write side
# ═════════════════════════════════════════════════════════════════════════════


def create_run(checklist: Checklist, user_id: str, now: datetime) -> ChecklistRun:
    """Insert a new in-progress run with one unchecked evidence row per item.

    Schedule fields, roles and item definitions are copied so later edits to
    the checklist never alter this run.

    Raises:
        AlreadyActiveRunError: another in-progress run for (user, checklist)
            won the unique index. The session is rolled back.
    """
    run = ChecklistRun(
        checklist_id=checklist.id,
        user_id=user_id,
        status=RunStatus.IN_PROGRESS.value,
        started_at=now,
        checklist_name=checklist.name,
        checklist_roles=sorted(checklist.roles or []),
        frequency=checklist.frequency,
        due_time=checklist.due_time,
        schedule_day=checklist.schedule_day,
        escalation_minutes=checklist.escalation_minutes,
        requires_photo_evidence=bool(checklist.requires_photo_evidence),
    )
    for item in checklist.items:
        run.evidence.append(ChecklistEvidence(
            item_id=item.id,
            item_title=item.title,
            item_position=item.position,
            is_required=bool(item.is_required),
            item_roles=sorted(item.roles or []),
            checked=False,
            updated_at=now,
        ))
    db.session.add(run)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        logger.info("Concurrent start rejected by unique index",
                    extra={"user_id": user_id, "checklist_id": checklist.id})
        raise AlreadyActiveRunError(user_id, checklist.id)
    return run


def find_active_run(user_id: str, checklist_id: int) -> ChecklistRun | None:
    """The in-progress run for (user, checklist), if any."""
    stmt = select(ChecklistRun).where(
        ChecklistRun.user_id == user_id,
        ChecklistRun.checklist_id == checklist_id,
        ChecklistRun.status == RunStatus.IN_PROGRESS.value,
    )
    return db.session.execute(stmt).scalar_one_or_none()


def get_run(run_id: int, lock: str | None = None) -> ChecklistRun | None:
    """Load a run, optionally row-locked.

    lock:
        None      plain read
        "share"   SELECT ... FOR SHARE (concurrent toggles, blocks completion)
        "update"  SELECT ... FOR UPDATE (completion, waits for toggles)

    SQLite has no row locks; its database-level write lock serializes the
    same operations.
    """
    stmt = select(ChecklistRun).where(ChecklistRun.id == run_id)
    if lock == "share":
        stmt = stmt.with_for_update(read=True)
    elif lock == "update":
        stmt = stmt.with_for_update()
    return db.session.execute(stmt).scalar_one_or_none()


def get_evidence(run_id: int, item_id: int, lock: bool = False) -> ChecklistEvidence | None:
    stmt = select(ChecklistEvidence).where(
        ChecklistEvidence.run_id == run_id,
        ChecklistEvidence.item_id == item_id,
    )
    if lock:
        stmt = stmt.with_for_update()
    return db.session.execute(stmt).scalar_one_or_none()


def list_evidence(run_id: int) -> list[ChecklistEvidence]:
    """Fresh read of a run's evidence, bypassing the identity-map copy."""
    stmt = (
        select(ChecklistEvidence)
        .where(ChecklistEvidence.run_id == run_id)
        .order_by(ChecklistEvidence.item_position)
        .execution_options(populate_existing=True)
    )
    return list(db.session.execute(stmt).scalars())


def append_event(
    run: ChecklistRun,
    event_type: str,
    *,
    actor_id: str | None,
    at: datetime,
    from_status: str | None = None,
    to_status: str | None = None,
    payload: dict | None = None,
) -> RunEvent:
    if event_type not in RUN_EVENT_TYPES:
        raise ValueError(f"Unknown run event type: {event_type!r}")
    event = RunEvent(
        run_id=run.id,
        event_type=event_type,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        payload=payload or {},
        created_at=at,
    )
    db.session.add(event)
    return event


def compare_and_set_status(
    run_id: int,
    expected: set[RunStatus] | frozenset[RunStatus],
    new_status: RunStatus,
    **values,
) -> bool:
    """UPDATE the run's status only if it is still in one of ``expected``.

    Returns True when this call performed the transition.
    """
    stmt = (
        update(ChecklistRun)
        .where(
            ChecklistRun.id == run_id,
            ChecklistRun.status.in_([s.value for s in expected]),
        )
        .values(status=new_status.value, **values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def runs_with_status(statuses, limit: int | None = None) -> list[ChecklistRun]:
    stmt = (
        select(ChecklistRun)
        .where(ChecklistRun.status.in_([RunStatus.parse(s).value for s in statuses]))
        .order_by(ChecklistRun.started_at, ChecklistRun.id)
    )
    if limit:
        stmt = stmt.limit(limit)
    return list(db.session.execute(stmt).scalars())


def runs_started_between(checklist_ids, start: datetime, end: datetime) -> list[ChecklistRun]:
    """Runs of the given checklists started in [start, end)."""
    if not checklist_ids:
        return []
    stmt = select(ChecklistRun).where(
        ChecklistRun.checklist_id.in_(list(checklist_ids)),
        ChecklistRun.started_at >= start,
        ChecklistRun.started_at < end,
    )
    return list(db.session.execute(stmt).scalars())


def has_runs(checklist_id: int) -> bool:
    stmt = select(func.count(ChecklistRun.id)).where(ChecklistRun.checklist_id == checklist_id)
    return (db.session.execute(stmt).scalar() or 0) > 0


# ═════════════════════════════════════════════════════════════════════════════
# Read side
# ═════════════════════════════════════════════════════════════════════════════


def run_query(
    *,
    checklist_id: int | None = None,
    status: str | None = None,
    user_id: str | None = None,
    started_from: datetime | None = None,
    started_before: datetime | None = None,
):
    """Filtered run query (newest first) for listing endpoints."""
    q = ChecklistRun.query
    if checklist_id is not None:
        q = q.filter(ChecklistRun.checklist_id == checklist_id)
    if status:
        q = q.filter(ChecklistRun.status == RunStatus.parse(status).value)
    if user_id:
        q = q.filter(ChecklistRun.user_id == user_id)
    if started_from is not None:
        q = q.filter(ChecklistRun.started_at >= started_from)
    if started_before is not None:
        q = q.filter(ChecklistRun.started_at < started_before)
    return q.order_by(ChecklistRun.started_at.desc(), ChecklistRun.id.desc())


def list_events(run_id: int) -> list[RunEvent]:
    stmt = select(RunEvent).where(RunEvent.run_id == run_id).order_by(RunEvent.id)
    return list(db.session.execute(stmt).scalars())


def count_runs_with_status(status: RunStatus) -> int:
    stmt = select(func.count(ChecklistRun.id)).where(ChecklistRun.status == status.value)
    return db.session.execute(stmt).scalar() or 0


def count_active_checklists() -> int:
    stmt = select(func.count(Checklist.id)).where(Checklist.is_active.is_(True))
    return db.session.execute(stmt).scalar() or 0


@dataclass(frozen=True)
class RunRecord:
    """Immutable analytics view of one run."""

    run_id: int
    checklist_id: int
    checklist_name: str
    user_id: str
    status: RunStatus
    started_at: datetime
    completed_at: datetime | None
    total_items: int
    checked_items: int

    @property
    def progress(self) -> int:
        return percent(self.checked_items, self.total_items)

    @property
    def duration_minutes(self) -> int | None:
        """Whole minutes from start to completion; None unless completed."""
        if self.status is not RunStatus.COMPLETED or self.completed_at is None:
            return None
        seconds = (self.completed_at - self.started_at).total_seconds()
        if seconds < 0:
            return None
        return round_half_up(seconds / 60)

    def to_dict(self) -> dict:
        return {
            "runId": self.run_id,
            "checklistId": self.checklist_id,
            "checklistName": self.checklist_name,
            "userId": self.user_id,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "progress": self.progress,
            "checkedItems": self.checked_items,
            "totalItems": self.total_items,
            "durationMinutes": self.duration_minutes,
        }


def _to_record(row) -> RunRecord | None:
    try:
        if row.started_at is None:
            raise ValueError("missing started_at")
        total = int(row.total_items or 0)
        checked = int(row.checked_items or 0)
        if checked > total:
            raise ValueError(f"checked_items {checked} exceeds total_items {total}")
        return RunRecord(
            run_id=row.id,
            checklist_id=row.checklist_id,
            checklist_name=row.checklist_name or "",
            user_id=str(row.user_id),
            status=RunStatus.parse(row.status),
            started_at=as_utc(row.started_at),
            completed_at=as_utc(row.completed_at),
            total_items=total,
            checked_items=checked,
        )
    except (TypeError, ValueError) as exc:
        logger.warning("Skipping malformed run row %s: %s", getattr(row, "id", "?"), exc,
                       extra={"run_id": getattr(row, "id", None)})
        return None


def load_records(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    checklist_id: int | None = None,
    status: str | None = None,
    user_id: str | None = None,
) -> list[RunRecord]:
    """Run records started in [start, end) with evidence counts, one aggregated query."""
    checked_expr = func.sum(case((ChecklistEvidence.checked.is_(True), 1), else_=0))
    stmt = (
        select(
            ChecklistRun.id,
            ChecklistRun.checklist_id,
            ChecklistRun.checklist_name,
            ChecklistRun.user_id,
            ChecklistRun.status,
            ChecklistRun.started_at,
            ChecklistRun.completed_at,
            func.count(ChecklistEvidence.id).label("total_items"),
            checked_expr.label("checked_items"),
        )
        .outerjoin(ChecklistEvidence, ChecklistEvidence.run_id == ChecklistRun.id)
        .group_by(ChecklistRun.id)
        .order_by(ChecklistRun.started_at.desc(), ChecklistRun.id.desc())
    )
    if start is not None:
        stmt = stmt.where(ChecklistRun.started_at >= start)
    if end is not None:
        stmt = stmt.where(ChecklistRun.started_at < end)
    if checklist_id is not None:
        stmt = stmt.where(ChecklistRun.checklist_id == checklist_id)
    if status:
        stmt = stmt.where(ChecklistRun.status == RunStatus.parse(status).value)
    if user_id:
        stmt = stmt.where(ChecklistRun.user_id == user_id)

    records = []
    for row in db.session.execute(stmt):
        record = _to_record(row)
        if record is not None:
            records.append(record)
    return records
