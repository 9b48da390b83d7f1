"""
Checklist Hub
Run Lifecycle Manager — the only writer of run state.

State machine:
    in_progress ──complete──▶ completed
    in_progress ──sweep────▶ overdue ──complete──▶ completed
    in_progress | overdue ──close-out──▶ failed

Operations:
    start_run       idempotent: resumes the caller's in-progress run
    toggle_item     check/uncheck one evidence row (last write wins by timestamp)
    progress        integer percent of checked items
    complete_run    gated on required items and photo evidence
    mark_overdue    compare-and-set, idempotent
    mark_failed     compare-and-set, idempotent
    sweep_overdue / close_out_period   batch callers used by scheduled jobs

Concurrency:
    toggle_item locks the run FOR SHARE and the evidence row FOR UPDATE;
    complete_run locks the run FOR UPDATE. Completion therefore waits for
    in-flight toggles and re-reads evidence after acquiring the lock, so it
    never validates against a stale snapshot. Every mutation appends a
    RunEvent in the same transaction and commits here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from flask import current_app

from checklist_hub.core.exceptions import (
    AlreadyActiveRunError,
    ChecklistInactiveError,
    ChecklistNotFoundError,
    IncompleteRequiredItemsError,
    ItemNotInRunError,
    MissingPhotoEvidenceError,
    RunNotActiveError,
    RunNotFoundError,
    UnauthorizedError,
)
from checklist_hub.models import db
from checklist_hub.models.checklist import (
    ACTIVE_RUN_STATUSES,
    Checklist,
    ChecklistRun,
    RunStatus,
    transition_sources,
    validate_run_transition,
)
from checklist_hub.services import history_store, role_resolver, schedule_calculator
from checklist_hub.services.schedule_calculator import ScheduleSettings
from checklist_hub.utils.helpers import as_utc, percent

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
PERIOD_CLOSED_REASON = "period_closed"


@dataclass(frozen=True)
class StartRunResult:
    run: ChecklistRun
    resumed: bool


def _now(now: datetime | None) -> datetime:
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def _settings() -> ScheduleSettings:
    return ScheduleSettings.from_config(current_app.config)


def _log_extra(run: ChecklistRun, event_type: str, actor_id: str | None) -> dict:
    return {
        "run_id": run.id,
        "checklist_id": run.checklist_id,
        "user_id": actor_id,
        "event_type": event_type,
    }


def progress(run) -> int:
    """round(100 * checked / total), 0 for a run without items."""
    evidence = list(run.evidence or [])
    return percent(sum(1 for e in evidence if e.checked), len(evidence))


def _load_run(run_id: int, lock: str | None = None) -> ChecklistRun:
    run = history_store.get_run(run_id, lock=lock)
    if run is None:
        raise RunNotFoundError(run_id)
    return run


def _ensure_active(run: ChecklistRun) -> None:
    if RunStatus.parse(run.status) not in ACTIVE_RUN_STATUSES:
        raise RunNotActiveError(run.id, run.status)


def _ensure_owner_or_manager(run: ChecklistRun, identity) -> None:
    if run.user_id != identity.user_id and not identity.is_manager:
        raise UnauthorizedError(f"Run {run.id} belongs to another user")


# ═════════════════════════════════════════════════════════════════════════════
# start_run
# ═════════════════════════════════════════════════════════════════════════════


def start_run(checklist_id: int, identity, now: datetime | None = None) -> StartRunResult:
    """Start (or resume) the caller's run of a checklist.

    Raises:
        ChecklistNotFoundError, ChecklistInactiveError, UnauthorizedError
    """
    now = _now(now)
    checklist = db.session.get(Checklist, checklist_id)
    if checklist is None:
        raise ChecklistNotFoundError(checklist_id)
    if not checklist.is_active:
        raise ChecklistInactiveError(checklist_id)
    if not identity.is_manager and not role_resolver.checklist_visible_to(checklist, identity.roles):
        raise UnauthorizedError(f"Roles {sorted(identity.roles)} cannot run checklist {checklist_id}")

    existing = history_store.find_active_run(identity.user_id, checklist_id)
    if existing is not None:
        logger.info("Resuming existing run", extra=_log_extra(existing, "started", identity.user_id))
        return StartRunResult(run=existing, resumed=True)

    try:
        run = history_store.create_run(checklist, identity.user_id, now)
    except AlreadyActiveRunError:
        existing = history_store.find_active_run(identity.user_id, checklist_id)
        if existing is None:
            raise
        logger.info("Resuming run created by a concurrent start",
                    extra=_log_extra(existing, "started", identity.user_id))
        return StartRunResult(run=existing, resumed=True)

    history_store.append_event(
        run, "started", actor_id=identity.user_id, at=now,
        to_status=RunStatus.IN_PROGRESS.value,
        payload={"total_items": len(run.evidence)},
    )
    db.session.commit()
    logger.info("Run started", extra=_log_extra(run, "started", identity.user_id))
    return StartRunResult(run=run, resumed=False)


# ═════════════════════════════════════════════════════════════════════════════
# toggle_item
# ═════════════════════════════════════════════════════════════════════════════


_UNSET = object()


def toggle_item(
    run_id: int,
    item_id: int,
    checked: bool,
    identity,
    *,
    notes=_UNSET,
    file_ref=_UNSET,
    at: datetime | None = None,
) -> ChecklistRun:
    """Set one item's evidence. Does not change run status.

    ``notes``/``file_ref`` are left untouched when not passed. A write whose
    ``at`` is older than the stored ``updated_at`` loses to the newer one.
    Client timestamps ahead of the server clock are clamped to it.

    Raises:
        RunNotFoundError, RunNotActiveError, ItemNotInRunError, UnauthorizedError
    """
    at = min(_now(at), datetime.now(timezone.utc))
    run = _load_run(run_id, lock="share")
    try:
        _ensure_active(run)
        _ensure_owner_or_manager(run, identity)

        evidence = history_store.get_evidence(run.id, item_id, lock=True)
        if evidence is None:
            raise ItemNotInRunError(run.id, item_id)

        allowed = role_resolver.effective_roles(
            {"roles": run.checklist_roles}, {"roles": evidence.item_roles},
        )
        if not identity.is_manager and not role_resolver.can_access_any(identity.roles, allowed):
            raise UnauthorizedError(f"Roles {sorted(identity.roles)} cannot act on item {item_id}")
    except Exception:
        db.session.rollback()
        raise

    if evidence.updated_at is not None and as_utc(evidence.updated_at) > at:
        db.session.rollback()
        logger.info("Ignoring stale toggle of item %s", item_id,
                    extra=_log_extra(run, "item_checked" if checked else "item_unchecked",
                                     identity.user_id))
        return run

    was_checked = bool(evidence.checked)
    evidence.checked = bool(checked)
    if notes is not _UNSET:
        evidence.notes = notes
    if file_ref is not _UNSET:
        evidence.file_ref = file_ref
    evidence.updated_at = at
    evidence.updated_by = identity.user_id

    event_type = "item_checked" if checked else "item_unchecked"
    history_store.append_event(
        run, event_type, actor_id=identity.user_id, at=at,
        payload={"item_id": item_id, "was_checked": was_checked,
                 "has_file": bool(evidence.file_ref)},
    )
    db.session.commit()
    logger.info("Item %s %s", item_id, "checked" if checked else "unchecked",
                extra=_log_extra(run, event_type, identity.user_id))
    return run


# ═════════════════════════════════════════════════════════════════════════════
# complete_run
# ═════════════════════════════════════════════════════════════════════════════


def complete_run(run_id: int, identity, now: datetime | None = None) -> ChecklistRun:
    """Transition an in-progress or overdue run to completed.

    All-or-nothing: on any failure the session is rolled back and the run
    keeps its previous state.

    Raises:
        RunNotFoundError, RunNotActiveError, UnauthorizedError,
        IncompleteRequiredItemsError, MissingPhotoEvidenceError
    """
    now = _now(now)
    run = _load_run(run_id, lock="update")
    try:
        if not validate_run_transition(run.status, RunStatus.COMPLETED):
            raise RunNotActiveError(run.id, run.status)
        _ensure_owner_or_manager(run, identity)

        evidence = history_store.list_evidence(run.id)
        unchecked = [e for e in evidence if e.is_required and not e.checked]
        if unchecked:
            raise IncompleteRequiredItemsError(
                [{"item_id": e.item_id, "title": e.item_title} for e in unchecked]
            )
        if run.requires_photo_evidence:
            missing = [e for e in evidence if e.is_required and e.checked and not e.file_ref]
            if missing:
                raise MissingPhotoEvidenceError(
                    [{"item_id": e.item_id, "title": e.item_title} for e in missing]
                )
    except Exception as exc:
        db.session.rollback()
        logger.info("Completion refused: %s", exc,
                    extra=_log_extra(run, "completed", identity.user_id))
        raise

    previous = run.status
    run.status = RunStatus.COMPLETED.value
    run.completed_at = now
    history_store.append_event(
        run, "completed", actor_id=identity.user_id, at=now,
        from_status=previous, to_status=RunStatus.COMPLETED.value,
    )
    db.session.commit()
    logger.info("Run completed", extra=_log_extra(run, "completed", identity.user_id))
    return run


# ═════════════════════════════════════════════════════════════════════════════
# System transitions
# ═════════════════════════════════════════════════════════════════════════════


def mark_overdue(run_id: int, now: datetime | None = None, actor_id: str = SYSTEM_ACTOR) -> bool:
    """in_progress → overdue. Returns True if this call made the transition.

    No-op (False) for runs that are already overdue, completed or failed.
    """
    now = _now(now)
    changed = history_store.compare_and_set_status(
        run_id, transition_sources(RunStatus.OVERDUE), RunStatus.OVERDUE, overdue_at=now,
    )
    if not changed:
        db.session.rollback()
        if history_store.get_run(run_id) is None:
            raise RunNotFoundError(run_id)
        return False
    run = history_store.get_run(run_id)
    db.session.refresh(run)
    history_store.append_event(
        run, "marked_overdue", actor_id=actor_id, at=now,
        from_status=RunStatus.IN_PROGRESS.value, to_status=RunStatus.OVERDUE.value,
    )
    db.session.commit()
    logger.info("Run marked overdue", extra=_log_extra(run, "marked_overdue", actor_id))
    return True


def mark_failed(run_id: int, reason: str, now: datetime | None = None,
                actor_id: str = SYSTEM_ACTOR) -> bool:
    """in_progress | overdue → failed. Returns True if this call made the transition."""
    now = _now(now)
    run = history_store.get_run(run_id)
    if run is None:
        raise RunNotFoundError(run_id)
    previous = run.status
    changed = history_store.compare_and_set_status(
        run_id, transition_sources(RunStatus.FAILED), RunStatus.FAILED,
        failed_at=now, failure_reason=(reason or "")[:300],
    )
    if not changed:
        db.session.rollback()
        return False
    db.session.refresh(run)
    history_store.append_event(
        run, "marked_failed", actor_id=actor_id, at=now,
        from_status=previous, to_status=RunStatus.FAILED.value,
        payload={"reason": reason},
    )
    db.session.commit()
    logger.info("Run marked failed: %s", reason, extra=_log_extra(run, "marked_failed", actor_id))
    return True


def mark_overdue_by(run_id: int, identity, now: datetime | None = None) -> tuple[ChecklistRun, bool]:
    """Manager-triggered overdue transition."""
    if not identity.is_manager:
        raise UnauthorizedError("Only managers may mark runs overdue")
    changed = mark_overdue(run_id, now, actor_id=identity.user_id)
    return _load_run(run_id), changed


def mark_failed_by(run_id: int, identity, reason: str,
                   now: datetime | None = None) -> tuple[ChecklistRun, bool]:
    """Manager-triggered close-out of an open run."""
    if not identity.is_manager:
        raise UnauthorizedError("Only managers may mark runs failed")
    changed = mark_failed(run_id, reason, now, actor_id=identity.user_id)
    return _load_run(run_id), changed


def sweep_overdue(now: datetime | None = None) -> dict:
    """Move every in-progress run past its escalation deadline to overdue."""
    now = _now(now)
    settings = _settings()
    results = {"checked": 0, "marked_overdue": 0}
    for run in history_store.runs_with_status([RunStatus.IN_PROGRESS]):
        results["checked"] += 1
        if schedule_calculator.is_overdue(run, now, settings):
            if mark_overdue(run.id, now):
                results["marked_overdue"] += 1
    return results


def close_out_period(now: datetime | None = None) -> dict:
    """Fail every open run whose occurrence window ended before today."""
    now = _now(now)
    settings = _settings()
    results = {"checked": 0, "marked_failed": 0}
    for run in history_store.runs_with_status(ACTIVE_RUN_STATUSES):
        results["checked"] += 1
        if schedule_calculator.period_closed(run, now, settings):
            if mark_failed(run.id, PERIOD_CLOSED_REASON, now):
                results["marked_failed"] += 1
    return results


# ═════════════════════════════════════════════════════════════════════════════
# Reads
# ═════════════════════════════════════════════════════════════════════════════


def get_run(run_id: int, identity) -> ChecklistRun:
    run = _load_run(run_id)
    _ensure_owner_or_manager(run, identity)
    return run


def run_events(run_id: int, identity) -> list:
    get_run(run_id, identity)
    return history_store.list_events(run_id)
