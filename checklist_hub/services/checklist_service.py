"""
Checklist Hub
Checklist Service — checklist and role administration.

Business logic for:
  - Role reference set (validated ingestion boundary for role slugs)
  - Checklist CRUD with stable item identity across edits
  - Bulk role actions (apply checklist roles to items / clear item roles)
  - Role-filtered listing, detail annotation and the "pending today" view

Runs snapshot everything they need at start, so edits made here never
reach an already-started run.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select

from checklist_hub.core.exceptions import (
    ChecklistNotFoundError,
    ConflictError,
    UnauthorizedError,
    ValidationError,
)
from checklist_hub.models import db
from checklist_hub.models.checklist import Checklist, ChecklistItem, Frequency, Role
from checklist_hub.services import history_store, role_resolver, schedule_calculator
from checklist_hub.services.schedule_calculator import ScheduleSettings
from checklist_hub.utils.helpers import as_utc, parse_time_of_day

logger = logging.getLogger(__name__)


# ── Default role catalogue ───────────────────────────────────────────────────

DEFAULT_ROLES: list[tuple[str, str]] = [
    ("owner-super-admin", "Owner / Super Admin"),
    ("general-manager", "General Manager"),
    ("store-manager", "Store Manager"),
    ("production-manager", "Production Manager"),
    ("warehouse-lead", "Warehouse Lead"),
    ("kitchen-assistant-cooks", "Kitchen Assistant / Cooks"),
    ("pos-operator", "POS Operator"),
    ("packers-warehouse-staff", "Packers / Warehouse Staff"),
    ("logistics-coordinator", "Logistics Coordinator"),
    ("finance-accountant", "Finance / Accountant"),
    ("hr-people-ops", "HR / People Ops"),
    ("qa-food-safety-officer", "QA / Food Safety Officer"),
    ("marketing-manager", "Marketing Manager"),
    ("procurement-buyer", "Procurement / Buyer"),
    ("customer-support", "Customer Support"),
    # Short slugs used by the default checklists
    ("manager", "Manager"),
    ("supervisor", "Supervisor"),
    ("cook", "Cook"),
    ("kitchen", "Kitchen Staff"),
    ("cashier", "Cashier"),
    ("counter-attendant", "Counter Attendant"),
    ("attendant", "Attendant"),
    ("founder", "Founder"),
    ("owner", "Owner"),
    ("admin", "Admin"),
    ("maintenance", "Maintenance"),
]


def _settings() -> ScheduleSettings:
    return ScheduleSettings.from_config(current_app.config)


# ═════════════════════════════════════════════════════════════════════════════
# Roles
# ═════════════════════════════════════════════════════════════════════════════


def list_roles() -> list[Role]:
    return list(db.session.execute(select(Role).order_by(Role.slug)).scalars())


def seed_default_roles() -> int:
    """Insert missing catalogue roles. Returns the number created."""
    existing = set(db.session.execute(select(Role.slug)).scalars())
    created = 0
    for slug, name in DEFAULT_ROLES:
        if slug in existing:
            continue
        db.session.add(Role(slug=slug, name=name))
        created += 1
    if created:
        db.session.commit()
        logger.info("Seeded %d roles", created)
    return created


def validate_roles(values) -> list[str]:
    """Normalize role slugs and reject any outside the reference set."""
    if values is None:
        return []
    if isinstance(values, str) or not isinstance(values, (list, tuple, set, frozenset)):
        raise ValidationError("roles must be a list of role slugs", details={"roles": values})
    slugs = sorted({role_resolver.normalize_role_slug(v) for v in values if role_resolver.normalize_role_slug(v)})
    if not slugs:
        return []
    known = set(db.session.execute(select(Role.slug).where(Role.slug.in_(slugs))).scalars())
    unknown = [s for s in slugs if s not in known]
    if unknown:
        raise ValidationError(f"Unknown roles: {', '.join(unknown)}", details={"roles": unknown})
    return slugs


# ═════════════════════════════════════════════════════════════════════════════
# Checklist CRUD
# ═════════════════════════════════════════════════════════════════════════════


def _parse_frequency(value) -> str:
    try:
        return Frequency.parse(value).value
    except ValueError as exc:
        raise ValidationError(str(exc), details={"frequency": value}) from None


def _parse_due_time(value):
    try:
        return parse_time_of_day(value)
    except ValueError as exc:
        raise ValidationError(str(exc), details={"due_time": value}) from None


def _parse_schedule_day(value, frequency: str):
    if value in (None, ""):
        return None
    try:
        day = int(value)
    except (TypeError, ValueError):
        raise ValidationError("schedule_day must be an integer", details={"schedule_day": value}) from None
    if frequency == Frequency.WEEKLY.value and not 0 <= day <= 6:
        raise ValidationError("schedule_day for weekly checklists is a weekday 0-6",
                              details={"schedule_day": value})
    if frequency == Frequency.MONTHLY.value and not 1 <= day <= 31:
        raise ValidationError("schedule_day for monthly checklists is a day of month 1-31",
                              details={"schedule_day": value})
    return day


def _parse_escalation(value):
    try:
        minutes = int(value)
    except (TypeError, ValueError):
        raise ValidationError("escalation_minutes must be an integer",
                              details={"escalation_minutes": value}) from None
    if minutes < 0:
        raise ValidationError("escalation_minutes must not be negative",
                              details={"escalation_minutes": value})
    return minutes


def _item_payloads(items) -> list[dict]:
    if not isinstance(items, list):
        raise ValidationError("items must be a list", details={"items": "invalid"})
    cleaned = []
    for idx, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object", details={"items": idx})
        title = (raw.get("title") or "").strip()
        if not title:
            raise ValidationError("Item title is required", details={"items": {str(idx): "title"}})
        position = raw.get("order", raw.get("position"))
        try:
            position = int(position) if position is not None else idx
        except (TypeError, ValueError):
            raise ValidationError("Item order must be an integer",
                                  details={"items": {str(idx): "order"}}) from None
        cleaned.append({
            "id": raw.get("id"),
            "title": title,
            "description": raw.get("description"),
            "position": position,
            "is_required": bool(raw.get("is_required", raw.get("required", True))),
            "roles": validate_roles(raw.get("roles")),
        })
    positions = Counter(i["position"] for i in cleaned)
    duplicates = sorted(p for p, n in positions.items() if n > 1)
    if duplicates:
        raise ValidationError("Item order values must be unique",
                              details={"duplicate_positions": duplicates})
    return cleaned


def create_checklist(data: dict) -> Checklist:
    """Create a checklist with its items (positions 1..n unless given)."""
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})

    frequency = _parse_frequency(data.get("frequency") or Frequency.DAILY.value)
    escalation = data.get("escalation_minutes")
    checklist = Checklist(
        name=name,
        description=data.get("description") or "",
        frequency=frequency,
        due_time=_parse_due_time(data.get("due_time")),
        schedule_day=_parse_schedule_day(data.get("schedule_day"), frequency),
        escalation_minutes=(
            _parse_escalation(escalation) if escalation is not None
            else schedule_calculator.default_escalation_minutes(frequency, _settings())
        ),
        requires_photo_evidence=bool(data.get("requires_photo_evidence", False)),
        roles=validate_roles(data.get("roles")),
        is_active=bool(data.get("is_active", True)),
    )
    for item in _item_payloads(data.get("items") or []):
        checklist.items.append(ChecklistItem(
            title=item["title"],
            description=item["description"],
            position=item["position"],
            is_required=item["is_required"],
            roles=item["roles"],
        ))
    db.session.add(checklist)
    db.session.commit()
    logger.info("Checklist created: %s", checklist.name, extra={"checklist_id": checklist.id})
    return checklist


def _get(checklist_id: int) -> Checklist:
    checklist = db.session.get(Checklist, checklist_id)
    if checklist is None:
        raise ChecklistNotFoundError(checklist_id)
    return checklist


def _sync_items(checklist: Checklist, payloads: list[dict]) -> None:
    """Update items in place by id, create new ones, drop the rest."""
    by_id = {i.id: i for i in checklist.items}
    unknown = [p["id"] for p in payloads if p["id"] is not None and p["id"] not in by_id]
    if unknown:
        raise ValidationError("Items do not belong to this checklist", details={"item_ids": unknown})

    keep_ids = {p["id"] for p in payloads if p["id"] is not None}
    for item in list(checklist.items):
        if item.id not in keep_ids:
            checklist.items.remove(item)

    # Park surviving positions out of range so the unique (checklist, position)
    # constraint holds while positions are reshuffled.
    for item in checklist.items:
        item.position = -item.id
    db.session.flush()

    for p in payloads:
        if p["id"] is not None:
            item = by_id[p["id"]]
        else:
            item = ChecklistItem()
            checklist.items.append(item)
        item.title = p["title"]
        item.description = p["description"]
        item.position = p["position"]
        item.is_required = p["is_required"]
        item.roles = p["roles"]
    checklist.items.sort(key=lambda i: i.position)


def update_checklist(checklist_id: int, data: dict) -> Checklist:
    """Partial update. Open runs keep their snapshot."""
    checklist = _get(checklist_id)

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": "required"})
        checklist.name = name
    if "description" in data:
        checklist.description = data.get("description") or ""
    if "frequency" in data:
        checklist.frequency = _parse_frequency(data["frequency"])
    if "due_time" in data:
        checklist.due_time = _parse_due_time(data["due_time"])
    if "schedule_day" in data or "frequency" in data:
        checklist.schedule_day = _parse_schedule_day(
            data.get("schedule_day", checklist.schedule_day), checklist.frequency,
        )
    if "escalation_minutes" in data:
        checklist.escalation_minutes = _parse_escalation(data["escalation_minutes"])
    if "requires_photo_evidence" in data:
        checklist.requires_photo_evidence = bool(data["requires_photo_evidence"])
    if "roles" in data:
        checklist.roles = validate_roles(data["roles"])
    if "is_active" in data:
        checklist.is_active = bool(data["is_active"])
    if "items" in data:
        _sync_items(checklist, _item_payloads(data["items"] or []))

    db.session.commit()
    logger.info("Checklist updated", extra={"checklist_id": checklist.id})
    return checklist


def delete_checklist(checklist_id: int) -> None:
    """Delete a checklist and its items. Refused once runs exist."""
    checklist = _get(checklist_id)
    if history_store.has_runs(checklist_id):
        raise ConflictError(
            "Checklist", "runs", str(checklist_id),
            message="Checklist has run history; deactivate it instead",
        )
    db.session.delete(checklist)
    db.session.commit()
    logger.info("Checklist deleted", extra={"checklist_id": checklist_id})


def apply_checklist_roles_to_items(checklist_id: int) -> Checklist:
    """Persist the checklist's roles onto every item."""
    checklist = _get(checklist_id)
    copies = {c["id"]: c["roles"] for c in role_resolver.apply_checklist_roles_to_all_items(checklist)}
    for item in checklist.items:
        item.roles = list(copies[item.id])
    db.session.commit()
    logger.info("Applied checklist roles to %d items", len(checklist.items),
                extra={"checklist_id": checklist.id})
    return checklist


def clear_item_roles(checklist_id: int) -> Checklist:
    """Reset every item to inherit the checklist's roles."""
    checklist = _get(checklist_id)
    for item in checklist.items:
        item.roles = []
    db.session.commit()
    logger.info("Cleared item roles", extra={"checklist_id": checklist.id})
    return checklist


# ═════════════════════════════════════════════════════════════════════════════
# Role-filtered reads
# ═════════════════════════════════════════════════════════════════════════════


def list_checklists(identity, include_inactive: bool = False) -> list[Checklist]:
    """Checklists the caller may see. Managers see all."""
    stmt = select(Checklist).order_by(Checklist.name, Checklist.id)
    if not include_inactive:
        stmt = stmt.where(Checklist.is_active.is_(True))
    checklists = list(db.session.execute(stmt).scalars())
    if identity.is_manager:
        return checklists
    return role_resolver.filter_visible_checklists(checklists, identity.roles)


def annotate_checklist(checklist: Checklist, identity) -> dict:
    """Serialized checklist with per-item effective roles for the caller."""
    data = checklist.to_dict(include_items=False)
    data["can_access"] = identity.is_manager or role_resolver.can_access_any(
        identity.roles, role_resolver.effective_roles(checklist),
    )
    items = []
    for item in checklist.items:
        effective = role_resolver.effective_roles(checklist, item)
        row = item.to_dict()
        row["effective_roles"] = sorted(effective)
        row["inherited"] = role_resolver.is_inherited(item)
        row["can_access"] = identity.is_manager or role_resolver.can_access_any(identity.roles, effective)
        items.append(row)
    data["items"] = items
    return data


def get_checklist(checklist_id: int, identity) -> dict:
    checklist = _get(checklist_id)
    if not identity.is_manager and not role_resolver.checklist_visible_to(checklist, identity.roles):
        raise UnauthorizedError(f"Checklist {checklist_id} is not visible to the caller")
    return annotate_checklist(checklist, identity)


def pending_today(identity, now: datetime | None = None) -> list[dict]:
    """Visible active checklists due today with no run in the current window."""
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    settings = _settings()
    today = schedule_calculator.local_date(now, settings)

    due = [
        c for c in list_checklists(identity)
        if schedule_calculator.occurs_on(c, today, settings)
    ]
    windows = {
        c.id: schedule_calculator.window_bounds(
            schedule_calculator.occurrence_window(c, today, settings), settings,
        )
        for c in due
    }
    if not windows:
        return []
    earliest = min(start for start, _end in windows.values())
    latest = max(end for _start, end in windows.values())
    started = set()
    for run in history_store.runs_started_between(windows.keys(), earliest, latest):
        start, end = windows[run.checklist_id]
        if start <= as_utc(run.started_at) < end:
            started.add(run.checklist_id)

    pending = []
    for c in due:
        if c.id in started:
            continue
        due_at = schedule_calculator.due_instant(c, today, settings)
        row = c.to_dict(include_items=False)
        row["due_at"] = due_at.isoformat()
        row["escalates_at"] = schedule_calculator.escalation_deadline(c, due_at, settings).isoformat()
        pending.append(row)
    pending.sort(key=lambda r: (r["due_at"], r["name"]))
    return pending


def checklist_stats(identity, now: datetime | None = None) -> dict:
    """Dashboard counters: checklist totals, frequency mix, pending count."""
    total = db.session.execute(select(Checklist.id)).scalars().all()
    active = list_checklists(identity)
    frequencies = Counter(c.frequency for c in active)
    return {
        "totalChecklists": len(total),
        "activeChecklists": len(active),
        "frequencyDistribution": {f.value: frequencies.get(f.value, 0) for f in Frequency},
        "pendingCount": len(pending_today(identity, now)),
    }
