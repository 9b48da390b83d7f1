"""
Checklist Hub
Checklist domain models.

Models:
    - Role:               reference set of job-role slugs (validated ingestion boundary)
    - Checklist:          recurring, role-scoped duty list (daily / weekly / monthly)
    - ChecklistItem:      one duty within a checklist, optional item-level role override
    - ChecklistRun:       one execution of a checklist by one user
    - ChecklistEvidence:  per-item completion record inside a run
    - RunEvent:           append-only ledger of everything that happened to a run

Architecture:
    Checklist ──1:N──▶ ChecklistItem          (cascade delete, ordered by position)
    Checklist ──1:N──▶ ChecklistRun           (history is never deleted)
    ChecklistRun ──1:N──▶ ChecklistEvidence   (snapshot of the items at start time)
    ChecklistRun ──1:N──▶ RunEvent

Lifecycle states:
    ChecklistRun:  in_progress → completed
                   in_progress → overdue → completed
                   in_progress | overdue → failed   (explicit close-out only)
"""

import enum
from datetime import datetime, timezone

from checklist_hub.models import db
from checklist_hub.utils.helpers import as_utc, round_half_up


def _utcnow():
    return datetime.now(timezone.utc)


# ── Enumerations ─────────────────────────────────────────────────────────────


class RunStatus(str, enum.Enum):
    """Closed set of run states. Stored as the lower-case ``value``."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    FAILED = "failed"

    @classmethod
    def parse(cls, value):
        """Normalize external status strings ("COMPLETED", "in-progress", ...).

        Raises ValueError for anything outside the closed set.
        """
        if isinstance(value, cls):
            return value
        if value is None:
            raise ValueError("Run status is required")
        key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown run status: {value!r}") from None


class Frequency(str, enum.Enum):
    """Scheduling frequencies understood by the schedule calculator."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value):
        """Normalize a frequency label.

        Quarterly, half-yearly and yearly duties are folded into monthly;
        this is a known simplification of the scheduling model.
        """
        if isinstance(value, cls):
            return value
        label = str(value or "").strip().lower()
        if not label:
            raise ValueError("Frequency is required")
        if "daily" in label or label == "day":
            return cls.DAILY
        if "weekly" in label or label == "week":
            return cls.WEEKLY
        if "monthly" in label or label == "month":
            return cls.MONTHLY
        if "quarter" in label or "half" in label or "year" in label or "annual" in label:
            return cls.MONTHLY
        raise ValueError(f"Unknown frequency: {value!r}")


ACTIVE_RUN_STATUSES = frozenset({RunStatus.IN_PROGRESS, RunStatus.OVERDUE})

RUN_EVENT_TYPES = {
    "started",
    "item_checked",
    "item_unchecked",
    "completed",
    "marked_overdue",
    "marked_failed",
}


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

RUN_TRANSITIONS = {
    RunStatus.IN_PROGRESS: [RunStatus.COMPLETED, RunStatus.OVERDUE, RunStatus.FAILED],
    RunStatus.OVERDUE:     [RunStatus.COMPLETED, RunStatus.FAILED],
    RunStatus.COMPLETED:   [],
    RunStatus.FAILED:      [],
}


def validate_run_transition(old_status, new_status):
    """Return True if ChecklistRun status transition is valid."""
    try:
        old = RunStatus.parse(old_status)
        new = RunStatus.parse(new_status)
    except ValueError:
        return False
    return new in RUN_TRANSITIONS.get(old, [])


def transition_sources(new_status):
    """Statuses from which a run may move to ``new_status``."""
    new = RunStatus.parse(new_status)
    return {old for old, targets in RUN_TRANSITIONS.items() if new in targets}


# ═════════════════════════════════════════════════════════════════════════════
# Role
# ═════════════════════════════════════════════════════════════════════════════


class Role(db.Model):
    """A job role that checklists and items can be scoped to."""

    __tablename__ = "checklist_roles"

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(80), unique=True, nullable=False, index=True,
                     comment="Stable identifier, lower-case kebab slug")
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.String(500), default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "slug": self.slug,
            "name": self.name,
            "description": self.description or "",
        }

    def __repr__(self):
        return f"<Role {self.slug}>"


# ═════════════════════════════════════════════════════════════════════════════
# Checklist + items
# ═════════════════════════════════════════════════════════════════════════════


class Checklist(db.Model):
    """
    Recurring duty list.

    ``roles`` is the checklist-level role scope; an empty list means every
    role may see and execute the checklist.
    """

    __tablename__ = "checklists"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    frequency = db.Column(db.String(20), nullable=False, default=Frequency.DAILY.value,
                          comment="daily | weekly | monthly")
    due_time = db.Column(db.Time, nullable=True,
                         comment="Local time of day; NULL means end of day")
    schedule_day = db.Column(db.Integer, nullable=True,
                             comment="Weekday 0-6 (weekly) or day of month 1-31 (monthly)")
    escalation_minutes = db.Column(db.Integer, nullable=False, default=60,
                                   comment="Grace period after due time before overdue")
    requires_photo_evidence = db.Column(db.Boolean, nullable=False, default=False)
    roles = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = db.relationship(
        "ChecklistItem",
        back_populates="checklist",
        cascade="all, delete-orphan",
        order_by="ChecklistItem.position",
    )
    runs = db.relationship("ChecklistRun", back_populates="checklist", lazy="dynamic")

    @property
    def role_set(self):
        return frozenset(self.roles or [])

    def to_dict(self, include_items=True):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "frequency": self.frequency,
            "due_time": self.due_time.strftime("%H:%M") if self.due_time else None,
            "schedule_day": self.schedule_day,
            "escalation_minutes": self.escalation_minutes,
            "requires_photo_evidence": bool(self.requires_photo_evidence),
            "roles": sorted(self.roles or []),
            "is_active": bool(self.is_active),
            "item_count": len(self.items),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_items:
            d["items"] = [i.to_dict() for i in self.items]
        return d

    def __repr__(self):
        return f"<Checklist {self.id}: {self.name} [{self.frequency}]>"


class ChecklistItem(db.Model):
    """One duty inside a checklist. Non-empty ``roles`` overrides the checklist's roles."""

    __tablename__ = "checklist_items"
    __table_args__ = (
        db.UniqueConstraint("checklist_id", "position", name="uq_checklist_item_position"),
    )

    id = db.Column(db.Integer, primary_key=True)
    checklist_id = db.Column(
        db.Integer, db.ForeignKey("checklists.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    position = db.Column(db.Integer, nullable=False, comment="1-based display order")
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    roles = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    checklist = db.relationship("Checklist", back_populates="items")

    @property
    def role_set(self):
        return frozenset(self.roles or [])

    def to_dict(self):
        return {
            "id": self.id,
            "checklist_id": self.checklist_id,
            "title": self.title,
            "description": self.description,
            "order": self.position,
            "is_required": bool(self.is_required),
            "roles": sorted(self.roles or []),
        }

    def __repr__(self):
        return f"<ChecklistItem {self.id}: #{self.position} {self.title[:30]}>"


# ═════════════════════════════════════════════════════════════════════════════
# Runs, evidence, ledger
# ═════════════════════════════════════════════════════════════════════════════


class ChecklistRun(db.Model):
    """
    One execution of a checklist by one user.

    The schedule and role fields are copied from the checklist when the run
    starts so later edits to the checklist never alter an open run.

    At most one ``in_progress`` run may exist per (user, checklist); the
    partial unique index enforces this at the storage boundary.
    """

    __tablename__ = "checklist_runs"
    __table_args__ = (
        db.Index(
            "uq_checklist_run_in_progress",
            "user_id", "checklist_id",
            unique=True,
            sqlite_where=db.text("status = 'in_progress'"),
            postgresql_where=db.text("status = 'in_progress'"),
        ),
        db.Index("ix_checklist_runs_started_at", "started_at"),
        db.Index("ix_checklist_runs_status", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    checklist_id = db.Column(
        db.Integer, db.ForeignKey("checklists.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    user_id = db.Column(db.String(150), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=RunStatus.IN_PROGRESS.value)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    overdue_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failure_reason = db.Column(db.String(300), nullable=True)

    # Snapshot of the checklist at start time
    checklist_name = db.Column(db.String(200), nullable=False, default="")
    checklist_roles = db.Column(db.JSON, nullable=False, default=list)
    frequency = db.Column(db.String(20), nullable=False, default=Frequency.DAILY.value)
    due_time = db.Column(db.Time, nullable=True)
    schedule_day = db.Column(db.Integer, nullable=True)
    escalation_minutes = db.Column(db.Integer, nullable=False, default=60)
    requires_photo_evidence = db.Column(db.Boolean, nullable=False, default=False)

    checklist = db.relationship("Checklist", back_populates="runs")
    evidence = db.relationship(
        "ChecklistEvidence",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="ChecklistEvidence.item_position",
    )
    events = db.relationship(
        "RunEvent", back_populates="run", lazy="dynamic",
        order_by="RunEvent.id",
    )

    @property
    def run_status(self):
        return RunStatus.parse(self.status)

    @property
    def is_active(self):
        return self.status in {s.value for s in ACTIVE_RUN_STATUSES}

    @property
    def checked_count(self):
        return sum(1 for e in self.evidence if e.checked)

    @property
    def total_items(self):
        return len(self.evidence)

    def to_dict(self, include_evidence=True):
        from checklist_hub.services.run_lifecycle import progress

        started = as_utc(self.started_at)
        completed = as_utc(self.completed_at)
        duration = None
        if started and completed:
            duration = round_half_up((completed - started).total_seconds() / 60)
        d = {
            "id": self.id,
            "checklist_id": self.checklist_id,
            "checklist_name": self.checklist_name,
            "user_id": self.user_id,
            "status": self.status,
            "started_at": started.isoformat() if started else None,
            "completed_at": completed.isoformat() if completed else None,
            "overdue_at": self.overdue_at.isoformat() if self.overdue_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
            "failure_reason": self.failure_reason,
            "requires_photo_evidence": bool(self.requires_photo_evidence),
            "progress": progress(self),
            "checked_items": self.checked_count,
            "total_items": self.total_items,
            "duration_minutes": duration,
        }
        if include_evidence:
            d["evidence"] = [e.to_dict() for e in self.evidence]
        return d

    def __repr__(self):
        return f"<ChecklistRun {self.id}: checklist={self.checklist_id} user={self.user_id} [{self.status}]>"


class ChecklistEvidence(db.Model):
    """
    Completion record for one item within one run.

    ``item_id`` carries no foreign key: the item may later be edited away
    from the checklist while the run's evidence stays intact.
    """

    __tablename__ = "checklist_evidence"
    __table_args__ = (
        db.UniqueConstraint("run_id", "item_id", name="uq_evidence_run_item"),
    )

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(
        db.Integer, db.ForeignKey("checklist_runs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    item_id = db.Column(db.Integer, nullable=False)

    # Item snapshot
    item_title = db.Column(db.String(300), nullable=False, default="")
    item_position = db.Column(db.Integer, nullable=False, default=0)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    item_roles = db.Column(db.JSON, nullable=False, default=list)

    checked = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)
    file_ref = db.Column(db.String(500), nullable=True,
                         comment="Opaque reference returned by the evidence file store")
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_by = db.Column(db.String(150), nullable=True)

    run = db.relationship("ChecklistRun", back_populates="evidence")

    def to_dict(self):
        return {
            "item_id": self.item_id,
            "title": self.item_title,
            "order": self.item_position,
            "is_required": bool(self.is_required),
            "roles": sorted(self.item_roles or []),
            "checked": bool(self.checked),
            "notes": self.notes,
            "file_ref": self.file_ref,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
        }

    def __repr__(self):
        mark = "x" if self.checked else " "
        return f"<ChecklistEvidence run={self.run_id} item={self.item_id} [{mark}]>"


class RunEvent(db.Model):
    """Append-only history entry for a run. Never updated or deleted."""

    __tablename__ = "checklist_run_events"

    id = db.Column(db.Integer, primary_key=True)
    run_id = db.Column(
        db.Integer, db.ForeignKey("checklist_runs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    event_type = db.Column(db.String(30), nullable=False)
    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=True)
    actor_id = db.Column(db.String(150), nullable=True,
                         comment="User id, or 'system' for sweep jobs")
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    run = db.relationship("ChecklistRun", back_populates="events")

    def to_dict(self):
        return {
            "id": self.id,
            "run_id": self.run_id,
            "event_type": self.event_type,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "payload": self.payload or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<RunEvent {self.run_id}:{self.event_type}>"
