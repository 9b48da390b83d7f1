"""checklist_core_tables

Roles, checklists, items, runs, evidence, the run event ledger and the
scheduled job registry.

At most one in_progress run per (user, checklist) is enforced with a
partial unique index.

Revision ID: c1a7e3b9d201
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "c1a7e3b9d201"
down_revision = None
branch_labels = None
depends_on = None


def _table_names(bind) -> set[str]:
    insp = sa.inspect(bind)
    return set(insp.get_table_names())


def upgrade():
    bind = op.get_bind()
    existing = _table_names(bind)

    # ── Roles ──
    if "checklist_roles" not in existing:
        op.create_table(
            "checklist_roles",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("slug", sa.String(80), nullable=False),
            sa.Column("name", sa.String(150), nullable=False),
            sa.Column("description", sa.String(500), server_default=""),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_checklist_roles_slug", "checklist_roles", ["slug"], unique=True)

    # ── Checklists ──
    if "checklists" not in existing:
        op.create_table(
            "checklists",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("name", sa.String(200), nullable=False),
            sa.Column("description", sa.Text, server_default=""),
            sa.Column("frequency", sa.String(20), nullable=False, server_default="daily"),
            sa.Column("due_time", sa.Time, nullable=True),
            sa.Column("schedule_day", sa.Integer, nullable=True),
            sa.Column("escalation_minutes", sa.Integer, nullable=False, server_default="60"),
            sa.Column("requires_photo_evidence", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("roles", sa.JSON, nullable=False),
            sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        op.create_index("ix_checklists_is_active", "checklists", ["is_active"])

    if "checklist_items" not in existing:
        op.create_table(
            "checklist_items",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("checklist_id", sa.Integer,
                      sa.ForeignKey("checklists.id", ondelete="CASCADE"), nullable=False),
            sa.Column("title", sa.String(300), nullable=False),
            sa.Column("description", sa.Text, nullable=True),
            sa.Column("position", sa.Integer, nullable=False),
            sa.Column("is_required", sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column("roles", sa.JSON, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.UniqueConstraint("checklist_id", "position", name="uq_checklist_item_position"),
        )
        op.create_index("ix_checklist_items_checklist_id", "checklist_items", ["checklist_id"])

    # ── Runs ──
    if "checklist_runs" not in existing:
        op.create_table(
            "checklist_runs",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("checklist_id", sa.Integer,
                      sa.ForeignKey("checklists.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("user_id", sa.String(150), nullable=False),
            sa.Column("status", sa.String(20), nullable=False, server_default="in_progress"),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("overdue_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("failure_reason", sa.String(300), nullable=True),
            sa.Column("checklist_name", sa.String(200), nullable=False, server_default=""),
            sa.Column("checklist_roles", sa.JSON, nullable=False),
            sa.Column("frequency", sa.String(20), nullable=False, server_default="daily"),
            sa.Column("due_time", sa.Time, nullable=True),
            sa.Column("schedule_day", sa.Integer, nullable=True),
            sa.Column("escalation_minutes", sa.Integer, nullable=False, server_default="60"),
            sa.Column("requires_photo_evidence", sa.Boolean, nullable=False, server_default=sa.false()),
        )
        op.create_index("ix_checklist_runs_checklist_id", "checklist_runs", ["checklist_id"])
        op.create_index("ix_checklist_runs_user_id", "checklist_runs", ["user_id"])
        op.create_index("ix_checklist_runs_started_at", "checklist_runs", ["started_at"])
        op.create_index("ix_checklist_runs_status", "checklist_runs", ["status"])
        op.create_index(
            "uq_checklist_run_in_progress", "checklist_runs", ["user_id", "checklist_id"],
            unique=True,
            sqlite_where=sa.text("status = 'in_progress'"),
            postgresql_where=sa.text("status = 'in_progress'"),
        )

    if "checklist_evidence" not in existing:
        op.create_table(
            "checklist_evidence",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("run_id", sa.Integer,
                      sa.ForeignKey("checklist_runs.id", ondelete="CASCADE"), nullable=False),
            sa.Column("item_id", sa.Integer, nullable=False),
            sa.Column("item_title", sa.String(300), nullable=False, server_default=""),
            sa.Column("item_position", sa.Integer, nullable=False, server_default="0"),
            sa.Column("is_required", sa.Boolean, nullable=False, server_default=sa.true()),
            sa.Column("item_roles", sa.JSON, nullable=False),
            sa.Column("checked", sa.Boolean, nullable=False, server_default=sa.false()),
            sa.Column("notes", sa.Text, nullable=True),
            sa.Column("file_ref", sa.String(500), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_by", sa.String(150), nullable=True),
            sa.UniqueConstraint("run_id", "item_id", name="uq_evidence_run_item"),
        )
        op.create_index("ix_checklist_evidence_run_id", "checklist_evidence", ["run_id"])

    if "checklist_run_events" not in existing:
        op.create_table(
            "checklist_run_events",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("run_id", sa.Integer,
                      sa.ForeignKey("checklist_runs.id", ondelete="CASCADE"), nullable=False),
            sa.Column("event_type", sa.String(30), nullable=False),
            sa.Column("from_status", sa.String(20), nullable=True),
            sa.Column("to_status", sa.String(20), nullable=True),
            sa.Column("actor_id", sa.String(150), nullable=True),
            sa.Column("payload", sa.JSON, nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_checklist_run_events_run_id", "checklist_run_events", ["run_id"])

    # ── Scheduled jobs ──
    if "scheduled_jobs" not in existing:
        op.create_table(
            "scheduled_jobs",
            sa.Column("id", sa.Integer, primary_key=True),
            sa.Column("job_name", sa.String(100), unique=True, nullable=False),
            sa.Column("description", sa.String(500), server_default=""),
            sa.Column("schedule_type", sa.String(30), server_default="interval"),
            sa.Column("schedule_config", sa.JSON, nullable=True),
            sa.Column("status", sa.String(20), server_default="active"),
            sa.Column("is_enabled", sa.Boolean, server_default=sa.true()),
            sa.Column("last_run_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_run_status", sa.String(20), nullable=True),
            sa.Column("last_run_duration_ms", sa.Integer, nullable=True),
            sa.Column("last_run_result", sa.JSON, nullable=True),
            sa.Column("run_count", sa.Integer, server_default="0"),
            sa.Column("error_count", sa.Integer, server_default="0"),
            sa.Column("last_error", sa.Text, nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        )


def downgrade():
    op.drop_table("scheduled_jobs")
    op.drop_table("checklist_run_events")
    op.drop_table("checklist_evidence")
    op.drop_index("uq_checklist_run_in_progress", table_name="checklist_runs")
    op.drop_table("checklist_runs")
    op.drop_table("checklist_items")
    op.drop_table("checklists")
    op.drop_table("checklist_roles")
