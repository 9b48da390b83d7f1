"""Checklist run lifecycle blueprint.

Endpoint groups:
  Runs          POST  /api/v1/checklist-runs                         start (201) or resume (200)
                GET   /api/v1/checklist-runs                         list with filters
                GET   /api/v1/checklist-runs/<id>
  Evidence      PATCH /api/v1/checklist-runs/<id>/items/<item_id>    check / uncheck
  Transitions   POST  /api/v1/checklist-runs/<id>/complete
                POST  /api/v1/checklist-runs/<id>/mark-overdue       (manager)
                POST  /api/v1/checklist-runs/<id>/mark-failed        (manager)
  Ledger        GET   /api/v1/checklist-runs/<id>/events

Non-managers only ever see their own runs.
Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request

import checklist_hub.services.run_lifecycle as lifecycle
from checklist_hub.blueprints import current_identity, paginate_query, register_error_handlers
from checklist_hub.models.checklist import RunStatus
from checklist_hub.services import history_store
from checklist_hub.services.schedule_calculator import ScheduleSettings, local_midnight
from checklist_hub.utils.errors import E, api_error
from checklist_hub.utils.helpers import parse_date_input, parse_datetime_input

logger = logging.getLogger(__name__)

run_bp = Blueprint("checklist_runs", __name__, url_prefix="/api/v1/checklist-runs")
register_error_handlers(run_bp)


@run_bp.route("", methods=["POST"])
def start_run():
    """Start or resume the caller's run.

    Body: {checklist_id}
    Returns: run (201 when created, 200 when an in-progress run was resumed).
    """
    data = request.get_json(silent=True) or {}
    checklist_id = data.get("checklist_id")
    if checklist_id is None:
        return api_error(E.VALIDATION_REQUIRED, "checklist_id is required")
    try:
        checklist_id = int(checklist_id)
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "checklist_id must be an integer")

    result = lifecycle.start_run(checklist_id, current_identity())
    body = result.run.to_dict()
    body["resumed"] = result.resumed
    return jsonify(body), 200 if result.resumed else 201


@run_bp.route("", methods=["GET"])
def list_runs():
    """List runs, newest first.

    Query params: checklist_id, status, user_id (managers), date_from, date_to,
                  mine (true → only the caller's runs), limit, offset
    """
    identity = current_identity()
    settings = ScheduleSettings.from_config(current_app.config)
    try:
        status = request.args.get("status")
        if status:
            status = RunStatus.parse(status).value
        date_from = parse_date_input(request.args.get("date_from"))
        date_to = parse_date_input(request.args.get("date_to"))
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    mine = request.args.get("mine", "false").lower() == "true"
    user_id = request.args.get("user_id")
    if mine or not identity.is_manager:
        user_id = identity.user_id

    query = history_store.run_query(
        checklist_id=request.args.get("checklist_id", type=int),
        status=status,
        user_id=user_id,
        started_from=local_midnight(date_from, settings) if date_from else None,
        started_before=local_midnight(date_to + timedelta(days=1), settings) if date_to else None,
    )
    runs, total = paginate_query(query, default_limit=50, max_limit=200)
    return jsonify({
        "items": [r.to_dict(include_evidence=False) for r in runs],
        "total": total,
    }), 200


@run_bp.route("/<int:run_id>", methods=["GET"])
def get_run(run_id):
    run = lifecycle.get_run(run_id, current_identity())
    return jsonify(run.to_dict()), 200


@run_bp.route("/<int:run_id>/items/<int:item_id>", methods=["PATCH"])
def toggle_item(run_id, item_id):
    """Check or uncheck one item.

    Body: {checked: bool, notes?: str, file_ref?: str, updated_at?: ISO-8601}
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("checked"), bool):
        return api_error(E.VALIDATION_REQUIRED, "checked (boolean) is required")
    try:
        at = parse_datetime_input(data.get("updated_at"))
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    kwargs = {}
    if "notes" in data:
        kwargs["notes"] = data.get("notes")
    if "file_ref" in data:
        kwargs["file_ref"] = data.get("file_ref")

    run = lifecycle.toggle_item(run_id, item_id, data["checked"], current_identity(), at=at, **kwargs)
    return jsonify(run.to_dict()), 200


@run_bp.route("/<int:run_id>/complete", methods=["POST"])
def complete_run(run_id):
    run = lifecycle.complete_run(run_id, current_identity())
    return jsonify(run.to_dict()), 200


@run_bp.route("/<int:run_id>/mark-overdue", methods=["POST"])
def mark_overdue(run_id):
    run, changed = lifecycle.mark_overdue_by(run_id, current_identity())
    body = run.to_dict(include_evidence=False)
    body["changed"] = changed
    return jsonify(body), 200


@run_bp.route("/<int:run_id>/mark-failed", methods=["POST"])
def mark_failed(run_id):
    """Close out an open run as failed. Body: {reason?}"""
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "closed_by_manager").strip()
    run, changed = lifecycle.mark_failed_by(run_id, current_identity(), reason)
    body = run.to_dict(include_evidence=False)
    body["changed"] = changed
    return jsonify(body), 200


@run_bp.route("/<int:run_id>/events", methods=["GET"])
def list_events(run_id):
    events = lifecycle.run_events(run_id, current_identity())
    return jsonify({"items": [e.to_dict() for e in events], "total": len(events)}), 200
