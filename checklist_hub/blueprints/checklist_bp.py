"""Checklist administration and role-filtered listing blueprint.

Endpoint groups:
  Roles              GET    /api/v1/roles
  Checklists         GET    /api/v1/checklists
                     POST   /api/v1/checklists                               (manager)
                     GET    /api/v1/checklists/<id>
                     PATCH  /api/v1/checklists/<id>                          (manager)
                     DELETE /api/v1/checklists/<id>                          (manager)
  Role bulk actions  POST   /api/v1/checklists/<id>/roles/apply-to-items     (manager)
                     POST   /api/v1/checklists/<id>/roles/clear-items        (manager)
  Dashboard          GET    /api/v1/checklists/pending-today
                     GET    /api/v1/checklists/stats

Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import checklist_hub.services.checklist_service as svc
from checklist_hub.blueprints import current_identity, register_error_handlers
from checklist_hub.middleware.identity import require_manager
from checklist_hub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

checklist_bp = Blueprint("checklists", __name__, url_prefix="/api/v1")
register_error_handlers(checklist_bp)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, api_error(E.VALIDATION_INVALID, "JSON object body required")
    return data, None


# ── Roles ────────────────────────────────────────────────────────────────────


@checklist_bp.route("/roles", methods=["GET"])
def list_roles():
    """Reference set of role slugs."""
    return jsonify({"roles": [r.to_dict() for r in svc.list_roles()]}), 200


# ── Checklists ───────────────────────────────────────────────────────────────


@checklist_bp.route("/checklists", methods=["GET"])
def list_checklists():
    """Checklists visible to the caller.

    Query params: include_inactive (managers only; default false)
    """
    identity = current_identity()
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    checklists = svc.list_checklists(identity, include_inactive=include_inactive and identity.is_manager)
    return jsonify({
        "items": [svc.annotate_checklist(c, identity) for c in checklists],
        "total": len(checklists),
    }), 200


@checklist_bp.route("/checklists", methods=["POST"])
@require_manager
def create_checklist():
    """Create a checklist.

    Body: {
        name, description?, frequency?, due_time? ("HH:MM"), schedule_day?,
        escalation_minutes?, requires_photo_evidence?, roles?, is_active?,
        items?: [{title, description?, order?, is_required?, roles?}]
    }
    """
    data, err = _json_body()
    if err:
        return err
    checklist = svc.create_checklist(data)
    return jsonify(checklist.to_dict()), 201


@checklist_bp.route("/checklists/pending-today", methods=["GET"])
def pending_today():
    """Checklists due today that nobody has started in the current period."""
    items = svc.pending_today(current_identity())
    return jsonify({"items": items, "total": len(items)}), 200


@checklist_bp.route("/checklists/stats", methods=["GET"])
def checklist_stats():
    return jsonify(svc.checklist_stats(current_identity())), 200


@checklist_bp.route("/checklists/<int:checklist_id>", methods=["GET"])
def get_checklist(checklist_id):
    """Checklist with items annotated by effective roles for the caller."""
    return jsonify(svc.get_checklist(checklist_id, current_identity())), 200


@checklist_bp.route("/checklists/<int:checklist_id>", methods=["PATCH"])
@require_manager
def update_checklist(checklist_id):
    """Partial update. ``items`` replaces the item list (ids keep identity)."""
    data, err = _json_body()
    if err:
        return err
    checklist = svc.update_checklist(checklist_id, data)
    return jsonify(checklist.to_dict()), 200


@checklist_bp.route("/checklists/<int:checklist_id>", methods=["DELETE"])
@require_manager
def delete_checklist(checklist_id):
    svc.delete_checklist(checklist_id)
    return jsonify({"deleted": True, "id": checklist_id}), 200


@checklist_bp.route("/checklists/<int:checklist_id>/roles/apply-to-items", methods=["POST"])
@require_manager
def apply_roles_to_items(checklist_id):
    checklist = svc.apply_checklist_roles_to_items(checklist_id)
    return jsonify(svc.annotate_checklist(checklist, current_identity())), 200


@checklist_bp.route("/checklists/<int:checklist_id>/roles/clear-items", methods=["POST"])
@require_manager
def clear_item_roles(checklist_id):
    checklist = svc.clear_item_roles(checklist_id)
    return jsonify(svc.annotate_checklist(checklist, current_identity())), 200
