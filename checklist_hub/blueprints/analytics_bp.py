"""Checklist analytics blueprint (managers only).

Endpoints:
  GET /api/v1/checklist-analytics/overview
  GET /api/v1/checklist-analytics/periods
  GET /api/v1/checklist-analytics/employees
  GET /api/v1/checklist-analytics/checklists
  GET /api/v1/checklist-analytics/trends
  GET /api/v1/checklist-analytics/status-distribution
  GET /api/v1/checklist-analytics/history        (page, limit)

Common query params: start, end (YYYY-MM-DD, org local dates, inclusive),
status, checklist_id, user_id.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import checklist_hub.services.checklist_analytics as analytics
from checklist_hub.blueprints import register_error_handlers
from checklist_hub.middleware.identity import require_manager
from checklist_hub.models.checklist import RunStatus
from checklist_hub.utils.errors import E, api_error
from checklist_hub.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

analytics_bp = Blueprint("checklist_analytics", __name__, url_prefix="/api/v1/checklist-analytics")
register_error_handlers(analytics_bp)


@analytics_bp.before_request
@require_manager
def _managers_only():
    return None


@analytics_bp.errorhandler(ValueError)
def _handle_bad_range(error: ValueError):
    """Inverted or over-long date ranges rejected by the range resolver."""
    return api_error(E.VALIDATION_INVALID, str(error))


def _filters():
    """(filters, range, error) parsed from the query string."""
    try:
        status = request.args.get("status")
        filters = {
            "checklist_id": request.args.get("checklist_id", type=int),
            "status": RunStatus.parse(status).value if status else None,
            "user_id": request.args.get("user_id") or None,
        }
        rng = {
            "start": parse_date_input(request.args.get("start")),
            "end": parse_date_input(request.args.get("end")),
        }
    except ValueError as exc:
        return None, None, api_error(E.VALIDATION_INVALID, str(exc))
    if rng["start"] and rng["end"] and rng["start"] > rng["end"]:
        return None, None, api_error(E.VALIDATION_INVALID, "start must not be after end")
    return filters, rng, None


@analytics_bp.route("/overview", methods=["GET"])
def overview():
    filters, _rng, err = _filters()
    if err:
        return err
    return jsonify({"overview": analytics.get_overview(**filters)}), 200


@analytics_bp.route("/periods", methods=["GET"])
def periods():
    filters, _rng, err = _filters()
    if err:
        return err
    return jsonify({"periods": analytics.get_periods(**filters)}), 200


@analytics_bp.route("/employees", methods=["GET"])
def employees():
    filters, rng, err = _filters()
    if err:
        return err
    return jsonify(analytics.get_employee_performance(**rng, **filters)), 200


@analytics_bp.route("/checklists", methods=["GET"])
def checklists():
    filters, rng, err = _filters()
    if err:
        return err
    return jsonify(analytics.get_checklist_performance(**rng, **filters)), 200


@analytics_bp.route("/trends", methods=["GET"])
def trends():
    filters, rng, err = _filters()
    if err:
        return err
    return jsonify(analytics.get_trends(**rng, **filters)), 200


@analytics_bp.route("/status-distribution", methods=["GET"])
def status_distribution():
    filters, rng, err = _filters()
    if err:
        return err
    return jsonify(analytics.get_status_distribution(**rng, **filters)), 200


@analytics_bp.route("/history", methods=["GET"])
def history():
    filters, rng, err = _filters()
    if err:
        return err
    page = max(request.args.get("page", 1, type=int) or 1, 1)
    limit = min(max(request.args.get("limit", 50, type=int) or 50, 1), 100)
    return jsonify(analytics.get_history(**rng, page=page, limit=limit, **filters)), 200
