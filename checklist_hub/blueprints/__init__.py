"""
Checklist Hub
Blueprint registry helpers shared by the API blueprints.
"""

import logging

from flask import current_app, g, jsonify, request
from werkzeug.exceptions import HTTPException

from checklist_hub.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from checklist_hub.models import db
from checklist_hub.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to a SQLAlchemy query.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_list, total_count)
    """
    total = query.count()
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    items = query.limit(limit).offset(offset).all()
    return items, total


def current_identity():
    """Caller identity set by the identity middleware."""
    return g.identity


def register_error_handlers(bp):
    """Map the service exception hierarchy onto ``api_error`` responses."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(error.code or E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(error.code or E.VALIDATION_RULE, str(error),
                         status=422, details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(error.code or E.CONFLICT_STATE, str(error), status=409)

    @bp.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        logger.info("Forbidden on %s: %s", request.endpoint, error,
                    extra={"user_id": getattr(getattr(g, "identity", None), "user_id", None)})
        if current_app.config.get("HIDE_FORBIDDEN_AS_NOT_FOUND"):
            return api_error(E.NOT_FOUND, "Not found")
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
