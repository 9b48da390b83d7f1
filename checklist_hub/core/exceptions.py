"""
Checklist Hub exception hierarchy.

Services raise these types; blueprints register handlers against the base
classes once and get consistent HTTP status codes everywhere.

Usage:
    from checklist_hub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Checklist", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Checklist", "ChecklistRun").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
    """

    code = None

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown for API responses.
    """

    code = None

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation conflicts with the current state of a resource.

    Maps to HTTP 409.
    """

    code = None

    def __init__(self, resource: str, field: str, value: str | None = None,
                 message: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = message or f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class ForbiddenError(Exception):
    """Raised when the caller is identified but not allowed to act.

    Maps to HTTP 403 (or 404 when HIDE_FORBIDDEN_AS_NOT_FOUND is set).
    """

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


# ── Checklist domain errors ──────────────────────────────────────────────────


class ChecklistInactiveError(ValidationError):
    """The checklist exists but is switched off; no new runs may start."""

    code = "ERR_CHECKLIST_INACTIVE"

    def __init__(self, checklist_id: int) -> None:
        self.checklist_id = checklist_id
        super().__init__(
            f"Checklist {checklist_id} is inactive",
            details={"checklist_id": checklist_id},
        )


class AlreadyActiveRunError(ConflictError):
    """An in-progress run already exists for this (user, checklist).

    Raised by the history store when the unique active-run index rejects an
    insert; start_run turns it into a resume of the existing run.
    """

    code = "ERR_RUN_ALREADY_ACTIVE"

    def __init__(self, user_id: str, checklist_id: int) -> None:
        self.user_id = user_id
        self.checklist_id = checklist_id
        super().__init__(
            "ChecklistRun", "user_id/checklist_id", f"{user_id}/{checklist_id}",
            message=f"User {user_id} already has an active run of checklist {checklist_id}",
        )


class RunNotFoundError(NotFoundError):
    def __init__(self, run_id) -> None:
        super().__init__("ChecklistRun", run_id)


class ChecklistNotFoundError(NotFoundError):
    def __init__(self, checklist_id) -> None:
        super().__init__("Checklist", checklist_id)


class ItemNotInRunError(NotFoundError):
    """The item id is not part of the run's evidence snapshot."""

    code = "ERR_ITEM_NOT_IN_RUN"

    def __init__(self, run_id, item_id) -> None:
        self.run_id = run_id
        self.item_id = item_id
        super().__init__("ChecklistItem", item_id)


class RunNotActiveError(ConflictError):
    """The run is completed or failed and can no longer be modified."""

    code = "ERR_RUN_NOT_ACTIVE"

    def __init__(self, run_id, status: str) -> None:
        self.run_id = run_id
        self.status = status
        super().__init__(
            "ChecklistRun", "status", status,
            message=f"Run {run_id} is {status} and cannot be modified",
        )


class UnauthorizedError(ForbiddenError):
    """Role or ownership check failed for the acting user."""


class IncompleteRequiredItemsError(ValidationError):
    """Completion refused: required items are still unchecked."""

    code = "ERR_INCOMPLETE_REQUIRED"

    def __init__(self, blocking_items: list[dict]) -> None:
        self.blocking_items = blocking_items
        super().__init__(
            f"{len(blocking_items)} required item(s) are not checked",
            details={"blocking_items": blocking_items},
        )


class MissingPhotoEvidenceError(ValidationError):
    """Completion refused: the checklist needs photo evidence on required items."""

    code = "ERR_MISSING_PHOTO_EVIDENCE"

    def __init__(self, blocking_items: list[dict]) -> None:
        self.blocking_items = blocking_items
        super().__init__(
            f"{len(blocking_items)} required item(s) are missing photo evidence",
            details={"blocking_items": blocking_items},
        )
