"""
Identity middleware — reads the caller identity supplied by the upstream
identity provider.

The core performs no authentication. The gateway in front of the service
forwards the authenticated user as two headers:

    X-User-Id     opaque user identifier
    X-User-Roles  comma-separated role slugs

They are parsed once per request into an immutable ``Identity`` on
``g.identity``. Blueprints pass that value explicitly into every service
call; services never read ``g``.

Chain order:
  timing.py  →  identity.py  →  route handler
"""

import functools
import logging
from dataclasses import dataclass, field

from flask import current_app, g, request

from checklist_hub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"
ROLES_HEADER = "X-User-Roles"

# Paths that do not need a caller identity
IDENTITY_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/roles",
)


@dataclass(frozen=True)
class Identity:
    """Caller identity: user id, assigned role slugs, manager flag."""

    user_id: str
    roles: frozenset = field(default_factory=frozenset)
    is_manager: bool = False

    def __post_init__(self):
        # Accept any iterable of slugs; store a normalized frozenset
        object.__setattr__(
            self, "roles",
            frozenset(r.strip().lower() for r in (self.roles or ()) if r and r.strip()),
        )


def parse_roles_header(value):
    return frozenset(r.strip().lower() for r in (value or "").split(",") if r.strip())


def build_identity(user_id, roles, manager_roles=()):
    """Build an Identity, flagging it as manager when any role is a manager role."""
    roles = frozenset(r.strip().lower() for r in (roles or ()) if r and r.strip())
    managers = {m.strip().lower() for m in manager_roles}
    return Identity(user_id=str(user_id), roles=roles, is_manager=bool(roles & managers))


def init_identity(app):
    """Register the identity middleware as a before_request hook."""

    @app.before_request
    def _identity_context():
        g.identity = None

        if not request.path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None
        for prefix in IDENTITY_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        user_id = (request.headers.get(USER_HEADER) or "").strip()
        if not user_id:
            logger.info("Rejected request without %s: %s %s",
                        USER_HEADER, request.method, request.path)
            return api_error(E.UNAUTHENTICATED, "Missing caller identity")

        g.identity = build_identity(
            user_id,
            parse_roles_header(request.headers.get(ROLES_HEADER)),
            current_app.config.get("CHECKLIST_MANAGER_ROLES", ()),
        )
        return None


def require_manager(f):
    """Decorator: only identities holding a manager role may call the endpoint."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        identity = getattr(g, "identity", None)
        if identity is None or not identity.is_manager:
            return api_error(E.FORBIDDEN, "Manager role required")
        return f(*args, **kwargs)

    return decorated
