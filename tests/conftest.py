"""
Shared pytest fixtures for the Checklist Hub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse); seeds roles
    - client: Flask test client (function-scoped)
    - manager / cook / cashier: caller identities
    - manager_headers / cook_headers / cashier_headers: identity request headers
    - make_checklist: ORM factory for checklists with items
"""

from datetime import time

import pytest

from checklist_hub import create_app
from checklist_hub.middleware.identity import build_identity
from checklist_hub.models import db as _db
from checklist_hub.models.checklist import Checklist, ChecklistItem
from checklist_hub.services.checklist_service import seed_default_roles

MANAGER_ROLES = ("manager",)


def headers_for(user_id, *roles):
    """Request headers carrying a caller identity."""
    return {"X-User-Id": user_id, "X-User-Roles": ",".join(roles)}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        seed_default_roles()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Identities ───────────────────────────────────────────────────────────


@pytest.fixture()
def manager():
    return build_identity("mgr-1", ["manager"], MANAGER_ROLES)


@pytest.fixture()
def cook():
    return build_identity("cook-1", ["cook"], MANAGER_ROLES)


@pytest.fixture()
def cashier():
    return build_identity("cashier-1", ["cashier"], MANAGER_ROLES)


@pytest.fixture()
def manager_headers():
    return headers_for("mgr-1", "manager")


@pytest.fixture()
def cook_headers():
    return headers_for("cook-1", "cook")


@pytest.fixture()
def cashier_headers():
    return headers_for("cashier-1", "cashier")


# ── Convenience fixtures ─────────────────────────────────────────────────


def _make_checklist(
    name="Daily Opening",
    *,
    frequency="daily",
    due_time=time(9, 0),
    schedule_day=None,
    escalation_minutes=60,
    roles=("cook",),
    items=None,
    requires_photo_evidence=False,
    is_active=True,
):
    """Create a checklist directly through the ORM (bypasses validation).

    ``items`` is a list of (title, is_required, roles) tuples; the default is
    two required items and one optional item, all inheriting.
    """
    if items is None:
        items = [
            ("Check fridge temperature", True, ()),
            ("Sanitize surfaces", True, ()),
            ("Restock napkins", False, ()),
        ]
    checklist = Checklist(
        name=name,
        frequency=frequency,
        due_time=due_time,
        schedule_day=schedule_day,
        escalation_minutes=escalation_minutes,
        requires_photo_evidence=requires_photo_evidence,
        roles=list(roles),
        is_active=is_active,
    )
    for position, (title, required, item_roles) in enumerate(items, start=1):
        checklist.items.append(ChecklistItem(
            title=title, position=position, is_required=required, roles=list(item_roles),
        ))
    _db.session.add(checklist)
    _db.session.commit()
    return checklist


@pytest.fixture()
def make_checklist():
    """Factory fixture returning ``_make_checklist``."""
    return _make_checklist
