"""
Role Resolver — who may see and act on a checklist or an item.

Single source of truth for role-based visibility. Every caller (checklist
listing, pending-today, evidence toggles, run starts) goes through these
functions instead of comparing role lists ad hoc.

Rules:
    effective_roles(checklist, item)  → item.roles when non-empty, else checklist.roles
    can_access(role, effective)       → effective is empty OR role ∈ effective

An empty effective set means unrestricted: every role may act.

Pure functions. Arguments are duck-typed on a ``roles`` attribute so the
same code serves live ``Checklist``/``ChecklistItem`` rows, run snapshots
and plain dicts in tests.
"""

from __future__ import annotations

from typing import Iterable


def normalize_role_slug(value) -> str:
    """Lower-case, trim and kebab-case a role identifier."""
    if value is None:
        return ""
    return "-".join(str(value).strip().lower().replace("_", " ").split())


def _roles_of(obj) -> frozenset[str]:
    if obj is None:
        return frozenset()
    if isinstance(obj, dict):
        roles = obj.get("roles")
    else:
        roles = getattr(obj, "roles", None)
    return frozenset(normalize_role_slug(r) for r in (roles or ()) if normalize_role_slug(r))


def effective_roles(checklist, item=None) -> frozenset[str]:
    """Roles governing access to ``item`` (or to the checklist when no item)."""
    if item is not None:
        item_roles = _roles_of(item)
        if item_roles:
            return item_roles
    return _roles_of(checklist)


def is_inherited(item) -> bool:
    """True when the item carries no roles of its own."""
    return not _roles_of(item)


def can_access(role: str, effective: Iterable[str]) -> bool:
    effective = frozenset(effective or ())
    if not effective:
        return True
    return normalize_role_slug(role) in effective


def can_access_any(roles: Iterable[str], effective: Iterable[str]) -> bool:
    """True if any of the caller's roles passes ``can_access``.

    A caller holding no roles only passes unrestricted scopes.
    """
    effective = frozenset(effective or ())
    if not effective:
        return True
    return any(can_access(r, effective) for r in (roles or ()))


def apply_checklist_roles_to_all_items(checklist) -> list[dict]:
    """Return a copy of every item with ``roles`` replaced by the checklist's roles.

    Nothing is mutated; the admin service persists the result when the
    bulk action is explicitly requested.
    """
    roles = sorted(_roles_of(checklist))
    items = checklist.get("items") if isinstance(checklist, dict) else getattr(checklist, "items", None)
    copies = []
    for item in items or ():
        if isinstance(item, dict):
            copy = dict(item)
        else:
            copy = {
                "id": item.id,
                "title": item.title,
                "description": item.description,
                "order": item.position,
                "is_required": bool(item.is_required),
            }
        copy["roles"] = list(roles)
        copies.append(copy)
    return copies


# ── Bulk filtering ───────────────────────────────────────────────────────────


def checklist_visible_to(checklist, roles: Iterable[str]) -> bool:
    """A checklist is visible when its own roles admit the caller or any item does."""
    roles = frozenset(roles or ())
    if can_access_any(roles, effective_roles(checklist)):
        return True
    items = checklist.get("items") if isinstance(checklist, dict) else getattr(checklist, "items", None)
    return any(can_access_any(roles, _roles_of(i)) for i in (items or ()) if _roles_of(i))


def filter_visible_checklists(checklists, roles: Iterable[str]) -> list:
    return [c for c in checklists if checklist_visible_to(c, roles)]


def filter_visible_items(checklist, roles: Iterable[str]) -> list:
    items = checklist.get("items") if isinstance(checklist, dict) else getattr(checklist, "items", None)
    return [i for i in (items or ()) if can_access_any(roles, effective_roles(checklist, i))]
