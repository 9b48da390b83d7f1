"""
Unit tests for the role resolver (pure functions, no database).

Covers:
    - effective_roles: item override vs. inheritance
    - can_access / can_access_any: empty scope is unrestricted
    - apply_checklist_roles_to_all_items: returns copies, no mutation
    - bulk visibility filters
"""

from checklist_hub.services import role_resolver as rr


def _checklist(roles, items=()):
    return {"roles": list(roles), "items": [dict(i) for i in items]}


class TestEffectiveRoles:
    def test_item_roles_override_checklist(self):
        checklist = _checklist(["cook", "manager"])
        item = {"roles": ["cashier"]}
        assert rr.effective_roles(checklist, item) == frozenset({"cashier"})

    def test_empty_item_roles_inherit(self):
        checklist = _checklist(["cook", "manager"])
        assert rr.effective_roles(checklist, {"roles": []}) == frozenset({"cook", "manager"})
        assert rr.is_inherited({"roles": []})

    def test_no_item_uses_checklist(self):
        assert rr.effective_roles(_checklist(["cook"])) == frozenset({"cook"})

    def test_both_empty_is_unrestricted(self):
        effective = rr.effective_roles(_checklist([]), {"roles": []})
        assert effective == frozenset()
        assert rr.can_access("anyone", effective)

    def test_slugs_are_normalized(self):
        assert rr.effective_roles({"roles": ["  Store_Manager "]}) == frozenset({"store-manager"})


class TestCanAccess:
    def test_member_role_allowed(self):
        assert rr.can_access("cook", {"cook", "manager"})

    def test_other_role_denied(self):
        assert not rr.can_access("cashier", {"cook", "manager"})

    def test_any_of_several_roles(self):
        assert rr.can_access_any({"cashier", "cook"}, {"cook"})
        assert not rr.can_access_any({"cashier"}, {"cook"})

    def test_no_roles_only_passes_unrestricted(self):
        assert rr.can_access_any(set(), set())
        assert not rr.can_access_any(set(), {"cook"})


class TestApplyToAllItems:
    def test_copies_get_checklist_roles(self):
        checklist = _checklist(
            ["cook", "manager"],
            items=[{"id": 1, "title": "A", "roles": ["cashier"]}, {"id": 2, "title": "B", "roles": []}],
        )
        copies = rr.apply_checklist_roles_to_all_items(checklist)
        assert [c["roles"] for c in copies] == [["cook", "manager"], ["cook", "manager"]]

    def test_input_not_mutated(self):
        checklist = _checklist(["cook"], items=[{"id": 1, "title": "A", "roles": ["cashier"]}])
        rr.apply_checklist_roles_to_all_items(checklist)
        assert checklist["items"][0]["roles"] == ["cashier"]

    def test_empty_checklist_roles_clear_overrides(self):
        checklist = _checklist([], items=[{"id": 1, "title": "A", "roles": ["cashier"]}])
        copies = rr.apply_checklist_roles_to_all_items(checklist)
        assert copies[0]["roles"] == []
        assert rr.is_inherited(copies[0])


class TestVisibility:
    def test_checklist_visible_via_checklist_roles(self):
        assert rr.checklist_visible_to(_checklist(["cook"]), {"cook"})

    def test_checklist_visible_via_item_override(self):
        checklist = _checklist(["cook"], items=[{"roles": ["cashier"]}])
        assert rr.checklist_visible_to(checklist, {"cashier"})

    def test_checklist_hidden(self):
        checklist = _checklist(["cook"], items=[{"roles": []}])
        assert not rr.checklist_visible_to(checklist, {"cashier"})

    def test_filter_visible_checklists(self):
        visible = _checklist(["cashier"])
        hidden = _checklist(["cook"])
        open_to_all = _checklist([])
        result = rr.filter_visible_checklists([visible, hidden, open_to_all], {"cashier"})
        assert result == [visible, open_to_all]

    def test_filter_visible_items(self):
        checklist = _checklist(
            ["cook"],
            items=[{"title": "A", "roles": []}, {"title": "B", "roles": ["cashier"]}],
        )
        assert [i["title"] for i in rr.filter_visible_items(checklist, {"cook"})] == ["A"]
        assert [i["title"] for i in rr.filter_visible_items(checklist, {"cashier"})] == ["B"]
