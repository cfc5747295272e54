"""Unit tests for rbac/catalog.py over a real in-memory store.

Covers:
- Action CRUD: create/normalize, duplicate name, invalid category, list filters,
  pagination counters, by-category grouping, rename guard
- Action deletion pulls the action from every role in the same transaction
- Role CRUD: create with initial actions, invalid action ids, duplicate name
  leaves no new row (pre-check and store constraint), update, delete guard
  while accounts hold the role
- System roles (default and admin) cannot be renamed, deactivated or deleted
- Membership: add duplicate -> ConflictError, remove non-member -> NotFoundError
- has_action() permission lookups ignore inactive actions and inactive roles
"""

from __future__ import annotations

import pytest

from core.errors import ConflictError, NotFoundError, ValidationError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _action(services, name="delete_user", category="user_management", description=""):
    return services.action_catalog.create(name, category, description).data


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class TestActionCatalog:
    def test_create_normalizes_name_and_category(self, services):
        envelope = services.action_catalog.create("  Delete_User ", "USER_MANAGEMENT", "Remove accounts")
        action = envelope.data
        assert action.id is not None
        assert action.name == "delete_user"
        assert action.category == "user_management"
        assert action.is_active is True
        assert envelope.meta_data["message"] == "Action created successfully"

    def test_duplicate_name_conflicts(self, services):
        _action(services, "view_reports", "reports")
        with pytest.raises(ConflictError) as exc:
            services.action_catalog.create("VIEW_REPORTS", "reports")
        assert exc.value.code == "action_exists"
        assert services.action_catalog.list().meta_data["totalActions"] == 1

    def test_duplicate_name_past_precheck_hits_unique_constraint(self, services, monkeypatch):
        _action(services)
        monkeypatch.setattr(services.rbac_store, "get_action_by_name", lambda name: None)
        with pytest.raises(ConflictError) as exc:
            _action(services, "DELETE_USER")
        assert exc.value.code == "integrity_conflict"
        assert services.action_catalog.list().meta_data["totalActions"] == 1

    def test_invalid_category_rejected(self, services):
        with pytest.raises(ValidationError) as exc:
            services.action_catalog.create("fly", "aviation")
        assert exc.value.code == "invalid_category"
        assert "reports" in exc.value.details["allowed"]

    def test_get_unknown_action(self, services):
        with pytest.raises(NotFoundError) as exc:
            services.action_catalog.get(999)
        assert exc.value.code == "action_not_found"

    def test_get_lists_assigned_roles(self, services):
        action = _action(services)
        services.role_catalog.create("moderator", action_ids=[action.id])
        data = services.action_catalog.get(action.id).data
        assert data["name"] == "delete_user"
        assert [r["name"] for r in data["assignedRoles"]] == ["moderator"]

    def test_pagination_five_items_limit_two(self, services):
        for i in range(5):
            _action(services, f"action_{i}", "other")

        first = services.action_catalog.list(page=1, limit=2)
        assert len(first.data) == 2
        assert first.meta_data == {"totalActions": 5, "limit": 2, "totalPages": 3, "currentPage": 1}

        last = services.action_catalog.list(page=3, limit=2)
        assert len(last.data) == 1
        assert last.meta_data["currentPage"] == 3

        beyond = services.action_catalog.list(page=4, limit=2)
        assert beyond.data == []
        assert beyond.meta_data["totalPages"] == 3

    def test_list_filters_by_category_and_active(self, services):
        _action(services, "view_reports", "reports")
        _action(services, "export_reports", "reports")
        stale = _action(services, "edit_post", "content_management")
        services.action_catalog.update(stale.id, is_active=False)

        reports = services.action_catalog.list(category="Reports")
        assert {a.name for a in reports.data} == {"view_reports", "export_reports"}
        assert reports.meta_data["totalActions"] == 2

        inactive = services.action_catalog.list(is_active=False)
        assert [a.name for a in inactive.data] == ["edit_post"]

    def test_list_orders_by_category_then_name(self, services):
        _action(services, "zeta", "reports")
        _action(services, "alpha", "reports")
        _action(services, "beta", "analytics")
        names = [a.name for a in services.action_catalog.list().data]
        assert names == ["beta", "alpha", "zeta"]

    def test_list_unknown_category_filter_rejected(self, services):
        with pytest.raises(ValidationError):
            services.action_catalog.list(category="nope")

    def test_update_partial(self, services):
        action = _action(services, description="old")
        updated = services.action_catalog.update(action.id, description="new").data
        assert updated.description == "new"
        assert updated.name == "delete_user"
        assert updated.category == "user_management"

    def test_update_rename_to_existing_conflicts(self, services):
        _action(services, "first_one")
        second = _action(services, "second_one")
        with pytest.raises(ConflictError):
            services.action_catalog.update(second.id, name="FIRST_ONE")
        assert services.action_catalog.get(second.id).data["name"] == "second_one"

    def test_update_same_name_is_allowed(self, services):
        action = _action(services)
        updated = services.action_catalog.update(action.id, name="Delete_User", description="x").data
        assert updated.name == "delete_user"

    def test_update_unknown(self, services):
        with pytest.raises(NotFoundError):
            services.action_catalog.update(404, description="x")

    def test_by_category_groups_active_actions(self, services):
        _action(services, "view_reports", "reports")
        _action(services, "export_reports", "reports")
        _action(services, "edit_post", "content_management")
        hidden = _action(services, "old_thing", "other")
        services.action_catalog.update(hidden.id, is_active=False)

        envelope = services.action_catalog.by_category()
        buckets = {b.category: b for b in envelope.data}
        assert set(buckets) == {"reports", "content_management"}
        assert buckets["reports"].count == 2
        assert [a.name for a in buckets["reports"].actions] == ["export_reports", "view_reports"]
        assert envelope.meta_data == {"totalCategories": 2, "totalActions": 3}

        dumped = envelope.to_dict()["data"][0]
        assert set(dumped) == {"category", "actions", "count"}
        assert set(dumped["actions"][0]) == {"id", "name", "description"}


class TestActionDeletion:
    def test_delete_prunes_every_role(self, services):
        doomed = _action(services, "delete_user")
        kept = _action(services, "view_reports", "reports")
        r1 = services.role_catalog.create("moderator", action_ids=[doomed.id, kept.id]).data
        r2 = services.role_catalog.create("auditor", action_ids=[doomed.id]).data

        envelope = services.action_catalog.delete(doomed.id)
        assert envelope.meta_data["rolesUpdated"] == 2
        assert envelope.meta_data["message"] == "Action deleted successfully and removed from all roles"
        assert envelope.data == {"actionId": doomed.id, "name": "delete_user"}

        assert services.role_catalog.get(r1.id).data.action_ids == [kept.id]
        assert services.role_catalog.get(r2.id).data.action_ids == []
        with pytest.raises(NotFoundError):
            services.action_catalog.get(doomed.id)

    def test_delete_unassigned_action(self, services):
        action = _action(services)
        assert services.action_catalog.delete(action.id).meta_data["rolesUpdated"] == 0

    def test_delete_unknown(self, services):
        with pytest.raises(NotFoundError):
            services.action_catalog.delete(12345)


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class TestRoleCatalog:
    def test_default_roles_are_seeded(self, services):
        names = {r.name for r in services.role_catalog.list().data}
        assert {"user", "admin"} <= names

    def test_create_and_get_round_trip(self, services):
        a1 = _action(services, "delete_user")
        a2 = _action(services, "view_reports", "reports")
        created = services.role_catalog.create("Moderator", "Keeps order", [a1.id, a2.id, a1.id])
        role = created.data
        assert created.meta_data["message"] == "Role created successfully"
        assert role.name == "moderator"
        assert role.action_ids == sorted([a1.id, a2.id])

        fetched = services.role_catalog.get(role.id).data
        assert fetched.name == "moderator"
        assert fetched.description == "Keeps order"
        assert {a.name for a in fetched.actions} == {"delete_user", "view_reports"}

    def test_duplicate_name_conflicts_without_new_row(self, services):
        services.role_catalog.create("editor")
        before = services.role_catalog.list().meta_data["totalRoles"]
        with pytest.raises(ConflictError) as exc:
            services.role_catalog.create("EDITOR")
        assert exc.value.code == "role_exists"
        assert services.role_catalog.list().meta_data["totalRoles"] == before

    def test_create_with_invalid_action_ids(self, services):
        real = _action(services)
        with pytest.raises(ValidationError) as exc:
            services.role_catalog.create("broken", action_ids=[real.id, 998, 999])
        assert exc.value.code == "invalid_action_ids"
        assert exc.value.details["invalid_ids"] == [998, 999]
        assert all(r.name != "broken" for r in services.role_catalog.list(limit=100).data)

    def test_get_unknown(self, services):
        with pytest.raises(NotFoundError) as exc:
            services.role_catalog.get(999)
        assert exc.value.code == "role_not_found"

    def test_list_paginates_newest_first(self, services):
        for name in ("first", "second", "third"):
            services.role_catalog.create(name)
        page = services.role_catalog.list(page=1, limit=2)
        assert [r.name for r in page.data] == ["third", "second"]
        assert page.meta_data == {"totalRoles": 5, "limit": 2, "totalPages": 3, "currentPage": 1}

    def test_list_filters_inactive(self, services):
        role = services.role_catalog.create("retired").data
        services.role_catalog.update(role.id, is_active=False)
        inactive = services.role_catalog.list(is_active=False)
        assert [r.name for r in inactive.data] == ["retired"]

    def test_update_fields(self, services):
        role = services.role_catalog.create("editor", "old").data
        updated = services.role_catalog.update(role.id, name="Chief_Editor", description="new").data
        assert updated.name == "chief_editor"
        assert updated.description == "new"

    def test_update_rename_conflict(self, services):
        role = services.role_catalog.create("editor").data
        with pytest.raises(ConflictError):
            services.role_catalog.update(role.id, name="admin")

    def test_delete_unused_role(self, services):
        role = services.role_catalog.create("temp").data
        envelope = services.role_catalog.delete(role.id)
        assert envelope.data == {"roleId": role.id, "name": "temp"}
        with pytest.raises(NotFoundError):
            services.role_catalog.get(role.id)

    def test_delete_role_in_use_is_refused(self, services, verified):
        account = verified("ada@example.com")
        editor = services.role_catalog.create("editor").data
        services.lifecycle.assign_role(account.id, editor.id)
        with pytest.raises(ConflictError) as exc:
            services.role_catalog.delete(editor.id)
        assert exc.value.code == "role_in_use"
        assert exc.value.details["accounts"] == 1
        assert services.role_catalog.get(editor.id).data.name == "editor"

    def test_duplicate_name_past_precheck_hits_unique_constraint(self, services, monkeypatch):
        services.role_catalog.create("mods")
        before = services.role_catalog.list().meta_data["totalRoles"]
        monkeypatch.setattr(services.rbac_store, "get_role_by_name", lambda name: None)
        with pytest.raises(ConflictError) as exc:
            services.role_catalog.create("MODS")
        assert exc.value.code == "integrity_conflict"
        assert services.role_catalog.list().meta_data["totalRoles"] == before

    def test_delete_keeps_actions(self, services):
        action = _action(services)
        role = services.role_catalog.create("temp", action_ids=[action.id]).data
        services.role_catalog.delete(role.id)
        assert services.action_catalog.get(action.id).data["name"] == "delete_user"


class TestSystemRoles:
    @pytest.mark.parametrize("name", ["user", "admin"])
    def test_rename_refused(self, services, name):
        role = services.rbac_store.get_role_by_name(name)
        with pytest.raises(ConflictError) as exc:
            services.role_catalog.update(role.id, name="superuser")
        assert exc.value.code == "system_role"
        assert services.role_catalog.get(role.id).data.name == name

    @pytest.mark.parametrize("name", ["user", "admin"])
    def test_deactivate_refused(self, services, name):
        role = services.rbac_store.get_role_by_name(name)
        with pytest.raises(ConflictError) as exc:
            services.role_catalog.update(role.id, is_active=False)
        assert exc.value.code == "system_role"
        assert services.role_catalog.get(role.id).data.is_active is True

    def test_delete_unused_default_role_refused(self, services):
        role = services.rbac_store.get_role_by_name("user")
        assert services.account_store.count_by_role(role.id) == 0
        with pytest.raises(ConflictError) as exc:
            services.role_catalog.delete(role.id)
        assert exc.value.code == "system_role"

        registered = services.lifecycle.register("Ada", "Lovelace", "ada@example.com", "secret123").data
        assert registered.role == "user"

    def test_description_still_editable(self, services):
        role = services.rbac_store.get_role_by_name("admin")
        updated = services.role_catalog.update(role.id, name="ADMIN", description="Full access").data
        assert updated.name == "admin"
        assert updated.description == "Full access"


class TestRoleMembership:
    def test_add_then_duplicate_conflicts(self, services):
        action = _action(services)
        role = services.role_catalog.create("moderator").data

        added = services.role_catalog.add_action(role.id, action.id)
        assert added.data.action_ids == [action.id]

        with pytest.raises(ConflictError) as exc:
            services.role_catalog.add_action(role.id, action.id)
        assert exc.value.code == "action_already_in_role"
        assert services.role_catalog.get(role.id).data.action_ids == [action.id]

    def test_add_unknown_action_or_role(self, services):
        action = _action(services)
        role = services.role_catalog.create("moderator").data
        with pytest.raises(NotFoundError):
            services.role_catalog.add_action(role.id, 999)
        with pytest.raises(NotFoundError):
            services.role_catalog.add_action(999, action.id)

    def test_remove_member(self, services):
        action = _action(services)
        role = services.role_catalog.create("moderator", action_ids=[action.id]).data
        removed = services.role_catalog.remove_action(role.id, action.id)
        assert removed.data.action_ids == []
        assert removed.meta_data["message"] == "Action removed from role successfully"

    def test_remove_non_member_not_found(self, services):
        action = _action(services)
        role = services.role_catalog.create("moderator").data
        with pytest.raises(NotFoundError) as exc:
            services.role_catalog.remove_action(role.id, action.id)
        assert exc.value.code == "action_not_in_role"

    def test_remove_from_unknown_role(self, services):
        with pytest.raises(NotFoundError) as exc:
            services.role_catalog.remove_action(999, 1)
        assert exc.value.code == "role_not_found"


class TestHasAction:
    def test_granted_action(self, services):
        action = _action(services, "view_reports", "reports")
        role = services.role_catalog.create("analyst", action_ids=[action.id]).data
        assert services.role_catalog.has_action(role.id, "VIEW_REPORTS") is True
        assert services.role_catalog.has_action(role.id, "delete_user") is False

    def test_inactive_action_grants_nothing(self, services):
        action = _action(services, "view_reports", "reports")
        role = services.role_catalog.create("analyst", action_ids=[action.id]).data
        services.action_catalog.update(action.id, is_active=False)
        assert services.role_catalog.has_action(role.id, "view_reports") is False

    def test_inactive_role_grants_nothing(self, services):
        action = _action(services, "view_reports", "reports")
        role = services.role_catalog.create("analyst", action_ids=[action.id]).data
        services.role_catalog.update(role.id, is_active=False)
        assert services.role_catalog.has_action(role.id, "view_reports") is False

    def test_no_role(self, services):
        assert services.role_catalog.has_action(None, "anything") is False
