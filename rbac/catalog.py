"""
rbac/catalog.py -- Action and Role catalogs (the admin-facing RBAC services).

Each public method is one operation: it validates, delegates persistence to
RBACStore, and returns an Envelope(data, meta_data). Failures are raised as
the core/errors.py taxonomy; @operation() maps store IntegrityError to
ConflictError and anything unexpected to TransientError.

Uniqueness pre-checks (get_*_by_name before insert/rename) only exist to
produce a friendly message. The UNIQUE constraints in rbac/store.py are the
source of truth -- a concurrent duplicate that slips past the pre-check
still fails, as a ConflictError.

RoleCatalog needs to know whether any account holds a role before deleting
it. That comes in through the RoleAssignments protocol so rbac/ never
imports auth/.

System roles (the configured default and admin roles) are looked up by name
at registration and on every admin request. They cannot be renamed,
deactivated or deleted.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from core.errors import ConflictError, NotFoundError, ValidationError, operation
from core.models import Envelope, PageRequest, page_meta
from rbac.models import Action, ActionCategory, Role, normalize_name
from rbac.store import RBACStore

logger = logging.getLogger("rolegate.rbac")


class RoleAssignments(Protocol):
    def count_by_role(self, role_id: int) -> int: ...


def _parse_category(category: str) -> str:
    try:
        return ActionCategory.parse(category).value
    except ValueError:
        allowed = ", ".join(c.value for c in ActionCategory)
        raise ValidationError(
            f"Invalid category '{category}'. Allowed: {allowed}",
            code="invalid_category",
            details={"allowed": [c.value for c in ActionCategory]},
        ) from None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class ActionCatalog:
    def __init__(self, store: RBACStore) -> None:
        self._store = store

    def _require(self, action_id: int) -> Action:
        action = self._store.get_action(action_id)
        if action is None:
            raise NotFoundError("Action not found", code="action_not_found", details={"action_id": action_id})
        return action

    @operation("Create Action")
    def create(self, name: str, category: str, description: str = "") -> Envelope:
        normalized = normalize_name(name)
        if self._store.get_action_by_name(normalized) is not None:
            raise ConflictError(f"Action '{name}' already exists", code="action_exists")
        action = Action(name=normalized, category=_parse_category(category), description=description)
        action_id = self._store.create_action(action)
        logger.info("Action created: %s (id=%d, category=%s)", normalized, action_id, action.category)
        return Envelope(self._store.get_action(action_id), {"message": "Action created successfully"})

    @operation("Get Actions")
    def list(
        self,
        page: int = 1,
        limit: int = 10,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Envelope:
        req = PageRequest(page, limit)
        cat = _parse_category(category) if category else None
        actions, total = self._store.list_actions(req.offset, req.limit, category=cat, is_active=is_active)
        return Envelope(actions, page_meta("totalActions", total, req))

    @operation("Get Action")
    def get(self, action_id: int) -> Envelope:
        action = self._require(action_id)
        data = action.to_dict()
        data["assignedRoles"] = [r.to_summary() for r in self._store.roles_with_action(action_id)]
        return Envelope(data, {})

    @operation("Update Action")
    def update(
        self,
        action_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Envelope:
        action = self._require(action_id)
        fields: dict = {}
        if name:
            normalized = normalize_name(name)
            if normalized != action.name:
                if self._store.get_action_by_name(normalized) is not None:
                    raise ConflictError(f"Action '{name}' already exists", code="action_exists")
                fields["name"] = normalized
        if description is not None:
            fields["description"] = description
        if category is not None:
            fields["category"] = _parse_category(category)
        if is_active is not None:
            fields["is_active"] = is_active
        self._store.update_action(action_id, **fields)
        return Envelope(self._store.get_action(action_id), {"message": "Action updated successfully"})

    @operation("Delete Action")
    def delete(self, action_id: int) -> Envelope:
        action = self._require(action_id)
        pruned = self._store.delete_action(action_id)
        logger.info("Action deleted: %s (id=%d), pulled from %d role(s)", action.name, action_id, pruned)
        return Envelope(
            {"actionId": action_id, "name": action.name},
            {"message": "Action deleted successfully and removed from all roles", "rolesUpdated": pruned},
        )

    @operation("Get Actions By Category")
    def by_category(self) -> Envelope:
        buckets = self._store.active_actions_by_category()
        return Envelope(
            buckets,
            {"totalCategories": len(buckets), "totalActions": sum(b.count for b in buckets)},
        )


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleCatalog:
    def __init__(self, store: RBACStore, assignments: RoleAssignments, system_roles: Iterable[str] = ()) -> None:
        self._store = store
        self._assignments = assignments
        self._system_roles = frozenset(normalize_name(n) for n in system_roles)

    def _require(self, role_id: int, expand: bool = False) -> Role:
        role = self._store.get_role(role_id, expand=expand)
        if role is None:
            raise NotFoundError("Role not found", code="role_not_found", details={"role_id": role_id})
        return role

    def _guard_system_role(self, role: Role, change: str) -> None:
        if role.name in self._system_roles:
            raise ConflictError(
                f"Cannot {change} system role '{role.name}'",
                code="system_role",
                details={"role_id": role.id, "name": role.name},
            )

    @operation("Create Role")
    def create(self, name: str, description: str = "", action_ids: Optional[Iterable[int]] = None) -> Envelope:
        normalized = normalize_name(name)
        if self._store.get_role_by_name(normalized) is not None:
            raise ConflictError(f"Role '{name}' already exists", code="role_exists")
        ids = list(action_ids or [])
        if ids:
            missing = sorted(set(ids) - self._store.existing_action_ids(ids))
            if missing:
                raise ValidationError(
                    "One or more action IDs are invalid",
                    code="invalid_action_ids",
                    details={"invalid_ids": missing},
                )
        role_id = self._store.create_role(Role(name=normalized, description=description), action_ids=ids)
        logger.info("Role created: %s (id=%d, %d action(s))", normalized, role_id, len(set(ids)))
        return Envelope(self._store.get_role(role_id), {"message": "Role created successfully"})

    @operation("Get Roles")
    def list(self, page: int = 1, limit: int = 10, is_active: Optional[bool] = None) -> Envelope:
        req = PageRequest(page, limit)
        roles, total = self._store.list_roles(req.offset, req.limit, is_active=is_active)
        return Envelope(roles, page_meta("totalRoles", total, req))

    @operation("Get Role")
    def get(self, role_id: int) -> Envelope:
        return Envelope(self._require(role_id, expand=True), {})

    @operation("Update Role")
    def update(
        self,
        role_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> Envelope:
        role = self._require(role_id)
        fields: dict = {}
        if name:
            normalized = normalize_name(name)
            if normalized != role.name:
                self._guard_system_role(role, "rename")
                if self._store.get_role_by_name(normalized) is not None:
                    raise ConflictError(f"Role '{name}' already exists", code="role_exists")
                fields["name"] = normalized
        if description is not None:
            fields["description"] = description
        if is_active is not None:
            if not is_active:
                self._guard_system_role(role, "deactivate")
            fields["is_active"] = is_active
        self._store.update_role(role_id, **fields)
        return Envelope(self._store.get_role(role_id), {"message": "Role updated successfully"})

    @operation("Delete Role")
    def delete(self, role_id: int) -> Envelope:
        role = self._require(role_id)
        self._guard_system_role(role, "delete")
        in_use = self._assignments.count_by_role(role_id)
        if in_use:
            raise ConflictError(
                "Cannot delete role that is assigned to users",
                code="role_in_use",
                details={"role_id": role_id, "accounts": in_use},
            )
        self._store.delete_role(role_id)
        logger.info("Role deleted: %s (id=%d)", role.name, role_id)
        return Envelope({"roleId": role_id, "name": role.name}, {"message": "Role deleted successfully"})

    @operation("Add Action to Role")
    def add_action(self, role_id: int, action_id: int) -> Envelope:
        role = self._require(role_id)
        action = self._store.get_action(action_id)
        if action is None:
            raise NotFoundError("Action not found", code="action_not_found", details={"action_id": action_id})
        if action_id in role.action_ids:
            raise ConflictError("Action already exists in this role", code="action_already_in_role")
        self._store.add_role_action(role_id, action_id)
        return Envelope(
            self._store.get_role(role_id),
            {"message": f"Action '{action.name}' added to role '{role.name}'"},
        )

    @operation("Remove Action from Role")
    def remove_action(self, role_id: int, action_id: int) -> Envelope:
        role = self._require(role_id)
        if action_id not in role.action_ids or not self._store.remove_role_action(role_id, action_id):
            raise NotFoundError("Action not found in this role", code="action_not_in_role")
        return Envelope(self._store.get_role(role_id), {"message": "Action removed from role successfully"})

    def has_action(self, role_id: int | None, action_name: str) -> bool:
        """Permission check used by the HTTP layer. Inactive roles and inactive actions grant nothing."""
        if role_id is None:
            return False
        return self._store.role_has_action(role_id, normalize_name(action_name))
