"""
rbac/models.py -- Domain dataclasses for the authorization model.

Pattern: Data class (pure data container). rbac/store.py maps rows onto these;
rbac/catalog.py enforces the rules. to_dict() is the outward representation
used in API envelopes.

A Role references Actions by id (role_actions link table). The Action
lifecycle never depends on a Role: deleting an Action prunes it from every
role, deleting a Role leaves its Actions alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ActionCategory(str, Enum):
    user_management = "user_management"
    content_management = "content_management"
    analytics = "analytics"
    settings = "settings"
    reports = "reports"
    other = "other"

    @classmethod
    def parse(cls, value: str) -> "ActionCategory":
        """Case-insensitive lookup. Raises ValueError for unknown categories."""
        return cls(value.strip().lower())


def normalize_name(name: str) -> str:
    """Names of roles and actions are unique after strip + lower-case."""
    return name.strip().lower()


@dataclass
class Action:
    """An atomic named permission, e.g. "delete_user" in user_management."""

    name: str
    category: str
    description: str = ""
    id: Optional[int] = None
    is_active: bool = True
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "isActive": self.is_active,
            "createdAt": self.created_at,
        }

    def to_summary(self) -> dict[str, Any]:
        """Trimmed record used inside category buckets."""
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass
class Role:
    """A named bundle of Actions.

    action_ids is the stored membership (sorted). actions is the resolved
    view, filled in by the store when a role is read "expanded".
    """

    name: str
    description: str = ""
    id: Optional[int] = None
    action_ids: list[int] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)
    is_active: bool = True
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "actions": [a.to_dict() for a in self.actions],
            "isActive": self.is_active,
            "createdAt": self.created_at,
        }

    def to_summary(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "description": self.description}


@dataclass
class CategoryBucket:
    """One group of active actions sharing a category."""

    category: str
    actions: list[Action] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.actions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "actions": [a.to_summary() for a in self.actions],
            "count": self.count,
        }
