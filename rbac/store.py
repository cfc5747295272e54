"""
rbac/store.py -- SQLAlchemy Core persistence layer for roles and actions.

Pattern: Repository + Data Mapper (same as auth/store.py).
RBACStore is the repository; _row_to_action / _row_to_role are the mappers.
Catalog and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Integrity:
  roles.name and actions.name are UNIQUE. role_actions has the composite
  primary key (role_id, action_id), so a role can hold an action at most
  once. Both foreign keys cascade on delete, and delete_action() also pulls
  memberships explicitly inside the same transaction so the pruned-role
  count can be reported. IntegrityError from any of these constraints is
  left to propagate -- rbac/catalog.py maps it to ConflictError.

Layer rule: no imports from api/, auth/, or notify/.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text, func, select

from core.database import Database
from rbac.models import Action, CategoryBucket, Role

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


def _define_tables(db: Database) -> tuple[Table, Table, Table]:
    """Register roles, actions and role_actions on the shared metadata (once)."""
    md = db.metadata
    if "roles" in md.tables:
        return md.tables["roles"], md.tables["actions"], md.tables["role_actions"]

    roles = Table(
        "roles",
        md,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("name", String(30), nullable=False, unique=True),  # lower-cased
        Column("description", Text, nullable=False, server_default=""),
        Column("is_active", Integer, nullable=False, server_default="1"),
        Column("created_at", String(32), nullable=False),
    )
    actions = Table(
        "actions",
        md,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("name", String(50), nullable=False, unique=True),  # lower-cased
        Column("description", Text, nullable=False, server_default=""),
        Column("category", String(30), nullable=False, index=True),
        Column("is_active", Integer, nullable=False, server_default="1"),
        Column("created_at", String(32), nullable=False),
    )
    role_actions = Table(
        "role_actions",
        md,
        Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        Column("action_id", Integer, ForeignKey("actions.id", ondelete="CASCADE"), primary_key=True),
    )
    return roles, actions, role_actions


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RBACStore:
    """Repository for Role and Action entities and their membership links.

    Usage:
        store = RBACStore(db)
        db.create_all()
        action_id = store.create_action(Action(name="delete_user", category="user_management"))
        role_id = store.create_role(Role(name="moderator"), action_ids=[action_id])
        role = store.get_role(role_id)   # actions resolved
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.engine = db.engine
        self._roles, self._actions, self._role_actions = _define_tables(db)

    def ensure_roles(self, names: Iterable[str]) -> None:
        """Seed the given roles if they do not exist yet. Idempotent -- safe on every startup."""
        with self.engine.begin() as conn:
            existing = set(conn.execute(select(self._roles.c.name)).scalars())
            for name in names:
                if name not in existing:
                    conn.execute(self._roles.insert().values(name=name, description="", created_at=_now_iso()))
                    existing.add(name)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def create_action(self, action: Action) -> int:
        """Insert a new action and return its ID.

        Raises sqlalchemy.exc.IntegrityError if the name already exists.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                self._actions.insert().values(
                    name=action.name,
                    description=action.description,
                    category=action.category,
                    is_active=1 if action.is_active else 0,
                    created_at=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def get_action(self, action_id: int) -> Optional[Action]:
        with self.engine.connect() as conn:
            row = conn.execute(self._actions.select().where(self._actions.c.id == action_id)).fetchone()
        return _row_to_action(row) if row is not None else None

    def get_action_by_name(self, name: str) -> Optional[Action]:
        with self.engine.connect() as conn:
            row = conn.execute(self._actions.select().where(self._actions.c.name == name)).fetchone()
        return _row_to_action(row) if row is not None else None

    def existing_action_ids(self, action_ids: Iterable[int]) -> set[int]:
        """Return the subset of action_ids that exist in the catalog."""
        ids = set(action_ids)
        if not ids:
            return set()
        with self.engine.connect() as conn:
            rows = conn.execute(select(self._actions.c.id).where(self._actions.c.id.in_(ids))).scalars()
            return set(rows)

    def list_actions(
        self,
        offset: int,
        limit: int,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> tuple[list[Action], int]:
        """Return one page of actions (category asc, name asc) and the total matching count."""
        conditions = []
        if category is not None:
            conditions.append(self._actions.c.category == category)
        if is_active is not None:
            conditions.append(self._actions.c.is_active == (1 if is_active else 0))
        query = self._actions.select().where(*conditions)
        count_query = select(func.count()).select_from(self._actions).where(*conditions)
        with self.engine.connect() as conn:
            rows = conn.execute(
                query.order_by(self._actions.c.category, self._actions.c.name).offset(offset).limit(limit)
            ).fetchall()
            total = conn.execute(count_query).scalar() or 0
        return [_row_to_action(r) for r in rows], total

    def update_action(self, action_id: int, **fields) -> bool:
        """Update mutable fields (name, description, category, is_active).

        Returns True if a row was updated, False if action_id was not found.
        Raises IntegrityError on a rename to an existing name.
        """
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if not fields:
            return self.get_action(action_id) is not None
        with self.engine.begin() as conn:
            result = conn.execute(self._actions.update().where(self._actions.c.id == action_id).values(**fields))
        return result.rowcount > 0

    def delete_action(self, action_id: int) -> int:
        """Pull the action from every role, then delete it -- one transaction.

        Returns the number of roles the action was removed from. No role can
        observe a membership pointing at a deleted action: both statements
        commit together or not at all.
        """
        with self.engine.begin() as conn:
            pulled = conn.execute(self._role_actions.delete().where(self._role_actions.c.action_id == action_id))
            conn.execute(self._actions.delete().where(self._actions.c.id == action_id))
        return pulled.rowcount

    def roles_with_action(self, action_id: int) -> list[Role]:
        """Reverse lookup: roles whose membership includes action_id (name order)."""
        query = (
            self._roles.select()
            .join(self._role_actions, self._role_actions.c.role_id == self._roles.c.id)
            .where(self._role_actions.c.action_id == action_id)
            .order_by(self._roles.c.name)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_role(r) for r in rows]

    def active_actions_by_category(self) -> list[CategoryBucket]:
        """Group active actions by category; buckets sorted by category, actions by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                self._actions.select()
                .where(self._actions.c.is_active == 1)
                .order_by(self._actions.c.category, self._actions.c.name)
            ).fetchall()
        buckets: dict[str, CategoryBucket] = {}
        for row in rows:
            action = _row_to_action(row)
            buckets.setdefault(action.category, CategoryBucket(category=action.category)).actions.append(action)
        return list(buckets.values())

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role, action_ids: Iterable[int] = ()) -> int:
        """Insert a role together with its initial memberships and return its ID.

        Role row and link rows are written in one transaction, so a failure
        on any link leaves no partial role behind.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                self._roles.insert().values(
                    name=role.name,
                    description=role.description,
                    is_active=1 if role.is_active else 0,
                    created_at=_now_iso(),
                )
            )
            role_id = result.inserted_primary_key[0]
            links = [{"role_id": role_id, "action_id": aid} for aid in sorted(set(action_ids))]
            if links:
                conn.execute(self._role_actions.insert(), links)
        return role_id

    def get_role(self, role_id: int, expand: bool = True) -> Optional[Role]:
        """Fetch a role by ID; with expand=True its actions are resolved."""
        with self.engine.connect() as conn:
            row = conn.execute(self._roles.select().where(self._roles.c.id == role_id)).fetchone()
        if row is None:
            return None
        role = _row_to_role(row)
        self._attach_actions([role], expand)
        return role

    def get_role_by_name(self, name: str) -> Optional[Role]:
        with self.engine.connect() as conn:
            row = conn.execute(self._roles.select().where(self._roles.c.name == name)).fetchone()
        if row is None:
            return None
        role = _row_to_role(row)
        self._attach_actions([role], expand=False)
        return role

    def list_roles(self, offset: int, limit: int, is_active: Optional[bool] = None) -> tuple[list[Role], int]:
        """Return one page of roles (newest first, actions resolved) and the total count."""
        conditions = []
        if is_active is not None:
            conditions.append(self._roles.c.is_active == (1 if is_active else 0))
        with self.engine.connect() as conn:
            rows = conn.execute(
                self._roles.select()
                .where(*conditions)
                .order_by(self._roles.c.created_at.desc(), self._roles.c.id.desc())
                .offset(offset)
                .limit(limit)
            ).fetchall()
            total = conn.execute(select(func.count()).select_from(self._roles).where(*conditions)).scalar() or 0
        roles = [_row_to_role(r) for r in rows]
        self._attach_actions(roles, expand=True)
        return roles, total

    def update_role(self, role_id: int, **fields) -> bool:
        """Update mutable fields (name, description, is_active). False if role_id was not found."""
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        if not fields:
            return self.get_role(role_id, expand=False) is not None
        with self.engine.begin() as conn:
            result = conn.execute(self._roles.update().where(self._roles.c.id == role_id).values(**fields))
        return result.rowcount > 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role and its membership links. Does NOT check account references --
        callers must guard first; the accounts.role_id foreign key rejects the delete otherwise.
        """
        with self.engine.begin() as conn:
            conn.execute(self._role_actions.delete().where(self._role_actions.c.role_id == role_id))
            result = conn.execute(self._roles.delete().where(self._roles.c.id == role_id))
        return result.rowcount > 0

    def add_role_action(self, role_id: int, action_id: int) -> None:
        """Link an action to a role. Raises IntegrityError if the link already exists."""
        with self.engine.begin() as conn:
            conn.execute(self._role_actions.insert().values(role_id=role_id, action_id=action_id))

    def remove_role_action(self, role_id: int, action_id: int) -> bool:
        """Unlink an action from a role. Returns False if it was not a member."""
        with self.engine.begin() as conn:
            result = conn.execute(
                self._role_actions.delete().where(
                    (self._role_actions.c.role_id == role_id) & (self._role_actions.c.action_id == action_id)
                )
            )
        return result.rowcount > 0

    def role_has_action(self, role_id: int, action_name: str) -> bool:
        """True if an active role holds an active action with this name. Used for permission checks."""
        query = (
            select(func.count())
            .select_from(
                self._role_actions.join(self._actions, self._actions.c.id == self._role_actions.c.action_id).join(
                    self._roles, self._roles.c.id == self._role_actions.c.role_id
                )
            )
            .where(
                (self._role_actions.c.role_id == role_id)
                & (self._actions.c.name == action_name)
                & (self._actions.c.is_active == 1)
                & (self._roles.c.is_active == 1)
            )
        )
        with self.engine.connect() as conn:
            return (conn.execute(query).scalar() or 0) > 0

    def _attach_actions(self, roles: list[Role], expand: bool) -> None:
        """Fill action_ids (and actions when expand=True) for the given roles in one query."""
        if not roles:
            return
        by_id = {r.id: r for r in roles}
        query = (
            select(self._role_actions.c.role_id, self._actions)
            .join(self._actions, self._actions.c.id == self._role_actions.c.action_id)
            .where(self._role_actions.c.role_id.in_(list(by_id)))
            .order_by(self._actions.c.name)
        )
        grouped: dict[int, list[Action]] = defaultdict(list)
        with self.engine.connect() as conn:
            for row in conn.execute(query).fetchall():
                grouped[row.role_id].append(_row_to_action(row))
        for role_id, role in by_id.items():
            actions = grouped.get(role_id, [])
            role.action_ids = sorted(a.id for a in actions)
            if expand:
                role.actions = actions


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_action(row) -> Action:
    return Action(
        id=row.id,
        name=row.name,
        description=row.description or "",
        category=row.category,
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description or "",
        is_active=bool(row.is_active),
        created_at=row.created_at,
    )
