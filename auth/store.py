"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper (same as rbac/store.py).
AccountStore is the repository; _row_to_account is the mapper.
Route and lifecycle code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  hashed_password and verification_code are only ever compared inside the
  store or by bcrypt; Account.to_dict() never exposes them.

Integrity:
  accounts.email and accounts.referral_code are UNIQUE. accounts.role_id is a
  FOREIGN KEY to roles.id without ON DELETE, so the store itself refuses to
  delete a role that is still assigned. RoleCatalog.delete() checks first to
  give a friendly error; the constraint is what guarantees it.

  consume_verification_code() clears the code and sets is_verified in one
  conditional UPDATE (WHERE id = ? AND verification_code = ? AND
  is_verified = 0). Two concurrent verifications of the same code cannot both
  see rowcount == 1, and a failed write leaves the code usable.

Layer rule: no imports from api/, rbac/, or notify/. The roles table is read
through the shared metadata only to resolve role names.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, String, Table, Text, func, select

from auth.models import Account
from core.database import Database

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


def _define_accounts(db: Database) -> Table:
    md = db.metadata
    if "accounts" in md.tables:
        return md.tables["accounts"]
    return Table(
        "accounts",
        md,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("firstname", String(100), nullable=False, server_default=""),
        Column("lastname", String(100), nullable=False, server_default=""),
        Column("email", String(255), nullable=False, unique=True),  # lower-cased
        Column("phone", String(30)),
        Column("hashed_password", Text, nullable=False),
        Column("role_id", Integer, ForeignKey("roles.id"), index=True),
        Column("referral_code", String(32), nullable=False, unique=True),
        Column("referred_by", String(32)),
        Column("verification_code", String(64)),  # SHA-256 hex, NULL once consumed
        Column("verification_code_issued_at", String(32)),
        Column("is_verified", Integer, nullable=False, server_default="0"),
        Column("created_at", String(32), nullable=False),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore(db)
        account = Account(email="a@x.com", role_id=1, referral_code="a7kq2")
        account.set_password("pw12345")
        account_id = store.create_account(account)
        store.get_by_email("a@x.com")
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.engine = db.engine
        self._accounts = _define_accounts(db)

    def _select(self):
        """accounts LEFT JOIN roles, exposing the resolved role name as role_name."""
        roles = self.db.metadata.tables["roles"]
        return select(self._accounts, roles.c.name.label("role_name")).select_from(
            self._accounts.outerjoin(roles, roles.c.id == self._accounts.c.role_id)
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def count(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(self._accounts)).scalar() or 0

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email or referral code is
        already taken, or role_id does not reference an existing role.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                self._accounts.insert().values(
                    firstname=account.firstname,
                    lastname=account.lastname,
                    email=account.email,
                    phone=account.phone,
                    hashed_password=account.hashed_password,
                    role_id=account.role_id,
                    referral_code=account.referral_code,
                    referred_by=account.referred_by,
                    verification_code=account.verification_code,
                    verification_code_issued_at=_now_iso() if account.verification_code else None,
                    is_verified=1 if account.is_verified else 0,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(self._select().where(self._accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by exact (already normalized) email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(self._select().where(self._accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(self._accounts.c.id).where(self._accounts.c.email == email)).fetchone()
        return row is not None

    def referral_code_exists(self, code: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(self._accounts.c.id).where(self._accounts.c.referral_code == code)
            ).fetchone()
        return row is not None

    def list_accounts(self, offset: int, limit: int) -> tuple[list[Account], int]:
        """Return one page of accounts (newest first) and the total count."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                self._select()
                .order_by(self._accounts.c.created_at.desc(), self._accounts.c.id.desc())
                .offset(offset)
                .limit(limit)
            ).fetchall()
            total = conn.execute(select(func.count()).select_from(self._accounts)).scalar() or 0
        return [_row_to_account(r) for r in rows], total

    def count_by_role(self, role_id: int) -> int:
        """Number of accounts currently assigned role_id. Used by the role deletion guard."""
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(self._accounts).where(self._accounts.c.role_id == role_id)
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Verification code
    # ------------------------------------------------------------------

    def find_by_verification_code(self, email: str, digest: str) -> Account | None:
        """Return the account matching both email and stored code digest, without consuming it."""
        with self.engine.connect() as conn:
            row = conn.execute(
                self._select().where(
                    (self._accounts.c.email == email) & (self._accounts.c.verification_code == digest)
                )
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def consume_verification_code(self, account_id: int, digest: str) -> bool:
        """Null out the stored code and mark the account verified, if the code still matches.

        Single use, permanent. Both columns change in the same statement.

        Returns True if this call consumed the code, False if it was already
        gone (consumed concurrently, replaced by a resend, or already verified).
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                self._accounts.update()
                .where(
                    (self._accounts.c.id == account_id)
                    & (self._accounts.c.verification_code == digest)
                    & (self._accounts.c.is_verified == 0)
                )
                .values(verification_code=None, verification_code_issued_at=None, is_verified=1)
            )
            conn.commit()
        return result.rowcount > 0

    def set_verification_code(self, account_id: int, digest: str) -> None:
        """Replace the pending code (resend). The previous code stops matching immediately."""
        with self.engine.connect() as conn:
            conn.execute(
                self._accounts.update()
                .where(self._accounts.c.id == account_id)
                .values(verification_code=digest, verification_code_issued_at=_now_iso())
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_account(self, account_id: int, **fields) -> bool:
        """Update mutable fields (firstname, lastname, phone, role_id, hashed_password).

        Returns True if a row was updated, False if account_id was not found.
        """
        with self.engine.connect() as conn:
            result = conn.execute(self._accounts.update().where(self._accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_account(self, account_id: int) -> bool:
        """Permanently delete an account. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(self._accounts.delete().where(self._accounts.c.id == account_id))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        firstname=row.firstname or "",
        lastname=row.lastname or "",
        email=row.email,
        phone=row.phone,
        hashed_password=row.hashed_password,
        role_id=row.role_id,
        role=row.role_name,
        referral_code=row.referral_code,
        referred_by=row.referred_by,
        verification_code=row.verification_code,
        verification_code_issued_at=row.verification_code_issued_at,
        is_verified=bool(row.is_verified),
        created_at=row.created_at,
    )
