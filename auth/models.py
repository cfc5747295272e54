"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. The only behaviour is set_password(), the explicit
hash-on-change step for the password field; stores and the lifecycle
service do the rest.

Layer rule: no imports from api/, rbac/, or notify/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from auth.tokens import hash_password, verify_password

PENDING = "pending"
VERIFIED = "verified"


@dataclass
class Account:
    """An end-user identity.

    email is stored lower-cased and is unique across accounts.

    hashed_password is a bcrypt digest and is never part of to_dict(). Set it
    through set_password(), never by assigning plaintext.

    role_id is a typed reference to roles.id. role is the resolved role name,
    filled in by the store on reads; it is not persisted on the account row.

    verification_code holds the SHA-256 digest of the pending one-time code,
    or None once the code has been consumed.
    """

    email: str
    firstname: str = ""
    lastname: str = ""
    phone: str | None = None
    id: int | None = None
    hashed_password: str | None = None
    role_id: int | None = None
    role: str | None = None
    referral_code: str | None = None
    referred_by: str | None = None
    verification_code: str | None = None
    verification_code_issued_at: str | None = None
    is_verified: bool = False
    created_at: str | None = None

    @property
    def state(self) -> str:
        return VERIFIED if self.is_verified else PENDING

    def set_password(self, plain: str) -> bool:
        """Hash and store plain, unless the current digest already matches it.

        Returns True if the digest changed. Calling it twice with the same
        password re-hashes nothing, so re-saving an unmodified account keeps
        its digest byte-for-byte.
        """
        if self.hashed_password is not None and verify_password(plain, self.hashed_password):
            return False
        self.hashed_password = hash_password(plain)
        return True

    def to_dict(self) -> dict[str, Any]:
        """Outward representation. Password digest and verification code are never included."""
        return {
            "id": self.id,
            "firstname": self.firstname,
            "lastname": self.lastname,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "roleId": self.role_id,
            "referralCode": self.referral_code,
            "referredBy": self.referred_by,
            "isVerified": self.is_verified,
            "createdAt": self.created_at,
        }
