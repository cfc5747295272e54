"""
auth/otp.py -- One-time verification codes.

A code is a short numeric string drawn from the secrets CSPRNG. Only its
SHA-256 hex digest is persisted; the plaintext goes out by email and is
never stored or returned in an API response.

Consumption looks the account up by (email, digest) in a single
conditional UPDATE, so the digest must be deterministic (SHA-256, unsalted).
See AccountStore.consume_verification_code().

Expiry: Settings.otp_ttl_seconds. 0 (the default) means a code stays valid
until it is consumed or replaced by resend.

Layer rule: no imports from api/, rbac/, or notify/.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from core.config import get_settings

_settings = get_settings()

CODE_LENGTH = 6


@dataclass(frozen=True)
class IssuedCode:
    code: str  # plaintext, for the email only
    digest: str  # what the store keeps

    def __repr__(self) -> str:
        return f"IssuedCode(digest={self.digest[:8]}...)"


def generate_code(length: int = CODE_LENGTH) -> str:
    """Return a zero-padded numeric code of the given length."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_code(code: str) -> str:
    """SHA-256 hex digest of the code. Surrounding whitespace is ignored."""
    return hashlib.sha256(code.strip().encode("utf-8")).hexdigest()


def issue(length: int = CODE_LENGTH) -> IssuedCode:
    code = generate_code(length)
    return IssuedCode(code=code, digest=hash_code(code))


def is_expired(issued_at: str | None, ttl_seconds: int | None = None) -> bool:
    """True if a code issued at issued_at (ISO 8601) is past its TTL.

    With a TTL of 0 codes never expire. A missing or malformed issue
    timestamp under a positive TTL counts as expired.
    """
    ttl = _settings.otp_ttl_seconds if ttl_seconds is None else ttl_seconds
    if ttl <= 0:
        return False
    if not issued_at:
        return True
    try:
        issued = datetime.fromisoformat(issued_at)
    except ValueError:
        return True
    if issued.tzinfo is None:
        issued = issued.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - issued > timedelta(seconds=ttl)
