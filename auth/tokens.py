"""
auth/tokens.py -- Password hashing and session token utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       account_id, email (as sub), role name, role_id, issue time and expiry.
       Verification returns None on any failure -- the route layer turns that
       into a 401. There is no revocation list: a token is valid until exp.

  Passwords: bcrypt with a configurable work factor (BCRYPT_ROUNDS). bcrypt
       salts every hash, so hashing the same password twice yields different
       digests -- Account.set_password() relies on verify_password() to detect
       "unchanged" rather than comparing digests. The _DUMMY_HASH constant
       enables timing equalization in AccountLifecycle.login() so response
       time does not reveal whether an email is registered.

  SECRET_KEY: sourced from core.config.get_settings(). Dev mode (DEBUG=true)
       auto-generates one with a warning; production refuses to start
       without one.

Layer rule: no imports from api/, rbac/, or notify/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("rolegate.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"
TOKEN_TYPE = "Bearer"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password length at 128 characters.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt digest")
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("rolegate_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(
    account_id: int,
    email: str,
    role: str | None,
    role_id: int | None = None,
    expire_seconds: int = 0,
) -> str:
    """Encode a signed JWT binding account identity and role.

    Args:
        account_id:     Numeric account ID stored in the DB.
        email:          Account email, stored as the JWT subject claim.
        role:           Resolved role name (e.g. "user", "admin").
        role_id:        Role ID the name was resolved from.
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds (7 days).
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": email,
        "account_id": account_id,
        "role": role,
        "role_id": role_id,
        "typ": TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if "account_id" not in payload or "role" not in payload:
        return None
    return payload


def token_lifetime(expire_seconds: int = 0) -> int:
    """Seconds a token minted with create_access_token(expire_seconds=...) stays valid."""
    return expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
