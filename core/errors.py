"""
core/errors.py -- Error taxonomy and the operation boundary wrapper.

Every public core operation fails with exactly one of:

  ValidationError  400  malformed input or a domain rule violation
  NotFoundError    404  a referenced entity is absent
  ConflictError    409  blocked by referential state (duplicate, in use)
  AuthError        401  bad credentials or an unverified account
  TransientError   500  store / email failure or anything unexpected

Each carries a stable machine-readable code and a human message. The api/
layer turns them into the {"error": {...}} envelope; nothing below api/
knows about HTTP beyond the status_code hint.

operation() is applied to every public catalog and lifecycle method. Known
errors pass through untouched, IntegrityError from the store becomes a
ConflictError (the store constraint is the source of truth for uniqueness),
and everything else is logged and re-wrapped as a TransientError so raw
exception objects never escape to callers.

Layer rule: core/ is the kernel. No imports from api/, auth/, rbac/, notify/.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar, cast

from sqlalchemy.exc import IntegrityError

logger = logging.getLogger("rolegate.errors")

F = TypeVar("F", bound=Callable[..., Any])


class RoleGateError(Exception):
    """Base exception for all RoleGate domain errors."""

    status_code: int = 500
    default_code: str = "error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(RoleGateError):
    """Input validation or domain rule failed."""

    status_code = 400
    default_code = "validation_error"


class NotFoundError(RoleGateError):
    """Referenced entity not found."""

    status_code = 404
    default_code = "not_found"


class ConflictError(RoleGateError):
    """Operation blocked by the current state of referenced records."""

    status_code = 409
    default_code = "conflict"


class AuthError(RoleGateError):
    """Authentication failed."""

    status_code = 401
    default_code = "unauthorized"


class TransientError(RoleGateError):
    """Downstream store or email failure, or any unexpected error."""

    status_code = 500
    default_code = "transient_error"


def operation(name: str) -> Callable[[F], F]:
    """Wrap a public core operation with the error propagation policy.

    Usage:
        @operation("Create Role")
        def create(self, name: str, ...) -> Envelope: ...
    """

    def decorator(f: F) -> F:
        @wraps(f)
        def wrapped(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except RoleGateError:
                raise
            except IntegrityError as exc:
                logger.info("%s rejected by store constraint: %s", name, exc.orig)
                raise ConflictError(
                    f"{name} Error: the change conflicts with existing records",
                    code="integrity_conflict",
                ) from exc
            except Exception as exc:
                logger.exception("%s failed", name)
                raise TransientError(f"{name} Error: {exc}") from exc

        return cast(F, wrapped)

    return decorator
