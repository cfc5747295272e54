"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Only one auth method is accepted: Authorization: Bearer <token>, where the
token was minted by POST /api/v1/auth/login.

try_get_current_account() is the soft variant (returns None on failure).
get_current_account() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_account() and raises HTTP 403 unless the
account holds the admin role.
require_action("reports.view") builds a dependency that raises HTTP 403
unless the account's role grants that (active) action.

The role is re-read from the store on every request rather than trusted
from the token, so a role change or account deletion takes effect
immediately.

Layer rule: may import from fastapi (Depends/HTTPException/Request) because
this module is part of the FastAPI dependency injection system. No imports
from api/.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request

from auth.models import Account
from auth.tokens import decode_access_token
from core.config import get_settings


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_account(request: Request) -> Account | None:
    """Authenticate the request via its Bearer token.

    Returns the Account on success, None on any failure. Unverified
    accounts never hold a token, but are rejected here as well.
    """
    token = _bearer_token(request)
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload:
        return None
    account = request.app.state.account_store.get_by_id(payload["account_id"])
    if account is None or not account.is_verified:
        return None
    return account


def get_current_account(request: Request) -> Account:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(account: Account = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


def require_admin(request: Request) -> Account:
    """Require the admin role. HTTP 401 if unauthenticated, HTTP 403 otherwise."""
    account = get_current_account(request)
    if account.role != get_settings().admin_role:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return account


def require_action(action_name: str) -> Callable[..., Account]:
    """Dependency factory: require that the caller's role grants action_name.

    Usage:
        @router.get("/reports", dependencies=[Depends(require_action("reports.view"))])
    """

    def dependency(request: Request, account: Account = Depends(get_current_account)) -> Account:
        if not request.app.state.role_catalog.has_action(account.role_id, action_name):
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": f"Permission '{action_name}' required."},
            )
        return account

    return dependency
