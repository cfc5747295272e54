"""
api/routes/v1/users.py -- Account administration endpoints.

Routes:
  GET    /api/v1/admin/users                 -- paginated account list (?page, ?limit)
  GET    /api/v1/admin/users/{user_id}       -- single account
  PUT    /api/v1/admin/users/{user_id}/role  -- assign a role
  DELETE /api/v1/admin/users/{user_id}       -- delete account

Auth policy: every route requires the admin role.

Guards:
  An admin cannot delete their own account or change their own role through
  these routes. Without that, the last admin could lock everyone out of the
  /admin surface.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.models import RoleAssign
from auth.dependencies import require_admin
from auth.lifecycle import AccountLifecycle
from auth.models import Account
from core.models import DEFAULT_LIMIT, MAX_LIMIT

router = APIRouter()


def _lifecycle(request: Request) -> AccountLifecycle:
    return request.app.state.lifecycle


def _forbid_self(admin: Account, user_id: int, what: str) -> None:
    if admin.id == user_id:
        raise HTTPException(
            status_code=403,
            detail={"code": "self_modification", "message": f"You cannot {what} your own account."},
        )


@router.get("/admin/users")
def list_users(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    admin: Account = Depends(require_admin),
) -> dict:
    """Newest first. metaData: totalUsers, limit, totalPages, currentPage."""
    return _lifecycle(request).list_accounts(page=page, limit=limit).to_dict()


@router.get("/admin/users/{user_id}")
def get_user(request: Request, user_id: int, admin: Account = Depends(require_admin)) -> dict:
    return _lifecycle(request).get_account(user_id).to_dict()


@router.put("/admin/users/{user_id}/role")
def assign_role(
    request: Request,
    user_id: int,
    body: RoleAssign,
    admin: Account = Depends(require_admin),
) -> dict:
    _forbid_self(admin, user_id, "change the role of")
    return _lifecycle(request).assign_role(user_id, body.role_id).to_dict()


@router.delete("/admin/users/{user_id}")
def delete_user(request: Request, user_id: int, admin: Account = Depends(require_admin)) -> dict:
    _forbid_self(admin, user_id, "delete")
    return _lifecycle(request).delete_account(user_id).to_dict()
