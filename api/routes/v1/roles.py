"""
api/routes/v1/roles.py -- Role administration endpoints.

Routes:
  POST   /api/v1/admin/roles                          -- create role (optional initial actions)
  GET    /api/v1/admin/roles                          -- paginated list (?page, ?limit, ?isActive)
  GET    /api/v1/admin/roles/{role_id}                -- single role with resolved actions
  PUT    /api/v1/admin/roles/{role_id}                -- partial update
  DELETE /api/v1/admin/roles/{role_id}                -- delete (409 role_in_use if assigned)
  POST   /api/v1/admin/roles/{role_id}/actions        -- add one action to the role
  DELETE /api/v1/admin/roles/{role_id}/actions/{aid}  -- remove one action from the role

Auth policy: every route requires the admin role (router-level dependency).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import RoleActionAdd, RoleCreate, RoleUpdate
from auth.dependencies import require_admin
from core.models import DEFAULT_LIMIT, MAX_LIMIT
from rbac.catalog import RoleCatalog

router = APIRouter(dependencies=[Depends(require_admin)])


def _catalog(request: Request) -> RoleCatalog:
    return request.app.state.role_catalog


@router.post("/admin/roles", status_code=201)
def create_role(request: Request, body: RoleCreate) -> dict:
    return _catalog(request).create(body.name, body.description, body.action_ids).to_dict()


@router.get("/admin/roles")
def list_roles(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
) -> dict:
    """Newest first. metaData: totalRoles, limit, totalPages, currentPage."""
    return _catalog(request).list(page=page, limit=limit, is_active=is_active).to_dict()


@router.get("/admin/roles/{role_id}")
def get_role(request: Request, role_id: int) -> dict:
    return _catalog(request).get(role_id).to_dict()


@router.put("/admin/roles/{role_id}")
def update_role(request: Request, role_id: int, body: RoleUpdate) -> dict:
    return _catalog(request).update(role_id, body.name, body.description, body.is_active).to_dict()


@router.delete("/admin/roles/{role_id}")
def delete_role(request: Request, role_id: int) -> dict:
    """Refused with 409 while any account holds the role; reassign those accounts first."""
    return _catalog(request).delete(role_id).to_dict()


@router.post("/admin/roles/{role_id}/actions")
def add_role_action(request: Request, role_id: int, body: RoleActionAdd) -> dict:
    return _catalog(request).add_action(role_id, body.action_id).to_dict()


@router.delete("/admin/roles/{role_id}/actions/{action_id}")
def remove_role_action(request: Request, role_id: int, action_id: int) -> dict:
    return _catalog(request).remove_action(role_id, action_id).to_dict()
