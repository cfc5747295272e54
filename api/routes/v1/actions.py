"""
api/routes/v1/actions.py -- Action (permission) administration endpoints.

Routes:
  POST   /api/v1/admin/actions               -- create action
  GET    /api/v1/admin/actions               -- paginated list (?page, ?limit, ?category, ?isActive)
  GET    /api/v1/admin/actions/by-category   -- active actions grouped by category
  GET    /api/v1/admin/actions/{action_id}   -- single action plus the roles holding it
  PUT    /api/v1/admin/actions/{action_id}   -- partial update
  DELETE /api/v1/admin/actions/{action_id}   -- delete; also pulled from every role

Auth policy: every route requires the admin role (router-level dependency).

Route order matters: /admin/actions/by-category is registered before
/admin/actions/{action_id} so "by-category" is never parsed as an id.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import ActionCreate, ActionUpdate
from auth.dependencies import require_admin
from core.models import DEFAULT_LIMIT, MAX_LIMIT
from rbac.catalog import ActionCatalog

router = APIRouter(dependencies=[Depends(require_admin)])


def _catalog(request: Request) -> ActionCatalog:
    return request.app.state.action_catalog


@router.post("/admin/actions", status_code=201)
def create_action(request: Request, body: ActionCreate) -> dict:
    return _catalog(request).create(body.name, body.category, body.description).to_dict()


@router.get("/admin/actions")
def list_actions(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    category: Optional[str] = Query(default=None, max_length=50),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
) -> dict:
    """Ordered by category, then name. metaData: totalActions, limit, totalPages, currentPage."""
    envelope = _catalog(request).list(page=page, limit=limit, category=category, is_active=is_active)
    return envelope.to_dict()


@router.get("/admin/actions/by-category")
def actions_by_category(request: Request) -> dict:
    return _catalog(request).by_category().to_dict()


@router.get("/admin/actions/{action_id}")
def get_action(request: Request, action_id: int) -> dict:
    return _catalog(request).get(action_id).to_dict()


@router.put("/admin/actions/{action_id}")
def update_action(request: Request, action_id: int, body: ActionUpdate) -> dict:
    envelope = _catalog(request).update(
        action_id,
        name=body.name,
        description=body.description,
        category=body.category,
        is_active=body.is_active,
    )
    return envelope.to_dict()


@router.delete("/admin/actions/{action_id}")
def delete_action(request: Request, action_id: int) -> dict:
    """metaData.rolesUpdated is the number of roles the action was pulled from."""
    return _catalog(request).delete(action_id).to_dict()
