"""
api/main.py -- FastAPI application entry point for RoleGate.

Exposes the account lifecycle (register -> verify -> login) and the RBAC
administration surface (roles, actions, account role assignment) over HTTP.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins

Lifespan handles startup (open the database, create tables, seed the default
roles, wire services onto app.state) and shutdown (dispose the engine)
symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.actions import router as actions_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.users import router as users_router
from auth.dependencies import require_admin
from auth.lifecycle import AccountLifecycle
from auth.models import Account
from auth.store import AccountStore
from core.config import Settings, get_settings
from core.database import Database
from core.errors import RoleGateError
from notify.email import EmailSender, build_sender
from rbac.catalog import ActionCatalog, RoleCatalog
from rbac.store import RBACStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("rolegate.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring -- shared by the lifespan, the CLI and the test suite
# ---------------------------------------------------------------------------


def init_state(state: Any, db: Database, email_sender: EmailSender, settings: Settings | None = None) -> None:
    """Build stores and services over db and attach them to state.

    Both stores register their tables on db.metadata before create_all(),
    because accounts.role_id references roles.id.
    """
    settings = settings or get_settings()
    rbac_store = RBACStore(db)
    account_store = AccountStore(db)
    db.create_all()
    rbac_store.ensure_roles([settings.default_role, settings.admin_role])

    state.db = db
    state.rbac_store = rbac_store
    state.account_store = account_store
    state.action_catalog = ActionCatalog(rbac_store)
    state.role_catalog = RoleCatalog(
        rbac_store, account_store, system_roles=(settings.default_role, settings.admin_role)
    )
    state.lifecycle = AccountLifecycle(account_store, rbac_store, email_sender, settings)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store and wire services on startup; dispose the engine on shutdown."""
    logger.info("RoleGate API starting up")
    db = Database(_settings.database_url)
    init_state(app.state, db, build_sender(_settings), _settings)
    logger.info(
        "Store initialized (%s), default role=%s, admin role=%s",
        db.engine.url.render_as_string(hide_password=True),
        _settings.default_role,
        _settings.admin_role,
    )

    yield

    app.state.db.close()
    logger.info("RoleGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="RoleGate API",
    description="Account registration with email verification, JWT login and role-based access control.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by admin-only equivalents below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack -- registered in the order a request encounters them:
# TrustedHost -> CORS.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])
app.include_router(actions_router, prefix="/api/v1", tags=["Actions"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Admin-only API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(admin: Account = Depends(require_admin)):
    return get_swagger_ui_html(openapi_url="/openapi.json", title="RoleGate API")


@app.get("/redoc", include_in_schema=False)
async def redoc(admin: Account = Depends(require_admin)):
    return get_redoc_html(openapi_url="/openapi.json", title="RoleGate API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same {"error": {code, message, details}} envelope so
# API clients can parse errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(RoleGateError)
async def rolegate_error_handler(request: Request, exc: RoleGateError) -> JSONResponse:
    """Render domain errors from the catalogs and the lifecycle service."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 listing each failing field and the reason."""
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(code="validation_error", message="Request validation failed.", details=errors)
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured error for HTTPException raised by dependencies (401/403).

    When detail is already a dict, use it directly as the error field.
    """
    headers = getattr(exc, "headers", None)
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
        headers=headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error=ErrorDetail(code="internal_error", message="An unexpected error occurred.")).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint -- defined here, not in a router, and needs no auth.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and store reachability."""
    db: Database | None = getattr(request.app.state, "db", None)
    if db is not None and db.ping():
        return HealthResponse(version=VERSION)
    return HealthResponse(status="degraded", version=VERSION, database="unavailable")
