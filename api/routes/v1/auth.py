"""
api/routes/v1/auth.py -- Registration, verification and login endpoints.

Routes:
  POST /api/v1/auth/register      -- create a pending account, email the code
  POST /api/v1/auth/verify-email  -- consume the code, account becomes verified
  POST /api/v1/auth/login         -- password login for verified accounts; returns JWT
  POST /api/v1/auth/resend-code   -- issue a fresh code for a pending account
  GET  /api/v1/auth/me            -- current account (requires auth)
  PUT  /api/v1/auth/password      -- change own password (requires auth)

Security:
  AccountLifecycle.login() runs bcrypt even for unknown emails -- do NOT
  short-circuit it here.
  Cache-Control: no-store on every response that carries a token or code
  outcome.

Every handler returns Envelope.to_dict(): {"data": ..., "metaData": ...}.
Domain failures propagate as RoleGateError and are rendered by the handler
in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import ChangePasswordRequest, LoginRequest, RegisterRequest, ResendCodeRequest, VerifyEmailRequest
from auth.dependencies import get_current_account
from auth.lifecycle import AccountLifecycle
from auth.models import Account
from core.models import Envelope

# Auth policy:
# - POST /auth/register, /auth/verify-email, /auth/login, /auth/resend-code: public
# - GET  /auth/me, PUT /auth/password: requires auth (get_current_account)
router = APIRouter()


def _lifecycle(request: Request) -> AccountLifecycle:
    return request.app.state.lifecycle


@router.post("/auth/register", status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> dict:
    """Create a pending account and send its verification code by email.

    The code itself is never part of the response.
    """
    envelope = _lifecycle(request).register(
        firstname=body.firstname,
        lastname=body.lastname,
        email=body.email,
        password=body.password,
        phone=body.phone,
        referred_by=body.referred_by,
    )
    response.headers["Cache-Control"] = "no-store"
    return envelope.to_dict()


@router.post("/auth/verify-email")
def verify_email(request: Request, response: Response, body: VerifyEmailRequest) -> dict:
    """Consume a one-time code. Invalid or reused codes return 400 invalid_code."""
    envelope = _lifecycle(request).verify(body.email, body.code)
    response.headers["Cache-Control"] = "no-store"
    return envelope.to_dict()


@router.post("/auth/login")
def login(request: Request, response: Response, body: LoginRequest) -> dict:
    """Authenticate with email and password; the JWT is in metaData.token.

    Unknown email and wrong password produce the same bad_credentials error.
    """
    envelope = _lifecycle(request).login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return envelope.to_dict()


@router.post("/auth/resend-code")
def resend_code(request: Request, response: Response, body: ResendCodeRequest) -> dict:
    """Replace a pending account's code and email the new one."""
    envelope = _lifecycle(request).resend_code(body.email)
    response.headers["Cache-Control"] = "no-store"
    return envelope.to_dict()


@router.get("/auth/me")
async def me(current: Account = Depends(get_current_account)) -> dict:
    """Return the currently authenticated account."""
    return Envelope(current, {}).to_dict()


@router.put("/auth/password")
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current: Account = Depends(get_current_account),
) -> dict:
    """Change the caller's own password. Existing tokens stay valid until they expire."""
    envelope = _lifecycle(request).change_password(current.id, body.current_password, body.new_password)
    return envelope.to_dict()
