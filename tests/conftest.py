"""
tests/conftest.py -- Shared test fixtures for RoleGate unit and integration tests.

This module provides:
  - db:        fresh in-memory SQLite Database per test
  - outbox:    RecordingEmailSender capturing every outbound message
  - services:  stores + catalogs + lifecycle wired over db (same wiring as the app)
  - api:       TestClient over the real FastAPI app with a patched lifespan,
               plus an admin account and its Bearer headers

Design: Database("sqlite://") pins a single connection (StaticPool), so the
TestClient worker threads and the test body see the same in-memory schema.

Environment must be set before any rolegate import: get_settings() is
lru_cached and auth/tokens.py reads it at import time.
  DEBUG=true                -> auto-generated SECRET_KEY instead of ValueError
  BCRYPT_ROUNDS=4           -> fast hashing
"""

from __future__ import annotations

import os
import re
from collections.abc import Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace

# CRITICAL: Set env before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_state
from auth.tokens import create_access_token
from core.database import Database
from notify.email import EmailDeliveryError, EmailMessage

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"

_CODE_RE = re.compile(r"verification code is: (\d+)")


# ---------------------------------------------------------------------------
# Email double
# ---------------------------------------------------------------------------


class RecordingEmailSender:
    """EmailSender that keeps messages in memory.

    Set fail = True to make every send raise EmailDeliveryError, which is
    how the Resend sender reports provider failures.
    """

    def __init__(self) -> None:
        self.messages: list[EmailMessage] = []
        self.fail = False

    def send(self, message: EmailMessage) -> None:
        if self.fail:
            raise EmailDeliveryError("provider unavailable")
        self.messages.append(message)

    def last_code(self, to: str) -> str:
        """Plaintext code from the most recent message sent to `to`."""
        for message in reversed(self.messages):
            if message.to == to:
                match = _CODE_RE.search(message.text)
                assert match, f"No code in message to {to}"
                return match.group(1)
        raise AssertionError(f"No message sent to {to}")


# ---------------------------------------------------------------------------
# Store / service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db() -> Generator[Database, None, None]:
    database = Database("sqlite://")
    yield database
    database.close()


@pytest.fixture
def outbox() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def services(db: Database, outbox: RecordingEmailSender) -> SimpleNamespace:
    """Stores, catalogs and lifecycle over a fresh DB, with default roles seeded."""
    state = SimpleNamespace()
    init_state(state, db, outbox)
    return state


@pytest.fixture
def verified(services, outbox):
    """Factory: register + verify an account, return it as an Account."""

    def make(email: str = "ada@example.com", password: str = "secret123", **kwargs):
        services.lifecycle.register(
            kwargs.pop("firstname", "Ada"), kwargs.pop("lastname", "Lovelace"), email, password, **kwargs
        )
        services.lifecycle.verify(email, outbox.last_code(email))
        return services.account_store.get_by_email(email)

    return make


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(db: Database, outbox: RecordingEmailSender):
    """Return an async context manager that replaces the real lifespan.

    Wires the test DB and the recording sender into app.state so routes never
    touch the configured database or the real email provider.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app.state, db, outbox)
        yield

    return test_lifespan


@pytest.fixture
def api(db: Database, outbox: RecordingEmailSender) -> Generator[SimpleNamespace, None, None]:
    """Yield a namespace with client, state, outbox, admin and admin_headers.

    The admin account is created through the same path as the CLI
    (AccountLifecycle.create_admin) and its JWT minted directly.
    """
    app.router.lifespan_context = _patch_lifespan(db, outbox)

    with TestClient(app, raise_server_exceptions=True) as client:
        admin = app.state.lifecycle.create_admin("Root", "Admin", ADMIN_EMAIL, ADMIN_PASSWORD).data
        token = create_access_token(admin.id, admin.email, admin.role, admin.role_id, expire_seconds=3600)
        yield SimpleNamespace(
            client=client,
            state=app.state,
            outbox=outbox,
            admin=admin,
            admin_headers={"Authorization": f"Bearer {token}"},
        )
