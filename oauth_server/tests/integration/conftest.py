"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at in-memory SQLite unless TEST_DATABASE_URL names a real database.
  - All tables are created once via db.create_all() at session start.
  - After each test, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - make_user(app, ...)      → user id
  - make_client(app, ...)    → client row id
  - make_scope(app, ...)     → scope id
  - request_token(client, ...) → HTTP response from POST /oauth/tokens
  - basic_auth(user, secret) → {"Authorization": "Basic ..."}
  - bearer(token)            → {"Authorization": "Bearer ..."}
"""

from __future__ import annotations

import base64

import pytest
from sqlalchemy import text

from oauth_server.app import create_app
from oauth_server.app.extensions import db as _db
from oauth_server.app.services import account_service

TOKENS_URL = "/api/v1/oauth/tokens"
TOKENINFO_URL = "/api/v1/oauth/tokeninfo"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield

    with app.app_context():
        _db.session.rollback()

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM access_token_scopes"))
            conn.execute(text("DELETE FROM access_tokens"))
            conn.execute(text("DELETE FROM refresh_tokens"))
            conn.execute(text("DELETE FROM scopes"))
            conn.execute(text("DELETE FROM clients"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_user(app, username: str = "alice", password: str = "Password1") -> int:
    with app.app_context():
        user = account_service.create_user(
            username, password, session=_db.session, rounds=4,
        )
        _db.session.commit()
        return user.id


def make_client(app, client_id: str = "svc-a", secret: str = "s3cr3t") -> int:
    with app.app_context():
        row = account_service.create_client(
            client_id, secret, session=_db.session, rounds=4,
        )
        _db.session.commit()
        return row.id


def make_scope(app, name: str, is_default: bool = True) -> int:
    with app.app_context():
        scope = account_service.create_scope(name, is_default, session=_db.session)
        _db.session.commit()
        return scope.id


def basic_auth(username: str, secret: str) -> dict:
    raw = f"{username}:{secret}".encode("utf-8")
    return {"Authorization": "Basic " + base64.b64encode(raw).decode("ascii")}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def request_token(client, headers: dict | None = None, **form):
    """POSTs `form` to the token endpoint and returns the HTTP response."""
    return client.post(TOKENS_URL, data=form, headers=headers or {})


def count_rows(app, table: str) -> int:
    with app.app_context():
        return _db.session.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar_one()
