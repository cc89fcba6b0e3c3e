"""
tests/integration/test_tokens.py — Integration tests for POST /oauth/tokens.

Grant types covered:
  password            → 200 / 401
  client_credentials  → 200 / 401
  refresh_token       → 200 / 400

Error cases:
  INVALID_GRANT_TYPE         400 — unsupported or missing grant_type, no store access
  UNAUTHORIZED               401 — same body for unknown principal and wrong secret
  REFRESH_TOKEN_NOT_FOUND    400
  REFRESH_TOKEN_EXPIRED      400
  ACCESS_TOKEN_NOT_FOUND     400
  DATABASE_UNAVAILABLE       500
  ACCESS_TOKEN_SAVE_FAILED   500 — whole pair rolled back
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import delete, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from oauth_server.app.extensions import db
from oauth_server.app.models.access_token import AccessToken, access_token_scopes
from oauth_server.app.models.refresh_token import RefreshToken
from oauth_server.app.routes import tokens as tokens_route
from oauth_server.app.services import token_service

from .conftest import (
    TOKENS_URL,
    basic_auth,
    count_rows,
    make_client,
    make_scope,
    make_user,
    request_token,
)


def _set_refresh_expiry(app, refresh_token: str, expires_at: datetime) -> None:
    with app.app_context():
        record = db.session.execute(
            select(RefreshToken).where(RefreshToken.refresh_token == refresh_token)
        ).scalar_one()
        record.expires_at = expires_at
        db.session.commit()


def _access_token_row(app, access_token: str) -> dict:
    with app.app_context():
        row = db.session.execute(
            select(AccessToken).where(AccessToken.access_token == access_token)
        ).scalar_one()
        return {"client_id": row.client_id, "user_id": row.user_id}


# ═══════════════════════════════════════════════════════════════════════════
# Grant type dispatch
# ═══════════════════════════════════════════════════════════════════════════

class TestGrantType:

    @pytest.mark.parametrize("grant_type", [
        "", "authorization_code", "implicit", "Password", "urn:ietf:params:oauth:grant-type:jwt-bearer",
    ])
    def test_unsupported_grant_type_returns_400_without_store_access(self, client, grant_type):
        with patch.object(tokens_route, "_connect") as connect:
            resp = request_token(client, grant_type=grant_type)

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["Error"] == "Invalid grant type"
        assert body["code"] == "INVALID_GRANT_TYPE"
        connect.assert_not_called()

    def test_missing_grant_type_returns_400(self, client):
        resp = request_token(client)
        assert resp.status_code == 400
        assert resp.get_json()["Error"] == "Invalid grant type"

    def test_database_unreachable_returns_500(self, client):
        fake_db = MagicMock()
        fake_db.session.connection.side_effect = OperationalError(
            "SELECT 1", {}, Exception("connection refused"),
        )
        with patch.object(tokens_route, "db", fake_db):
            resp = request_token(client, grant_type="password", username="a", password="b")

        assert resp.status_code == 500
        assert resp.get_json()["Error"] == "Error connecting to database"

    def test_get_is_not_allowed(self, client):
        resp = client.get(TOKENS_URL)
        assert resp.status_code == 405
        assert "Error" in resp.get_json()


# ═══════════════════════════════════════════════════════════════════════════
# grant_type=password
# ═══════════════════════════════════════════════════════════════════════════

class TestPasswordGrant:

    def test_form_credentials_return_token_pair(self, app, client):
        make_scope(app, "read")
        make_scope(app, "write")
        make_scope(app, "admin", is_default=False)
        user_id = make_user(app, "alice", "Password1")

        resp = request_token(client, grant_type="password", username="alice", password="Password1")

        assert resp.status_code == 200
        body = resp.get_json()
        assert isinstance(body["id"], int)
        assert body["access_token"]
        assert body["refresh_token"]
        assert body["access_token"] != body["refresh_token"]
        assert body["expires_in"] == app.config["ACCESS_TOKEN_LIFETIME"]
        assert body["token_type"] == "Bearer"
        assert body["scope"] == "read write"
        assert _access_token_row(app, body["access_token"]) == {"client_id": None, "user_id": user_id}

    def test_basic_auth_credentials_return_token_pair(self, app, client):
        make_user(app, "alice", "Password1")

        resp = request_token(
            client,
            headers=basic_auth("alice", "Password1"),
            grant_type="password",
        )

        assert resp.status_code == 200
        assert resp.get_json()["token_type"] == "Bearer"

    def test_basic_auth_takes_precedence_over_form(self, app, client):
        make_user(app, "alice", "Password1")

        resp = request_token(
            client,
            headers=basic_auth("alice", "WrongPass1"),
            grant_type="password",
            username="alice",
            password="Password1",
        )

        assert resp.status_code == 401

    def test_token_response_is_not_cacheable(self, app, client):
        make_user(app, "alice", "Password1")

        resp = request_token(client, grant_type="password", username="alice", password="Password1")

        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.headers["Pragma"] == "no-cache"

    def test_wrong_password_and_unknown_user_are_indistinguishable(self, app, client):
        make_user(app, "alice", "Password1")

        wrong_password = request_token(client, grant_type="password", username="alice", password="nope")
        unknown_user = request_token(client, grant_type="password", username="ghost", password="Password1")

        for resp in (wrong_password, unknown_user):
            assert resp.status_code == 401
            assert resp.headers["WWW-Authenticate"] == "Basic realm=Bearer"
        assert wrong_password.get_json() == unknown_user.get_json()
        assert wrong_password.get_json()["Error"] == "Unauthorized"

    def test_missing_credentials_return_401(self, client):
        resp = request_token(client, grant_type="password")
        assert resp.status_code == 401

    def test_failed_authentication_writes_nothing(self, app, client):
        make_user(app, "alice", "Password1")

        request_token(client, grant_type="password", username="alice", password="nope")

        assert count_rows(app, "refresh_tokens") == 0
        assert count_rows(app, "access_tokens") == 0

    def test_repeated_grants_issue_unrelated_pairs(self, app, client):
        make_user(app, "alice", "Password1")

        first = request_token(client, grant_type="password", username="alice", password="Password1").get_json()
        second = request_token(client, grant_type="password", username="alice", password="Password1").get_json()

        assert first["access_token"] != second["access_token"]
        assert first["refresh_token"] != second["refresh_token"]
        assert first["id"] != second["id"]
        assert count_rows(app, "access_tokens") == 2

    def test_grant_type_in_query_string_is_accepted(self, app, client):
        make_user(app, "alice", "Password1")

        resp = client.post(
            TOKENS_URL + "?grant_type=password",
            data={"username": "alice", "password": "Password1"},
        )

        assert resp.status_code == 200
        assert resp.get_json()["token_type"] == "Bearer"


# ═══════════════════════════════════════════════════════════════════════════
# grant_type=client_credentials
# ═══════════════════════════════════════════════════════════════════════════

class TestClientCredentialsGrant:

    def test_valid_client_returns_200(self, app, client):
        client_row_id = make_client(app, "svc-a", "s3cr3t")

        resp = request_token(
            client,
            headers=basic_auth("svc-a", "s3cr3t"),
            grant_type="client_credentials",
        )

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == app.config["ACCESS_TOKEN_LIFETIME"]
        assert _access_token_row(app, body["access_token"]) == {"client_id": client_row_id, "user_id": None}

    def test_form_credentials_return_200(self, app, client):
        make_client(app, "svc-a", "s3cr3t")

        resp = request_token(
            client,
            grant_type="client_credentials",
            client_id="svc-a",
            client_secret="s3cr3t",
        )

        assert resp.status_code == 200

    def test_wrong_secret_returns_401_with_challenge(self, app, client):
        make_client(app, "svc-a", "s3cr3t")

        resp = request_token(
            client,
            headers=basic_auth("svc-a", "wrong"),
            grant_type="client_credentials",
        )

        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Basic realm=Bearer"

    def test_unknown_client_matches_wrong_secret(self, app, client):
        make_client(app, "svc-a", "s3cr3t")

        wrong_secret = request_token(client, headers=basic_auth("svc-a", "wrong"), grant_type="client_credentials")
        unknown = request_token(client, headers=basic_auth("svc-b", "s3cr3t"), grant_type="client_credentials")

        assert unknown.status_code == 401
        assert unknown.get_json() == wrong_secret.get_json()


# ═══════════════════════════════════════════════════════════════════════════
# grant_type=refresh_token
# ═══════════════════════════════════════════════════════════════════════════

class TestRefreshTokenGrant:

    def test_refresh_issues_new_pair_and_preserves_client(self, app, client):
        client_row_id = make_client(app, "svc-a", "s3cr3t")
        original = request_token(
            client, headers=basic_auth("svc-a", "s3cr3t"), grant_type="client_credentials",
        ).get_json()

        resp = request_token(client, grant_type="refresh_token", refresh_token=original["refresh_token"])

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["access_token"] != original["access_token"]
        assert body["refresh_token"] != original["refresh_token"]
        assert _access_token_row(app, body["access_token"]) == {"client_id": client_row_id, "user_id": None}

    def test_refresh_preserves_user(self, app, client):
        user_id = make_user(app, "alice", "Password1")
        original = request_token(
            client, grant_type="password", username="alice", password="Password1",
        ).get_json()

        body = request_token(
            client, grant_type="refresh_token", refresh_token=original["refresh_token"],
        ).get_json()

        assert _access_token_row(app, body["access_token"]) == {"client_id": None, "user_id": user_id}

    def test_refresh_attaches_current_default_scopes(self, app, client):
        make_user(app, "alice", "Password1")
        original = request_token(
            client, grant_type="password", username="alice", password="Password1",
        ).get_json()
        assert original["scope"] == ""

        make_scope(app, "read")
        body = request_token(
            client, grant_type="refresh_token", refresh_token=original["refresh_token"],
        ).get_json()

        assert body["scope"] == "read"

    def test_superseded_pair_is_removed(self, app, client):
        make_client(app, "svc-a", "s3cr3t")
        original = request_token(
            client, headers=basic_auth("svc-a", "s3cr3t"), grant_type="client_credentials",
        ).get_json()

        request_token(client, grant_type="refresh_token", refresh_token=original["refresh_token"])
        reused = request_token(client, grant_type="refresh_token", refresh_token=original["refresh_token"])

        assert reused.status_code == 400
        assert reused.get_json()["Error"] == "Refresh token not found"
        assert count_rows(app, "refresh_tokens") == 1
        assert count_rows(app, "access_tokens") == 1

    def test_unknown_refresh_token_returns_400(self, client):
        resp = request_token(client, grant_type="refresh_token", refresh_token="does-not-exist")

        assert resp.status_code == 400
        assert resp.get_json()["Error"] == "Refresh token not found"

    def test_missing_refresh_token_returns_400(self, client):
        resp = request_token(client, grant_type="refresh_token")

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "REFRESH_TOKEN_NOT_FOUND"

    def test_expired_refresh_token_returns_400(self, app, client):
        make_user(app, "alice", "Password1")
        original = request_token(
            client, grant_type="password", username="alice", password="Password1",
        ).get_json()
        _set_refresh_expiry(
            app, original["refresh_token"], datetime.now(timezone.utc) - timedelta(seconds=1),
        )

        resp = request_token(client, grant_type="refresh_token", refresh_token=original["refresh_token"])

        assert resp.status_code == 400
        assert resp.get_json()["Error"] == "Refresh token expired"

    def test_refresh_token_without_access_token_returns_400(self, app, client):
        with app.app_context():
            db.session.add(RefreshToken(
                refresh_token="orphan-token",
                expires_at=datetime.now(timezone.utc) + timedelta(days=1),
            ))
            db.session.commit()

        resp = request_token(client, grant_type="refresh_token", refresh_token="orphan-token")

        assert resp.status_code == 400
        assert resp.get_json()["Error"] == "Access token with refresh token not found"

    def test_token_consumed_concurrently_rolls_back_new_pair(self, app, client):
        make_user(app, "alice", "Password1")
        original = request_token(
            client, grant_type="password", username="alice", password="Password1",
        ).get_json()
        # A later pair keeps the original's row ids from being reused.
        request_token(client, grant_type="password", username="alice", password="Password1")
        real_grant = token_service.grant_access_token

        def grant_after_concurrent_refresh(identity, config, session):
            # Another request retires the original pair between our lookup and our delete.
            session.execute(
                delete(access_token_scopes)
                .where(access_token_scopes.c.access_token_id == original["id"])
            )
            session.execute(delete(AccessToken).where(AccessToken.id == original["id"]))
            session.execute(
                delete(RefreshToken).where(RefreshToken.refresh_token == original["refresh_token"])
            )
            return real_grant(identity, config, session)

        with patch.object(token_service, "grant_access_token", side_effect=grant_after_concurrent_refresh):
            resp = request_token(client, grant_type="refresh_token", refresh_token=original["refresh_token"])

        assert resp.status_code == 400
        assert resp.get_json()["Error"] == "Refresh token not found"
        # Nothing from the losing request survives.
        assert count_rows(app, "refresh_tokens") == 2
        assert count_rows(app, "access_tokens") == 2


# ═══════════════════════════════════════════════════════════════════════════
# Transactional issuance
# ═══════════════════════════════════════════════════════════════════════════

class TestAtomicity:

    def test_access_token_failure_rolls_back_refresh_token(self, app, client):
        make_user(app, "alice", "Password1")
        real_save = token_service._save
        calls = []

        def failing_save(row, session):
            calls.append(row)
            if isinstance(row, AccessToken):
                raise SQLAlchemyError("simulated write failure")
            real_save(row, session)

        with patch.object(token_service, "_save", side_effect=failing_save):
            resp = request_token(client, grant_type="password", username="alice", password="Password1")

        assert resp.status_code == 500
        assert resp.get_json()["Error"] == "Error saving access token"
        assert [type(row) for row in calls] == [RefreshToken, AccessToken]
        assert count_rows(app, "refresh_tokens") == 0
        assert count_rows(app, "access_tokens") == 0

    def test_refresh_token_failure_returns_500(self, app, client):
        make_client(app, "svc-a", "s3cr3t")

        with patch.object(token_service, "_save", side_effect=SQLAlchemyError("simulated")):
            resp = request_token(client, headers=basic_auth("svc-a", "s3cr3t"), grant_type="client_credentials")

        assert resp.status_code == 500
        assert resp.get_json()["Error"] == "Error saving refresh token"
        assert count_rows(app, "refresh_tokens") == 0

    def test_persistence_failure_logs_database_cause(self, app, client, caplog):
        make_user(app, "alice", "Password1")
        real_save = token_service._save

        def failing_save(row, session):
            if isinstance(row, AccessToken):
                raise SQLAlchemyError("disk full on access_tokens")
            real_save(row, session)

        with caplog.at_level(logging.ERROR):
            with patch.object(token_service, "_save", side_effect=failing_save):
                resp = request_token(client, grant_type="password", username="alice", password="Password1")

        assert resp.status_code == 500
        assert "disk full on access_tokens" not in resp.get_data(as_text=True)
        assert "disk full on access_tokens" in caplog.text
        assert any(record.exc_info for record in caplog.records if record.levelno == logging.ERROR)
