"""
services/token_service.py — OAuth 2.0 grant flows and token issuance.

Responsibilities:
  - Authenticate the principal of each grant type
      password            → User by username + bcrypt password check
      client_credentials  → Client by client_id + bcrypt secret check
      refresh_token       → RefreshToken by value, then its AccessToken
  - Issue a new refresh/access token pair for the resolved Identity
  - Resolve bearer access tokens presented to protected endpoints

Layer rules:
  - No Flask imports. Callers pass the store handle (`session`) and the
    config mapping (`config`, normally app.config) explicitly.
  - Writes are flushed here, committed by the route. On any persistence
    failure the session is rolled back before AppError is raised, so a
    refresh token is never left behind without its access token.

Token design:
  - Both tokens are opaque uuid4 strings stored verbatim.
  - Access token TTL: config["ACCESS_TOKEN_LIFETIME"] seconds.
    Refresh token TTL: config["REFRESH_TOKEN_LIFETIME"] seconds.
  - Every new access token carries the scopes flagged is_default.

Refresh policy:
  - Expired refresh tokens are rejected (REFRESH_TOKEN_EXPIRED, 400).
  - Refresh tokens are single use: the token row is locked on lookup and
    the superseded refresh/access pair is deleted in the same transaction
    that issues its replacement. If the delete matches no row, another
    request spent the token first and this request is rolled back.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from oauth_server.app.errors import AppError, ErrorCode, unauthorized
from oauth_server.app.grants import Identity
from oauth_server.app.models.access_token import AccessToken, access_token_scopes
from oauth_server.app.models.client import Client
from oauth_server.app.models.refresh_token import RefreshToken
from oauth_server.app.models.scope import Scope
from oauth_server.app.models.user import User
from oauth_server.app.services.passwords import verify_secret

TOKEN_TYPE = "Bearer"


# ── Private helpers ────────────────────────────────────────────────────────

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; stored values are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _new_token() -> str:
    """Opaque, collision-resistant token value."""
    return str(uuid.uuid4())


def _save(row: Any, session: Session) -> None:
    session.add(row)
    session.flush()


def _retire_pair(refresh_token_id: int, access_token_id: int, session: Session) -> int:
    """
    Deletes a superseded refresh/access pair and its scope links.

    Returns the number of refresh token rows deleted: 1 when this request
    consumed the token, 0 when it was already gone.
    """
    session.execute(
        delete(access_token_scopes)
        .where(access_token_scopes.c.access_token_id == access_token_id)
    )
    session.execute(
        delete(AccessToken).where(AccessToken.id == access_token_id)
    )
    result = session.execute(
        delete(RefreshToken).where(RefreshToken.id == refresh_token_id)
    )
    return result.rowcount


def _default_scopes(session: Session) -> list[Scope]:
    return list(
        session.execute(
            select(Scope)
            .where(Scope.is_default.is_(True))
            .order_by(Scope.id)
        ).scalars().all()
    )


def _join_scopes(scopes: list[Scope]) -> str:
    return " ".join(scope.scope for scope in scopes)


def _build_token_response(
        access_token: AccessToken,
        refresh_token: RefreshToken,
        expires_in: int,
) -> dict:
    """Serialises a freshly issued pair to the token response fields."""
    return {
        "id": access_token.id,
        "access_token": access_token.access_token,
        "expires_in": expires_in,
        "token_type": TOKEN_TYPE,
        "scope": _join_scopes(access_token.scopes),
        "refresh_token": refresh_token.refresh_token,
    }


# ── Token issuer ───────────────────────────────────────────────────────────

def grant_access_token(
        identity: Identity,
        config: Mapping[str, Any],
        session: Session,
) -> dict:
    """
    Creates a refresh token and an access token for `identity` in the
    current transaction.

    The access token references the new refresh token, carries the current
    default scopes and is owned by identity.client_id or identity.user_id.

    Raises:
      AppError(REFRESH_TOKEN_SAVE_FAILED, 500) — refresh token flush failed.
      AppError(ACCESS_TOKEN_SAVE_FAILED, 500)  — access token flush failed;
        the refresh token is rolled back with it.

    Returns: the token response dict (id, access_token, expires_in,
             token_type, scope, refresh_token).
    """
    access_lifetime = config["ACCESS_TOKEN_LIFETIME"]
    refresh_lifetime = config["REFRESH_TOKEN_LIFETIME"]
    now = _utcnow()

    refresh_token = RefreshToken(
        refresh_token=_new_token(),
        expires_at=now + timedelta(seconds=refresh_lifetime),
    )
    try:
        _save(refresh_token, session)
    except SQLAlchemyError as exc:
        session.rollback()
        raise AppError(
            ErrorCode.REFRESH_TOKEN_SAVE_FAILED,
            "Error saving refresh token",
            500,
        ) from exc

    access_token = AccessToken(
        access_token=_new_token(),
        expires_at=now + timedelta(seconds=access_lifetime),
        refresh_token_id=refresh_token.id,
        client_id=identity.client_id,
        user_id=identity.user_id,
        scopes=_default_scopes(session),
    )
    try:
        _save(access_token, session)
    except SQLAlchemyError as exc:
        session.rollback()
        raise AppError(
            ErrorCode.ACCESS_TOKEN_SAVE_FAILED,
            "Error saving access token",
            500,
        ) from exc

    return _build_token_response(access_token, refresh_token, access_lifetime)


# ── Grant flows ────────────────────────────────────────────────────────────

def password_grant(
        username: str,
        password: str,
        config: Mapping[str, Any],
        session: Session,
) -> dict:
    """
    Resource-owner password grant.

    Raises:
      AppError(UNAUTHORIZED, 401) — username not found or password wrong.
      Same error for both to avoid username enumeration.
    """
    user = session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()

    if user is None or not verify_secret(user.password_hash, password):
        raise unauthorized()

    return grant_access_token(Identity.for_user(user.id), config, session)


def client_credentials_grant(
        client_id: str,
        client_secret: str,
        config: Mapping[str, Any],
        session: Session,
) -> dict:
    """
    Client credentials grant.

    Raises:
      AppError(UNAUTHORIZED, 401) — client not found or secret wrong.
    """
    client = session.execute(
        select(Client).where(Client.client_id == client_id)
    ).scalar_one_or_none()

    if client is None or not verify_secret(client.password_hash, client_secret):
        raise unauthorized()

    return grant_access_token(Identity.for_client(client.id), config, session)


def refresh_token_grant(
        refresh_token: str,
        config: Mapping[str, Any],
        session: Session,
) -> dict:
    """
    Exchanges a refresh token for a new token pair with the same owner.

    Raises:
      AppError(REFRESH_TOKEN_NOT_FOUND, 400) — no such refresh token, or it was
        consumed by a concurrent request before this one could retire it.
      AppError(REFRESH_TOKEN_EXPIRED, 400)   — refresh token past expires_at.
      AppError(ACCESS_TOKEN_NOT_FOUND, 400)  — refresh token owns no access token.
      AppError(INTERNAL_ERROR, 500)          — superseded pair could not be removed.
    """
    record = session.execute(
        select(RefreshToken)
        .where(RefreshToken.refresh_token == refresh_token)
        .with_for_update()
    ).scalar_one_or_none()

    if record is None:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_NOT_FOUND,
            "Refresh token not found",
            400,
        )

    if _as_utc(record.expires_at) <= _utcnow():
        raise AppError(
            ErrorCode.REFRESH_TOKEN_EXPIRED,
            "Refresh token expired",
            400,
        )

    previous = session.execute(
        select(AccessToken).where(AccessToken.refresh_token_id == record.id)
    ).scalar_one_or_none()

    if previous is None:
        raise AppError(
            ErrorCode.ACCESS_TOKEN_NOT_FOUND,
            "Access token with refresh token not found",
            400,
        )

    identity = Identity(client_id=previous.client_id, user_id=previous.user_id)
    result = grant_access_token(identity, config, session)

    try:
        retired = _retire_pair(record.id, previous.id, session)
    except SQLAlchemyError as exc:
        session.rollback()
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            "Error rotating refresh token",
            500,
        ) from exc

    # Another request already spent this token; its new pair stands, ours does not.
    if retired != 1:
        session.rollback()
        raise AppError(
            ErrorCode.REFRESH_TOKEN_NOT_FOUND,
            "Refresh token not found",
            400,
        )

    return result


# ── Bearer token resolution ────────────────────────────────────────────────

def authenticate_bearer(raw_token: str, session: Session) -> AccessToken:
    """
    Resolves an access token presented as a bearer credential.

    Raises:
      AppError(TOKEN_INVALID, 401) — unknown token.
      AppError(TOKEN_EXPIRED, 401) — token past expires_at.
    """
    record = session.execute(
        select(AccessToken).where(AccessToken.access_token == raw_token)
    ).scalar_one_or_none()

    if record is None:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid.",
            401,
        )

    if _as_utc(record.expires_at) <= _utcnow():
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use the refresh_token grant to obtain a new one.",
            401,
        )

    return record


def describe_access_token(access_token: AccessToken) -> dict:
    """Serialises a resolved access token for the tokeninfo endpoint."""
    remaining = _as_utc(access_token.expires_at) - _utcnow()
    return {
        "id": access_token.id,
        "client_id": access_token.client_id,
        "user_id": access_token.user_id,
        "scope": _join_scopes(access_token.scopes),
        "expires_in": max(int(remaining.total_seconds()), 0),
    }
