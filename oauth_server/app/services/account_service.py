"""
services/account_service.py — Provisioning of users, clients and scopes.

Used by the Flask CLI commands in app/cli.py. The token endpoint itself
never writes these tables.

Layer rules:
  - No Flask imports. Commits are the caller's responsibility — only flush here.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from oauth_server.app.errors import AppError, ErrorCode
from oauth_server.app.models.client import Client
from oauth_server.app.models.scope import Scope
from oauth_server.app.models.user import User
from oauth_server.app.services.passwords import hash_secret


def create_user(
        username: str,
        password: str,
        session: Session,
        rounds: int = 12,
) -> User:
    """
    Raises:
      AppError(DUPLICATE_USERNAME, 409) — username already taken.
    """
    existing = session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_USERNAME,
            f"The username '{username}' is already taken.",
            409,
        )

    user = User(username=username, password_hash=hash_secret(password, rounds))
    session.add(user)
    session.flush()
    return user


def create_client(
        client_id: str,
        client_secret: str,
        session: Session,
        rounds: int = 12,
) -> Client:
    """
    Raises:
      AppError(DUPLICATE_CLIENT_ID, 409) — client_id already registered.
    """
    existing = session.execute(
        select(Client).where(Client.client_id == client_id)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_CLIENT_ID,
            f"The client_id '{client_id}' is already registered.",
            409,
        )

    client = Client(client_id=client_id, password_hash=hash_secret(client_secret, rounds))
    session.add(client)
    session.flush()
    return client


def create_scope(name: str, is_default: bool, session: Session) -> Scope:
    """
    Raises:
      AppError(DUPLICATE_SCOPE, 409) — scope name already exists.
    """
    existing = session.execute(
        select(Scope).where(Scope.scope == name)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_SCOPE,
            f"The scope '{name}' already exists.",
            409,
        )

    scope = Scope(scope=name, is_default=is_default)
    session.add(scope)
    session.flush()
    return scope
