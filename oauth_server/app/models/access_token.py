"""
models/access_token.py — AccessToken table and its scope association table.

Ownership invariant: exactly one of client_id / user_id is set. The CHECK
constraint below rejects rows with both or neither, so a half-built token
can never be committed.

FK policy:
  refresh_token_id → CASCADE  (the access token lives and dies with its refresh token)
  client_id / user_id → CASCADE (tokens are removed with their owner)
  access_token_scopes.* → CASCADE
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, Table, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from oauth_server.app.extensions import db


access_token_scopes = Table(
    "access_token_scopes",
    db.metadata,
    Column(
        "access_token_id",
        ForeignKey("access_tokens.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "scope_id",
        ForeignKey("scopes.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class AccessToken(db.Model):
    __tablename__ = "access_tokens"

    __table_args__ = (
        CheckConstraint(
            "(client_id IS NULL) <> (user_id IS NULL)",
            name="ck_access_tokens_single_owner",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    access_token: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        unique=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    client_id: Mapped[int | None] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    # UNIQUE: a refresh token owns zero or one access token.
    refresh_token_id: Mapped[int] = mapped_column(
        ForeignKey("refresh_tokens.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    refresh_token: Mapped["RefreshToken"] = relationship(  # noqa: F821
        "RefreshToken",
        back_populates="access_token",
    )

    client: Mapped[Optional["Client"]] = relationship(  # noqa: F821
        "Client",
        back_populates="access_tokens",
    )

    user: Mapped[Optional["User"]] = relationship(  # noqa: F821
        "User",
        back_populates="access_tokens",
    )

    scopes: Mapped[list["Scope"]] = relationship(  # noqa: F821
        "Scope",
        secondary=access_token_scopes,
        order_by="Scope.id",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<AccessToken id={self.id} "
            f"client_id={self.client_id} "
            f"user_id={self.user_id}>"
        )
