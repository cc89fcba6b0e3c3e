"""
models/refresh_token.py — RefreshToken table definition.

A refresh token is created in the same transaction as the access token that
references it and owns at most one AccessToken. Deleting a refresh token
through the ORM deletes its access token.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from oauth_server.app.extensions import db


class RefreshToken(db.Model):
    __tablename__ = "refresh_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Opaque random value (uuid4 string) handed to the client.
    refresh_token: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        unique=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    access_token: Mapped[Optional["AccessToken"]] = relationship(  # noqa: F821
        "AccessToken",
        back_populates="refresh_token",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<RefreshToken id={self.id} "
            f"expires_at={self.expires_at}>"
        )
