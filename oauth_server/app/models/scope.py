"""
models/scope.py — Scope table definition.

Scopes flagged is_default are attached to every newly issued access token.
"""

from __future__ import annotations

from sqlalchemy import Boolean, String, false
from sqlalchemy.orm import Mapped, mapped_column

from oauth_server.app.extensions import db


class Scope(db.Model):
    __tablename__ = "scopes"

    id: Mapped[int] = mapped_column(primary_key=True)

    scope: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        unique=True,
    )

    is_default: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
        index=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Scope id={self.id} scope={self.scope!r} is_default={self.is_default}>"
