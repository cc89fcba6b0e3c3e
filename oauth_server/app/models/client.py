"""
models/client.py — Client table definition.

Confidential OAuth clients for the client_credentials grant. Same lifecycle
as User: created by the provisioning commands, only read by the token
endpoint.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from oauth_server.app.extensions import db


class Client(db.Model):
    __tablename__ = "clients"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(client_id)) > 0",
            name="ck_clients_client_id_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Public identifier presented as the Basic-Auth username / client_id field.
    client_id: Mapped[str] = mapped_column(
        String(254),
        nullable=False,
        unique=True,
    )

    # bcrypt hash of the client secret.
    password_hash: Mapped[str] = mapped_column(
        String(60),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    access_tokens: Mapped[list["AccessToken"]] = relationship(  # noqa: F821
        "AccessToken",
        back_populates="client",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Client id={self.id} client_id={self.client_id!r}>"
