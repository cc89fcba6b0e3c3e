"""Initial schema — token store tables, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-17

Append-only: never edit this file after it has been applied to a database.
Schema changes go in a NEW migration file.

Creation order (FK dependencies):
  users, clients, scopes, refresh_tokens → access_tokens → access_token_scopes

ON DELETE policies:
  access_tokens.refresh_token_id        → CASCADE
  access_tokens.client_id / user_id     → CASCADE
  access_token_scopes.*                 → CASCADE
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def upgrade() -> None:

    # ── users ──────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=254), nullable=False),
        sa.Column("password_hash", sa.String(length=60), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
        sa.CheckConstraint(
            "LENGTH(TRIM(username)) > 0",
            name="ck_users_username_nonempty",
        ),
    )

    # ── clients ────────────────────────────────────────────────────────────
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.String(length=254), nullable=False),
        sa.Column("password_hash", sa.String(length=60), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_id"),
        sa.CheckConstraint(
            "LENGTH(TRIM(client_id)) > 0",
            name="ck_clients_client_id_nonempty",
        ),
    )

    # ── scopes ─────────────────────────────────────────────────────────────
    op.create_table(
        "scopes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("scope", sa.String(length=200), nullable=False),
        sa.Column(
            "is_default",
            sa.Boolean(),
            server_default=sa.false(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("scope"),
    )

    # ── refresh_tokens ─────────────────────────────────────────────────────
    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("refresh_token", sa.String(length=40), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("refresh_token"),
    )

    # ── access_tokens ──────────────────────────────────────────────────────
    # Exactly one owner: client XOR user.
    op.create_table(
        "access_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("access_token", sa.String(length=40), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("refresh_token_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("access_token"),
        sa.UniqueConstraint("refresh_token_id"),
        sa.ForeignKeyConstraint(
            ["client_id"], ["clients.id"], ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["refresh_token_id"], ["refresh_tokens.id"], ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "(client_id IS NULL) <> (user_id IS NULL)",
            name="ck_access_tokens_single_owner",
        ),
    )

    # ── access_token_scopes ────────────────────────────────────────────────
    op.create_table(
        "access_token_scopes",
        sa.Column("access_token_id", sa.Integer(), nullable=False),
        sa.Column("scope_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("access_token_id", "scope_id"),
        sa.ForeignKeyConstraint(
            ["access_token_id"], ["access_tokens.id"], ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["scope_id"], ["scopes.id"], ondelete="CASCADE",
        ),
    )

    # ── Indexes ────────────────────────────────────────────────────────────
    # Default-scope lookup runs on every issuance.
    op.create_index("ix_scopes_is_default", "scopes", ["is_default"])
    op.create_index("ix_access_tokens_client_id", "access_tokens", ["client_id"])
    op.create_index("ix_access_tokens_user_id", "access_tokens", ["user_id"])


def downgrade() -> None:
    """Drop everything created in upgrade(), in reverse dependency order."""

    op.drop_index("ix_access_tokens_user_id",   table_name="access_tokens")
    op.drop_index("ix_access_tokens_client_id", table_name="access_tokens")
    op.drop_index("ix_scopes_is_default",       table_name="scopes")

    op.drop_table("access_token_scopes")
    op.drop_table("access_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("scopes")
    op.drop_table("clients")
    op.drop_table("users")
