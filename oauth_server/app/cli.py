"""
cli.py — Flask CLI commands for provisioning the token store.

    flask --app "oauth_server.app:create_app()" create-user alice 's3cr3t'
    flask --app "oauth_server.app:create_app()" create-client svc-a 's3cr3t'
    flask --app "oauth_server.app:create_app()" create-scope read --default

Secrets are bcrypt-hashed with BCRYPT_LOG_ROUNDS before they are stored.
"""

from __future__ import annotations

import click
from sqlalchemy.exc import SQLAlchemyError
from flask import Flask, current_app
from flask.cli import with_appcontext

from oauth_server.app.errors import AppError
from oauth_server.app.extensions import db
from oauth_server.app.services import account_service


def _commit_or_fail(create, *args, **kwargs):
    try:
        row = create(*args, session=db.session, **kwargs)
    except AppError as error:
        db.session.rollback()
        raise click.ClickException(error.message)
    except SQLAlchemyError as error:
        # e.g. an empty name tripping a CHECK constraint.
        db.session.rollback()
        raise click.ClickException(str(getattr(error, "orig", None) or error))
    except ValueError as error:
        # bcrypt rejects secrets longer than 72 bytes.
        db.session.rollback()
        raise click.ClickException(str(error))
    db.session.commit()
    return row


@click.command("create-user")
@click.argument("username")
@click.argument("password")
@with_appcontext
def create_user_command(username: str, password: str) -> None:
    """Create a resource owner for the password grant."""
    user = _commit_or_fail(
        account_service.create_user,
        username,
        password,
        rounds=current_app.config["BCRYPT_LOG_ROUNDS"],
    )
    click.echo(f"Created user {user.username} (id={user.id})")


@click.command("create-client")
@click.argument("client_id")
@click.argument("client_secret")
@with_appcontext
def create_client_command(client_id: str, client_secret: str) -> None:
    """Create a confidential client for the client_credentials grant."""
    client = _commit_or_fail(
        account_service.create_client,
        client_id,
        client_secret,
        rounds=current_app.config["BCRYPT_LOG_ROUNDS"],
    )
    click.echo(f"Created client {client.client_id} (id={client.id})")


@click.command("create-scope")
@click.argument("name")
@click.option("--default", "is_default", is_flag=True, help="Attach to every new access token.")
@with_appcontext
def create_scope_command(name: str, is_default: bool) -> None:
    """Create a scope, optionally flagged as a default scope."""
    scope = _commit_or_fail(account_service.create_scope, name, is_default)
    suffix = " [default]" if scope.is_default else ""
    click.echo(f"Created scope {scope.scope}{suffix}")


def register_commands(app: Flask) -> None:
    app.cli.add_command(create_user_command)
    app.cli.add_command(create_client_command)
    app.cli.add_command(create_scope_command)
