"""
routes/tokens.py — OAuth 2.0 token endpoint.

Layer rules:
  - Resolve the grant type, load the grant's form fields with its schema
  - Call exactly ONE service flow with the config and the store handle
  - Commit the DB session
  - Return the token response body

AppError propagates to the global error handler in app/__init__.py — routes
never catch it.

Endpoints (url_prefix=/api/v1/oauth):
  POST   /oauth/tokens     → 200
  GET    /oauth/tokeninfo  → 200 (Bearer token required)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from oauth_server.app.errors import AppError, ErrorCode
from oauth_server.app.extensions import db
from oauth_server.app.grants import GrantType
from oauth_server.app.middleware.auth_middleware import require_bearer
from oauth_server.app.schemas.token_schema import (
    ClientCredentialsGrantSchema,
    GrantSchema,
    PasswordGrantSchema,
    RefreshTokenGrantSchema,
    TokenInfoSchema,
    TokenResponseSchema,
)
from oauth_server.app.services import token_service

tokens_bp = Blueprint("tokens", __name__)

# One (form schema, service flow) pair per grant type.
_GRANT_FLOWS = {
    GrantType.PASSWORD: (
        PasswordGrantSchema,
        token_service.password_grant,
    ),
    GrantType.CLIENT_CREDENTIALS: (
        ClientCredentialsGrantSchema,
        token_service.client_credentials_grant,
    ),
    GrantType.REFRESH_TOKEN: (
        RefreshTokenGrantSchema,
        token_service.refresh_token_grant,
    ),
}

# RFC 6749 §5.1: token responses must not be cached.
_NO_STORE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


def _connect() -> Session:
    """Returns the request's store handle, checking that it can reach the DB."""
    try:
        db.session.connection()
    except SQLAlchemyError:
        current_app.logger.exception("Token store connection failed")
        raise AppError(
            ErrorCode.DATABASE_UNAVAILABLE,
            "Error connecting to database",
            500,
        )
    return db.session


def _grant_fields(schema: GrantSchema) -> dict:
    """
    Request parameters (form body, then query string) for `schema`, with HTTP Basic credentials (when present)
    taking the place of the form's identifier/secret pair.
    """
    fields = request.values.to_dict()
    auth = request.authorization
    if schema.BASIC_AUTH_FIELDS and auth is not None and auth.type == "basic":
        identifier_field, secret_field = schema.BASIC_AUTH_FIELDS
        fields[identifier_field] = auth.username or ""
        fields[secret_field] = auth.password or ""
    return fields


@tokens_bp.route("/tokens", methods=["POST"])
def tokens():
    """POST /oauth/tokens — Issue a token pair for any supported grant type."""
    grant_type = GrantType.parse(request.values.get("grant_type"))
    session = _connect()

    schema_class, flow = _GRANT_FLOWS[grant_type]
    schema = schema_class()
    data = schema.load(_grant_fields(schema))

    result = flow(**data, config=current_app.config, session=session)
    session.commit()

    current_app.logger.info(
        "Issued access token id=%s via %s grant",
        result["id"],
        grant_type.value,
    )
    return jsonify(TokenResponseSchema().dump(result)), 200, _NO_STORE_HEADERS


@tokens_bp.route("/tokeninfo", methods=["GET"])
@require_bearer
def tokeninfo():
    """GET /oauth/tokeninfo — Describe the presented access token."""
    result = token_service.describe_access_token(g.access_token)
    return jsonify(TokenInfoSchema().dump(result)), 200, _NO_STORE_HEADERS
