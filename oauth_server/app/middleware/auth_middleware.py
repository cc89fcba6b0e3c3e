"""
middleware/auth_middleware.py — Bearer access-token authentication decorator.

The @require_bearer decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Resolves the opaque token against the token store
  3. Rejects unknown or expired tokens
  4. Attaches the AccessToken row to flask.g for the duration of the request

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header or unknown token
  TOKEN_EXPIRED  (401) — known token past its expires_at
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import g, request

from oauth_server.app.errors import AppError, ErrorCode
from oauth_server.app.extensions import db
from oauth_server.app.services import token_service


def require_bearer(f: Callable) -> Callable:
    """
    Route decorator that enforces bearer-token authentication.

    Attaches the resolved AccessToken to flask.g.access_token.
    Raises AppError for all auth failures — the global error handler converts
    these to the JSON error body. Routes never catch AppError.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    g.access_token = token_service.authenticate_bearer(parts[1], db.session)
