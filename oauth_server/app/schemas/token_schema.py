"""
schemas/token_schema.py — Marshmallow schemas for the token endpoint.

Grant schemas read the credential fields of one grant type from the form.
Missing credentials load as "" so that an absent field goes through the
same lookup-and-verify path as a wrong one and yields the same response.

BASIC_AUTH_FIELDS names the (identifier, secret) fields that HTTP Basic
credentials take the place of when the request carries them.

All schemas inherit from marshmallow.Schema directly so they can be used
in unit tests without a Flask app context.
"""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, fields


class GrantSchema(Schema):

    BASIC_AUTH_FIELDS: tuple[str, str] | None = None

    class Meta:
        # grant_type and any extra OAuth parameters are not ours to reject.
        unknown = EXCLUDE


class PasswordGrantSchema(GrantSchema):
    """grant_type=password"""

    BASIC_AUTH_FIELDS = ("username", "password")

    username = fields.Str(load_default="")
    password = fields.Str(load_default="", load_only=True)


class ClientCredentialsGrantSchema(GrantSchema):
    """grant_type=client_credentials"""

    BASIC_AUTH_FIELDS = ("client_id", "client_secret")

    client_id = fields.Str(load_default="")
    client_secret = fields.Str(load_default="", load_only=True)


class RefreshTokenGrantSchema(GrantSchema):
    """grant_type=refresh_token"""

    refresh_token = fields.Str(load_default="")


class TokenResponseSchema(Schema):
    """Successful token response body."""

    id = fields.Int(required=True)
    access_token = fields.Str(required=True)
    expires_in = fields.Int(required=True)
    token_type = fields.Str(required=True)
    scope = fields.Str(required=True)
    refresh_token = fields.Str(required=True)


class TokenInfoSchema(Schema):
    """GET /oauth/tokeninfo response body."""

    id = fields.Int(required=True)
    client_id = fields.Int(allow_none=True)
    user_id = fields.Int(allow_none=True)
    scope = fields.Str(required=True)
    expires_in = fields.Int(required=True)
